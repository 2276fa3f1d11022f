from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from fastapi import HTTPException, status
from typing import Optional
from redis import asyncio as aioredis
import logging

from loanbook.core.config import settings
from loanbook.core.security import (
    get_password_hash,
    verify_password,
    create_access_token,
    decode_token,
    token_seconds_remaining,
    blacklist_key
)
from loanbook.modules.users.models import User
from loanbook.modules.users import schemas

logger = logging.getLogger(__name__)


class UserService:
    """Service layer for user management operations"""

    @staticmethod
    async def register_user(db: AsyncSession, user_data: schemas.UserRegistrationRequest) -> User:
        """Register a new user"""

        # Check if email already exists
        result = await db.execute(select(User).where(User.email == user_data.email))
        if result.scalar_one_or_none():
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Email already registered"
            )

        user = User(
            name=user_data.name,
            email=user_data.email,
            hashed_password=get_password_hash(user_data.password)
        )

        try:
            db.add(user)
            await db.commit()
            await db.refresh(user)
        except IntegrityError:
            await db.rollback()
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="User registration failed. Please try again."
            )

        logger.info(f"Registered user {user.id}")
        return user

    @staticmethod
    async def authenticate_user(db: AsyncSession, email: str, password: str) -> Optional[User]:
        """Authenticate user with email and password"""
        result = await db.execute(select(User).where(User.email == email))
        user = result.scalar_one_or_none()

        if not user or not verify_password(password, user.hashed_password):
            return None

        return user

    @staticmethod
    def create_token(user_id: int) -> schemas.TokenResponse:
        """Issue an access token for the user"""
        access_token = create_access_token(data={"sub": str(user_id)})
        return schemas.TokenResponse(
            access_token=access_token,
            expires_in=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60
        )

    @staticmethod
    async def revoke_token(redis: aioredis.Redis, token: str) -> None:
        """Blacklist a token until it would have expired anyway"""
        payload = decode_token(token)
        await redis.setex(blacklist_key(token), token_seconds_remaining(payload), "1")

    @staticmethod
    async def update_profile(db: AsyncSession, user: User, profile_data: schemas.UserProfileUpdate) -> User:
        """Update name and display currency"""
        update_data = profile_data.model_dump(exclude_unset=True, exclude_none=True)
        for field, value in update_data.items():
            setattr(user, field, value)

        await db.commit()
        await db.refresh(user)
        return user

    @staticmethod
    async def change_password(db: AsyncSession, user: User, data: schemas.PasswordChangeRequest) -> None:
        """Change password after verifying the current one"""
        if not verify_password(data.current_password, user.hashed_password):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Current password is incorrect"
            )

        user.hashed_password = get_password_hash(data.new_password)
        await db.commit()
        logger.info(f"Password changed for user {user.id}")
