from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from redis import asyncio as aioredis

from loanbook.core.database import get_db, get_redis
from loanbook.core.dependencies import get_current_user, oauth2_scheme
from loanbook.modules.users.models import User
from loanbook.modules.users import schemas, services

router = APIRouter(prefix="/api/v1/users", tags=["users"])


@router.post("/register", response_model=schemas.UserProfileResponse, status_code=status.HTTP_201_CREATED)
async def register_user(
    user_data: schemas.UserRegistrationRequest,
    db: AsyncSession = Depends(get_db)
):
    """
    Register a new user.

    - Checks email uniqueness
    - Stores a bcrypt hash of the password
    """
    return await services.UserService.register_user(db, user_data)


@router.post("/login", response_model=schemas.TokenResponse)
async def login(
    login_data: schemas.UserLoginRequest,
    db: AsyncSession = Depends(get_db)
):
    """
    Login with email and password.

    - Returns a JWT bearer access token
    """
    user = await services.UserService.authenticate_user(db, login_data.email, login_data.password)

    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password"
        )

    return services.UserService.create_token(user.id)


@router.post("/logout", status_code=status.HTTP_200_OK)
async def logout(
    current_user: User = Depends(get_current_user),
    token: str = Depends(oauth2_scheme),
    redis: aioredis.Redis = Depends(get_redis)
):
    """
    Logout current user by revoking the presented token.
    """
    await services.UserService.revoke_token(redis, token)
    return {"message": "Logged out successfully"}


@router.get("/profile", response_model=schemas.UserProfileResponse)
async def get_profile(current_user: User = Depends(get_current_user)):
    """
    Get current user's profile.
    """
    return current_user


@router.put("/profile", response_model=schemas.UserProfileResponse)
async def update_profile(
    profile_data: schemas.UserProfileUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Update display name and currency preference.
    """
    return await services.UserService.update_profile(db, current_user, profile_data)


@router.put("/password", status_code=status.HTTP_200_OK)
async def change_password(
    password_data: schemas.PasswordChangeRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Change password.

    - Current password must be correct
    - New password must be at least 6 characters and confirmed
    """
    await services.UserService.change_password(db, current_user, password_data)
    return {"message": "Password updated successfully"}
