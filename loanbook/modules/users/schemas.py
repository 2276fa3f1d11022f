from pydantic import BaseModel, EmailStr, Field, model_validator
from typing import Optional
from datetime import datetime

from loanbook.modules.users.models import Currency


# User Registration
class UserRegistrationRequest(BaseModel):
    """User registration request"""
    name: str = Field(..., min_length=2, max_length=100)
    email: EmailStr
    password: str = Field(..., min_length=6)


# User Login
class UserLoginRequest(BaseModel):
    """User login request"""
    email: EmailStr
    password: str = Field(..., min_length=6)


class TokenResponse(BaseModel):
    """JWT token response"""
    access_token: str
    token_type: str = "bearer"
    expires_in: int


# Profile
class UserProfileResponse(BaseModel):
    id: int
    name: str
    email: EmailStr
    currency: Currency
    created_at: datetime

    class Config:
        from_attributes = True


class UserProfileUpdate(BaseModel):
    """Profile update (all optional)"""
    name: Optional[str] = Field(None, min_length=2, max_length=100)
    currency: Optional[Currency] = None


class PasswordChangeRequest(BaseModel):
    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=6)
    confirm_password: str

    @model_validator(mode="after")
    def passwords_match(self):
        if self.new_password != self.confirm_password:
            raise ValueError("Passwords do not match")
        return self
