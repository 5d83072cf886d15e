from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from app.core.auth.roles import Role


class LoginRequest(BaseModel):
    email: str = Field(..., min_length=3, max_length=255)
    password: str = Field(..., min_length=1)


class UserResponse(BaseModel):
    """Authenticated caller as seen by the workflow"""
    id: str
    email: str
    name: Optional[str] = None
    role: Role
    is_active: bool = True
    created_at: Optional[datetime] = None

    @field_validator("role", mode="before")
    @classmethod
    def normalize_role(cls, value):
        return Role.parse(value)

    class Config:
        from_attributes = True


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    user: UserResponse
