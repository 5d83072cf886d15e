from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from app.core.auth.roles import Role
from app.core.auth.schemas import UserResponse

# ===== USER MANAGEMENT =====

class UserCreate(BaseModel):
    """Create a workflow user (admins only)"""
    email: str = Field(..., min_length=3, max_length=255, description="Unique email")
    password: str = Field(..., min_length=8, description="Password (at least 8 characters)")
    name: str = Field(..., min_length=1, max_length=255)
    role: Role = Field(..., description="Agent, TreasuryOPS, TreasuryOfficer, TradeDesk, ADMIN, SUPER_ADMIN")

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return value.strip().lower()

    @field_validator("role", mode="before")
    @classmethod
    def parse_role(cls, value):
        return Role.parse(value)

class UserUpdate(BaseModel):
    """Activate/deactivate, rename or change the role of a user"""
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    role: Optional[Role] = None
    is_active: Optional[bool] = None

    @field_validator("role", mode="before")
    @classmethod
    def parse_role(cls, value):
        return Role.parse(value) if value is not None else None

class OfficerInfo(BaseModel):
    """Forwarding target as shown to Treasury OPS"""
    id: str
    name: Optional[str] = None
    email: str

    class Config:
        from_attributes = True

__all__ = ["UserCreate", "UserUpdate", "UserResponse", "OfficerInfo"]
