"""
User Schemas
"""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from gdpt.modules.users.models import UserRole


class UserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    email: str
    name: str
    role: UserRole
    email_verified: bool
    force_password_change: bool
    created_at: datetime


class UserCreate(BaseModel):
    """Request body for creating an account directly (no invitation)."""

    model_config = ConfigDict(str_strip_whitespace=True)

    email: EmailStr
    name: str = Field(min_length=2, max_length=200)


class TemporaryPasswordResponse(BaseModel):
    """Returned once to the administrator; the password is not retrievable later."""

    user: UserResponse
    temporary_password: str


class ChangeRoleRequest(BaseModel):
    role: UserRole


class ChangeRoleResponse(BaseModel):
    user: UserResponse
    needs_leader_profile: bool
