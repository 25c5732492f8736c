"""Authentication schemas."""

from pydantic import BaseModel, EmailStr, Field

from gdpt.modules.invitations.schemas import PASSWORD_MAX_LENGTH, PASSWORD_MIN_LENGTH
from gdpt.modules.users.schemas import UserResponse


class LoginRequest(BaseModel):
    """Login request schema."""

    email: EmailStr
    password: str


class LoginResponse(BaseModel):
    """Login response schema."""

    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    user: UserResponse


class ChangePasswordRequest(BaseModel):
    """Password change by the account owner."""

    current_password: str = Field(min_length=1, max_length=PASSWORD_MAX_LENGTH)
    new_password: str = Field(min_length=PASSWORD_MIN_LENGTH, max_length=PASSWORD_MAX_LENGTH)
