"""
Invitation Schemas

Pydantic models for invitation requests and responses.
"""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field, model_validator

from gdpt.modules.invitations.models import InvitationStatus
from gdpt.modules.users.models import UserRole

PASSWORD_MIN_LENGTH = 8
PASSWORD_MAX_LENGTH = 128


class InvitationCreate(BaseModel):
    """Request body for issuing an invitation."""

    model_config = ConfigDict(str_strip_whitespace=True)

    email: EmailStr
    role: UserRole
    name: str | None = Field(default=None, max_length=200)
    unit_id: UUID | None = None

    @model_validator(mode="after")
    def unit_only_for_leaders(self) -> "InvitationCreate":
        if self.unit_id is not None and self.role != UserRole.LEADER:
            raise ValueError("unit_id can only be set for LEADER invitations")
        return self


class InvitationAccept(BaseModel):
    """Request body for accepting an invitation."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=2, max_length=200)
    password: str = Field(min_length=PASSWORD_MIN_LENGTH, max_length=PASSWORD_MAX_LENGTH)


class InvitationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    email: str
    name: str | None
    role: UserRole
    unit_id: UUID | None
    expires_at: datetime
    used_at: datetime | None
    created_by: UUID | None
    created_at: datetime
    status: InvitationStatus


class IssuedInvitationResponse(BaseModel):
    """Returned once to the issuer; the plain token is not retrievable later."""

    invitation: InvitationResponse
    token: str
    invite_url: str


class InvitationValidationResponse(BaseModel):
    status: InvitationStatus
    email: str | None = None
    name: str | None = None
    role: UserRole | None = None
    expires_at: datetime | None = None


class AcceptInvitationResponse(BaseModel):
    user_id: UUID
    email: str
    role: UserRole
    message: str
