"""
Invitation Model

A single-use, time-limited invitation for a prospective user. Only the
SHA-256 hash of the token is stored; the plain token is handed to the issuer
once.
"""

import uuid
from datetime import datetime
from enum import Enum

from sqlalchemy import DateTime, ForeignKey, Index, String, Uuid
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column

from gdpt.modules.shared import BaseModel
from gdpt.modules.users.models import UserRole


class InvitationStatus(str, Enum):
    """Derived invitation state. Never stored."""

    VALID = "VALID"
    EXPIRED = "EXPIRED"
    USED = "USED"
    NOT_FOUND = "NOT_FOUND"


class Invitation(BaseModel):
    """Invitation record. Immutable once used_at is set."""

    __tablename__ = "invitations"
    __table_args__ = (Index("ix_invitations_email", "email"),)

    email: Mapped[str] = mapped_column(String(255), nullable=False)
    name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    role: Mapped[UserRole] = mapped_column(
        SAEnum(UserRole, name="user_role"),
        nullable=False,
    )
    unit_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)

    token_hash: Mapped[str] = mapped_column(
        String(64),
        unique=True,
        index=True,
        nullable=False,
    )
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    used_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Nullable so deleting the issuing admin keeps the invitation history.
    created_by: Mapped[uuid.UUID | None] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<Invitation(id={self.id}, email={self.email}, role={self.role.value})>"
