"""
Leader Profile Model

Descriptive record for a youth leader. Its existence is coupled to the
LEADER role only at the moments it is created or deleted.
"""

import uuid
from datetime import date
from enum import Enum

from sqlalchemy import Date, ForeignKey, Integer, String, Text, Uuid
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column

from gdpt.modules.shared import BaseModel


class LeaderStatus(str, Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"


class LeaderProfile(BaseModel):
    """Leader profile, at most one per user."""

    __tablename__ = "leader_profiles"

    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )
    # Units are owned by the organization structure module; no FK here.
    unit_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    dharma_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    year_of_birth: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[LeaderStatus] = mapped_column(
        SAEnum(LeaderStatus, name="leader_status"),
        nullable=False,
        default=LeaderStatus.ACTIVE,
    )

    full_date_of_birth: Mapped[date | None] = mapped_column(Date, nullable=True)
    place_of_origin: Mapped[str | None] = mapped_column(String(255), nullable=True)
    education: Mapped[str | None] = mapped_column(String(255), nullable=True)
    occupation: Mapped[str | None] = mapped_column(String(255), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(30), nullable=True)
    address: Mapped[str | None] = mapped_column(Text, nullable=True)
    join_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    refuge_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    refuge_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    level: Mapped[str | None] = mapped_column(String(100), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<LeaderProfile(id={self.id}, user_id={self.user_id}, unit_id={self.unit_id})>"
