"""
Student Submission Model

A parent's request to register a child, reviewed by an administrator.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Any

from sqlalchemy import JSON, DateTime, ForeignKey, Text, Uuid
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column

from gdpt.modules.shared import BaseModel


class SubmissionStatus(str, Enum):
    """
    Review workflow status.

    PENDING -> APPROVED | REJECTED
    REJECTED -> REVISED (parent resubmits)
    REVISED -> APPROVED | REJECTED
    """

    PENDING = "PENDING"
    REVISED = "REVISED"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class StudentSubmission(BaseModel):
    """Child registration submitted by a parent."""

    __tablename__ = "student_submissions"

    parent_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    # Validated payload, see schemas.SubmissionData
    submitted_data: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    submission_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    status: Mapped[SubmissionStatus] = mapped_column(
        SAEnum(SubmissionStatus, name="submission_status"),
        nullable=False,
        default=SubmissionStatus.PENDING,
        index=True,
    )

    reviewed_by: Mapped[uuid.UUID | None] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    review_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<StudentSubmission(id={self.id}, status={self.status.value})>"
