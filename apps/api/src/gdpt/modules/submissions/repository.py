"""
Student Submissions Repository

Database operations for child registration submissions.

Design Principles:
- Single responsibility - only database operations, no business logic
- Nothing commits; the caller's unit of work owns the transaction
- Status changes are validated against the workflow state machine
"""

from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from gdpt.modules.submissions.models import StudentSubmission, SubmissionStatus

# Valid status transitions for the review workflow.
# Revise/reject cycles are unbounded; APPROVED is terminal.
VALID_STATUS_TRANSITIONS: dict[SubmissionStatus, set[SubmissionStatus]] = {
    SubmissionStatus.PENDING: {
        SubmissionStatus.APPROVED,
        SubmissionStatus.REJECTED,
    },
    SubmissionStatus.REJECTED: {
        SubmissionStatus.REVISED,  # Parent resubmitted
    },
    SubmissionStatus.REVISED: {
        SubmissionStatus.APPROVED,
        SubmissionStatus.REJECTED,
    },
    SubmissionStatus.APPROVED: set(),
}


class InvalidStatusTransitionError(ValueError):
    """Raised when an invalid status transition is attempted."""

    def __init__(
        self,
        current_status: SubmissionStatus,
        new_status: SubmissionStatus,
    ):
        self.current_status = current_status
        self.new_status = new_status
        valid_transitions = VALID_STATUS_TRANSITIONS.get(current_status, set())
        super().__init__(
            f"Invalid status transition: {current_status.value} -> {new_status.value}. "
            f"Valid transitions: {sorted(s.value for s in valid_transitions)}"
        )


def check_transition(current_status: SubmissionStatus, new_status: SubmissionStatus) -> None:
    """Raise InvalidStatusTransitionError unless current -> new is allowed."""
    if new_status not in VALID_STATUS_TRANSITIONS.get(current_status, set()):
        raise InvalidStatusTransitionError(current_status, new_status)


class SubmissionRepository:
    """Repository for student submission database operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create(
        self,
        *,
        parent_id: UUID,
        submitted_data: dict[str, Any],
        submission_notes: str | None = None,
    ) -> StudentSubmission:
        """Insert a new PENDING submission."""
        submission = StudentSubmission(
            parent_id=parent_id,
            submitted_data=submitted_data,
            submission_notes=submission_notes,
            status=SubmissionStatus.PENDING,
        )
        self.db.add(submission)
        await self.db.flush()
        await self.db.refresh(submission)
        return submission

    async def get_by_id(
        self,
        submission_id: UUID,
        *,
        for_update: bool = False,
    ) -> StudentSubmission | None:
        stmt = select(StudentSubmission).where(StudentSubmission.id == submission_id)
        if for_update:
            stmt = stmt.with_for_update()
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def list_submissions(
        self,
        *,
        status: SubmissionStatus | None = None,
        parent_id: UUID | None = None,
    ) -> list[StudentSubmission]:
        """
        List submissions.

        Pending queues (PENDING/REVISED filters) come back oldest first so
        reviewers work FIFO; everything else is newest first.
        """
        stmt = select(StudentSubmission)
        if status:
            stmt = stmt.where(StudentSubmission.status == status)
        if parent_id:
            stmt = stmt.where(StudentSubmission.parent_id == parent_id)

        if status in (SubmissionStatus.PENDING, SubmissionStatus.REVISED):
            stmt = stmt.order_by(StudentSubmission.created_at.asc())
        else:
            stmt = stmt.order_by(StudentSubmission.created_at.desc())

        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def update_status(
        self,
        submission: StudentSubmission,
        status: SubmissionStatus,
        **kwargs: Any,
    ) -> StudentSubmission:
        """
        Update submission status and optional fields.

        Args:
            submission: Submission loaded in the current transaction
            status: New status to set
            **kwargs: Additional fields to update (e.g., reviewed_by, review_notes)

        Returns:
            Updated StudentSubmission

        Raises:
            InvalidStatusTransitionError: If status transition is not allowed
        """
        check_transition(submission.status, status)

        submission.status = status
        for key, value in kwargs.items():
            if hasattr(submission, key):
                setattr(submission, key, value)

        await self.db.flush()
        return submission
