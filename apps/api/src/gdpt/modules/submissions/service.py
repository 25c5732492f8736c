"""
Student Submissions Service Layer

Review workflow for parent-submitted child registrations.

    PENDING  --approve-->  APPROVED (terminal)
    PENDING  --reject--->  REJECTED
    REJECTED --resubmit->  REVISED
    REVISED  --approve-->  APPROVED
    REVISED  --reject--->  REJECTED

Approval is the critical atomic operation: the Student, the parent link and
the status flip are written in one transaction, and a failure at any step
leaves no partial state behind. Notifications go out only after commit.
"""

import logging
from datetime import UTC, datetime
from typing import Any
from uuid import UUID

from pydantic import ValidationError as PydanticValidationError

from gdpt.core.errors import (
    EngineError,
    InternalEngineError,
    InvalidInputError,
    InvalidStateTransitionError,
    NotFoundError,
)
from gdpt.core.events import EngineEvent, EngineEventType, EventBus, publish
from gdpt.core.unit_of_work import UnitOfWork
from gdpt.modules.notifications.models import NotificationType
from gdpt.modules.notifications.sink import NotificationRequest, NotificationSink, dispatch
from gdpt.modules.students.models import PARENT_RELATION, Student
from gdpt.modules.submissions.models import StudentSubmission, SubmissionStatus
from gdpt.modules.submissions.repository import (
    VALID_STATUS_TRANSITIONS,
    InvalidStatusTransitionError,
)
from gdpt.modules.submissions.schemas import SubmissionData
from gdpt.modules.users.models import UserRole

logger = logging.getLogger(__name__)


def _parse_payload(payload: SubmissionData | dict[str, Any]) -> SubmissionData:
    if isinstance(payload, SubmissionData):
        return payload
    try:
        return SubmissionData.model_validate(payload)
    except PydanticValidationError as e:
        raise InvalidInputError.from_pydantic(e) from e


def _ensure_transition(
    submission: StudentSubmission,
    new_status: SubmissionStatus,
    action: str,
) -> None:
    if new_status not in VALID_STATUS_TRANSITIONS.get(submission.status, set()):
        logger.warning(
            f"Cannot {action} submission {submission.id}: status={submission.status.value}"
        )
        raise InvalidStateTransitionError(submission.status.value, action)


async def _update_status(
    uow: UnitOfWork,
    submission: StudentSubmission,
    new_status: SubmissionStatus,
    action: str,
    **fields: Any,
) -> StudentSubmission:
    try:
        return await uow.submissions.update_status(submission, new_status, **fields)
    except InvalidStatusTransitionError as e:
        raise InvalidStateTransitionError(e.current_status.value, action) from e


async def _notify_admins_of_submission(
    notifier: NotificationSink | None,
    submission: StudentSubmission,
    parent_name: str,
    child_name: str,
    revised: bool,
) -> None:
    verb = "resubmitted" if revised else "submitted"
    await dispatch(
        notifier,
        NotificationRequest(
            type=NotificationType.REGISTRATION_SUBMITTED,
            roles=[UserRole.ADMIN],
            title="Registration resubmitted" if revised else "New registration",
            message=f"{parent_name} {verb} a registration for {child_name}.",
            payload={"submission_id": str(submission.id), "student_name": child_name},
            action_url=f"/admin/submissions/{submission.id}",
        ),
    )


async def submit_registration(
    uow: UnitOfWork,
    parent_id: UUID,
    payload: SubmissionData | dict[str, Any],
    notes: str | None = None,
    *,
    notifier: NotificationSink | None = None,
    events: EventBus | None = None,
) -> StudentSubmission:
    """
    Submit a child registration for review.

    Args:
        uow: Unit of work
        parent_id: Submitting parent
        payload: Child details (validated here)
        notes: Optional note to reviewers
        notifier: Sink notified (all ADMIN users) after commit
        events: Event bus for post-commit events

    Returns:
        The PENDING submission

    Raises:
        InvalidInputError: Payload missing required fields or malformed
        NotFoundError: Parent account does not exist
    """
    data = _parse_payload(payload)

    async with uow:
        parent = await uow.users.get_by_id(parent_id)
        if parent is None:
            raise NotFoundError("User", parent_id)

        submission = await uow.submissions.create(
            parent_id=parent_id,
            submitted_data=data.model_dump(mode="json"),
            submission_notes=notes,
        )
        parent_name = parent.name

    logger.info(f"Submission {submission.id} created by parent {parent_id}")

    await _notify_admins_of_submission(notifier, submission, parent_name, data.name, revised=False)
    await publish(
        events,
        EngineEvent(
            type=EngineEventType.SUBMISSION_CREATED,
            entity_id=submission.id,
            actor_id=parent_id,
        ),
    )
    return submission


async def resubmit_registration(
    uow: UnitOfWork,
    submission_id: UUID,
    payload: SubmissionData | dict[str, Any],
    notes: str | None = None,
    *,
    parent_id: UUID | None = None,
    notifier: NotificationSink | None = None,
    events: EventBus | None = None,
) -> StudentSubmission:
    """
    Resubmit a rejected registration with corrected data.

    Replaces the payload and notes, clears the previous review and moves the
    submission to REVISED.

    Args:
        uow: Unit of work
        submission_id: Submission to revise
        payload: Corrected child details
        notes: Optional note to reviewers
        parent_id: When given, the submission must belong to this parent
        notifier: Sink notified (all ADMIN users) after commit
        events: Event bus for post-commit events

    Raises:
        InvalidInputError: Payload invalid
        NotFoundError: Submission absent (or owned by another parent)
        InvalidStateTransitionError: Submission is not REJECTED
    """
    data = _parse_payload(payload)

    async with uow:
        submission = await uow.submissions.get_by_id(submission_id, for_update=True)
        if submission is None or (parent_id is not None and submission.parent_id != parent_id):
            raise NotFoundError("Submission", submission_id)

        _ensure_transition(submission, SubmissionStatus.REVISED, "resubmit")

        submission = await _update_status(
            uow,
            submission,
            SubmissionStatus.REVISED,
            "resubmit",
            submitted_data=data.model_dump(mode="json"),
            submission_notes=notes,
            review_notes=None,
            reviewed_by=None,
            reviewed_at=None,
        )

        parent = await uow.users.get_by_id(submission.parent_id)
        parent_name = parent.name if parent else "A parent"

    logger.info(f"Submission {submission_id} resubmitted")

    await _notify_admins_of_submission(notifier, submission, parent_name, data.name, revised=True)
    await publish(
        events,
        EngineEvent(
            type=EngineEventType.SUBMISSION_REVISED,
            entity_id=submission_id,
            actor_id=submission.parent_id,
        ),
    )
    return submission


async def approve_submission(
    uow: UnitOfWork,
    submission_id: UUID,
    reviewer_id: UUID,
    *,
    notifier: NotificationSink | None = None,
    events: EventBus | None = None,
) -> Student:
    """
    Approve a submission and enroll the child.

    This is the CRITICAL atomic operation that:
    1. Validates the submission is PENDING or REVISED
    2. Creates the Student from the submitted data
    3. Links the Student to the submitting parent
    4. Marks the submission APPROVED with reviewer and timestamp

    If any step fails, everything rolls back. The parent is notified after
    commit.

    Args:
        uow: Unit of work
        submission_id: Submission to approve
        reviewer_id: Approving administrator
        notifier: Sink notified (the parent) after commit
        events: Event bus for post-commit events

    Returns:
        The created Student

    Raises:
        NotFoundError: Submission does not exist
        InvalidStateTransitionError: Submission is not PENDING or REVISED
        InternalEngineError: Unexpected storage failure (everything rolled back)
    """
    logger.info(f"Reviewer {reviewer_id} approving submission {submission_id}")

    try:
        async with uow:
            submission = await uow.submissions.get_by_id(submission_id, for_update=True)
            if submission is None:
                raise NotFoundError("Submission", submission_id)

            _ensure_transition(submission, SubmissionStatus.APPROVED, "approve")

            data = _parse_payload(submission.submitted_data)

            student = await uow.students.create_student(
                name=data.name,
                dharma_name=data.dharma_name,
                date_of_birth=data.date_of_birth,
                gender=data.gender,
                unit_id=data.unit_id,
                class_id=data.class_id,
                notes=data.notes,
            )
            await uow.students.create_link(
                parent_id=submission.parent_id,
                student_id=student.id,
                relation=PARENT_RELATION,
            )
            submission = await _update_status(
                uow,
                submission,
                SubmissionStatus.APPROVED,
                "approve",
                reviewed_by=reviewer_id,
                reviewed_at=datetime.now(UTC),
            )
    except EngineError:
        raise
    except Exception as e:
        logger.error(f"Failed to approve submission {submission_id}: {e}", exc_info=True)
        raise InternalEngineError() from e

    logger.info(f"Submission {submission_id} approved, student {student.id} enrolled")

    await dispatch(
        notifier,
        NotificationRequest(
            type=NotificationType.REGISTRATION_APPROVED,
            user_ids=[submission.parent_id],
            title="Registration approved",
            message=f"The registration for {student.name} has been approved.",
            payload={"submission_id": str(submission_id), "student_id": str(student.id)},
            action_url="/parent/children",
        ),
    )
    await publish(
        events,
        EngineEvent(
            type=EngineEventType.SUBMISSION_APPROVED,
            entity_id=submission_id,
            actor_id=reviewer_id,
            data={"student_id": str(student.id)},
        ),
    )
    return student


async def reject_submission(
    uow: UnitOfWork,
    submission_id: UUID,
    reviewer_id: UUID,
    review_notes: str,
    *,
    notifier: NotificationSink | None = None,
    events: EventBus | None = None,
) -> StudentSubmission:
    """
    Reject a submission with a reason the parent can act on.

    Raises:
        InvalidInputError: review_notes empty or whitespace
        NotFoundError: Submission does not exist
        InvalidStateTransitionError: Submission is not PENDING or REVISED
    """
    reason = (review_notes or "").strip()
    if not reason:
        raise InvalidInputError(
            "Review notes are required to reject a submission",
            {"review_notes": "required"},
        )

    async with uow:
        submission = await uow.submissions.get_by_id(submission_id, for_update=True)
        if submission is None:
            raise NotFoundError("Submission", submission_id)

        _ensure_transition(submission, SubmissionStatus.REJECTED, "reject")

        submission = await _update_status(
            uow,
            submission,
            SubmissionStatus.REJECTED,
            "reject",
            reviewed_by=reviewer_id,
            review_notes=reason,
            reviewed_at=datetime.now(UTC),
        )
        child_name = submission.submitted_data.get("name", "your child")

    logger.info(f"Submission {submission_id} rejected by {reviewer_id}")

    await dispatch(
        notifier,
        NotificationRequest(
            type=NotificationType.REGISTRATION_REJECTED,
            user_ids=[submission.parent_id],
            title="Registration needs changes",
            message=f"The registration for {child_name} was not approved. Reason: {reason}",
            payload={"submission_id": str(submission_id), "review_notes": reason},
            action_url=f"/parent/submissions/{submission_id}",
        ),
    )
    await publish(
        events,
        EngineEvent(
            type=EngineEventType.SUBMISSION_REJECTED,
            entity_id=submission_id,
            actor_id=reviewer_id,
        ),
    )
    return submission


async def list_submissions(
    uow: UnitOfWork,
    status: SubmissionStatus | None = None,
) -> list[StudentSubmission]:
    """Submissions for the review queue; PENDING and REVISED come oldest first."""
    async with uow:
        return await uow.submissions.list_submissions(status=status)


async def list_parent_submissions(uow: UnitOfWork, parent_id: UUID) -> list[StudentSubmission]:
    """A parent's own submissions, newest first."""
    async with uow:
        return await uow.submissions.list_submissions(parent_id=parent_id)
