"""
Student Submissions Admin Router

Review endpoints for administrators.

Endpoints:
- GET /admin/submissions - List submissions (optional status filter)
- POST /admin/submissions/{id}/approve - Approve and enroll the student
- POST /admin/submissions/{id}/reject - Reject with review notes
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from gdpt.core.auth import CurrentUser, require_admin
from gdpt.core.errors import EngineError, http_error
from gdpt.core.events import EventBus, get_event_bus
from gdpt.core.unit_of_work import SqlAlchemyUnitOfWork, get_uow
from gdpt.modules.notifications.sink import NotificationSink, get_notification_sink
from gdpt.modules.submissions import service
from gdpt.modules.submissions.models import SubmissionStatus
from gdpt.modules.submissions.schemas import ApproveResponse, RejectRequest, SubmissionResponse

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("", response_model=list[SubmissionResponse])
async def list_submissions(
    status: SubmissionStatus | None = Query(default=None),
    admin: CurrentUser = Depends(require_admin),
    uow: SqlAlchemyUnitOfWork = Depends(get_uow),
) -> list[SubmissionResponse]:
    """List submissions. PENDING and REVISED queues are returned oldest first."""
    submissions = await service.list_submissions(uow, status)
    return [SubmissionResponse.model_validate(s) for s in submissions]


@router.post("/{submission_id}/approve", response_model=ApproveResponse)
async def approve_submission(
    submission_id: UUID,
    admin: CurrentUser = Depends(require_admin),
    uow: SqlAlchemyUnitOfWork = Depends(get_uow),
    notifier: NotificationSink = Depends(get_notification_sink),
    events: EventBus = Depends(get_event_bus),
) -> ApproveResponse:
    """Approve a submission, creating the student and the parent link."""
    logger.info(f"Admin {admin.id} approving submission {submission_id}")

    try:
        student = await service.approve_submission(
            uow, submission_id, admin.id, notifier=notifier, events=events
        )
    except EngineError as e:
        raise http_error(e) from e

    return ApproveResponse(
        submission_id=submission_id,
        student_id=student.id,
        status=SubmissionStatus.APPROVED,
        message=f"{student.name} has been enrolled.",
    )


@router.post("/{submission_id}/reject", response_model=SubmissionResponse)
async def reject_submission(
    submission_id: UUID,
    body: RejectRequest,
    admin: CurrentUser = Depends(require_admin),
    uow: SqlAlchemyUnitOfWork = Depends(get_uow),
    notifier: NotificationSink = Depends(get_notification_sink),
    events: EventBus = Depends(get_event_bus),
) -> SubmissionResponse:
    """Reject a submission. Review notes are required."""
    try:
        submission = await service.reject_submission(
            uow,
            submission_id,
            admin.id,
            body.review_notes,
            notifier=notifier,
            events=events,
        )
    except EngineError as e:
        raise http_error(e) from e

    return SubmissionResponse.model_validate(submission)
