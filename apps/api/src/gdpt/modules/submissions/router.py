"""
Student Submissions Parent Router

Endpoints for parents registering their children.

Endpoints:
- POST /submissions - Submit a registration
- GET /submissions/mine - List own submissions
- PUT /submissions/{id} - Resubmit a rejected registration
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, status

from gdpt.core.auth import CurrentUser, require_parent
from gdpt.core.errors import EngineError, http_error
from gdpt.core.events import EventBus, get_event_bus
from gdpt.core.unit_of_work import SqlAlchemyUnitOfWork, get_uow
from gdpt.modules.notifications.sink import NotificationSink, get_notification_sink
from gdpt.modules.submissions import service
from gdpt.modules.submissions.schemas import SubmissionCreate, SubmissionResponse

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("", response_model=SubmissionResponse, status_code=status.HTTP_201_CREATED)
async def submit_registration(
    body: SubmissionCreate,
    parent: CurrentUser = Depends(require_parent),
    uow: SqlAlchemyUnitOfWork = Depends(get_uow),
    notifier: NotificationSink = Depends(get_notification_sink),
    events: EventBus = Depends(get_event_bus),
) -> SubmissionResponse:
    """Submit a child registration for review."""
    try:
        submission = await service.submit_registration(
            uow,
            parent.id,
            body.data,
            body.notes,
            notifier=notifier,
            events=events,
        )
    except EngineError as e:
        raise http_error(e) from e

    return SubmissionResponse.model_validate(submission)


@router.get("/mine", response_model=list[SubmissionResponse])
async def list_my_submissions(
    parent: CurrentUser = Depends(require_parent),
    uow: SqlAlchemyUnitOfWork = Depends(get_uow),
) -> list[SubmissionResponse]:
    """List the caller's submissions, newest first."""
    submissions = await service.list_parent_submissions(uow, parent.id)
    return [SubmissionResponse.model_validate(s) for s in submissions]


@router.put("/{submission_id}", response_model=SubmissionResponse)
async def resubmit_registration(
    submission_id: UUID,
    body: SubmissionCreate,
    parent: CurrentUser = Depends(require_parent),
    uow: SqlAlchemyUnitOfWork = Depends(get_uow),
    notifier: NotificationSink = Depends(get_notification_sink),
    events: EventBus = Depends(get_event_bus),
) -> SubmissionResponse:
    """Resubmit a rejected registration with corrected details."""
    try:
        submission = await service.resubmit_registration(
            uow,
            submission_id,
            body.data,
            body.notes,
            parent_id=parent.id,
            notifier=notifier,
            events=events,
        )
    except EngineError as e:
        raise http_error(e) from e

    return SubmissionResponse.model_validate(submission)
