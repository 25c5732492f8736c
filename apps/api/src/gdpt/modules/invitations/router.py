"""
Invitations Public Router

Endpoints used by the invitee from the emailed link.

Endpoints:
- GET /invitations/{token} - Check whether a token can still be used
- POST /invitations/{token}/accept - Create the account
"""

import logging

from fastapi import APIRouter, Depends, Request, status

from gdpt.core.errors import EngineError, http_error
from gdpt.core.events import EventBus, get_event_bus
from gdpt.core.rate_limit import enforce_rate_limit
from gdpt.core.unit_of_work import SqlAlchemyUnitOfWork, get_uow
from gdpt.modules.invitations import service
from gdpt.modules.invitations.models import InvitationStatus
from gdpt.modules.invitations.schemas import (
    AcceptInvitationResponse,
    InvitationAccept,
    InvitationValidationResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter()

RATE_LIMIT_PUBLIC = (10, 60)  # per client IP


def _client_key(request: Request, action: str) -> str:
    client_ip = request.client.host if request.client else "unknown"
    return f"invite:{action}:{client_ip}"


@router.get("/{token}", response_model=InvitationValidationResponse)
async def validate_invitation(
    token: str,
    request: Request,
    uow: SqlAlchemyUnitOfWork = Depends(get_uow),
) -> InvitationValidationResponse:
    """
    Report whether an invitation token is usable.

    Details about the invitation are only disclosed while it is valid.
    """
    await enforce_rate_limit(_client_key(request, "validate"), *RATE_LIMIT_PUBLIC)

    check = await service.validate_invitation(uow, token)
    if check.status != InvitationStatus.VALID:
        return InvitationValidationResponse(status=check.status)

    invitation = check.invitation
    return InvitationValidationResponse(
        status=check.status,
        email=invitation.email,
        name=invitation.name,
        role=invitation.role,
        expires_at=invitation.expires_at,
    )


@router.post(
    "/{token}/accept",
    response_model=AcceptInvitationResponse,
    status_code=status.HTTP_201_CREATED,
)
async def accept_invitation(
    token: str,
    body: InvitationAccept,
    request: Request,
    uow: SqlAlchemyUnitOfWork = Depends(get_uow),
    events: EventBus = Depends(get_event_bus),
) -> AcceptInvitationResponse:
    """Accept an invitation and create the account."""
    await enforce_rate_limit(_client_key(request, "accept"), *RATE_LIMIT_PUBLIC)

    try:
        user = await service.accept_invitation(
            uow, token, body.name, body.password, events=events
        )
    except EngineError as e:
        raise http_error(e) from e

    return AcceptInvitationResponse(
        user_id=user.id,
        email=user.email,
        role=user.role,
        message="Your account has been created. You can now sign in.",
    )
