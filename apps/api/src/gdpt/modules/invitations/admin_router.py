"""
Invitations Admin Router

Endpoints for administrators to manage invitations.

Endpoints:
- GET /admin/invitations - List invitations with derived status
- POST /admin/invitations - Issue an invitation (emails the link)
- POST /admin/invitations/{id}/resend - Rotate token and expiry, email again
- DELETE /admin/invitations/{id} - Cancel an unused invitation
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, status

from gdpt.core.auth import CurrentUser, require_admin
from gdpt.core.email import invitation_url
from gdpt.core.errors import EngineError, http_error
from gdpt.core.events import EventBus, get_event_bus
from gdpt.core.rate_limit import enforce_rate_limit
from gdpt.core.unit_of_work import SqlAlchemyUnitOfWork, get_uow
from gdpt.modules.invitations import service
from gdpt.modules.invitations.helpers import invitation_status
from gdpt.modules.invitations.schemas import (
    InvitationCreate,
    InvitationResponse,
    IssuedInvitationResponse,
)
from gdpt.modules.invitations.service import InvitationCheck, IssuedInvitation

logger = logging.getLogger(__name__)

router = APIRouter()

RATE_LIMIT_ISSUE = (20, 60)  # 20 invitations per minute per admin


def _to_response(check: InvitationCheck) -> InvitationResponse:
    invitation = check.invitation
    return InvitationResponse(
        id=invitation.id,
        email=invitation.email,
        name=invitation.name,
        role=invitation.role,
        unit_id=invitation.unit_id,
        expires_at=invitation.expires_at,
        used_at=invitation.used_at,
        created_by=invitation.created_by,
        created_at=invitation.created_at,
        status=check.status,
    )


def _to_issued_response(issued: IssuedInvitation) -> IssuedInvitationResponse:
    invitation = issued.invitation
    return IssuedInvitationResponse(
        invitation=_to_response(
            InvitationCheck(status=invitation_status(invitation), invitation=invitation)
        ),
        token=issued.token,
        invite_url=invitation_url(issued.token),
    )


@router.get("", response_model=list[InvitationResponse])
async def list_invitations(
    admin: CurrentUser = Depends(require_admin),
    uow: SqlAlchemyUnitOfWork = Depends(get_uow),
) -> list[InvitationResponse]:
    """List all invitations, newest first."""
    checks = await service.list_invitations(uow)
    return [_to_response(check) for check in checks]


@router.post("", response_model=IssuedInvitationResponse, status_code=status.HTTP_201_CREATED)
async def issue_invitation(
    body: InvitationCreate,
    admin: CurrentUser = Depends(require_admin),
    uow: SqlAlchemyUnitOfWork = Depends(get_uow),
    events: EventBus = Depends(get_event_bus),
) -> IssuedInvitationResponse:
    """
    Issue an invitation and email its link.

    The plain token is only ever returned here.
    """
    await enforce_rate_limit(f"invite:issue:{admin.id}", *RATE_LIMIT_ISSUE)

    try:
        issued = await service.issue_invitation(
            uow,
            email=body.email,
            role=body.role,
            name=body.name,
            unit_id=body.unit_id,
            issued_by=admin.id,
            events=events,
        )
    except EngineError as e:
        raise http_error(e) from e

    return _to_issued_response(issued)


@router.post("/{invitation_id}/resend", response_model=IssuedInvitationResponse)
async def resend_invitation(
    invitation_id: UUID,
    admin: CurrentUser = Depends(require_admin),
    uow: SqlAlchemyUnitOfWork = Depends(get_uow),
    events: EventBus = Depends(get_event_bus),
) -> IssuedInvitationResponse:
    """Rotate the token of an unused invitation and email the new link."""
    await enforce_rate_limit(f"invite:issue:{admin.id}", *RATE_LIMIT_ISSUE)

    try:
        issued = await service.resend_invitation(uow, invitation_id, admin.id, events=events)
    except EngineError as e:
        raise http_error(e) from e

    return _to_issued_response(issued)


@router.delete("/{invitation_id}", status_code=status.HTTP_204_NO_CONTENT)
async def cancel_invitation(
    invitation_id: UUID,
    admin: CurrentUser = Depends(require_admin),
    uow: SqlAlchemyUnitOfWork = Depends(get_uow),
    events: EventBus = Depends(get_event_bus),
) -> None:
    """Cancel an unused invitation."""
    try:
        await service.cancel_invitation(
            uow, invitation_id, cancelled_by=admin.id, events=events
        )
    except EngineError as e:
        raise http_error(e) from e
