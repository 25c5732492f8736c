"""
Invitations Service Layer

Business logic for the invitation lifecycle:

1. Issue: create a single-use, 7-day invitation and email its link.
2. Resend: rotate the token and expiry of an unused invitation.
3. Cancel: delete an unused invitation.
4. Validate: report VALID / EXPIRED / USED / NOT_FOUND for a token.
5. Accept: claim the invitation and provision the account atomically.

Security considerations:
- Tokens come from secrets.token_urlsafe (256 bits) and are SHA-256 hashed
  before storage; the plain token is returned to the issuer exactly once
- Accepting claims the row with a conditional UPDATE ... WHERE used_at IS NULL,
  so concurrent acceptances of one token produce exactly one account
- Passwords are hashed with bcrypt before the transaction opens
- Tokens and passwords are never logged
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from uuid import UUID

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import IntegrityError

from gdpt.core.config import settings
from gdpt.core.email import send_invitation_email
from gdpt.core.errors import (
    AlreadyUsedError,
    EngineError,
    InternalEngineError,
    InvalidInputError,
    NotFoundError,
    TokenAlreadyUsedError,
    TokenInvalidError,
)
from gdpt.core.events import EngineEvent, EngineEventType, EventBus, publish
from gdpt.core.security import hash_password
from gdpt.core.unit_of_work import UnitOfWork
from gdpt.modules.invitations.helpers import as_utc, generate_token, hash_token, invitation_status
from gdpt.modules.invitations.models import Invitation, InvitationStatus
from gdpt.modules.invitations.schemas import InvitationAccept, InvitationCreate
from gdpt.modules.users.models import User, UserRole

logger = logging.getLogger(__name__)

# Year of birth recorded on leader profiles created from an invitation,
# until the leader completes their profile.
PLACEHOLDER_LEADER_AGE = 25


@dataclass(frozen=True)
class IssuedInvitation:
    """An invitation together with its plain token."""

    invitation: Invitation
    token: str


@dataclass(frozen=True)
class InvitationCheck:
    """Result of validating a token."""

    status: InvitationStatus
    invitation: Invitation | None = None

    @property
    def is_valid(self) -> bool:
        return self.status == InvitationStatus.VALID


def _expiry_from(now: datetime) -> datetime:
    return now + timedelta(days=settings.invitation_expiry_days)


async def _email_invitation(issued: IssuedInvitation) -> None:
    """Email the invitation link. Failures are logged only."""
    invitation = issued.invitation
    try:
        sent = await send_invitation_email(
            to_email=invitation.email,
            invitee_name=invitation.name,
            role=invitation.role.value,
            token=issued.token,
            expires_at=invitation.expires_at,
        )
        if not sent:
            logger.warning(f"Invitation email not delivered for invitation {invitation.id}")
    except Exception as e:
        logger.error(f"Failed to send invitation email for {invitation.id}: {e}")


async def issue_invitation(
    uow: UnitOfWork,
    *,
    email: str,
    role: UserRole | str,
    issued_by: UUID,
    name: str | None = None,
    unit_id: UUID | None = None,
    events: EventBus | None = None,
    send_email: bool = True,
) -> IssuedInvitation:
    """
    Issue a new invitation.

    Several outstanding invitations for the same email are allowed; the
    first one accepted creates the account.

    Args:
        uow: Unit of work
        email: Invitee email address
        role: Role the account will receive on acceptance
        issued_by: Admin issuing the invitation
        name: Optional display name hint for the invitee
        unit_id: Unit for LEADER invitations; a leader profile is created on acceptance
        events: Event bus for post-commit events
        send_email: Email the invitation link after commit

    Returns:
        IssuedInvitation carrying the plain token

    Raises:
        InvalidInputError: Malformed email, unit on a non-LEADER role, or a user
            with this email already exists
    """
    try:
        data = InvitationCreate(email=email, role=role, name=name, unit_id=unit_id)
    except PydanticValidationError as e:
        raise InvalidInputError.from_pydantic(e) from e

    token = generate_token()
    now = datetime.now(UTC)

    async with uow:
        if await uow.users.get_by_email(data.email):
            logger.warning(f"Invitation refused, user already exists for {data.email}")
            raise InvalidInputError(
                "A user with this email already exists",
                {"email": "already registered"},
            )

        invitation = await uow.invitations.create(
            email=data.email,
            name=data.name or None,
            role=data.role,
            unit_id=data.unit_id,
            token_hash=hash_token(token),
            expires_at=_expiry_from(now),
            created_by=issued_by,
        )

    logger.info(
        f"Invitation {invitation.id} issued by {issued_by} for role {invitation.role.value}"
    )

    issued = IssuedInvitation(invitation=invitation, token=token)
    if send_email:
        await _email_invitation(issued)
    await publish(
        events,
        EngineEvent(
            type=EngineEventType.INVITATION_ISSUED,
            entity_id=invitation.id,
            actor_id=issued_by,
        ),
    )
    return issued


async def resend_invitation(
    uow: UnitOfWork,
    invitation_id: UUID,
    resent_by: UUID,
    *,
    events: EventBus | None = None,
    send_email: bool = True,
) -> IssuedInvitation:
    """
    Rotate the token and expiry of an unused invitation.

    The previous token stops working as soon as this commits.

    Raises:
        NotFoundError: Invitation does not exist
        AlreadyUsedError: Invitation has been accepted
    """
    token = generate_token()
    now = datetime.now(UTC)

    async with uow:
        invitation = await uow.invitations.get_by_id(invitation_id, for_update=True)
        if invitation is None:
            raise NotFoundError("Invitation", invitation_id)
        if invitation.used_at is not None:
            raise AlreadyUsedError(invitation_id)

        updated = await uow.invitations.reissue(
            invitation_id,
            token_hash=hash_token(token),
            expires_at=_expiry_from(now),
            created_by=resent_by,
        )
        if not updated:
            raise AlreadyUsedError(invitation_id)

        invitation = await uow.invitations.get_by_id(invitation_id)

    logger.info(f"Invitation {invitation_id} resent by {resent_by}")

    issued = IssuedInvitation(invitation=invitation, token=token)
    if send_email:
        await _email_invitation(issued)
    await publish(
        events,
        EngineEvent(
            type=EngineEventType.INVITATION_RESENT,
            entity_id=invitation_id,
            actor_id=resent_by,
        ),
    )
    return issued


async def cancel_invitation(
    uow: UnitOfWork,
    invitation_id: UUID,
    *,
    cancelled_by: UUID | None = None,
    events: EventBus | None = None,
) -> None:
    """
    Delete an unused invitation.

    Raises:
        NotFoundError: Invitation does not exist
        AlreadyUsedError: Invitation has been accepted and is kept as a record
    """
    async with uow:
        invitation = await uow.invitations.get_by_id(invitation_id, for_update=True)
        if invitation is None:
            raise NotFoundError("Invitation", invitation_id)
        if invitation.used_at is not None:
            raise AlreadyUsedError(invitation_id)

        if not await uow.invitations.delete_unused(invitation_id):
            raise AlreadyUsedError(invitation_id)

    logger.info(f"Invitation {invitation_id} cancelled")
    await publish(
        events,
        EngineEvent(
            type=EngineEventType.INVITATION_CANCELLED,
            entity_id=invitation_id,
            actor_id=cancelled_by,
        ),
    )


async def validate_invitation(uow: UnitOfWork, token: str) -> InvitationCheck:
    """
    Report the state of a token without changing anything.

    Never raises for unknown, expired or used tokens; those are statuses.
    """
    async with uow:
        invitation = await uow.invitations.get_by_token_hash(hash_token(token))

    status = invitation_status(invitation)
    return InvitationCheck(
        status=status,
        invitation=invitation if status != InvitationStatus.NOT_FOUND else None,
    )


async def list_invitations(uow: UnitOfWork) -> list[InvitationCheck]:
    """All invitations, newest first, with their derived status."""
    async with uow:
        invitations = await uow.invitations.list_all()

    now = datetime.now(UTC)
    return [
        InvitationCheck(status=invitation_status(invitation, now), invitation=invitation)
        for invitation in invitations
    ]


async def accept_invitation(
    uow: UnitOfWork,
    token: str,
    name: str,
    password: str,
    *,
    events: EventBus | None = None,
) -> User:
    """
    Accept an invitation and create the invited account.

    Inside one transaction: lock the invitation, re-check it, claim it with a
    conditional update, create the user and the password credential, and for
    LEADER invitations with a unit, the leader profile. When two requests race
    on one token, the conditional update lets exactly one through.

    Args:
        uow: Unit of work
        token: Plain invitation token from the link
        name: Display name chosen by the invitee
        password: Password chosen by the invitee
        events: Event bus for post-commit events

    Returns:
        The created User

    Raises:
        InvalidInputError: Name or password fail validation, or the email is taken
        TokenInvalidError: Token unknown or expired
        TokenAlreadyUsedError: Token already accepted
        InternalEngineError: Unexpected storage failure (everything rolled back)
    """
    try:
        data = InvitationAccept(name=name, password=password)
    except PydanticValidationError as e:
        raise InvalidInputError.from_pydantic(e) from e

    # bcrypt runs before any row lock is taken
    password_hash = await asyncio.to_thread(hash_password, data.password)
    token_hash = hash_token(token)
    now = datetime.now(UTC)

    try:
        async with uow:
            invitation = await uow.invitations.get_by_token_hash(token_hash, for_update=True)
            if invitation is None:
                raise TokenInvalidError()
            if invitation.used_at is not None:
                raise TokenAlreadyUsedError()
            if as_utc(invitation.expires_at) <= now:
                raise TokenInvalidError("expired")

            if not await uow.invitations.mark_used(invitation.id, now):
                logger.warning(f"Invitation {invitation.id} claimed concurrently")
                raise TokenAlreadyUsedError()

            if await uow.users.get_by_email(invitation.email):
                raise InvalidInputError(
                    "A user with this email already exists",
                    {"email": "already registered"},
                )

            user = await uow.users.create(
                email=invitation.email,
                name=data.name,
                role=invitation.role,
                email_verified=True,
            )
            await uow.users.add_password_credential(user.id, password_hash)

            if invitation.role == UserRole.LEADER and invitation.unit_id:
                await uow.leaders.create(
                    user_id=user.id,
                    name=data.name,
                    unit_id=invitation.unit_id,
                    year_of_birth=now.year - PLACEHOLDER_LEADER_AGE,
                )

    except EngineError:
        raise
    except IntegrityError as e:
        logger.warning(f"Invitation acceptance hit a uniqueness conflict: {e.orig}")
        raise InvalidInputError(
            "A user with this email already exists",
            {"email": "already registered"},
        ) from e
    except Exception as e:
        logger.error(f"Failed to accept invitation: {e}", exc_info=True)
        raise InternalEngineError() from e

    logger.info(f"Invitation {invitation.id} accepted, created user {user.id} ({user.role.value})")
    await publish(
        events,
        EngineEvent(
            type=EngineEventType.INVITATION_ACCEPTED,
            entity_id=invitation.id,
            actor_id=user.id,
            data={"user_id": str(user.id), "role": user.role.value},
        ),
    )
    return user
