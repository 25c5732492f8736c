"""
Authentication Service

Password login with server-side sessions, and password changes by the
account owner.

Every login writes a session row. Access tokens carry the session id
(`sid`) and are only honoured while that row exists, so revoking the
sessions of a user (password reset, account deletion) ends their access
immediately.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from uuid import UUID

from pydantic import ValidationError as PydanticValidationError

from gdpt.core.config import settings
from gdpt.core.errors import (
    EngineError,
    InternalEngineError,
    InvalidCredentialsError,
    InvalidInputError,
    NotFoundError,
)
from gdpt.core.events import EngineEvent, EngineEventType, EventBus, publish
from gdpt.core.security import (
    create_access_token,
    create_refresh_token,
    hash_password,
    hash_token,
    verify_password,
)
from gdpt.core.unit_of_work import UnitOfWork
from gdpt.modules.auth.schemas import ChangePasswordRequest
from gdpt.modules.users.models import User

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LoginResult:
    """Tokens issued for a successful login."""

    user: User
    access_token: str
    refresh_token: str
    session_id: UUID


async def login(uow: UnitOfWork, email: str, password: str) -> LoginResult:
    """
    Authenticate with email and password and open a session.

    The bcrypt check runs outside any transaction.

    Raises:
        InvalidCredentialsError: Unknown email, no password credential, or wrong password
    """
    async with uow:
        user = await uow.users.get_by_email(email.strip())
        account = await uow.users.get_password_credential(user.id) if user else None

    if user is None:
        logger.warning("Login attempt for unknown email")
        raise InvalidCredentialsError()
    if account is None or not account.password_hash:
        logger.warning(f"Login attempt for user {user.id} without a password credential")
        raise InvalidCredentialsError()

    valid = await asyncio.to_thread(verify_password, password, account.password_hash)
    if not valid:
        logger.warning(f"Invalid password for user {user.id}")
        raise InvalidCredentialsError()

    refresh_token = create_refresh_token(subject=str(user.id))
    expires_at = datetime.now(UTC) + timedelta(days=settings.refresh_token_expire_days)

    async with uow:
        session = await uow.users.create_session(
            user.id, token_hash=hash_token(refresh_token), expires_at=expires_at
        )
        session_id = session.id

    access_token = create_access_token(
        subject=str(user.id),
        additional_claims={
            "email": user.email,
            "role": user.role.value,
            "name": user.name,
            "sid": str(session_id),
        },
    )

    logger.info(f"User logged in: {user.id} (role: {user.role.value})")
    return LoginResult(
        user=user,
        access_token=access_token,
        refresh_token=refresh_token,
        session_id=session_id,
    )


async def change_password(
    uow: UnitOfWork,
    user_id: UUID,
    current_password: str,
    new_password: str,
    *,
    session_id: UUID | None = None,
    events: EventBus | None = None,
) -> User:
    """
    Replace the caller's own password and clear the forced-change flag.

    Every other session of the user is revoked; `session_id` (the session
    making the request) stays valid.

    Args:
        uow: Unit of work
        user_id: The account owner
        current_password: Must match the stored credential
        new_password: Replacement, at least 8 characters and different from the current one
        session_id: Session to keep
        events: Optional event bus

    Raises:
        InvalidInputError: Bad lengths, wrong current password, or unchanged password
        NotFoundError: User does not exist
    """
    try:
        ChangePasswordRequest(current_password=current_password, new_password=new_password)
    except PydanticValidationError as e:
        raise InvalidInputError.from_pydantic(e) from e

    if new_password == current_password:
        raise InvalidInputError(
            "New password must differ from the current password",
            {"new_password": "must differ from the current password"},
        )

    try:
        async with uow:
            account = await uow.users.get_password_credential(user_id)

        stored_hash = account.password_hash if account else None
        if not stored_hash or not await asyncio.to_thread(
            verify_password, current_password, stored_hash
        ):
            logger.warning(f"Password change for user {user_id} with a wrong current password")
            raise InvalidInputError(
                "Current password is incorrect", {"current_password": "incorrect"}
            )

        password_hash = await asyncio.to_thread(hash_password, new_password)

        async with uow:
            user = await uow.users.get_by_id(user_id, for_update=True)
            if user is None:
                raise NotFoundError("User", user_id)

            await uow.users.set_password_credential(user_id, password_hash)
            user = await uow.users.set_force_password_change(user, False)
            revoked = await uow.users.delete_sessions(user_id, keep=session_id)
    except EngineError:
        raise
    except Exception as e:
        logger.error(f"Failed to change password of user {user_id}: {e}", exc_info=True)
        raise InternalEngineError("Failed to change password") from e

    logger.info(f"User {user_id} changed their password (other sessions revoked={revoked})")
    await publish(
        events,
        EngineEvent(
            type=EngineEventType.USER_PASSWORD_CHANGED,
            entity_id=user_id,
            actor_id=user_id,
        ),
    )
    return user
