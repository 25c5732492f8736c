"""
Authentication and Authorization Module

FastAPI dependencies that validate the JWT bearer token and enforce roles.

The token only identifies the caller and their session. Role and account
state are read from the database on every request, so role changes and
revoked sessions take effect on the next request.

SECURITY NOTE:
- Development mode test tokens are ONLY accepted when PYTHON_ENV=development
- Production environments MUST set PYTHON_ENV=production
"""

import logging
import os
from dataclasses import dataclass
from datetime import UTC, datetime
from uuid import UUID

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from gdpt.core.config import settings
from gdpt.core.security import decode_token
from gdpt.core.unit_of_work import SqlAlchemyUnitOfWork, get_uow
from gdpt.modules.users.models import UserRole

logger = logging.getLogger(__name__)

security = HTTPBearer(
    auto_error=True,
    description="JWT Bearer token for authentication",
)


@dataclass
class CurrentUser:
    """
    Authenticated caller, loaded from the database for the current request.

    Attributes:
        id: User's unique identifier
        email: User's email address
        role: User's stored role
        name: Display name (optional)
        force_password_change: Caller must change their password before anything else
        session_id: Session the access token belongs to
    """

    id: UUID
    email: str
    role: UserRole
    name: str | None = None
    force_password_change: bool = False
    session_id: UUID | None = None

    def __str__(self) -> str:
        return f"CurrentUser(id={self.id}, role={self.role.value})"


def _is_dev_mode_safe() -> bool:
    """True only when every environment signal says development."""
    env_var = os.getenv("PYTHON_ENV", "").lower()
    is_safe = (
        settings.is_development
        and not settings.is_production
        and env_var not in ("production", "staging")
    )
    if is_safe:
        logger.warning(
            "SECURITY: Development auth mode is ENABLED. This MUST NOT be used in production!"
        )
    return is_safe


_DEVELOPMENT_MODE = _is_dev_mode_safe()

_DEV_ADMIN = CurrentUser(
    id=UUID("00000000-0000-0000-0000-000000000001"),
    email="admin@gdpt.dev",
    role=UserRole.ADMIN,
    name="Development Admin",
)


def _unauthorized(error: str, message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={"error": error, "message": message},
        headers={"WWW-Authenticate": "Bearer"},
    )


def _decode_access_token(token: str) -> tuple[UUID, UUID]:
    """
    Validate a JWT and extract the user and session ids.

    Raises:
        HTTPException 401: If the token is invalid, expired or malformed
    """
    payload = decode_token(token)
    if payload is None:
        logger.warning("Invalid or expired JWT token")
        raise _unauthorized("INVALID_TOKEN", "Invalid or expired authentication token.")

    if payload.get("type", "access") != "access":
        logger.warning(f"Invalid token type: {payload.get('type')}")
        raise _unauthorized("INVALID_TOKEN_TYPE", "This endpoint requires an access token.")

    try:
        return UUID(payload["sub"]), UUID(payload["sid"])
    except (ValueError, KeyError, TypeError) as e:
        logger.warning(f"Invalid token claims: {e}")
        raise _unauthorized(
            "INVALID_TOKEN_CLAIMS", "Token contains invalid or missing claims."
        ) from e


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    uow: SqlAlchemyUnitOfWork = Depends(get_uow),
) -> CurrentUser:
    """
    FastAPI dependency returning the authenticated caller.

    Raises:
        HTTPException 401: Bad token, revoked or expired session, or deleted account
    """
    token = credentials.credentials
    if _DEVELOPMENT_MODE and token == "dev-token":
        logger.debug("Development mode: using test token")
        return _DEV_ADMIN

    user_id, session_id = _decode_access_token(token)

    async with uow:
        session = await uow.users.get_active_session(session_id, datetime.now(UTC))
        user = await uow.users.get_by_id(user_id)

    if session is None or session.user_id != user_id:
        logger.warning(f"Rejected token for user {user_id}: session {session_id} is not active")
        raise _unauthorized("SESSION_EXPIRED", "Your session has ended. Please sign in again.")
    if user is None:
        logger.warning(f"Rejected token for deleted user {user_id}")
        raise _unauthorized("USER_NOT_FOUND", "This account no longer exists.")

    return CurrentUser(
        id=user.id,
        email=user.email,
        role=user.role,
        name=user.name,
        force_password_change=user.force_password_change,
        session_id=session_id,
    )


def require_role(*roles: UserRole):
    """
    Build a dependency that only admits callers holding one of `roles`.

    Callers who must change their password are refused until they do.

    Usage:
        @router.get("/admin/endpoint")
        async def endpoint(admin: CurrentUser = Depends(require_role(UserRole.ADMIN))):
            ...
    """

    async def dependency(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        if user.force_password_change:
            logger.info(f"Access denied: user {user.id} must change their password first")
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail={
                    "error": "PASSWORD_CHANGE_REQUIRED",
                    "message": "You must change your password before continuing.",
                },
            )
        if user.role not in roles:
            logger.warning(
                f"Access denied: user {user.id} has role '{user.role.value}', "
                f"requires one of {[r.value for r in roles]}"
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail={
                    "error": "INSUFFICIENT_ROLE",
                    "message": "You do not have access to this endpoint.",
                },
            )
        return user

    return dependency


require_admin = require_role(UserRole.ADMIN)
require_parent = require_role(UserRole.PARENT)


__all__ = [
    "CurrentUser",
    "get_current_user",
    "require_admin",
    "require_parent",
    "require_role",
]
