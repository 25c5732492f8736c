"""
Authentication router.

Endpoints:
- POST /auth/login - Exchange email and password for tokens
- POST /auth/change-password - Replace the caller's own password
"""

import logging

from fastapi import APIRouter, Depends, status

from gdpt.core.auth import CurrentUser, get_current_user
from gdpt.core.errors import EngineError, http_error
from gdpt.core.events import EventBus, get_event_bus
from gdpt.core.unit_of_work import SqlAlchemyUnitOfWork, get_uow
from gdpt.modules.auth import service
from gdpt.modules.auth.schemas import ChangePasswordRequest, LoginRequest, LoginResponse
from gdpt.modules.users.schemas import UserResponse

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/login", response_model=LoginResponse)
async def login(
    credentials: LoginRequest,
    uow: SqlAlchemyUnitOfWork = Depends(get_uow),
) -> LoginResponse:
    """
    Authenticate with email and password and return JWT tokens.

    Raises:
        HTTPException 401: Invalid credentials
    """
    try:
        result = await service.login(uow, credentials.email, credentials.password)
    except EngineError as e:
        raise http_error(e) from e

    return LoginResponse(
        access_token=result.access_token,
        refresh_token=result.refresh_token,
        user=UserResponse.model_validate(result.user),
    )


@router.post("/change-password", status_code=status.HTTP_204_NO_CONTENT)
async def change_password(
    body: ChangePasswordRequest,
    user: CurrentUser = Depends(get_current_user),
    uow: SqlAlchemyUnitOfWork = Depends(get_uow),
    events: EventBus = Depends(get_event_bus),
) -> None:
    """
    Change the caller's password. Allowed while a password change is forced.

    Other sessions of the caller are revoked; the current one stays valid.
    """
    try:
        await service.change_password(
            uow,
            user.id,
            body.current_password,
            body.new_password,
            session_id=user.session_id,
            events=events,
        )
    except EngineError as e:
        raise http_error(e) from e
