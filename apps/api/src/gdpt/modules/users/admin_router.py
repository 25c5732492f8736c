"""
Users Admin Router

Account and leader profile management for administrators.

Endpoints:
- GET /admin/users - List users (role / search filters)
- POST /admin/users - Create a PARENT account with a temporary password
- PATCH /admin/users/{id}/role - Change a user's role
- DELETE /admin/users/{id} - Delete a user and dependent records
- POST /admin/users/{id}/reset-password - Issue a temporary password
- POST /admin/users/{id}/leader-profile - Create a leader profile (user becomes LEADER)
- PUT /admin/leaders/{id} - Update a leader profile
- DELETE /admin/leaders/{id} - Delete a leader profile (LEADER reverts to PARENT)
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from gdpt.core.auth import CurrentUser, require_admin
from gdpt.core.errors import EngineError, http_error
from gdpt.core.events import EventBus, get_event_bus
from gdpt.core.unit_of_work import SqlAlchemyUnitOfWork, get_uow
from gdpt.modules.leaders.schemas import (
    LeaderProfileCreate,
    LeaderProfileResponse,
    LeaderProfileUpdate,
)
from gdpt.modules.notifications.sink import NotificationSink, get_notification_sink
from gdpt.modules.users import service
from gdpt.modules.users.models import UserRole
from gdpt.modules.users.schemas import (
    ChangeRoleRequest,
    ChangeRoleResponse,
    TemporaryPasswordResponse,
    UserCreate,
    UserResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter()
leaders_router = APIRouter()


@router.get("", response_model=list[UserResponse])
async def list_users(
    role: UserRole | None = Query(default=None),
    search: str | None = Query(default=None, max_length=100),
    admin: CurrentUser = Depends(require_admin),
    uow: SqlAlchemyUnitOfWork = Depends(get_uow),
) -> list[UserResponse]:
    users = await service.list_users(uow, role=role, search=search)
    return [UserResponse.model_validate(user) for user in users]


@router.post("", response_model=TemporaryPasswordResponse, status_code=status.HTTP_201_CREATED)
async def create_user(
    body: UserCreate,
    admin: CurrentUser = Depends(require_admin),
    uow: SqlAlchemyUnitOfWork = Depends(get_uow),
    events: EventBus = Depends(get_event_bus),
) -> TemporaryPasswordResponse:
    """
    Create a PARENT account directly.

    The temporary password is only ever returned here.
    """
    try:
        created = await service.create_user(
            uow, email=body.email, name=body.name, acting_user_id=admin.id, events=events
        )
    except EngineError as e:
        raise http_error(e) from e

    return TemporaryPasswordResponse(
        user=UserResponse.model_validate(created.user),
        temporary_password=created.temporary_password,
    )


@router.patch("/{user_id}/role", response_model=ChangeRoleResponse)
async def change_user_role(
    user_id: UUID,
    body: ChangeRoleRequest,
    admin: CurrentUser = Depends(require_admin),
    uow: SqlAlchemyUnitOfWork = Depends(get_uow),
    notifier: NotificationSink = Depends(get_notification_sink),
    events: EventBus = Depends(get_event_bus),
) -> ChangeRoleResponse:
    """Change a user's role. Refuses self-changes and demoting the last admin."""
    try:
        result = await service.change_user_role(
            uow, user_id, body.role, admin.id, notifier=notifier, events=events
        )
    except EngineError as e:
        raise http_error(e) from e

    return ChangeRoleResponse(
        user=UserResponse.model_validate(result.user),
        needs_leader_profile=result.needs_leader_profile,
    )


@router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_user(
    user_id: UUID,
    admin: CurrentUser = Depends(require_admin),
    uow: SqlAlchemyUnitOfWork = Depends(get_uow),
    events: EventBus = Depends(get_event_bus),
) -> None:
    """Delete a user. Refuses self-deletion and deleting the last admin."""
    try:
        await service.delete_user(uow, user_id, admin.id, events=events)
    except EngineError as e:
        raise http_error(e) from e


@router.post("/{user_id}/reset-password", response_model=TemporaryPasswordResponse)
async def reset_user_password(
    user_id: UUID,
    admin: CurrentUser = Depends(require_admin),
    uow: SqlAlchemyUnitOfWork = Depends(get_uow),
    events: EventBus = Depends(get_event_bus),
) -> TemporaryPasswordResponse:
    """Replace a user's password with a temporary one and end their sessions."""
    try:
        reset = await service.reset_user_password(uow, user_id, admin.id, events=events)
    except EngineError as e:
        raise http_error(e) from e

    return TemporaryPasswordResponse(
        user=UserResponse.model_validate(reset.user),
        temporary_password=reset.temporary_password,
    )


@router.post(
    "/{user_id}/leader-profile",
    response_model=LeaderProfileResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_leader_profile(
    user_id: UUID,
    body: LeaderProfileCreate,
    admin: CurrentUser = Depends(require_admin),
    uow: SqlAlchemyUnitOfWork = Depends(get_uow),
    notifier: NotificationSink = Depends(get_notification_sink),
    events: EventBus = Depends(get_event_bus),
) -> LeaderProfileResponse:
    """Create a leader profile; the user becomes a LEADER."""
    try:
        profile = await service.create_leader_profile(
            uow,
            user_id,
            body,
            acting_user_id=admin.id,
            notifier=notifier,
            events=events,
        )
    except EngineError as e:
        raise http_error(e) from e

    return LeaderProfileResponse.model_validate(profile)


@leaders_router.put("/{leader_id}", response_model=LeaderProfileResponse)
async def update_leader_profile(
    leader_id: UUID,
    body: LeaderProfileUpdate,
    admin: CurrentUser = Depends(require_admin),
    uow: SqlAlchemyUnitOfWork = Depends(get_uow),
    events: EventBus = Depends(get_event_bus),
) -> LeaderProfileResponse:
    try:
        profile = await service.update_leader_profile(
            uow, leader_id, body, acting_user_id=admin.id, events=events
        )
    except EngineError as e:
        raise http_error(e) from e

    return LeaderProfileResponse.model_validate(profile)


@leaders_router.delete("/{leader_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_leader_profile(
    leader_id: UUID,
    admin: CurrentUser = Depends(require_admin),
    uow: SqlAlchemyUnitOfWork = Depends(get_uow),
    notifier: NotificationSink = Depends(get_notification_sink),
    events: EventBus = Depends(get_event_bus),
) -> None:
    """Delete a leader profile; a LEADER owner reverts to PARENT."""
    try:
        await service.delete_leader_profile(
            uow,
            leader_id,
            acting_user_id=admin.id,
            notifier=notifier,
            events=events,
        )
    except EngineError as e:
        raise http_error(e) from e
