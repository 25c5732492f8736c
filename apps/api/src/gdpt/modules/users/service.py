"""
Role Transition Service

Account creation and password resets by administrators, role changes,
account deletion, and the leader profile lifecycle that is coupled to
the LEADER role.

Invariants enforced here:
- An actor can never change their own role or delete their own account.
- The number of ADMIN users never drops to zero. Every operation that can
  remove an ADMIN locks the full set of ADMIN rows (SELECT ... FOR UPDATE)
  in the same transaction as its write, so concurrent demotions serialize.
- Creating a leader profile makes the owner a LEADER; deleting it reverts a
  LEADER to PARENT. Changing a role never touches the profile.

Locks are always taken in the same order (ADMIN set, then the target user,
then the leader profile) so two operations cannot deadlock each other.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any
from uuid import UUID

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import IntegrityError

from gdpt.core.errors import (
    EngineError,
    InternalEngineError,
    InvalidInputError,
    LastAdminProtectedError,
    NotFoundError,
    SelfDeletionForbiddenError,
    SelfModificationForbiddenError,
)
from gdpt.core.events import EngineEvent, EngineEventType, EventBus, publish
from gdpt.core.security import generate_temporary_password, hash_password
from gdpt.core.unit_of_work import UnitOfWork
from gdpt.modules.leaders.models import LeaderProfile
from gdpt.modules.leaders.schemas import LeaderProfileCreate, LeaderProfileUpdate
from gdpt.modules.notifications.models import NotificationType
from gdpt.modules.notifications.sink import NotificationRequest, NotificationSink, dispatch
from gdpt.modules.users.models import User, UserRole
from gdpt.modules.users.schemas import UserCreate

logger = logging.getLogger(__name__)

ROLE_LABELS = {
    UserRole.ADMIN: "Administrator",
    UserRole.LEADER: "Leader",
    UserRole.PARENT: "Parent",
}

# Columns that cannot be cleared through a profile update
_REQUIRED_PROFILE_FIELDS = {"name", "year_of_birth", "unit_id", "status"}


@dataclass(frozen=True)
class TemporaryCredentials:
    """An account together with the temporary password it was given."""

    user: User
    temporary_password: str


@dataclass(frozen=True)
class RoleChange:
    """Outcome of a role change."""

    user: User
    previous_role: UserRole
    needs_leader_profile: bool

    @property
    def changed(self) -> bool:
        return self.user.role != self.previous_role


def _parse_role(role: UserRole | str) -> UserRole:
    try:
        return UserRole(role)
    except ValueError as e:
        raise InvalidInputError(f"Unknown role: {role}", {"role": "invalid"}) from e


async def _notify_role_changed(
    notifier: NotificationSink | None,
    user: User,
    previous_role: UserRole,
) -> None:
    await dispatch(
        notifier,
        NotificationRequest(
            type=NotificationType.USER_ROLE_CHANGED,
            user_ids=[user.id],
            title="Your role has changed",
            message=(
                f"Your role changed from {ROLE_LABELS[previous_role]} "
                f"to {ROLE_LABELS[user.role]}."
            ),
            payload={"previous_role": previous_role.value, "role": user.role.value},
        ),
    )


async def change_user_role(
    uow: UnitOfWork,
    user_id: UUID,
    new_role: UserRole | str,
    acting_user_id: UUID,
    *,
    notifier: NotificationSink | None = None,
    events: EventBus | None = None,
) -> RoleChange:
    """
    Change a user's role.

    Moving a user into LEADER does not create a leader profile; the result's
    `needs_leader_profile` flag tells the caller one is still missing.

    Args:
        uow: Unit of work
        user_id: Target user
        new_role: Role to assign
        acting_user_id: Administrator performing the change
        notifier: Sink notified (the target user) after commit
        events: Event bus for post-commit events

    Returns:
        RoleChange with the updated user

    Raises:
        SelfModificationForbiddenError: Actor targets themselves
        NotFoundError: User does not exist
        LastAdminProtectedError: Change would leave no ADMIN
        InvalidInputError: Unknown role
    """
    if user_id == acting_user_id:
        logger.warning(f"User {acting_user_id} attempted to change their own role")
        raise SelfModificationForbiddenError()

    role = _parse_role(new_role)

    async with uow:
        admin_ids = await uow.users.lock_admin_ids() if role != UserRole.ADMIN else []

        user = await uow.users.get_by_id(user_id, for_update=True)
        if user is None:
            raise NotFoundError("User", user_id)

        previous_role = user.role
        if previous_role == UserRole.ADMIN and role != UserRole.ADMIN and len(admin_ids) <= 1:
            logger.warning(f"Refused to demote last admin {user_id}")
            raise LastAdminProtectedError("demote")

        if previous_role != role:
            user = await uow.users.update_role(user, role)

        needs_leader_profile = (
            role == UserRole.LEADER and await uow.leaders.get_by_user_id(user_id) is None
        )

    result = RoleChange(
        user=user,
        previous_role=previous_role,
        needs_leader_profile=needs_leader_profile,
    )
    if not result.changed:
        return result

    logger.info(
        f"User {user_id} role changed {previous_role.value} -> {role.value} by {acting_user_id}"
    )

    await _notify_role_changed(notifier, user, previous_role)
    await publish(
        events,
        EngineEvent(
            type=EngineEventType.USER_ROLE_CHANGED,
            entity_id=user_id,
            actor_id=acting_user_id,
            data={"previous_role": previous_role.value, "role": role.value},
        ),
    )
    return result


async def delete_user(
    uow: UnitOfWork,
    user_id: UUID,
    acting_user_id: UUID,
    *,
    events: EventBus | None = None,
) -> None:
    """
    Delete a user and everything that hangs off the account.

    Removes, in order: parent-student links, leader profile, sessions,
    credentials, and finally the user row, all in one transaction.

    Raises:
        SelfDeletionForbiddenError: Actor targets themselves
        NotFoundError: User does not exist
        LastAdminProtectedError: User is the last ADMIN
        InternalEngineError: Unexpected storage failure (everything rolled back)
    """
    if user_id == acting_user_id:
        logger.warning(f"User {acting_user_id} attempted to delete their own account")
        raise SelfDeletionForbiddenError()

    try:
        async with uow:
            admin_ids = await uow.users.lock_admin_ids()

            user = await uow.users.get_by_id(user_id, for_update=True)
            if user is None:
                raise NotFoundError("User", user_id)

            if user.role == UserRole.ADMIN and len(admin_ids) <= 1:
                logger.warning(f"Refused to delete last admin {user_id}")
                raise LastAdminProtectedError("delete")

            links = await uow.students.delete_links_for_parent(user_id)
            profiles = await uow.leaders.delete_for_user(user_id)
            sessions = await uow.users.delete_sessions(user_id)
            credentials = await uow.users.delete_credentials(user_id)
            await uow.users.delete(user)
    except EngineError:
        raise
    except Exception as e:
        logger.error(f"Failed to delete user {user_id}: {e}", exc_info=True)
        raise InternalEngineError() from e

    logger.info(
        f"User {user_id} deleted by {acting_user_id} "
        f"(links={links}, leader_profiles={profiles}, sessions={sessions}, "
        f"credentials={credentials})"
    )
    await publish(
        events,
        EngineEvent(
            type=EngineEventType.USER_DELETED,
            entity_id=user_id,
            actor_id=acting_user_id,
        ),
    )


async def create_leader_profile(
    uow: UnitOfWork,
    user_id: UUID,
    profile_data: LeaderProfileCreate | dict[str, Any],
    *,
    acting_user_id: UUID,
    notifier: NotificationSink | None = None,
    events: EventBus | None = None,
) -> LeaderProfile:
    """
    Create a leader profile and make its owner a LEADER, atomically.

    The owner's role changes, so an actor can never create a profile for
    themselves.

    Args:
        uow: Unit of work
        user_id: Owner of the new profile
        profile_data: Profile fields (validated here)
        acting_user_id: Administrator performing the change
        notifier: Sink notified when the owner's role changes
        events: Event bus for post-commit events

    Returns:
        The created LeaderProfile

    Raises:
        SelfModificationForbiddenError: Actor targets themselves
        InvalidInputError: Invalid data, or the user already has a profile
        NotFoundError: User does not exist
        LastAdminProtectedError: The owner is the last ADMIN
        InternalEngineError: Unexpected storage failure (everything rolled back)
    """
    if user_id == acting_user_id:
        logger.warning(f"User {acting_user_id} attempted to create their own leader profile")
        raise SelfModificationForbiddenError()

    if isinstance(profile_data, LeaderProfileCreate):
        data = profile_data
    else:
        try:
            data = LeaderProfileCreate.model_validate(profile_data)
        except PydanticValidationError as e:
            raise InvalidInputError.from_pydantic(e) from e

    try:
        async with uow:
            admin_ids = await uow.users.lock_admin_ids()

            user = await uow.users.get_by_id(user_id, for_update=True)
            if user is None:
                raise NotFoundError("User", user_id)

            if await uow.leaders.get_by_user_id(user_id) is not None:
                raise InvalidInputError(
                    "This user already has a leader profile",
                    {"user_id": "already has a leader profile"},
                )

            previous_role = user.role
            if previous_role == UserRole.ADMIN and len(admin_ids) <= 1:
                logger.warning(f"Refused to turn last admin {user_id} into a leader")
                raise LastAdminProtectedError("demote")

            profile = await uow.leaders.create(user_id=user_id, **data.model_dump())
            if previous_role != UserRole.LEADER:
                user = await uow.users.update_role(user, UserRole.LEADER)
    except EngineError:
        raise
    except Exception as e:
        logger.error(f"Failed to create leader profile for user {user_id}: {e}", exc_info=True)
        raise InternalEngineError() from e

    logger.info(f"Leader profile {profile.id} created for user {user_id}")

    if previous_role != UserRole.LEADER:
        await _notify_role_changed(notifier, user, previous_role)
    await publish(
        events,
        EngineEvent(
            type=EngineEventType.LEADER_PROFILE_CREATED,
            entity_id=profile.id,
            actor_id=acting_user_id,
            data={"user_id": str(user_id), "previous_role": previous_role.value},
        ),
    )
    return profile


async def update_leader_profile(
    uow: UnitOfWork,
    leader_id: UUID,
    profile_data: LeaderProfileUpdate | dict[str, Any],
    *,
    acting_user_id: UUID | None = None,
    events: EventBus | None = None,
) -> LeaderProfile:
    """
    Update descriptive fields of a leader profile. The owner's role is untouched.

    Raises:
        InvalidInputError: Invalid data
        NotFoundError: Profile does not exist
    """
    if isinstance(profile_data, LeaderProfileUpdate):
        data = profile_data
    else:
        try:
            data = LeaderProfileUpdate.model_validate(profile_data)
        except PydanticValidationError as e:
            raise InvalidInputError.from_pydantic(e) from e

    fields = {
        key: value
        for key, value in data.model_dump(exclude_unset=True).items()
        if value is not None or key not in _REQUIRED_PROFILE_FIELDS
    }

    async with uow:
        profile = await uow.leaders.get_by_id(leader_id, for_update=True)
        if profile is None:
            raise NotFoundError("LeaderProfile", leader_id)

        profile = await uow.leaders.update(profile, **fields)

    logger.info(f"Leader profile {leader_id} updated ({', '.join(sorted(fields)) or 'no changes'})")
    await publish(
        events,
        EngineEvent(
            type=EngineEventType.LEADER_PROFILE_UPDATED,
            entity_id=leader_id,
            actor_id=acting_user_id,
            data={"fields": sorted(fields)},
        ),
    )
    return profile


async def delete_leader_profile(
    uow: UnitOfWork,
    leader_id: UUID,
    *,
    acting_user_id: UUID | None = None,
    notifier: NotificationSink | None = None,
    events: EventBus | None = None,
) -> None:
    """
    Delete a leader profile and revert its LEADER owner to PARENT, atomically.

    An owner whose role is no longer LEADER (e.g. promoted to ADMIN after the
    profile was created) keeps that role.

    Raises:
        NotFoundError: Profile does not exist
    """
    async with uow:
        profile = await uow.leaders.get_by_id(leader_id)
        if profile is None:
            raise NotFoundError("LeaderProfile", leader_id)

        user = await uow.users.get_by_id(profile.user_id, for_update=True)
        profile = await uow.leaders.get_by_id(leader_id, for_update=True)
        if profile is None:
            raise NotFoundError("LeaderProfile", leader_id)

        await uow.leaders.delete(profile)

        reverted = user is not None and user.role == UserRole.LEADER
        if reverted:
            user = await uow.users.update_role(user, UserRole.PARENT)

    logger.info(f"Leader profile {leader_id} deleted (role reverted: {reverted})")

    if reverted:
        await _notify_role_changed(notifier, user, UserRole.LEADER)
    await publish(
        events,
        EngineEvent(
            type=EngineEventType.LEADER_PROFILE_DELETED,
            entity_id=leader_id,
            actor_id=acting_user_id,
            data={"user_id": str(profile.user_id), "role_reverted": reverted},
        ),
    )


async def list_users(
    uow: UnitOfWork,
    *,
    role: UserRole | None = None,
    search: str | None = None,
) -> list[User]:
    async with uow:
        return await uow.users.list_users(role=role, search=search)


async def create_user(
    uow: UnitOfWork,
    *,
    email: str,
    name: str,
    acting_user_id: UUID,
    events: EventBus | None = None,
) -> TemporaryCredentials:
    """
    Create a PARENT account with a temporary password.

    The account must change its password before using any role-gated endpoint.
    The temporary password is returned once and never stored in plain text.

    Raises:
        InvalidInputError: Invalid email or name, or the email is already registered
    """
    try:
        data = UserCreate(email=email, name=name)
    except PydanticValidationError as e:
        raise InvalidInputError.from_pydantic(e) from e

    temporary_password = generate_temporary_password()
    password_hash = await asyncio.to_thread(hash_password, temporary_password)

    try:
        async with uow:
            if await uow.users.get_by_email(data.email):
                raise InvalidInputError(
                    "A user with this email already exists",
                    {"email": "already registered"},
                )

            user = await uow.users.create(
                email=data.email,
                name=data.name,
                role=UserRole.PARENT,
                email_verified=True,
                force_password_change=True,
            )
            await uow.users.add_password_credential(user.id, password_hash)
    except EngineError:
        raise
    except IntegrityError as e:
        logger.warning(f"User creation hit a uniqueness conflict: {e.orig}")
        raise InvalidInputError(
            "A user with this email already exists",
            {"email": "already registered"},
        ) from e
    except Exception as e:
        logger.error(f"Failed to create user {data.email}: {e}", exc_info=True)
        raise InternalEngineError() from e

    logger.info(f"User {user.id} created by {acting_user_id} with a temporary password")
    await publish(
        events,
        EngineEvent(
            type=EngineEventType.USER_CREATED,
            entity_id=user.id,
            actor_id=acting_user_id,
            data={"role": user.role.value},
        ),
    )
    return TemporaryCredentials(user=user, temporary_password=temporary_password)


async def reset_user_password(
    uow: UnitOfWork,
    user_id: UUID,
    acting_user_id: UUID,
    *,
    events: EventBus | None = None,
) -> TemporaryCredentials:
    """
    Replace a user's password with a temporary one.

    In one transaction the credential is replaced (or created), the user is
    flagged to change their password, and their sessions are revoked.

    Raises:
        SelfModificationForbiddenError: Actor targets themselves
        NotFoundError: User does not exist
    """
    if user_id == acting_user_id:
        logger.warning(f"User {acting_user_id} attempted to reset their own password")
        raise SelfModificationForbiddenError("Use change password to update your own password.")

    temporary_password = generate_temporary_password()
    password_hash = await asyncio.to_thread(hash_password, temporary_password)

    try:
        async with uow:
            user = await uow.users.get_by_id(user_id, for_update=True)
            if user is None:
                raise NotFoundError("User", user_id)

            await uow.users.set_password_credential(user_id, password_hash)
            user = await uow.users.set_force_password_change(user, True)
            revoked = await uow.users.delete_sessions(user_id)
    except EngineError:
        raise
    except Exception as e:
        logger.error(f"Failed to reset password of user {user_id}: {e}", exc_info=True)
        raise InternalEngineError() from e

    logger.info(f"Password of user {user_id} reset by {acting_user_id}, {revoked} sessions revoked")
    await publish(
        events,
        EngineEvent(
            type=EngineEventType.USER_PASSWORD_RESET,
            entity_id=user_id,
            actor_id=acting_user_id,
        ),
    )
    return TemporaryCredentials(user=user, temporary_password=temporary_password)
