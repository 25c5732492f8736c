"""
Notification Sink

The engine decides that a notification is due and what it says; a sink
delivers it. Delivery happens after the originating transaction committed
and a failing sink never fails the mutation that triggered it.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Protocol
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from gdpt.core.database import async_session_maker
from gdpt.modules.notifications.models import Notification, NotificationType
from gdpt.modules.users.models import UserRole
from gdpt.modules.users.repository import UserRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NotificationRequest:
    """
    A notification addressed to explicit users, to every holder of some roles,
    or both.
    """

    type: NotificationType
    title: str
    message: str
    user_ids: list[UUID] = field(default_factory=list)
    roles: list[UserRole] = field(default_factory=list)
    payload: dict[str, Any] | None = None
    action_url: str | None = None


class NotificationSink(Protocol):
    async def notify(self, request: NotificationRequest) -> None: ...


class DatabaseNotificationSink:
    """Stores one in-app Notification row per recipient, in its own transaction."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession] = async_session_maker):
        self.session_factory = session_factory

    async def notify(self, request: NotificationRequest) -> None:
        async with self.session_factory() as session:
            recipients = set(request.user_ids)
            if request.roles:
                recipients.update(await UserRepository(session).list_ids_by_roles(request.roles))

            if not recipients:
                logger.info(f"No recipients for notification {request.type.value}")
                return

            session.add_all(
                Notification(
                    user_id=user_id,
                    type=request.type,
                    title=request.title,
                    message=request.message,
                    data=request.payload,
                    action_url=request.action_url,
                )
                for user_id in recipients
            )
            await session.commit()

        logger.info(f"Stored {request.type.value} notification for {len(recipients)} user(s)")


def get_notification_sink() -> NotificationSink:
    """FastAPI dependency providing the notification sink."""
    return DatabaseNotificationSink()


async def dispatch(sink: NotificationSink | None, request: NotificationRequest) -> None:
    """
    Deliver a notification without letting failures escape.

    Called after commit. A missing sink means notifications are disabled.
    """
    if sink is None:
        logger.debug(f"Notification sink not configured, dropping {request.type.value}")
        return

    try:
        await sink.notify(request)
    except Exception as e:
        logger.error(f"Failed to deliver {request.type.value} notification: {e}", exc_info=True)
