"""
Post-commit Events

Every committed mutation publishes an EngineEvent. Presentation layers
subscribe to invalidate caches or refresh views; handlers run after the
transaction and their failures never reach the caller of the mutation.
"""

import logging
from collections import defaultdict
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import UUID

logger = logging.getLogger(__name__)


class EngineEventType(str, Enum):
    """Types of committed state changes."""

    INVITATION_ISSUED = "invitation.issued"
    INVITATION_RESENT = "invitation.resent"
    INVITATION_CANCELLED = "invitation.cancelled"
    INVITATION_ACCEPTED = "invitation.accepted"
    SUBMISSION_CREATED = "submission.created"
    SUBMISSION_REVISED = "submission.revised"
    SUBMISSION_APPROVED = "submission.approved"
    SUBMISSION_REJECTED = "submission.rejected"
    USER_ROLE_CHANGED = "user.role_changed"
    USER_CREATED = "user.created"
    USER_DELETED = "user.deleted"
    USER_PASSWORD_RESET = "user.password_reset"
    USER_PASSWORD_CHANGED = "user.password_changed"
    LEADER_PROFILE_CREATED = "leader_profile.created"
    LEADER_PROFILE_UPDATED = "leader_profile.updated"
    LEADER_PROFILE_DELETED = "leader_profile.deleted"


@dataclass(frozen=True)
class EngineEvent:
    type: EngineEventType
    entity_id: UUID
    actor_id: UUID | None = None
    data: dict[str, Any] = field(default_factory=dict)
    occurred_at: datetime = field(default_factory=lambda: datetime.now(UTC))


EventHandler = Callable[[EngineEvent], Awaitable[None]]


class EventBus:
    """In-process publish/subscribe for post-commit events."""

    def __init__(self) -> None:
        self._handlers: dict[EngineEventType | None, list[EventHandler]] = defaultdict(list)

    def subscribe(self, handler: EventHandler, event_type: EngineEventType | None = None) -> None:
        """
        Register a handler.

        Args:
            handler: Async callable receiving the event
            event_type: Only deliver events of this type; None subscribes to all events
        """
        handlers = self._handlers[event_type]
        if handler not in handlers:
            handlers.append(handler)

    def unsubscribe(self, handler: EventHandler, event_type: EngineEventType | None = None) -> None:
        """Remove a handler registered with `subscribe`. Unknown handlers are ignored."""
        handlers = self._handlers.get(event_type, [])
        if handler in handlers:
            handlers.remove(handler)

    async def publish(self, event: EngineEvent) -> None:
        """Deliver an event to its handlers. Handler errors are logged, never raised."""
        handlers = [*self._handlers.get(event.type, []), *self._handlers.get(None, [])]
        for handler in handlers:
            try:
                await handler(event)
            except Exception as e:
                logger.error(
                    f"Event handler {getattr(handler, '__name__', handler)} failed "
                    f"for {event.type.value} ({event.entity_id}): {e}",
                    exc_info=True,
                )


async def log_event(event: EngineEvent) -> None:
    """Default subscriber: record every committed change."""
    logger.info(
        f"Event {event.type.value}: entity={event.entity_id} actor={event.actor_id}"
    )


event_bus = EventBus()


def get_event_bus() -> EventBus:
    """FastAPI dependency returning the application event bus."""
    return event_bus


async def publish(bus: EventBus | None, event: EngineEvent) -> None:
    """Publish on the given bus, falling back to the application bus."""
    await (bus or event_bus).publish(event)
