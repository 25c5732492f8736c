"""
Unit tests for notification dispatch.
"""

from unittest.mock import AsyncMock

import pytest

from gdpt.modules.notifications.models import NotificationType
from gdpt.modules.notifications.sink import NotificationRequest, dispatch
from gdpt.modules.users.models import UserRole


@pytest.fixture
def request_to_admins():
    return NotificationRequest(
        type=NotificationType.REGISTRATION_SUBMITTED,
        title="New registration",
        message="A parent submitted a registration.",
        roles=[UserRole.ADMIN],
    )


class TestDispatch:
    @pytest.mark.asyncio
    async def test_delivers_to_sink(self, request_to_admins):
        sink = AsyncMock()

        await dispatch(sink, request_to_admins)

        sink.notify.assert_awaited_once_with(request_to_admins)

    @pytest.mark.asyncio
    async def test_sink_failure_is_swallowed(self, request_to_admins, caplog):
        sink = AsyncMock()
        sink.notify.side_effect = ConnectionError("smtp unreachable")

        await dispatch(sink, request_to_admins)

        assert "REGISTRATION_SUBMITTED" in caplog.text

    @pytest.mark.asyncio
    async def test_missing_sink_is_a_no_op(self, request_to_admins):
        await dispatch(None, request_to_admins)

    def test_request_defaults(self):
        request = NotificationRequest(
            type=NotificationType.USER_ROLE_CHANGED,
            title="t",
            message="m",
        )
        assert request.user_ids == []
        assert request.roles == []
        assert request.payload is None
