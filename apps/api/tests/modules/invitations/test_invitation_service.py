"""
Unit tests for the invitations service layer.

These tests cover:
- Issuing, resending and cancelling invitations
- Token validation (VALID / EXPIRED / USED / NOT_FOUND)
- Acceptance, including leader profile provisioning
- Concurrent acceptance of one token
- Rollback when provisioning fails
"""

import asyncio
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, patch
from uuid import uuid4

import pytest

from gdpt.core.errors import (
    AlreadyUsedError,
    ErrorKind,
    InternalEngineError,
    InvalidInputError,
    NotFoundError,
    TokenAlreadyUsedError,
    TokenInvalidError,
)
from gdpt.core.events import EngineEventType
from gdpt.modules.invitations.helpers import hash_token
from gdpt.modules.invitations.models import InvitationStatus
from gdpt.modules.invitations.service import (
    PLACEHOLDER_LEADER_AGE,
    accept_invitation,
    cancel_invitation,
    issue_invitation,
    list_invitations,
    resend_invitation,
    validate_invitation,
)
from gdpt.modules.users.models import UserRole

SERVICE = "gdpt.modules.invitations.service"


@pytest.fixture(autouse=True)
def fast_password_hash():
    """bcrypt is slow; acceptance only needs some hash to store."""
    with patch(f"{SERVICE}.hash_password", return_value="bcrypt-hash") as mock_hash:
        yield mock_hash


@pytest.fixture
def mock_email():
    with patch(f"{SERVICE}.send_invitation_email", new_callable=AsyncMock) as mock_send:
        mock_send.return_value = True
        yield mock_send


@pytest.fixture
def admin(make_user):
    return make_user(UserRole.ADMIN, email="admin@example.org", name="Admin")


class TestIssueInvitation:
    """Tests for issue_invitation."""

    @pytest.mark.asyncio
    async def test_issue_stores_hash_and_returns_plain_token(self, uow, store, admin, mock_email):
        issued = await issue_invitation(
            uow, email="new.parent@example.org", role=UserRole.PARENT, issued_by=admin.id
        )

        stored = store.invitations[issued.invitation.id]
        assert stored.token_hash == hash_token(issued.token)
        assert stored.token_hash != issued.token
        assert stored.used_at is None
        assert stored.created_by == admin.id
        assert stored.role == UserRole.PARENT

    @pytest.mark.asyncio
    async def test_issue_expires_in_seven_days(self, uow, admin, mock_email):
        before = datetime.now(UTC)
        issued = await issue_invitation(
            uow, email="a@example.org", role=UserRole.PARENT, issued_by=admin.id
        )
        after = datetime.now(UTC)

        assert before + timedelta(days=7) <= issued.invitation.expires_at
        assert issued.invitation.expires_at <= after + timedelta(days=7)

    @pytest.mark.asyncio
    async def test_issue_sends_email_and_publishes_event(
        self, uow, admin, mock_email, events, published
    ):
        issued = await issue_invitation(
            uow,
            email="leader@example.org",
            role=UserRole.LEADER,
            unit_id=uuid4(),
            issued_by=admin.id,
            events=events,
        )

        mock_email.assert_awaited_once()
        assert mock_email.await_args.kwargs["token"] == issued.token
        assert mock_email.await_args.kwargs["to_email"] == "leader@example.org"
        assert [e.type for e in published] == [EngineEventType.INVITATION_ISSUED]
        assert published[0].entity_id == issued.invitation.id

    @pytest.mark.asyncio
    async def test_issue_survives_email_failure(self, uow, store, admin, mock_email):
        mock_email.side_effect = RuntimeError("provider down")

        issued = await issue_invitation(
            uow, email="a@example.org", role=UserRole.PARENT, issued_by=admin.id
        )

        assert issued.invitation.id in store.invitations

    @pytest.mark.asyncio
    async def test_issue_without_email(self, uow, admin, mock_email):
        await issue_invitation(
            uow, email="a@example.org", role=UserRole.PARENT, issued_by=admin.id, send_email=False
        )
        mock_email.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_issue_allows_several_outstanding_for_one_email(self, uow, store, admin, mock_email):
        first = await issue_invitation(
            uow, email="twice@example.org", role=UserRole.PARENT, issued_by=admin.id
        )
        second = await issue_invitation(
            uow, email="twice@example.org", role=UserRole.PARENT, issued_by=admin.id
        )

        assert first.token != second.token
        assert len(store.invitations) == 2

    @pytest.mark.asyncio
    async def test_issue_rejects_malformed_email(self, uow, store, admin, mock_email):
        with pytest.raises(InvalidInputError) as exc_info:
            await issue_invitation(uow, email="not-an-email", role=UserRole.PARENT, issued_by=admin.id)

        assert "email" in exc_info.value.field_errors
        assert exc_info.value.kind == ErrorKind.VALIDATION_ERROR
        assert store.invitations == {}

    @pytest.mark.asyncio
    async def test_issue_rejects_unknown_role(self, uow, admin, mock_email):
        with pytest.raises(InvalidInputError):
            await issue_invitation(uow, email="a@example.org", role="OWNER", issued_by=admin.id)

    @pytest.mark.asyncio
    async def test_issue_rejects_unit_for_non_leader(self, uow, admin, mock_email):
        with pytest.raises(InvalidInputError):
            await issue_invitation(
                uow,
                email="a@example.org",
                role=UserRole.PARENT,
                unit_id=uuid4(),
                issued_by=admin.id,
            )

    @pytest.mark.asyncio
    async def test_issue_rejects_existing_user(self, uow, store, admin, mock_email):
        with pytest.raises(InvalidInputError) as exc_info:
            await issue_invitation(
                uow, email="ADMIN@example.org", role=UserRole.PARENT, issued_by=admin.id
            )

        assert exc_info.value.field_errors == {"email": "already registered"}
        assert store.invitations == {}
        mock_email.assert_not_awaited()


class TestResendInvitation:
    """Tests for resend_invitation."""

    @pytest.mark.asyncio
    async def test_resend_rotates_token(self, uow, admin, make_invitation, mock_email):
        invitation = make_invitation("old-token")

        issued = await resend_invitation(uow, invitation.id, admin.id)

        assert issued.token != "old-token"
        assert (await validate_invitation(uow, "old-token")).status == InvitationStatus.NOT_FOUND
        assert (await validate_invitation(uow, issued.token)).status == InvitationStatus.VALID
        mock_email.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_resend_revives_expired_invitation(self, uow, admin, make_invitation, mock_email):
        invitation = make_invitation("stale", expires_in=-timedelta(days=1))

        issued = await resend_invitation(uow, invitation.id, admin.id)

        assert issued.invitation.expires_at > datetime.now(UTC) + timedelta(days=6)
        assert (await validate_invitation(uow, issued.token)).is_valid

    @pytest.mark.asyncio
    async def test_resend_used_invitation_fails(self, uow, admin, make_invitation, mock_email):
        invitation = make_invitation("used", used_at=datetime.now(UTC))

        with pytest.raises(AlreadyUsedError):
            await resend_invitation(uow, invitation.id, admin.id)

        assert invitation.token_hash == hash_token("used")
        mock_email.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_resend_unknown_invitation(self, uow, admin, mock_email):
        with pytest.raises(NotFoundError):
            await resend_invitation(uow, uuid4(), admin.id)


class TestCancelInvitation:
    """Tests for cancel_invitation."""

    @pytest.mark.asyncio
    async def test_cancel_deletes_unused(self, uow, store, make_invitation, events, published):
        invitation = make_invitation("token")

        await cancel_invitation(uow, invitation.id, events=events)

        assert invitation.id not in store.invitations
        assert (await validate_invitation(uow, "token")).status == InvitationStatus.NOT_FOUND
        assert [e.type for e in published] == [EngineEventType.INVITATION_CANCELLED]

    @pytest.mark.asyncio
    async def test_cancel_used_invitation_keeps_record(self, uow, store, make_invitation):
        invitation = make_invitation("token", used_at=datetime.now(UTC))

        with pytest.raises(AlreadyUsedError) as exc_info:
            await cancel_invitation(uow, invitation.id)

        assert exc_info.value.kind == ErrorKind.ALREADY_USED
        assert invitation.id in store.invitations

    @pytest.mark.asyncio
    async def test_cancel_unknown_invitation(self, uow):
        with pytest.raises(NotFoundError):
            await cancel_invitation(uow, uuid4())


class TestValidateInvitation:
    """Tests for validate_invitation."""

    @pytest.mark.asyncio
    async def test_valid(self, uow, make_invitation):
        invitation = make_invitation("good")

        check = await validate_invitation(uow, "good")

        assert check.status == InvitationStatus.VALID
        assert check.invitation.id == invitation.id

    @pytest.mark.asyncio
    async def test_unknown_token(self, uow):
        check = await validate_invitation(uow, "nope")

        assert check.status == InvitationStatus.NOT_FOUND
        assert check.invitation is None

    @pytest.mark.asyncio
    async def test_used(self, uow, make_invitation):
        make_invitation("used", used_at=datetime.now(UTC))
        assert (await validate_invitation(uow, "used")).status == InvitationStatus.USED

    @pytest.mark.asyncio
    async def test_expired(self, uow, make_invitation):
        make_invitation("old", expires_in=-timedelta(minutes=1))
        assert (await validate_invitation(uow, "old")).status == InvitationStatus.EXPIRED

    @pytest.mark.asyncio
    async def test_expired_wins_over_used(self, uow, make_invitation):
        make_invitation(
            "old-used",
            expires_in=-timedelta(days=1),
            used_at=datetime.now(UTC) - timedelta(days=2),
        )
        assert (await validate_invitation(uow, "old-used")).status == InvitationStatus.EXPIRED

    @pytest.mark.asyncio
    async def test_validate_does_not_change_anything(self, uow, store, make_invitation):
        invitation = make_invitation("good")

        await validate_invitation(uow, "good")
        await validate_invitation(uow, "good")

        assert store.invitations[invitation.id].used_at is None

    @pytest.mark.asyncio
    async def test_list_reports_derived_status(self, uow, make_invitation):
        make_invitation("a")
        make_invitation("b", used_at=datetime.now(UTC))
        make_invitation("c", expires_in=-timedelta(days=1))

        checks = await list_invitations(uow)

        assert sorted(check.status.value for check in checks) == ["EXPIRED", "USED", "VALID"]


class TestAcceptInvitation:
    """Tests for accept_invitation."""

    @pytest.mark.asyncio
    async def test_accept_creates_user_with_invited_role(
        self, uow, store, make_invitation, events, published
    ):
        invitation = make_invitation("tok", email="parent@example.org", role=UserRole.PARENT)

        user = await accept_invitation(uow, "tok", "Trần Thị B", "s3cret-pass", events=events)

        assert user.email == "parent@example.org"
        assert user.role == UserRole.PARENT
        assert user.name == "Trần Thị B"
        assert user.email_verified is True
        assert store.invitations[invitation.id].used_at is not None
        accounts = [a for a in store.accounts.values() if a.user_id == user.id]
        assert [a.password_hash for a in accounts] == ["bcrypt-hash"]
        assert published[-1].type == EngineEventType.INVITATION_ACCEPTED

    @pytest.mark.asyncio
    async def test_accept_never_stores_plain_password(self, uow, store, make_invitation, fast_password_hash):
        make_invitation("tok")

        await accept_invitation(uow, "tok", "Some Name", "plain-password")

        fast_password_hash.assert_called_once_with("plain-password")
        assert all(a.password_hash != "plain-password" for a in store.accounts.values())

    @pytest.mark.asyncio
    async def test_accept_leader_with_unit_creates_profile(self, uow, store, make_invitation):
        unit_id = uuid4()
        make_invitation("tok", role=UserRole.LEADER, unit_id=unit_id)

        user = await accept_invitation(uow, "tok", "Leader Name", "password1")

        profiles = [p for p in store.leaders.values() if p.user_id == user.id]
        assert len(profiles) == 1
        assert profiles[0].unit_id == unit_id
        assert profiles[0].name == "Leader Name"
        assert profiles[0].year_of_birth == datetime.now(UTC).year - PLACEHOLDER_LEADER_AGE

    @pytest.mark.asyncio
    async def test_accept_leader_without_unit_has_no_profile(self, uow, store, make_invitation):
        make_invitation("tok", role=UserRole.LEADER)

        user = await accept_invitation(uow, "tok", "Leader Name", "password1")

        assert user.role == UserRole.LEADER
        assert store.leaders == {}

    @pytest.mark.asyncio
    async def test_accept_unknown_token(self, uow):
        with pytest.raises(TokenInvalidError) as exc_info:
            await accept_invitation(uow, "missing", "Some Name", "password1")
        assert exc_info.value.reason == "not_found"

    @pytest.mark.asyncio
    async def test_accept_expired_token(self, uow, store, make_invitation):
        make_invitation("old", expires_in=-timedelta(seconds=1))

        with pytest.raises(TokenInvalidError) as exc_info:
            await accept_invitation(uow, "old", "Some Name", "password1")

        assert exc_info.value.reason == "expired"
        assert store.users == {}

    @pytest.mark.asyncio
    async def test_accept_used_token(self, uow, store, make_invitation):
        make_invitation("used", used_at=datetime.now(UTC))

        with pytest.raises(TokenAlreadyUsedError):
            await accept_invitation(uow, "used", "Some Name", "password1")
        assert store.users == {}

    @pytest.mark.asyncio
    async def test_accept_twice_fails_second_time(self, uow, store, make_invitation):
        make_invitation("tok")

        await accept_invitation(uow, "tok", "Some Name", "password1")
        with pytest.raises(TokenAlreadyUsedError):
            await accept_invitation(uow, "tok", "Other Name", "password2")

        assert len(store.users) == 1

    @pytest.mark.asyncio
    async def test_accept_validates_input_before_touching_the_token(self, uow, store, make_invitation):
        invitation = make_invitation("tok")

        with pytest.raises(InvalidInputError) as exc_info:
            await accept_invitation(uow, "tok", "Some Name", "short")

        assert "password" in exc_info.value.field_errors
        assert store.invitations[invitation.id].used_at is None

    @pytest.mark.asyncio
    async def test_accept_when_email_already_registered(self, uow, store, make_user, make_invitation):
        make_user(email="taken@example.org")
        invitation = make_invitation("tok", email="taken@example.org")

        with pytest.raises(InvalidInputError):
            await accept_invitation(uow, "tok", "Some Name", "password1")

        assert store.invitations[invitation.id].used_at is None
        assert len(store.users) == 1

    @pytest.mark.asyncio
    async def test_accept_lost_conditional_update(self, uow, store, make_invitation):
        """A claim that affects no row means another transaction won."""
        make_invitation("tok")

        with patch.object(uow.invitations, "mark_used", AsyncMock(return_value=False)):
            with pytest.raises(TokenAlreadyUsedError):
                await accept_invitation(uow, "tok", "Some Name", "password1")

        assert store.users == {}

    @pytest.mark.asyncio
    async def test_accept_rolls_back_on_storage_failure(self, uow, store, make_invitation):
        invitation = make_invitation("tok", role=UserRole.LEADER, unit_id=uuid4())
        store.fail_on.add("leaders.create")

        with pytest.raises(InternalEngineError):
            await accept_invitation(uow, "tok", "Some Name", "password1")

        assert store.users == {}
        assert store.accounts == {}
        assert store.invitations[invitation.id].used_at is None
        assert store.rollbacks == 1

    @pytest.mark.asyncio
    async def test_concurrent_accepts_create_exactly_one_user(self, new_uow, store, make_invitation):
        make_invitation("race", email="race@example.org")

        results = await asyncio.gather(
            *(accept_invitation(new_uow(), "race", f"Racer {i}", "password1") for i in range(10)),
            return_exceptions=True,
        )

        winners = [r for r in results if not isinstance(r, Exception)]
        losers = [r for r in results if isinstance(r, Exception)]
        assert len(winners) == 1
        assert len(losers) == 9
        assert all(isinstance(e, TokenAlreadyUsedError) for e in losers)
        assert [u.email for u in store.users.values()] == ["race@example.org"]
        assert len(store.accounts) == 1
