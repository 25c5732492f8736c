"""
Shared fixtures.

`FakeUnitOfWork` is an in-memory stand-in for SqlAlchemyUnitOfWork. Its
repositories mirror the real method names and signatures. Nothing is
serialized by default: every repository call yields to the event loop, so
concurrent transactions interleave freely. Only the calls that lock in
SQL (`for_update=True` reads and `lock_admin_ids`) take the store lock,
which is then held until the transaction ends, like a row lock held until
commit. Every write is journaled and undone if the block fails.

Failures can be injected per repository method:

    store.fail_on.add("students.create_link")
"""

import asyncio
from datetime import UTC, datetime, timedelta
from types import SimpleNamespace
from typing import Any, Callable
from unittest.mock import AsyncMock
from uuid import UUID, uuid4

import pytest
from sqlalchemy.exc import IntegrityError

from gdpt.core.events import EventBus
from gdpt.core.security import hash_token
from gdpt.modules.leaders.models import LeaderStatus
from gdpt.modules.submissions.models import SubmissionStatus
from gdpt.modules.submissions.repository import check_transition
from gdpt.modules.users.models import CREDENTIAL_PROVIDER, UserRole

TABLES = (
    "users",
    "accounts",
    "sessions",
    "leaders",
    "invitations",
    "submissions",
    "students",
    "links",
)


def _record(**fields: Any) -> SimpleNamespace:
    now = datetime.now(UTC)
    fields.setdefault("id", uuid4())
    fields.setdefault("created_at", now)
    fields.setdefault("updated_at", now)
    return SimpleNamespace(**fields)


def _integrity_error(message: str) -> IntegrityError:
    return IntegrityError("INSERT", {}, Exception(message))


class FakeStore:
    """In-memory tables shared by every unit of work created over it."""

    def __init__(self) -> None:
        for table in TABLES:
            setattr(self, table, {})
        self.lock = asyncio.Lock()
        self.fail_on: set[str] = set()
        self.commits = 0
        self.rollbacks = 0
        self.open_transactions = 0

    def check(self, operation: str) -> None:
        if operation in self.fail_on:
            raise RuntimeError(f"injected failure in {operation}")

    def admins(self) -> list[SimpleNamespace]:
        return [u for u in self.users.values() if u.role == UserRole.ADMIN]


class _FakeRepository:
    name = ""

    def __init__(self, uow: "FakeUnitOfWork"):
        self.uow = uow
        self.store = uow.store

    async def _step(self, method: str, *, lock: bool = False) -> None:
        if lock:
            await self.uow.lock()
        # Yield so concurrent tasks interleave at every repository call
        await asyncio.sleep(0)
        self.store.check(f"{self.name}.{method}")

    def _insert(self, table: str, row: SimpleNamespace) -> SimpleNamespace:
        rows = getattr(self.store, table)
        rows[row.id] = row
        self.uow.journal.append(lambda: rows.pop(row.id, None))
        return row

    def _remove(self, table: str, key: UUID) -> None:
        rows = getattr(self.store, table)
        row = rows.pop(key)
        self.uow.journal.append(lambda: rows.__setitem__(key, row))

    def _set(self, row: SimpleNamespace, **fields: Any) -> SimpleNamespace:
        previous = {key: getattr(row, key, None) for key in fields}
        for key, value in fields.items():
            setattr(row, key, value)
        self.uow.journal.append(lambda: row.__dict__.update(previous))
        return row

    def _delete_where(self, table: str, **criteria: Any) -> int:
        doomed = [
            key
            for key, row in getattr(self.store, table).items()
            if all(getattr(row, attr) == value for attr, value in criteria.items())
        ]
        for key in doomed:
            self._remove(table, key)
        return len(doomed)


class FakeUserRepository(_FakeRepository):
    name = "users"

    async def create(
        self,
        *,
        email: str,
        name: str,
        role: UserRole,
        email_verified: bool = False,
        force_password_change: bool = False,
    ) -> SimpleNamespace:
        await self._step("create")
        if any(u.email.lower() == email.lower() for u in self.store.users.values()):
            raise _integrity_error("duplicate key value violates unique constraint ix_users_email")
        user = _record(
            email=email,
            name=name,
            role=role,
            email_verified=email_verified,
            force_password_change=force_password_change,
        )
        return self._insert("users", user)

    async def get_by_id(self, user_id: UUID, *, for_update: bool = False) -> SimpleNamespace | None:
        await self._step("get_by_id", lock=for_update)
        return self.store.users.get(user_id)

    async def get_by_email(self, email: str) -> SimpleNamespace | None:
        await self._step("get_by_email")
        return next(
            (u for u in self.store.users.values() if u.email.lower() == email.lower()),
            None,
        )

    async def list_users(
        self,
        *,
        role: UserRole | None = None,
        search: str | None = None,
    ) -> list[SimpleNamespace]:
        await self._step("list_users")
        users = list(self.store.users.values())
        if role:
            users = [u for u in users if u.role == role]
        if search:
            term = search.lower()
            users = [u for u in users if term in u.name.lower() or term in u.email.lower()]
        return sorted(users, key=lambda u: u.created_at, reverse=True)

    async def list_ids_by_roles(self, roles: list[UserRole]) -> list[UUID]:
        await self._step("list_ids_by_roles")
        return [u.id for u in self.store.users.values() if u.role in roles]

    async def lock_admin_ids(self) -> list[UUID]:
        await self._step("lock_admin_ids", lock=True)
        return sorted((u.id for u in self.store.admins()), key=str)

    async def update_role(self, user: SimpleNamespace, role: UserRole) -> SimpleNamespace:
        await self._step("update_role")
        return self._set(user, role=role)

    async def set_force_password_change(self, user: SimpleNamespace, value: bool) -> SimpleNamespace:
        await self._step("set_force_password_change")
        return self._set(user, force_password_change=value)

    async def delete(self, user: SimpleNamespace) -> None:
        await self._step("delete")
        if user.id in self.store.users:
            self._remove("users", user.id)

    async def add_password_credential(self, user_id: UUID, password_hash: str) -> SimpleNamespace:
        await self._step("add_password_credential")
        account = _record(
            user_id=user_id,
            provider_id=CREDENTIAL_PROVIDER,
            password_hash=password_hash,
        )
        return self._insert("accounts", account)

    def _credential(self, user_id: UUID) -> SimpleNamespace | None:
        return next(
            (
                a
                for a in self.store.accounts.values()
                if a.user_id == user_id and a.provider_id == CREDENTIAL_PROVIDER
            ),
            None,
        )

    async def get_password_credential(self, user_id: UUID) -> SimpleNamespace | None:
        await self._step("get_password_credential")
        return self._credential(user_id)

    async def set_password_credential(self, user_id: UUID, password_hash: str) -> SimpleNamespace:
        await self._step("set_password_credential")
        account = self._credential(user_id)
        if account is None:
            account = _record(user_id=user_id, provider_id=CREDENTIAL_PROVIDER, password_hash=None)
            self._insert("accounts", account)
        return self._set(account, password_hash=password_hash)

    async def delete_credentials(self, user_id: UUID) -> int:
        await self._step("delete_credentials")
        return self._delete_where("accounts", user_id=user_id)

    async def create_session(
        self,
        user_id: UUID,
        *,
        token_hash: str,
        expires_at: datetime,
    ) -> SimpleNamespace:
        await self._step("create_session")
        return self._insert(
            "sessions", _record(user_id=user_id, token=token_hash, expires_at=expires_at)
        )

    async def get_active_session(self, session_id: UUID, now: datetime) -> SimpleNamespace | None:
        await self._step("get_active_session")
        session = self.store.sessions.get(session_id)
        return session if session is not None and session.expires_at > now else None

    async def delete_sessions(self, user_id: UUID, *, keep: UUID | None = None) -> int:
        await self._step("delete_sessions")
        doomed = [
            key
            for key, session in self.store.sessions.items()
            if session.user_id == user_id and key != keep
        ]
        for key in doomed:
            self._remove("sessions", key)
        return len(doomed)


class FakeLeaderRepository(_FakeRepository):
    name = "leaders"

    async def create(self, *, user_id: UUID, **fields: Any) -> SimpleNamespace:
        await self._step("create")
        if any(p.user_id == user_id for p in self.store.leaders.values()):
            raise _integrity_error("duplicate key value violates uq_leader_profiles_user_id")
        fields.setdefault("status", LeaderStatus.ACTIVE)
        return self._insert("leaders", _record(user_id=user_id, **fields))

    async def get_by_id(self, leader_id: UUID, *, for_update: bool = False) -> SimpleNamespace | None:
        await self._step("get_by_id", lock=for_update)
        return self.store.leaders.get(leader_id)

    async def get_by_user_id(self, user_id: UUID) -> SimpleNamespace | None:
        await self._step("get_by_user_id")
        return next((p for p in self.store.leaders.values() if p.user_id == user_id), None)

    async def update(self, profile: SimpleNamespace, **fields: Any) -> SimpleNamespace:
        await self._step("update")
        return self._set(profile, **fields)

    async def delete(self, profile: SimpleNamespace) -> None:
        await self._step("delete")
        if profile.id in self.store.leaders:
            self._remove("leaders", profile.id)

    async def delete_for_user(self, user_id: UUID) -> int:
        await self._step("delete_for_user")
        return self._delete_where("leaders", user_id=user_id)


class FakeInvitationRepository(_FakeRepository):
    name = "invitations"

    async def create(
        self,
        *,
        email: str,
        role: UserRole,
        token_hash: str,
        expires_at: datetime,
        created_by: UUID | None,
        name: str | None = None,
        unit_id: UUID | None = None,
    ) -> SimpleNamespace:
        await self._step("create")
        invitation = _record(
            email=email,
            name=name,
            role=role,
            unit_id=unit_id,
            token_hash=token_hash,
            expires_at=expires_at,
            used_at=None,
            created_by=created_by,
        )
        return self._insert("invitations", invitation)

    async def get_by_id(
        self,
        invitation_id: UUID,
        *,
        for_update: bool = False,
    ) -> SimpleNamespace | None:
        await self._step("get_by_id", lock=for_update)
        return self.store.invitations.get(invitation_id)

    async def get_by_token_hash(
        self,
        token_hash: str,
        *,
        for_update: bool = False,
    ) -> SimpleNamespace | None:
        await self._step("get_by_token_hash", lock=for_update)
        return next(
            (i for i in self.store.invitations.values() if i.token_hash == token_hash),
            None,
        )

    async def list_all(self) -> list[SimpleNamespace]:
        await self._step("list_all")
        return sorted(self.store.invitations.values(), key=lambda i: i.created_at, reverse=True)

    async def mark_used(self, invitation_id: UUID, used_at: datetime) -> bool:
        await self._step("mark_used")
        invitation = self.store.invitations.get(invitation_id)
        if invitation is None or invitation.used_at is not None:
            return False
        self._set(invitation, used_at=used_at)
        return True

    async def reissue(
        self,
        invitation_id: UUID,
        *,
        token_hash: str,
        expires_at: datetime,
        created_by: UUID | None,
    ) -> bool:
        await self._step("reissue")
        invitation = self.store.invitations.get(invitation_id)
        if invitation is None or invitation.used_at is not None:
            return False
        self._set(invitation, token_hash=token_hash, expires_at=expires_at, created_by=created_by)
        return True

    async def delete_unused(self, invitation_id: UUID) -> bool:
        await self._step("delete_unused")
        invitation = self.store.invitations.get(invitation_id)
        if invitation is None or invitation.used_at is not None:
            return False
        self._remove("invitations", invitation_id)
        return True


class FakeSubmissionRepository(_FakeRepository):
    name = "submissions"

    async def create(
        self,
        *,
        parent_id: UUID,
        submitted_data: dict[str, Any],
        submission_notes: str | None = None,
    ) -> SimpleNamespace:
        await self._step("create")
        submission = _record(
            parent_id=parent_id,
            submitted_data=submitted_data,
            submission_notes=submission_notes,
            status=SubmissionStatus.PENDING,
            reviewed_by=None,
            review_notes=None,
            reviewed_at=None,
        )
        return self._insert("submissions", submission)

    async def get_by_id(
        self,
        submission_id: UUID,
        *,
        for_update: bool = False,
    ) -> SimpleNamespace | None:
        await self._step("get_by_id", lock=for_update)
        return self.store.submissions.get(submission_id)

    async def list_submissions(
        self,
        *,
        status: SubmissionStatus | None = None,
        parent_id: UUID | None = None,
    ) -> list[SimpleNamespace]:
        await self._step("list_submissions")
        rows = list(self.store.submissions.values())
        if status:
            rows = [s for s in rows if s.status == status]
        if parent_id:
            rows = [s for s in rows if s.parent_id == parent_id]
        oldest_first = status in (SubmissionStatus.PENDING, SubmissionStatus.REVISED)
        return sorted(rows, key=lambda s: s.created_at, reverse=not oldest_first)

    async def update_status(
        self,
        submission: SimpleNamespace,
        status: SubmissionStatus,
        **kwargs: Any,
    ) -> SimpleNamespace:
        await self._step("update_status")
        check_transition(submission.status, status)
        return self._set(submission, status=status, **kwargs)


class FakeStudentRepository(_FakeRepository):
    name = "students"

    async def create_student(self, **fields: Any) -> SimpleNamespace:
        await self._step("create_student")
        return self._insert("students", _record(**fields))

    async def create_link(
        self,
        *,
        parent_id: UUID,
        student_id: UUID,
        relation: str = "Parent",
    ) -> SimpleNamespace:
        await self._step("create_link")
        link = _record(parent_id=parent_id, student_id=student_id, relation=relation)
        return self._insert("links", link)

    async def delete_links_for_parent(self, parent_id: UUID) -> int:
        await self._step("delete_links_for_parent")
        return self._delete_where("links", parent_id=parent_id)


class FakeUnitOfWork:
    """
    In-memory unit of work. Like the SQLAlchemy one it can be reused
    sequentially but not shared between concurrent tasks.
    """

    def __init__(self, store: FakeStore):
        self.store = store
        self.users = FakeUserRepository(self)
        self.leaders = FakeLeaderRepository(self)
        self.invitations = FakeInvitationRepository(self)
        self.submissions = FakeSubmissionRepository(self)
        self.students = FakeStudentRepository(self)
        self.journal: list[Callable[[], Any]] = []
        self.holds_lock = False

    async def lock(self) -> None:
        """Take the store lock for the rest of the transaction."""
        if not self.holds_lock:
            await self.store.lock.acquire()
            self.holds_lock = True

    async def __aenter__(self) -> "FakeUnitOfWork":
        self.journal = []
        self.store.open_transactions += 1
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        journal, self.journal = self.journal, []
        try:
            if exc_type is None:
                self.store.commits += 1
            else:
                for undo in reversed(journal):
                    undo()
                self.store.rollbacks += 1
        finally:
            self.store.open_transactions -= 1
            if self.holds_lock:
                self.holds_lock = False
                self.store.lock.release()


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def uow(store):
    return FakeUnitOfWork(store)


@pytest.fixture
def new_uow(store):
    """Factory for extra units of work over the same store, one per concurrent task."""

    def _make() -> FakeUnitOfWork:
        return FakeUnitOfWork(store)

    return _make


@pytest.fixture
def notifier(store):
    """
    AsyncMock notification sink. `notifier.inside_transaction` records, per
    call, whether a transaction was still open when it was notified.
    """
    sink = AsyncMock()
    sink.inside_transaction = []

    async def _notify(request):
        sink.inside_transaction.append(store.open_transactions > 0)

    sink.notify.side_effect = _notify
    return sink


@pytest.fixture
def published():
    return []


@pytest.fixture
def events(published):
    bus = EventBus()

    async def _record_event(event):
        published.append(event)

    bus.subscribe(_record_event)
    return bus


@pytest.fixture
def make_user(store):
    """Factory inserting a user directly into the store."""

    def _make(role: UserRole = UserRole.PARENT, *, email: str | None = None, name: str = "Test User"):
        user = _record(
            email=email or f"{uuid4().hex[:8]}@example.org",
            name=name,
            role=role,
            email_verified=True,
            force_password_change=False,
        )
        store.users[user.id] = user
        return user

    return _make


@pytest.fixture
def make_credential(store):
    def _make(user, password_hash: str = "bcrypt-hash"):
        account = _record(
            user_id=user.id,
            provider_id=CREDENTIAL_PROVIDER,
            password_hash=password_hash,
        )
        store.accounts[account.id] = account
        return account

    return _make


@pytest.fixture
def make_session(store):
    """Factory opening a login session for a user; returns the session row."""

    def _make(user, *, expires_in: timedelta = timedelta(days=7)):
        session = _record(
            user_id=user.id,
            token=hash_token(uuid4().hex),
            expires_at=datetime.now(UTC) + expires_in,
        )
        store.sessions[session.id] = session
        return session

    return _make


@pytest.fixture
def make_invitation(store):
    """Factory inserting an invitation for a known plain token."""

    def _make(
        token: str,
        *,
        email: str = "invitee@example.org",
        role: UserRole = UserRole.PARENT,
        unit_id: UUID | None = None,
        expires_in: timedelta = timedelta(days=7),
        used_at: datetime | None = None,
    ):
        invitation = _record(
            email=email,
            name=None,
            role=role,
            unit_id=unit_id,
            token_hash=hash_token(token),
            expires_at=datetime.now(UTC) + expires_in,
            used_at=used_at,
            created_by=None,
        )
        store.invitations[invitation.id] = invitation
        return invitation

    return _make


@pytest.fixture
def make_leader_profile(store):
    def _make(user, *, unit_id: UUID | None = None, **fields: Any):
        profile = _record(
            user_id=user.id,
            unit_id=unit_id or uuid4(),
            name=fields.pop("name", user.name),
            year_of_birth=fields.pop("year_of_birth", 1995),
            status=fields.pop("status", LeaderStatus.ACTIVE),
            **fields,
        )
        store.leaders[profile.id] = profile
        return profile

    return _make


@pytest.fixture
def child_payload():
    """A valid registration payload."""
    return {
        "name": "Nguyễn Văn A",
        "dharma_name": "Tâm Minh",
        "date_of_birth": "2015-03-15",
        "gender": "MALE",
        "unit_id": str(uuid4()),
    }


@pytest.fixture
def make_submission(store):
    def _make(parent, payload: dict, status: SubmissionStatus = SubmissionStatus.PENDING, **fields):
        submission = _record(
            parent_id=parent.id,
            submitted_data=dict(payload),
            submission_notes=fields.pop("submission_notes", None),
            status=status,
            reviewed_by=fields.pop("reviewed_by", None),
            review_notes=fields.pop("review_notes", None),
            reviewed_at=fields.pop("reviewed_at", None),
            **fields,
        )
        store.submissions[submission.id] = submission
        return submission

    return _make
