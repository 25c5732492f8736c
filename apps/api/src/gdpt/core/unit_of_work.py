"""
Unit of Work

Every engine operation runs inside exactly one unit of work:

    async with uow:
        user = await uow.users.get_by_id(user_id, for_update=True)
        ...

Leaving the block normally commits; leaving it with an exception rolls
everything back. Repositories exposed on the unit of work share its
session, so all their statements belong to the same transaction.

Services only depend on the `UnitOfWork` protocol. Production code injects
`SqlAlchemyUnitOfWork`; tests can inject an in-memory implementation.
"""

import logging
from types import TracebackType
from typing import Protocol, Self

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from gdpt.core.database import async_session_maker
from gdpt.modules.invitations.repository import InvitationRepository
from gdpt.modules.leaders.repository import LeaderRepository
from gdpt.modules.students.repository import StudentRepository
from gdpt.modules.submissions.repository import SubmissionRepository
from gdpt.modules.users.repository import UserRepository

logger = logging.getLogger(__name__)


class UnitOfWork(Protocol):
    """Transaction boundary plus the repositories bound to it."""

    users: UserRepository
    leaders: LeaderRepository
    invitations: InvitationRepository
    submissions: SubmissionRepository
    students: StudentRepository

    async def __aenter__(self) -> Self: ...

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None: ...


class SqlAlchemyUnitOfWork:
    """
    Unit of work over an async SQLAlchemy session.

    A new session is opened on every `async with`, so one instance can be
    reused sequentially but must not be shared between concurrent tasks.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession] = async_session_maker):
        self.session_factory = session_factory
        self.session: AsyncSession | None = None

    async def __aenter__(self) -> Self:
        self.session = self.session_factory()
        self.users = UserRepository(self.session)
        self.leaders = LeaderRepository(self.session)
        self.invitations = InvitationRepository(self.session)
        self.submissions = SubmissionRepository(self.session)
        self.students = StudentRepository(self.session)
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        assert self.session is not None
        try:
            if exc_type is None:
                await self.session.commit()
            else:
                await self.session.rollback()
                logger.debug(f"Transaction rolled back: {exc_type.__name__}")
        finally:
            await self.session.close()
            self.session = None


def get_uow() -> SqlAlchemyUnitOfWork:
    """FastAPI dependency providing a fresh unit of work per request."""
    return SqlAlchemyUnitOfWork()


__all__ = ["SqlAlchemyUnitOfWork", "UnitOfWork", "get_uow"]
