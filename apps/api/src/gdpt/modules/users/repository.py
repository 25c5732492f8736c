"""
User Repository

Database operations for users, their credentials and sessions. Bound to the
session of the current unit of work; nothing here commits.
"""

import logging
from datetime import datetime
from uuid import UUID

from sqlalchemy import delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from gdpt.modules.users.models import CREDENTIAL_PROVIDER, Account, User, UserRole, UserSession

logger = logging.getLogger(__name__)


class UserRepository:
    """Repository for user database operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create(
        self,
        *,
        email: str,
        name: str,
        role: UserRole,
        email_verified: bool = False,
        force_password_change: bool = False,
    ) -> User:
        """
        Create a new user record.

        Args:
            email: User's email address (unique)
            name: Display name
            role: User's role
            email_verified: Whether the email is already verified
            force_password_change: Whether the user must change password on next login

        Returns:
            Created User instance
        """
        user = User(
            email=email,
            name=name,
            role=role,
            email_verified=email_verified,
            force_password_change=force_password_change,
        )

        self.db.add(user)
        await self.db.flush()
        await self.db.refresh(user)

        logger.info(f"Created user: {user.id} ({user.role.value})")
        return user

    async def get_by_id(self, user_id: UUID, *, for_update: bool = False) -> User | None:
        """
        Get a user by ID.

        Args:
            user_id: User UUID
            for_update: Lock the row until the transaction ends

        Returns:
            User instance or None if not found
        """
        stmt = select(User).where(User.id == user_id)
        if for_update:
            stmt = stmt.with_for_update()
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by_email(self, email: str) -> User | None:
        """Get a user by email address (case-insensitive)."""
        result = await self.db.execute(select(User).where(func.lower(User.email) == email.lower()))
        return result.scalar_one_or_none()

    async def list_users(
        self,
        *,
        role: UserRole | None = None,
        search: str | None = None,
    ) -> list[User]:
        """List users, optionally filtered by role and a name/email search term."""
        stmt = select(User)
        if role:
            stmt = stmt.where(User.role == role)
        if search:
            pattern = f"%{search.lower()}%"
            stmt = stmt.where(
                or_(func.lower(User.name).like(pattern), func.lower(User.email).like(pattern))
            )
        result = await self.db.execute(stmt.order_by(User.created_at.desc()))
        return list(result.scalars().all())

    async def list_ids_by_roles(self, roles: list[UserRole]) -> list[UUID]:
        """Return ids of all users holding any of the given roles."""
        result = await self.db.execute(select(User.id).where(User.role.in_(roles)))
        return list(result.scalars().all())

    async def lock_admin_ids(self) -> list[UUID]:
        """
        Lock every ADMIN row and return their ids.

        Concurrent demotions serialize on these locks, so the count read here
        stays true until this transaction commits.
        """
        result = await self.db.execute(
            select(User.id)
            .where(User.role == UserRole.ADMIN)
            .order_by(User.id)
            .with_for_update()
        )
        return list(result.scalars().all())

    async def update_role(self, user: User, role: UserRole) -> User:
        """Set a user's role."""
        user.role = role
        await self.db.flush()
        return user

    async def set_force_password_change(self, user: User, value: bool) -> User:
        """Set or clear the must-change-password flag."""
        user.force_password_change = value
        await self.db.flush()
        return user

    async def delete(self, user: User) -> None:
        await self.db.delete(user)
        await self.db.flush()

    # Credentials

    async def add_password_credential(self, user_id: UUID, password_hash: str) -> Account:
        """Store a password credential for a user."""
        account = Account(
            user_id=user_id,
            provider_id=CREDENTIAL_PROVIDER,
            password_hash=password_hash,
        )
        self.db.add(account)
        await self.db.flush()
        return account

    async def get_password_credential(self, user_id: UUID) -> Account | None:
        result = await self.db.execute(
            select(Account).where(
                Account.user_id == user_id,
                Account.provider_id == CREDENTIAL_PROVIDER,
            )
        )
        return result.scalar_one_or_none()

    async def set_password_credential(self, user_id: UUID, password_hash: str) -> Account:
        """Replace the password of a user, creating the credential if missing."""
        account = await self.get_password_credential(user_id)
        if account is None:
            return await self.add_password_credential(user_id, password_hash)

        account.password_hash = password_hash
        await self.db.flush()
        return account

    async def delete_credentials(self, user_id: UUID) -> int:
        result = await self.db.execute(delete(Account).where(Account.user_id == user_id))
        return result.rowcount

    # Sessions

    async def create_session(
        self,
        user_id: UUID,
        *,
        token_hash: str,
        expires_at: datetime,
    ) -> UserSession:
        """
        Record a login session.

        Args:
            user_id: Owner of the session
            token_hash: SHA-256 of the refresh token issued with the session
            expires_at: When the session stops being accepted
        """
        session = UserSession(user_id=user_id, token=token_hash, expires_at=expires_at)
        self.db.add(session)
        await self.db.flush()
        return session

    async def get_active_session(self, session_id: UUID, now: datetime) -> UserSession | None:
        """Return the session if it exists and has not expired."""
        result = await self.db.execute(
            select(UserSession).where(
                UserSession.id == session_id,
                UserSession.expires_at > now,
            )
        )
        return result.scalar_one_or_none()

    async def delete_sessions(self, user_id: UUID, *, keep: UUID | None = None) -> int:
        """Revoke the sessions of a user, optionally sparing one (the caller's own)."""
        stmt = delete(UserSession).where(UserSession.user_id == user_id)
        if keep is not None:
            stmt = stmt.where(UserSession.id != keep)
        result = await self.db.execute(stmt)
        return result.rowcount
