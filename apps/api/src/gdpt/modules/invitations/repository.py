"""
Invitations Repository

Database operations for invitations. Token values arrive here already
hashed; the repository never sees a plain token.

Claiming, reissuing and cancelling are conditional statements guarded by
`used_at IS NULL`, so two transactions racing on one invitation cannot both
succeed. The affected row count tells the caller whether it won.
"""

import logging
from datetime import datetime
from uuid import UUID

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from gdpt.modules.invitations.models import Invitation
from gdpt.modules.users.models import UserRole

logger = logging.getLogger(__name__)


class InvitationRepository:
    """Repository for invitation database operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

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
    ) -> Invitation:
        """Insert a new invitation."""
        invitation = Invitation(
            email=email,
            name=name,
            role=role,
            unit_id=unit_id,
            token_hash=token_hash,
            expires_at=expires_at,
            created_by=created_by,
        )
        self.db.add(invitation)
        await self.db.flush()
        await self.db.refresh(invitation)
        return invitation

    async def get_by_id(self, invitation_id: UUID, *, for_update: bool = False) -> Invitation | None:
        stmt = (
            select(Invitation)
            .where(Invitation.id == invitation_id)
            .execution_options(populate_existing=True)
        )
        if for_update:
            stmt = stmt.with_for_update()
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by_token_hash(
        self,
        token_hash: str,
        *,
        for_update: bool = False,
    ) -> Invitation | None:
        """Look up an invitation by the SHA-256 hash of its token."""
        stmt = select(Invitation).where(Invitation.token_hash == token_hash)
        if for_update:
            stmt = stmt.with_for_update()
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def list_all(self) -> list[Invitation]:
        """All invitations, newest first."""
        result = await self.db.execute(select(Invitation).order_by(Invitation.created_at.desc()))
        return list(result.scalars().all())

    async def mark_used(self, invitation_id: UUID, used_at: datetime) -> bool:
        """
        Claim an invitation.

        Returns:
            True if this call set used_at, False if it was already set
        """
        result = await self.db.execute(
            update(Invitation)
            .where(Invitation.id == invitation_id, Invitation.used_at.is_(None))
            .values(used_at=used_at)
        )
        return result.rowcount == 1

    async def reissue(
        self,
        invitation_id: UUID,
        *,
        token_hash: str,
        expires_at: datetime,
        created_by: UUID | None,
    ) -> bool:
        """
        Replace the token and expiry of an unused invitation.

        Returns:
            True if the row was updated, False if it is used or missing
        """
        result = await self.db.execute(
            update(Invitation)
            .where(Invitation.id == invitation_id, Invitation.used_at.is_(None))
            .values(token_hash=token_hash, expires_at=expires_at, created_by=created_by)
        )
        return result.rowcount == 1

    async def delete_unused(self, invitation_id: UUID) -> bool:
        """
        Delete an invitation that has not been used.

        Returns:
            True if the row was deleted
        """
        result = await self.db.execute(
            delete(Invitation).where(
                Invitation.id == invitation_id,
                Invitation.used_at.is_(None),
            )
        )
        return result.rowcount == 1
