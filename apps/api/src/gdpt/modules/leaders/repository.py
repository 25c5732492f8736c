"""
Leader Profile Repository

Database operations for leader profiles.
"""

import logging
from typing import Any
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from gdpt.modules.leaders.models import LeaderProfile

logger = logging.getLogger(__name__)


class LeaderRepository:
    """Repository for leader profile database operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create(self, *, user_id: UUID, **fields: Any) -> LeaderProfile:
        """
        Create a leader profile for a user.

        Args:
            user_id: Owning user
            **fields: Profile columns (name, unit_id, year_of_birth, ...)

        Returns:
            Created LeaderProfile
        """
        profile = LeaderProfile(user_id=user_id, **fields)
        self.db.add(profile)
        await self.db.flush()
        await self.db.refresh(profile)

        logger.info(f"Created leader profile {profile.id} for user {user_id}")
        return profile

    async def get_by_id(self, leader_id: UUID, *, for_update: bool = False) -> LeaderProfile | None:
        stmt = select(LeaderProfile).where(LeaderProfile.id == leader_id)
        if for_update:
            stmt = stmt.with_for_update()
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by_user_id(self, user_id: UUID) -> LeaderProfile | None:
        result = await self.db.execute(select(LeaderProfile).where(LeaderProfile.user_id == user_id))
        return result.scalar_one_or_none()

    async def update(self, profile: LeaderProfile, **fields: Any) -> LeaderProfile:
        """Apply field updates to a profile."""
        for key, value in fields.items():
            if hasattr(profile, key):
                setattr(profile, key, value)
        await self.db.flush()
        return profile

    async def delete(self, profile: LeaderProfile) -> None:
        await self.db.delete(profile)
        await self.db.flush()

    async def delete_for_user(self, user_id: UUID) -> int:
        result = await self.db.execute(delete(LeaderProfile).where(LeaderProfile.user_id == user_id))
        return result.rowcount
