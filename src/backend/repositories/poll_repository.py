"""
Poll repository for read-only database operations.
"""

from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from models.poll import Poll


class PollRepository:
    """Repository for poll database reads."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_id(self, poll_id: int) -> Optional[Poll]:
        """Get a poll by ID with its options."""
        result = await self.db.execute(
            select(Poll).options(selectinload(Poll.options)).where(Poll.id == poll_id)
        )
        return result.scalar_one_or_none()

    async def get_title(self, poll_id: int) -> Optional[str]:
        """Get only the title of a poll."""
        result = await self.db.execute(select(Poll.title).where(Poll.id == poll_id))
        return result.scalar_one_or_none()
