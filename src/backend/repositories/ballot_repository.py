"""
Ballot repository: the encrypted ballot store.

Every method works inside the caller's session; the caller owns the
transaction boundary, so insert/replace commit or roll back as one unit.
"""

from collections.abc import Sequence
from typing import Any, Optional

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import BallotError, DuplicateActiveBallot, ReceiptCollisionError
from models.ballot import Ballot

logger = structlog.get_logger(__name__)


def classify_integrity_error(exc: IntegrityError) -> BallotError:
    """
    Map a unique-constraint violation to the store error it represents.

    Both PostgreSQL and SQLite name the offending column or constraint in
    the driver message; only the receipt constraint mentions receipt_id.
    """
    if "receipt_id" in str(exc.orig):
        return ReceiptCollisionError()
    return DuplicateActiveBallot()


class BallotRepository:
    """Repository for ballot database operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def find_active(self, poll_id: int, voter_id: int) -> Optional[Ballot]:
        """Get the voter's active ballot for a poll, if any."""
        result = await self.db.execute(
            select(Ballot).where(Ballot.poll_id == poll_id, Ballot.voter_id == voter_id)
        )
        return result.scalar_one_or_none()

    async def insert(self, ballot: Ballot) -> str:
        """
        Persist a new ballot and return its receipt id.

        Raises:
            DuplicateActiveBallot: a concurrent cast for the same
                (poll, voter) won the race.
            ReceiptCollisionError: the receipt id already exists.
        """
        self.db.add(ballot)
        try:
            await self.db.flush()
        except IntegrityError as e:
            error = classify_integrity_error(e)
            logger.info(
                "ballot_insert_conflict",
                poll_id=ballot.poll_id,
                reason=error.reason.value,
            )
            raise error from e
        return ballot.receipt_id

    async def replace(self, retired: Ballot, new_ballot: Ballot) -> str:
        """
        Retire the voter's current ballot and insert ``new_ballot``.

        Runs inside the caller's transaction so no reader ever observes the
        pair with zero or two ballots. ``retired`` must have been loaded in
        this session.

        Returns:
            The receipt id of the new ballot.
        """
        await self.db.delete(retired)
        await self.db.flush()
        return await self.insert(new_ballot)

    async def list_for_poll(self, poll_id: int) -> Sequence[Ballot]:
        """All ballots for a poll, in no particular order."""
        result = await self.db.execute(select(Ballot).where(Ballot.poll_id == poll_id))
        return result.scalars().all()

    async def find_by_receipt(self, receipt_id: str, voter_id: int) -> Optional[Ballot]:
        """Look up a ballot by receipt, scoped to the voter who owns it."""
        result = await self.db.execute(
            select(Ballot).where(Ballot.receipt_id == receipt_id, Ballot.voter_id == voter_id)
        )
        return result.scalar_one_or_none()

    async def list_receipts(self, poll_id: int) -> Sequence[Any]:
        """Receipt rows for export; never includes the sealed payload."""
        result = await self.db.execute(
            select(Ballot.receipt_id, Ballot.voter_id, Ballot.integrity_hash, Ballot.created_at)
            .where(Ballot.poll_id == poll_id)
            .order_by(Ballot.created_at.asc(), Ballot.id.asc())
        )
        return result.all()
