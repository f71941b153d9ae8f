"""
Ballot casting service.

Ties the eligibility rules, the ballot cipher and the ballot store together:

    received -> checked_eligible -> encrypted -> persisted -> receipted
    received -> rejected(reason)

Each attempt runs in its own session and transaction. Nothing is persisted
until the transaction commits, and the commit is the durability boundary:
once it succeeds the ballot counts, even if the caller never sees the
receipt. A lost race on the (poll, voter) uniqueness constraint re-runs the
attempt, which re-evaluates eligibility and either replaces the winning
ballot (re-votes allowed) or reports the voter as having already voted.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Iterable, Optional

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.config import settings
from core.encryption import BallotCipher, CipherError
from core.exceptions import (
    BallotError,
    BallotRejected,
    CastFailed,
    DuplicateActiveBallot,
    ReceiptCollisionError,
    ReceiptNotFound,
    rejection_for,
)
from core.security import (
    canonical_ballot_payload,
    compute_ballot_hash,
    format_ballot_timestamp,
    generate_receipt_id,
)
from models.audit_log import AuditAction
from models.ballot import Ballot, ballot_associated_data
from repositories.ballot_repository import BallotRepository
from repositories.poll_repository import PollRepository
from schemas.ballot import CastReceipt, ReceiptDetails, VerificationResult
from services.audit_service import AuditTrail
from services.eligibility import as_utc, check_eligibility

logger = structlog.get_logger(__name__)


class CastStage(str, Enum):
    RECEIVED = "received"
    CHECKED_ELIGIBLE = "checked_eligible"
    ENCRYPTED = "encrypted"
    PERSISTED = "persisted"
    RECEIPTED = "receipted"
    REJECTED = "rejected"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class CastOutcome:
    """What one committed attempt produced."""

    receipt: CastReceipt
    ballot_id: int
    retired_ballot_id: Optional[int]


class BallotCastService:
    """
    Casts ballots and answers a voter's receipt and verification queries.

    Args:
        session_factory: opens one session per unit of work.
        cipher: the process-wide ballot cipher.
        audit: write-only audit sink; failures there never fail a cast.
        clock: source of the cast timestamp.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        cipher: BallotCipher,
        audit: Optional[AuditTrail] = None,
        clock: Callable[[], datetime] = utc_now,
        cast_retry_limit: Optional[int] = None,
        receipt_retry_limit: Optional[int] = None,
    ):
        self._session_factory = session_factory
        self._cipher = cipher
        self._audit = audit or AuditTrail(session_factory)
        self._clock = clock
        self._cast_retry_limit = settings.CAST_RETRY_LIMIT if cast_retry_limit is None else cast_retry_limit
        self._receipt_retry_limit = (
            settings.RECEIPT_RETRY_LIMIT if receipt_retry_limit is None else receipt_retry_limit
        )

    async def cast(
        self,
        poll_id: int,
        voter_id: int,
        selected_options: Iterable[int],
        ip_address: Optional[str] = None,
    ) -> CastReceipt:
        """
        Cast (or re-cast) a voter's ballot.

        Exactly one audit entry is written per call, describing the
        outcome.

        Raises:
            BallotRejected: an eligibility rule failed.
            DuplicateActiveBallot: racing casts kept winning past the retry cap.
            ReceiptCollisionError: receipt regeneration kept colliding.
            CastFailed: encryption or storage failed; nothing was recorded.
        """
        requested = list(selected_options)
        race_attempts = 0
        receipt_attempts = 0

        while True:
            try:
                outcome = await self._attempt(poll_id, voter_id, requested)
                break
            except DuplicateActiveBallot as e:
                race_attempts += 1
                if race_attempts >= self._cast_retry_limit:
                    logger.warning("cast_race_retries_exhausted", poll_id=poll_id, attempts=race_attempts)
                    await self._record_failure(poll_id, voter_id, e, ip_address)
                    raise
                logger.info("cast_race_lost_retrying", poll_id=poll_id, attempt=race_attempts)
            except ReceiptCollisionError as e:
                receipt_attempts += 1
                if receipt_attempts >= self._receipt_retry_limit:
                    logger.error("receipt_collision_retries_exhausted", poll_id=poll_id, attempts=receipt_attempts)
                    await self._record_failure(poll_id, voter_id, e, ip_address)
                    raise
                logger.warning("receipt_collision_retrying", poll_id=poll_id, attempt=receipt_attempts)
            except BallotRejected as e:
                logger.info(
                    "ballot_rejected",
                    stage=CastStage.REJECTED.value,
                    poll_id=poll_id,
                    reason=e.reason.value,
                )
                await self._record_failure(poll_id, voter_id, e, ip_address)
                raise
            except BallotError as e:
                await self._record_failure(poll_id, voter_id, e, ip_address)
                raise
            except SQLAlchemyError as e:
                logger.exception("ballot_store_failed", poll_id=poll_id, error_type=type(e).__name__)
                failure = CastFailed()
                await self._record_failure(poll_id, voter_id, failure, ip_address)
                raise failure from e

        if outcome.retired_ballot_id is not None:
            await self._audit.record(
                voter_id,
                AuditAction.VOTE_REPLACED,
                resource_type="ballot",
                resource_id=outcome.ballot_id,
                details=f"Replaced ballot {outcome.retired_ballot_id} with {outcome.ballot_id} in poll {poll_id}",
                ip_address=ip_address,
            )
        else:
            await self._audit.record(
                voter_id,
                AuditAction.VOTE_CAST,
                resource_type="ballot",
                resource_id=outcome.ballot_id,
                details=f"Voted in poll {poll_id}",
                ip_address=ip_address,
            )

        logger.info(
            "ballot_cast",
            stage=CastStage.RECEIPTED.value,
            poll_id=poll_id,
            receipt_id=outcome.receipt.receipt_id,
            replaced=outcome.receipt.replaced,
        )
        return outcome.receipt

    async def _attempt(self, poll_id: int, voter_id: int, requested: list[int]) -> CastOutcome:
        """One transactional attempt; commits on success, rolls back on any error."""
        now = as_utc(self._clock())

        async with self._session_factory() as session, session.begin():
            poll = await PollRepository(session).get_by_id(poll_id)
            ballots = BallotRepository(session)
            existing = await ballots.find_active(poll_id, voter_id) if poll is not None else None

            verdict = check_eligibility(poll, voter_id, requested, now, existing)
            if not verdict.accepted:
                raise rejection_for(verdict.reason)
            logger.debug("cast_stage", stage=CastStage.CHECKED_ELIGIBLE.value, poll_id=poll_id)

            ballot = self._seal(poll_id, voter_id, verdict.option_ids, now)
            logger.debug("cast_stage", stage=CastStage.ENCRYPTED.value, poll_id=poll_id)

            if verdict.is_replace:
                await ballots.replace(existing, ballot)
                retired_id = verdict.prior_ballot_id
            else:
                await ballots.insert(ballot)
                retired_id = None

            receipt = CastReceipt(
                receipt_id=ballot.receipt_id,
                integrity_hash=ballot.integrity_hash,
                timestamp=format_ballot_timestamp(now),
                replaced=retired_id is not None,
            )
            ballot_id = ballot.id

        logger.debug("cast_stage", stage=CastStage.PERSISTED.value, poll_id=poll_id)
        return CastOutcome(receipt=receipt, ballot_id=ballot_id, retired_ballot_id=retired_id)

    def _seal(self, poll_id: int, voter_id: int, option_ids: tuple[int, ...], now: datetime) -> Ballot:
        """Encrypt, hash and receipt a ballot. Selections never leave the sealed payload."""
        timestamp = format_ballot_timestamp(now)
        payload = canonical_ballot_payload(poll_id, voter_id, option_ids, timestamp)
        try:
            bundle = self._cipher.encrypt(payload, ballot_associated_data(poll_id, voter_id))
        except CipherError as e:
            logger.error("ballot_encryption_failed", poll_id=poll_id, kind=e.kind.value)
            raise CastFailed() from e

        return Ballot(
            poll_id=poll_id,
            voter_id=voter_id,
            ciphertext_bundle=bundle.serialize(),
            integrity_hash=compute_ballot_hash(poll_id, voter_id, option_ids, timestamp),
            receipt_id=generate_receipt_id(),
            created_at=now,
        )

    async def _record_failure(
        self,
        poll_id: int,
        voter_id: int,
        error: BallotError,
        ip_address: Optional[str],
    ) -> None:
        await self._audit.record(
            voter_id,
            AuditAction.VOTE_REJECTED,
            resource_type="poll",
            resource_id=poll_id,
            details=f"Cast rejected in poll {poll_id}: {error.reason.value}",
            ip_address=ip_address,
        )

    async def get_receipt(self, receipt_id: str, voter_id: int) -> ReceiptDetails:
        """
        Look up one of the voter's own receipts.

        Raises:
            ReceiptNotFound: no such receipt for this voter. Another voter's
                receipt is indistinguishable from a missing one.
        """
        async with self._session_factory() as session:
            ballot = await BallotRepository(session).find_by_receipt(receipt_id, voter_id)
            if ballot is None:
                raise ReceiptNotFound()
            poll_title = await PollRepository(session).get_title(ballot.poll_id)

        return ReceiptDetails(
            receipt_id=ballot.receipt_id,
            poll_id=ballot.poll_id,
            poll_title=poll_title or "",
            integrity_hash=ballot.integrity_hash,
            timestamp=format_ballot_timestamp(ballot.created_at),
        )

    async def verify(self, poll_id: int, voter_id: int) -> VerificationResult:
        """Report whether the voter currently has an active ballot for the poll."""
        async with self._session_factory() as session:
            ballot = await BallotRepository(session).find_active(poll_id, voter_id)

        if ballot is None:
            return VerificationResult(poll_id=poll_id, verified=False)
        return VerificationResult(
            poll_id=poll_id,
            verified=True,
            receipt_id=ballot.receipt_id,
            integrity_hash=ballot.integrity_hash,
            timestamp=format_ballot_timestamp(ballot.created_at),
        )
