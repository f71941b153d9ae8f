"""
Tally engine.

Results are never stored in plaintext. They are reconstructed on demand by
decrypting every ballot of a poll. A ballot that cannot be decrypted or
parsed, or that no longer matches the poll's options, is skipped and
counted as skipped; one corrupt row never makes the whole result
unavailable.
"""

import json
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.encryption import BallotCipher, CipherError
from core.exceptions import PollNotFound
from core.security import compute_ballot_hash, format_ballot_timestamp
from models.ballot import Ballot
from models.poll import Poll, PollStatus
from repositories.ballot_repository import BallotRepository
from repositories.poll_repository import PollRepository
from schemas.ballot import IntegrityReport, OptionTally, ReceiptExportRow, TallyResult

logger = structlog.get_logger(__name__)


class UnreadableBallot(Exception):
    """A decrypted payload that does not describe a ballot of this row."""


class SkippedBallot(Exception):
    """A stored ballot that cannot be counted."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)


@dataclass(frozen=True)
class OpenedBallot:
    """Plaintext content of one ballot."""

    poll_id: int
    voter_id: int
    selected_options: tuple[int, ...]
    timestamp: str


def parse_payload(plaintext: str) -> OpenedBallot:
    """Parse a decrypted ballot payload, raising UnreadableBallot on bad content."""
    try:
        data = json.loads(plaintext)
        options = data["selected_options"]
        if not isinstance(options, list):
            options = [options]
        return OpenedBallot(
            poll_id=int(data["poll_id"]),
            voter_id=int(data["voter_id"]),
            selected_options=tuple(int(option_id) for option_id in options),
            timestamp=str(data["timestamp"]),
        )
    except (ValueError, KeyError, TypeError) as e:
        raise UnreadableBallot(f"Unparseable ballot payload: {type(e).__name__}") from e


class TallyService:
    """Reconstructs results and audits the ballot store."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], cipher: BallotCipher):
        self._session_factory = session_factory
        self._cipher = cipher

    async def _load(self, poll_id: int) -> tuple[Poll, Sequence[Ballot]]:
        async with self._session_factory() as session:
            poll = await PollRepository(session).get_by_id(poll_id)
            if poll is None:
                raise PollNotFound()
            ballots = await BallotRepository(session).list_for_poll(poll_id)
        return poll, ballots

    def open_ballot(self, ballot: Ballot) -> OpenedBallot:
        """
        Decrypt and parse one stored ballot.

        Raises:
            CipherError: the bundle is malformed or fails authentication.
            UnreadableBallot: the payload does not belong to this row.
        """
        opened = parse_payload(self._cipher.decrypt(ballot.ciphertext_bundle, ballot.associated_data))
        if opened.poll_id != ballot.poll_id or opened.voter_id != ballot.voter_id:
            raise UnreadableBallot("Ballot payload does not match its row")
        return opened

    async def tally(self, poll_id: int) -> TallyResult:
        """
        Count votes per option for a poll.

        ``total_accepted_ballots`` only counts ballots that were decrypted
        and counted, so it is consistent with the per-option sums.

        Raises:
            PollNotFound: no such poll.
        """
        poll, ballots = await self._load(poll_id)
        valid_options = poll.option_ids
        counts = {option.id: 0 for option in poll.options}
        accepted = 0
        skipped = 0

        for ballot in ballots:
            try:
                selected = self._countable_options(ballot, poll, valid_options)
            except SkippedBallot as e:
                skipped += 1
                logger.warning(
                    "tally_ballot_skipped",
                    poll_id=poll_id,
                    receipt_id=ballot.receipt_id,
                    reason=e.reason,
                )
                continue
            for option_id in selected:
                counts[option_id] += 1
            accepted += 1

        logger.info("tally_completed", poll_id=poll_id, accepted=accepted, skipped=skipped)
        return TallyResult(
            poll_id=poll_id,
            results=[
                OptionTally(option_id=option.id, option_text=option.option_text, vote_count=counts[option.id])
                for option in poll.options
            ],
            total_accepted_ballots=accepted,
            skipped_count=skipped,
        )

    def _countable_options(self, ballot: Ballot, poll: Poll, valid_options: frozenset[int]) -> frozenset[int]:
        """The distinct options a ballot contributes, or SkippedBallot."""
        try:
            opened = self.open_ballot(ballot)
        except CipherError as e:
            raise SkippedBallot(e.kind.value) from e
        except UnreadableBallot as e:
            raise SkippedBallot("unreadable_payload") from e

        selected = frozenset(opened.selected_options)
        if not selected:
            raise SkippedBallot("empty_selection")
        if not selected <= valid_options:
            raise SkippedBallot("unknown_option")
        if len(selected) > poll.max_selections:
            raise SkippedBallot("too_many_selections")
        return selected

    async def verify_integrity(self, poll_id: int) -> IntegrityReport:
        """
        Recompute every ballot's integrity hash from its decrypted content.

        Raises:
            PollNotFound: no such poll.
        """
        _, ballots = await self._load(poll_id)
        verified = 0
        mismatched: list[str] = []
        undecryptable: list[str] = []

        for ballot in ballots:
            try:
                opened = self.open_ballot(ballot)
            except (CipherError, UnreadableBallot):
                undecryptable.append(ballot.receipt_id)
                continue
            expected = compute_ballot_hash(
                opened.poll_id, opened.voter_id, opened.selected_options, opened.timestamp
            )
            if expected == ballot.integrity_hash:
                verified += 1
            else:
                mismatched.append(ballot.receipt_id)

        report = IntegrityReport(
            poll_id=poll_id,
            checked=len(ballots),
            verified=verified,
            mismatched_receipts=sorted(mismatched),
            undecryptable_receipts=sorted(undecryptable),
        )
        if report.is_clean:
            logger.info("integrity_check_clean", poll_id=poll_id, checked=report.checked)
        else:
            logger.error(
                "integrity_check_failed",
                poll_id=poll_id,
                mismatched=len(mismatched),
                undecryptable=len(undecryptable),
            )
        return report

    async def export_receipts(self, poll_id: int) -> list[ReceiptExportRow]:
        """
        Receipts for every ballot of a poll, without selections.

        Raises:
            PollNotFound: no such poll.
        """
        async with self._session_factory() as session:
            if await PollRepository(session).get_title(poll_id) is None:
                raise PollNotFound()
            rows = await BallotRepository(session).list_receipts(poll_id)
        return [
            ReceiptExportRow(
                receipt_id=row.receipt_id,
                voter_id=row.voter_id,
                integrity_hash=row.integrity_hash,
                timestamp=format_ballot_timestamp(row.created_at),
            )
            for row in rows
        ]

    async def poll_is_closed(self, poll_id: int) -> Optional[bool]:
        """Whether a poll is closed, or None if it does not exist."""
        async with self._session_factory() as session:
            poll = await PollRepository(session).get_by_id(poll_id)
        if poll is None:
            return None
        return poll.status == PollStatus.CLOSED.value
