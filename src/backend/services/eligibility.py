"""
Eligibility rules for casting a ballot.

Pure decision logic with no side effects: given the poll, the voter, the
requested options, the current time and the voter's existing ballot, decide
whether the cast is a new ballot, a replacement, or a rejection. The first
failing rule wins.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Iterable, Optional

from core.exceptions import RejectionReason
from models.ballot import Ballot
from models.poll import Poll, PollStatus


class VerdictKind(str, Enum):
    ACCEPT_NEW = "accept_new"
    ACCEPT_REPLACE = "accept_replace"
    REJECT = "reject"


@dataclass(frozen=True)
class EligibilityVerdict:
    """Outcome of the eligibility check."""

    kind: VerdictKind
    reason: Optional[RejectionReason] = None
    option_ids: tuple[int, ...] = field(default_factory=tuple)
    # Set on replacements; the ballot the new one retires
    prior_ballot_id: Optional[int] = None

    @property
    def accepted(self) -> bool:
        return self.kind is not VerdictKind.REJECT

    @property
    def is_replace(self) -> bool:
        return self.kind is VerdictKind.ACCEPT_REPLACE

    @classmethod
    def reject(cls, reason: RejectionReason) -> "EligibilityVerdict":
        return cls(kind=VerdictKind.REJECT, reason=reason)


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes (as returned by SQLite) as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def within_window(poll: Poll, now: datetime) -> bool:
    """Whether ``now`` falls inside the poll's inclusive [start, end] window."""
    now = as_utc(now)
    if poll.start_date is not None and now < as_utc(poll.start_date):
        return False
    if poll.end_date is not None and now > as_utc(poll.end_date):
        return False
    return True


def check_eligibility(
    poll: Optional[Poll],
    voter_id: int,
    requested_options: Iterable[int],
    now: datetime,
    existing_ballot: Optional[Ballot] = None,
) -> EligibilityVerdict:
    """
    Decide whether a cast is currently permitted.

    Rules, in order:
        1. poll exists and is active
        2. now is inside the voting window
        3. at least one option, all belonging to this poll
        4. no more options than the poll allows (one for single-choice)
        5. an existing ballot is replaced if re-votes are allowed,
           otherwise the voter has already voted
    """
    if poll is None or poll.status != PollStatus.ACTIVE.value:
        return EligibilityVerdict.reject(RejectionReason.POLL_NOT_FOUND_OR_INACTIVE)

    if not within_window(poll, now):
        return EligibilityVerdict.reject(RejectionReason.OUTSIDE_VOTING_WINDOW)

    option_ids = tuple(sorted(set(requested_options)))
    if not option_ids or not set(option_ids) <= poll.option_ids:
        return EligibilityVerdict.reject(RejectionReason.INVALID_OPTION)

    if len(option_ids) > poll.max_selections:
        return EligibilityVerdict.reject(RejectionReason.TOO_MANY_SELECTIONS)

    if existing_ballot is not None:
        if not poll.allow_revote:
            return EligibilityVerdict.reject(RejectionReason.ALREADY_VOTED)
        return EligibilityVerdict(
            kind=VerdictKind.ACCEPT_REPLACE,
            option_ids=option_ids,
            prior_ballot_id=existing_ballot.id,
        )

    return EligibilityVerdict(kind=VerdictKind.ACCEPT_NEW, option_ids=option_ids)
