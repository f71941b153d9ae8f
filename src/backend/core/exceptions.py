"""
Typed failures raised by the ballot casting and tallying core.

Every failure carries a stable ``RejectionReason`` code so clients can render
a specific message without parsing free text.
"""

from enum import Enum


class RejectionReason(str, Enum):
    """Stable, enumerable reason codes returned to clients."""

    POLL_NOT_FOUND_OR_INACTIVE = "poll_not_found_or_inactive"
    OUTSIDE_VOTING_WINDOW = "outside_voting_window"
    INVALID_OPTION = "invalid_option"
    TOO_MANY_SELECTIONS = "too_many_selections"
    ALREADY_VOTED = "already_voted"
    DUPLICATE_ACTIVE_BALLOT = "duplicate_active_ballot"
    RECEIPT_NOT_FOUND = "receipt_not_found"
    RECEIPT_COLLISION = "receipt_collision"
    POLL_NOT_FOUND = "poll_not_found"
    CAST_FAILED = "cast_failed"


class BallotError(Exception):
    """Base class for every typed failure of the ballot core."""

    reason: RejectionReason = RejectionReason.CAST_FAILED
    default_message = "The vote could not be recorded"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class BallotRejected(BallotError):
    """Client-correctable rejection decided by the eligibility rules."""


class PollNotFoundOrInactive(BallotRejected):
    reason = RejectionReason.POLL_NOT_FOUND_OR_INACTIVE
    default_message = "Poll not found or not active"


class OutsideVotingWindow(BallotRejected):
    reason = RejectionReason.OUTSIDE_VOTING_WINDOW
    default_message = "This poll is not accepting votes at this time"


class InvalidOption(BallotRejected):
    reason = RejectionReason.INVALID_OPTION
    default_message = "Invalid option selected"


class TooManySelections(BallotRejected):
    reason = RejectionReason.TOO_MANY_SELECTIONS
    default_message = "This poll allows only one selection"


class AlreadyVoted(BallotRejected):
    reason = RejectionReason.ALREADY_VOTED
    default_message = "You have already voted in this poll"


class DuplicateActiveBallot(BallotError):
    """A racing cast for the same (poll, voter) committed first."""

    reason = RejectionReason.DUPLICATE_ACTIVE_BALLOT
    default_message = "Another ballot for this poll was recorded concurrently"


class ReceiptCollisionError(BallotError):
    """Receipt regeneration kept colliding with existing receipts."""

    reason = RejectionReason.RECEIPT_COLLISION
    default_message = "The vote could not be recorded"


class ReceiptNotFound(BallotError):
    reason = RejectionReason.RECEIPT_NOT_FOUND
    default_message = "Receipt not found"


class PollNotFound(BallotError):
    reason = RejectionReason.POLL_NOT_FOUND
    default_message = "Poll not found"


class CastFailed(BallotError):
    """Generic server-side failure; never exposes cipher or storage internals."""

    reason = RejectionReason.CAST_FAILED


REJECTION_ERRORS: dict[RejectionReason, type[BallotRejected]] = {
    PollNotFoundOrInactive.reason: PollNotFoundOrInactive,
    OutsideVotingWindow.reason: OutsideVotingWindow,
    InvalidOption.reason: InvalidOption,
    TooManySelections.reason: TooManySelections,
    AlreadyVoted.reason: AlreadyVoted,
}


def rejection_for(reason: RejectionReason) -> BallotRejected:
    """Build the exception matching an eligibility rejection reason."""
    return REJECTION_ERRORS[reason]()
