"""Repository modules for database access."""

from repositories.ballot_repository import BallotRepository
from repositories.poll_repository import PollRepository

__all__ = [
    "BallotRepository",
    "PollRepository",
]
