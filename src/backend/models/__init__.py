"""Database models module."""

from models.audit_log import AuditAction, AuditLog
from models.ballot import Ballot
from models.poll import Poll, PollOption, PollStatus, PollType

__all__ = [
    "AuditAction",
    "AuditLog",
    "Ballot",
    "Poll",
    "PollOption",
    "PollStatus",
    "PollType",
]
