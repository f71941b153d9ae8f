"""
Ballot model: the encrypted ballot store.

PRIVACY DESIGN:
- selected options are NEVER stored in cleartext, only inside the
  AES-GCM sealed payload in ciphertext_bundle
- integrity_hash lets a receipt holder check ballot content without the key
- receipt_id is independent of the primary key so it can be shared freely
- at most one row per (poll_id, voter_id); a re-vote replaces the row and
  keeps no history of the retired ballot
"""

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base

POLL_VOTER_CONSTRAINT = "uq_ballots_poll_voter"
RECEIPT_CONSTRAINT = "uq_ballots_receipt_id"


class Ballot(Base):
    """One voter's accepted, encrypted ballot for one poll."""

    __tablename__ = "ballots"

    __table_args__ = (
        # The sole concurrency primitive: a racing second insert for the
        # same (poll, voter) fails here
        UniqueConstraint("poll_id", "voter_id", name=POLL_VOTER_CONSTRAINT),
        UniqueConstraint("receipt_id", name=RECEIPT_CONSTRAINT),
        Index("ix_ballots_poll_created", "poll_id", "created_at"),
        # Ids of retired ballots are never handed out again
        {"sqlite_autoincrement": True},
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    poll_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("polls.id", ondelete="CASCADE"),
        index=True,
    )
    # Voters live in the external identity service
    voter_id: Mapped[int] = mapped_column(Integer, index=True)

    ciphertext_bundle: Mapped[str] = mapped_column(Text)
    integrity_hash: Mapped[str] = mapped_column(String(64))  # SHA-256 hex
    receipt_id: Mapped[str] = mapped_column(String(64))

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))

    @property
    def associated_data(self) -> bytes:
        """Bytes the sealed payload is bound to."""
        return ballot_associated_data(self.poll_id, self.voter_id)


def ballot_associated_data(poll_id: int, voter_id: int) -> bytes:
    return f"{poll_id}:{voter_id}".encode("ascii")
