"""
Poll and poll option models.

Polls are created and edited by an external poll-management service; the
ballot core only reads them to decide eligibility and to tally.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from db.base import Base


class PollStatus(str, Enum):
    """Poll lifecycle status."""

    DRAFT = "draft"  # Being prepared, not accepting votes
    ACTIVE = "active"  # Accepting votes inside its window
    CLOSED = "closed"  # Voting finished, results are visible


class PollType(str, Enum):
    """How many options a ballot may select."""

    SINGLE = "single"
    MULTIPLE = "multiple"


class Poll(Base):
    """A question voters cast ballots against."""

    __tablename__ = "polls"

    __table_args__ = (Index("ix_polls_status_window", "status", "start_date", "end_date"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    title: Mapped[str] = mapped_column(String(200))
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    creator_id: Mapped[int] = mapped_column(Integer, index=True)

    status: Mapped[str] = mapped_column(String(20), default=PollStatus.DRAFT.value, index=True)
    poll_type: Mapped[str] = mapped_column(String(20), default=PollType.SINGLE.value)
    allow_revote: Mapped[bool] = mapped_column(Boolean, default=False)

    # Inclusive eligibility window; either bound may be open
    start_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    end_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )

    options: Mapped[list["PollOption"]] = relationship(
        back_populates="poll",
        cascade="all, delete-orphan",
        order_by="PollOption.display_order",
    )

    @property
    def option_ids(self) -> frozenset[int]:
        """Ids of the options currently attached to this poll."""
        return frozenset(option.id for option in self.options)

    @property
    def max_selections(self) -> int:
        """Upper bound on options a single ballot may carry."""
        if self.poll_type == PollType.SINGLE.value:
            return 1
        return len(self.options)


class PollOption(Base):
    """A selectable answer of a poll."""

    __tablename__ = "poll_options"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    poll_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("polls.id", ondelete="CASCADE"),
        index=True,
    )

    option_text: Mapped[str] = mapped_column(Text)
    display_order: Mapped[int] = mapped_column(Integer, default=0)

    poll: Mapped["Poll"] = relationship(back_populates="options")
