# src/vote_tally/models/vote.py
"""Ledger rows capturing one voter's signed vote on a subject."""

from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Index, SmallInteger, String
from sqlalchemy.orm import Mapped, mapped_column

from vote_tally.db.session import Base
from vote_tally.db.time import utcnow

# Longest voter identifier the ledger can store.
VOTER_ID_MAX_LENGTH = 128


class Vote(Base):
    """Per-voter vote on a subject.

    "No vote" is the absence of a row; a stored value is always +1 or -1.
    """

    __tablename__ = "subject_vote"
    __table_args__ = (
        CheckConstraint("value IN (1, -1)", name="ck_subject_vote_value"),
        Index("ix_subject_vote_voter_id", "voter_id"),
    )

    # Composite primary key is the natural key: one row per (subject, voter).
    subject_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("subject.id", ondelete="CASCADE"),
        primary_key=True,
    )
    voter_id: Mapped[str] = mapped_column(String(VOTER_ID_MAX_LENGTH), primary_key=True)

    # 1 = upvote, -1 = downvote.
    value: Mapped[int] = mapped_column(SmallInteger, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )
    modified_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )
