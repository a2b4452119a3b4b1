# src/vote_tally/models/reconciliation.py
"""Bookkeeping for subjects whose cached score lags the ledger."""

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, SmallInteger, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from vote_tally.db.session import Base
from vote_tally.db.time import utcnow


class PendingReconciliation(Base):
    """Marker left when a score write could not be completed in-request.

    The background sweep recomputes marked subjects and removes the marker
    once the score matches the ledger again.
    """

    __tablename__ = "pending_reconciliation"

    subject_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("subject.id", ondelete="CASCADE"),
        primary_key=True,
    )
    attempts: Mapped[int] = mapped_column(SmallInteger, nullable=False, default=0)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    marked_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )
