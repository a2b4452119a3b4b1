# src/vote_tally/models/subject.py
"""SQLAlchemy model for voteable subjects."""

from datetime import datetime

from sqlalchemy import DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from vote_tally.db.session import Base
from vote_tally.db.time import utcnow


class Subject(Base):
    """An item voters can cast signed votes on.

    ``score`` caches the sum of the subject's ledger rows. It carries no
    authority of its own and is only ever written by the aggregate reconciler.
    """

    __tablename__ = "subject"

    # Opaque identifier supplied by the content owner (caption, post, ...).
    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )
