# src/vote_tally/models/__init__.py
"""SQLAlchemy models for the vote tally engine."""

from .reconciliation import PendingReconciliation
from .subject import Subject
from .vote import Vote

__all__ = [
    "PendingReconciliation",
    "Subject",
    "Vote",
]
