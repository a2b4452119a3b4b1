# src/vote_tally/services/__init__.py
"""Business logic services for the vote tally engine."""

from .errors import (
    ConflictError,
    NotAuthenticated,
    ReconciliationFailure,
    StorageUnavailable,
    SubjectNotFound,
    VoteEngineError,
)
from .vote_state import LedgerOp, Transition, VoteState, decide

__all__ = [
    "ConflictError",
    "NotAuthenticated",
    "ReconciliationFailure",
    "StorageUnavailable",
    "SubjectNotFound",
    "VoteEngineError",
    "LedgerOp",
    "Transition",
    "VoteState",
    "decide",
]
