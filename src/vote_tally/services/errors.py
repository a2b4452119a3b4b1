"""Typed failures raised by the vote engine."""

from __future__ import annotations


class VoteEngineError(RuntimeError):
    """Base exception for vote engine failures."""


class NotAuthenticated(VoteEngineError):
    """Raised when a vote arrives without a voter identity.

    This is a precondition failure checked before any storage access; it is
    never retried.
    """


class SubjectNotFound(VoteEngineError):
    """Raised when the voted-on subject does not exist."""

    def __init__(self, subject_id: str) -> None:
        super().__init__(f"Subject {subject_id!r} not found")
        self.subject_id = subject_id


class ConflictError(VoteEngineError):
    """Raised when another writer changed the same (subject, voter) row first.

    Callers recover by re-reading the current vote and re-deciding the
    transition.
    """


class ReconciliationFailure(VoteEngineError):
    """Raised when a subject's score could not be recomputed and written.

    The ledger mutation that preceded it is still valid; the subject has been
    marked for the background sweep.
    """

    def __init__(self, subject_id: str, cause: BaseException | None = None) -> None:
        super().__init__(f"Score reconciliation failed for subject {subject_id!r}: {cause}")
        self.subject_id = subject_id
        self.cause = cause


class StorageUnavailable(VoteEngineError):
    """Raised for transient storage failures; nothing was persisted and the call may be retried."""
