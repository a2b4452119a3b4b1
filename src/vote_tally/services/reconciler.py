"""Aggregate score reconciliation.

A subject's ``score`` is a cache of the sum of its ledger rows. This module
recomputes that sum and publishes it, and it owns the per-subject
serialization that keeps a recompute from racing another voter's recompute:

- an in-process lock keyed by subject id (``SubjectLockRegistry``), and
- a ``SELECT ... FOR UPDATE`` on the subject row for writers in other
  processes (PostgreSQL row lock; SQLite serializes writers per database).

The ledger mutation and the recompute run inside the same locked transaction,
so the read-sum-write sequence is atomic relative to other voters on the
subject.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from threading import Lock, RLock

from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from vote_tally.core.settings import settings
from vote_tally.db.time import utcnow
from vote_tally.models import PendingReconciliation, Subject, Vote
from vote_tally.repositories.vote_repo import VoteLedger
from vote_tally.services.errors import (
    ReconciliationFailure,
    StorageUnavailable,
    SubjectNotFound,
    VoteEngineError,
)

logger = logging.getLogger(__name__)

# Stored error text is truncated to keep the marker row small.
_MAX_ERROR_LENGTH = 500


@dataclass
class _LockEntry:
    lock: RLock = field(default_factory=RLock)
    holders: int = 0


class SubjectLockRegistry:
    """In-process mutual exclusion keyed by subject id.

    Entries are created on demand and dropped once no thread holds or waits
    on them, so the registry does not grow with the number of subjects.
    """

    def __init__(self) -> None:
        self._guard = Lock()
        self._entries: dict[str, _LockEntry] = {}

    @contextmanager
    def hold(self, subject_id: str, timeout: float) -> Iterator[None]:
        """Hold the lock for ``subject_id`` for the duration of the block.

        Raises:
            StorageUnavailable: If the lock cannot be acquired within ``timeout``.
        """
        with self._guard:
            entry = self._entries.setdefault(subject_id, _LockEntry())
            entry.holders += 1

        acquired = entry.lock.acquire(timeout=timeout)
        try:
            if not acquired:
                raise StorageUnavailable(
                    f"Timed out after {timeout:.1f}s waiting for subject {subject_id!r}"
                )
            yield
        finally:
            if acquired:
                entry.lock.release()
            with self._guard:
                entry.holders -= 1
                if entry.holders == 0:
                    self._entries.pop(subject_id, None)

    def __len__(self) -> int:
        with self._guard:
            return len(self._entries)


_SUBJECT_LOCKS = SubjectLockRegistry()


def get_subject_locks() -> SubjectLockRegistry:
    """Return the process-wide subject lock registry."""
    return _SUBJECT_LOCKS


class AggregateReconciler:
    """Sole writer of ``Subject.score``.

    The session passed in must not have a transaction in progress when
    ``serialize`` is entered; the locked block begins its own.
    """

    def __init__(
        self,
        session: Session,
        ledger: VoteLedger | None = None,
        locks: SubjectLockRegistry | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.session = session
        self.ledger = ledger or VoteLedger(session)
        self.locks = locks or get_subject_locks()
        self._sleep = sleep

    @contextmanager
    def serialize(self, subject_id: str) -> Iterator[None]:
        """Serialize the enclosed block against other writers on ``subject_id``."""
        with self.locks.hold(subject_id, settings.subject_lock_timeout_seconds):
            yield

    def lock_subject(self, subject_id: str) -> Subject:
        """Load the subject row with a write lock held until the transaction ends."""
        subject = self.session.execute(
            select(Subject).where(Subject.id == subject_id).with_for_update()
        ).scalar_one_or_none()
        if subject is None:
            raise SubjectNotFound(subject_id)
        return subject

    def current_score(self, subject_id: str) -> int:
        """Return the published score without taking the subject lock."""
        score = self.session.execute(
            select(Subject.score).where(Subject.id == subject_id)
        ).scalar_one_or_none()
        if score is None:
            raise SubjectNotFound(subject_id)
        return int(score)

    def recompute(self, subject: Subject) -> int:
        """Overwrite ``subject.score`` with the ledger sum and clear any pending marker.

        Runs in a SAVEPOINT so a failed write leaves the enclosing transaction
        (and the ledger mutation in it) intact.
        """
        with self.session.begin_nested():
            total = self.ledger.sum_for_subject(subject.id)
            subject.score = total
            self.session.execute(
                delete(PendingReconciliation).where(
                    PendingReconciliation.subject_id == subject.id
                )
            )
        return total

    def publish(self, subject: Subject) -> int:
        """Recompute the subject's score, retrying with bounded backoff.

        Raises:
            ReconciliationFailure: If every attempt failed. The subject has been
                marked for the background sweep in the current transaction.
        """
        delays = [0.0, *settings.reconcile_backoff_schedule]
        last_error: SQLAlchemyError | None = None
        for attempt, delay in enumerate(delays, start=1):
            if delay:
                self._sleep(delay)
            try:
                return self.recompute(subject)
            except SQLAlchemyError as err:
                last_error = err
                logger.warning(
                    "Score reconciliation attempt %d/%d for subject %s failed: %s",
                    attempt,
                    len(delays),
                    subject.id,
                    err,
                )

        self.mark_pending(subject.id, last_error)
        logger.error(
            "Score reconciliation for subject %s exhausted %d attempts; marked for resweep",
            subject.id,
            len(delays),
            exc_info=last_error,
        )
        raise ReconciliationFailure(subject.id, last_error) from last_error

    def mark_pending(self, subject_id: str, error: BaseException | None = None) -> None:
        """Record that ``subject_id``'s score lags the ledger."""
        with self.session.begin_nested():
            marker = self.session.get(PendingReconciliation, subject_id)
            if marker is None:
                marker = PendingReconciliation(subject_id=subject_id, attempts=0)
                self.session.add(marker)
            marker.attempts += 1
            marker.last_error = str(error)[:_MAX_ERROR_LENGTH] if error is not None else None
            marker.marked_at = utcnow()

    def reconcile(self, subject_id: str) -> int:
        """Recompute and commit one subject's score in its own transaction."""
        _, score = self._reconcile_in_transaction(subject_id)
        return score

    def _reconcile_in_transaction(self, subject_id: str) -> tuple[int, int]:
        with self.serialize(subject_id):
            try:
                subject = self.lock_subject(subject_id)
                previous = subject.score
                score = self.recompute(subject)
                self.session.commit()
            except SQLAlchemyError as err:
                self.session.rollback()
                raise StorageUnavailable(
                    f"Could not reconcile subject {subject_id!r}: {err}"
                ) from err
            except VoteEngineError:
                self.session.rollback()
                raise
        if previous != score:
            logger.info("Corrected score for subject %s: %d -> %d", subject_id, previous, score)
        return previous, score

    def pending_subjects(self, limit: int | None = None) -> list[str]:
        """Return subject ids awaiting reconciliation, oldest marker first."""
        stmt = select(PendingReconciliation.subject_id).order_by(
            PendingReconciliation.marked_at, PendingReconciliation.subject_id
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        subject_ids = list(self.session.execute(stmt).scalars())
        # End the read transaction before taking subject locks.
        self.session.commit()
        return subject_ids

    def sweep(self, limit: int | None = None) -> list[str]:
        """Reconcile subjects marked as lagging; return the ids that succeeded."""
        batch = limit if limit is not None else settings.reconcile_sweep_batch_size
        reconciled: list[str] = []
        for subject_id in self.pending_subjects(batch):
            try:
                self.reconcile(subject_id)
            except SubjectNotFound:
                continue
            except StorageUnavailable as err:
                logger.warning("Resweep of subject %s failed: %s", subject_id, err)
                self._record_sweep_failure(subject_id, err)
                continue
            reconciled.append(subject_id)

        if reconciled:
            logger.info("Resweep reconciled %d subject(s)", len(reconciled))
        return reconciled

    def _record_sweep_failure(self, subject_id: str, error: BaseException) -> None:
        try:
            marker = self.session.get(PendingReconciliation, subject_id)
            if marker is not None:
                marker.attempts += 1
                marker.last_error = str(error)[:_MAX_ERROR_LENGTH]
            self.session.commit()
        except SQLAlchemyError:
            self.session.rollback()
            logger.error("Could not record resweep failure for %s", subject_id, exc_info=True)

    def rebuild_all(self) -> dict[str, int]:
        """Recompute every subject; return the corrected ones with their new score."""
        subject_ids = list(self.session.execute(select(Subject.id).order_by(Subject.id)).scalars())
        self.session.commit()

        corrected: dict[str, int] = {}
        for subject_id in subject_ids:
            try:
                previous, score = self._reconcile_in_transaction(subject_id)
            except SubjectNotFound:
                continue
            if previous != score:
                corrected[subject_id] = score

        logger.info(
            "Rebuilt scores for %d subject(s); %d corrected",
            len(subject_ids),
            len(corrected),
        )
        return corrected

    def drift(self, subject_id: str) -> int:
        """Return ``score - ledger sum`` for a subject without writing anything."""
        score = self.current_score(subject_id)
        total = self.ledger.sum_for_subject(subject_id)
        self.session.commit()
        return score - total

    def find_drifted(self) -> list[tuple[str, int, int]]:
        """Return ``(subject_id, score, ledger_sum)`` for every subject out of step."""
        totals = (
            select(Vote.subject_id, func.sum(Vote.value).label("total"))
            .group_by(Vote.subject_id)
            .subquery()
        )
        ledger_sum = func.coalesce(totals.c.total, 0)
        rows = self.session.execute(
            select(Subject.id, Subject.score, ledger_sum)
            .outerjoin(totals, totals.c.subject_id == Subject.id)
            .where(Subject.score != ledger_sum)
            .order_by(Subject.id)
        ).all()
        self.session.commit()
        return [(row[0], int(row[1]), int(row[2])) for row in rows]
