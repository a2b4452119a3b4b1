# tests/test_reconciler.py
"""Tests for aggregate score reconciliation."""

import threading

import pytest
from sqlalchemy.exc import OperationalError

from vote_tally.core.settings import settings
from vote_tally.models import PendingReconciliation, Vote
from vote_tally.services.errors import (
    ReconciliationFailure,
    StorageUnavailable,
    SubjectNotFound,
)
from vote_tally.services.reconciler import AggregateReconciler, SubjectLockRegistry


def _storage_error() -> OperationalError:
    return OperationalError("SELECT sum(value)", {}, Exception("disk I/O error"))


def _seed_votes(session_factory, subject_id: str, values: list[int]) -> None:
    with session_factory() as session:
        for index, value in enumerate(values):
            session.add(Vote(subject_id=subject_id, voter_id=f"voter-{index}", value=value))
        session.commit()


def test_reconcile_overwrites_drifted_score(session_factory, db_session, make_subject, read_state) -> None:
    subject_id = make_subject("caption-1", score=42)
    _seed_votes(session_factory, subject_id, [1, 1, -1, 1])

    assert AggregateReconciler(db_session).reconcile(subject_id) == 2
    assert read_state(subject_id) == (2, 2, 4)


def test_reconcile_with_no_votes_is_zero(db_session, make_subject, read_state) -> None:
    subject_id = make_subject("caption-1", score=-3)
    assert AggregateReconciler(db_session).reconcile(subject_id) == 0
    assert read_state(subject_id) == (0, 0, 0)


def test_reconcile_unknown_subject(db_session) -> None:
    with pytest.raises(SubjectNotFound):
        AggregateReconciler(db_session).reconcile("missing")


def test_current_score_unknown_subject(db_session) -> None:
    with pytest.raises(SubjectNotFound):
        AggregateReconciler(db_session).current_score("missing")
    db_session.rollback()


def test_publish_retries_with_backoff(db_session, subject_id, mocker, monkeypatch) -> None:
    """A failed score write is retried after the configured delay."""
    monkeypatch.setattr(settings, "reconcile_backoff_seconds", 0.25)
    monkeypatch.setattr(settings, "reconcile_max_attempts", 3)
    sleeps: list[float] = []
    reconciler = AggregateReconciler(db_session, sleep=sleeps.append)
    subject = reconciler.lock_subject(subject_id)
    mocker.patch.object(
        reconciler.ledger,
        "sum_for_subject",
        side_effect=[_storage_error(), 4],
    )

    assert reconciler.publish(subject) == 4
    assert sleeps == [0.25]
    db_session.commit()


def test_publish_exhaustion_marks_subject(db_session, subject_id, mocker, monkeypatch) -> None:
    """When every attempt fails the subject is left for the resweep."""
    monkeypatch.setattr(settings, "reconcile_max_attempts", 2)
    reconciler = AggregateReconciler(db_session, sleep=lambda _: None)
    subject = reconciler.lock_subject(subject_id)
    summed = mocker.patch.object(reconciler.ledger, "sum_for_subject", side_effect=_storage_error())

    with pytest.raises(ReconciliationFailure) as excinfo:
        reconciler.publish(subject)
    db_session.commit()

    assert summed.call_count == 2
    assert excinfo.value.subject_id == subject_id
    marker = db_session.get(PendingReconciliation, subject_id)
    assert marker is not None
    assert marker.attempts == 1
    assert "disk I/O error" in marker.last_error
    db_session.commit()


def test_mark_pending_twice_counts_attempts(db_session, subject_id) -> None:
    reconciler = AggregateReconciler(db_session)
    reconciler.mark_pending(subject_id, RuntimeError("first"))
    reconciler.mark_pending(subject_id, RuntimeError("second"))
    db_session.commit()

    marker = db_session.get(PendingReconciliation, subject_id)
    assert marker.attempts == 2
    assert marker.last_error == "second"
    db_session.commit()


def test_sweep_clears_markers(session_factory, db_session, make_subject, read_state) -> None:
    lagging = make_subject("caption-lagging", score=0)
    healthy = make_subject("caption-healthy", score=0)
    _seed_votes(session_factory, lagging, [1, 1, 1])

    reconciler = AggregateReconciler(db_session)
    reconciler.mark_pending(lagging, RuntimeError("timeout"))
    db_session.commit()

    assert reconciler.pending_subjects() == [lagging]
    assert reconciler.sweep() == [lagging]
    assert reconciler.pending_subjects() == []
    assert read_state(lagging) == (3, 3, 3)
    assert read_state(healthy) == (0, 0, 0)


def test_sweep_records_failures(db_session, subject_id, mocker) -> None:
    reconciler = AggregateReconciler(db_session)
    reconciler.mark_pending(subject_id, RuntimeError("timeout"))
    db_session.commit()
    mocker.patch.object(
        reconciler,
        "reconcile",
        side_effect=StorageUnavailable("database is locked"),
    )

    assert reconciler.sweep() == []

    marker = db_session.get(PendingReconciliation, subject_id)
    assert marker.attempts == 2
    assert marker.last_error == "database is locked"
    db_session.commit()


def test_sweep_respects_limit(db_session, make_subject) -> None:
    subject_ids = [make_subject(f"caption-{index}") for index in range(3)]
    reconciler = AggregateReconciler(db_session)
    for subject_id in subject_ids:
        reconciler.mark_pending(subject_id)
    db_session.commit()

    assert len(reconciler.sweep(limit=2)) == 2
    assert len(reconciler.pending_subjects()) == 1


def test_rebuild_all_and_drift(session_factory, db_session, make_subject) -> None:
    correct = make_subject("caption-correct", score=1)
    drifted = make_subject("caption-drifted", score=10)
    _seed_votes(session_factory, correct, [1])
    _seed_votes(session_factory, drifted, [-1, -1])

    reconciler = AggregateReconciler(db_session)
    assert reconciler.drift(drifted) == 12
    assert reconciler.find_drifted() == [(drifted, 10, -2)]

    assert reconciler.rebuild_all() == {drifted: -2}

    assert reconciler.find_drifted() == []
    assert reconciler.drift(drifted) == 0


class TestSubjectLockRegistry:
    """Per-subject in-process serialization."""

    def test_entries_are_released(self) -> None:
        registry = SubjectLockRegistry()
        with registry.hold("caption-1", timeout=1.0):
            assert len(registry) == 1
        assert len(registry) == 0

    def test_reentrant_in_same_thread(self) -> None:
        registry = SubjectLockRegistry()
        with registry.hold("caption-1", timeout=1.0):
            with registry.hold("caption-1", timeout=0.1):
                assert len(registry) == 1
        assert len(registry) == 0

    def test_contended_lock_times_out(self) -> None:
        registry = SubjectLockRegistry()
        errors: list[BaseException] = []

        def _contend() -> None:
            try:
                with registry.hold("caption-1", timeout=0.05):
                    pass
            except StorageUnavailable as exc:
                errors.append(exc)

        with registry.hold("caption-1", timeout=1.0):
            worker = threading.Thread(target=_contend)
            worker.start()
            worker.join()

        assert len(errors) == 1
        assert len(registry) == 0

    def test_distinct_subjects_do_not_contend(self) -> None:
        registry = SubjectLockRegistry()
        acquired = threading.Event()

        def _other_subject() -> None:
            with registry.hold("caption-2", timeout=0.5):
                acquired.set()

        with registry.hold("caption-1", timeout=1.0):
            worker = threading.Thread(target=_other_subject)
            worker.start()
            worker.join()

        assert acquired.is_set()
