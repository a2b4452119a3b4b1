# tests/test_reconcile_sweep.py
"""Tests for the background reconciliation sweep worker."""

import asyncio
import logging

import pytest
from sqlalchemy.exc import OperationalError

from vote_tally.models import PendingReconciliation, Vote
from vote_tally.services.reconcile_sweep import ReconcileSweepWorker
from vote_tally.services.reconciler import AggregateReconciler


def test_sweep_once_reconciles_marked_subjects(session_factory, make_subject, read_state) -> None:
    subject_id = make_subject("caption-1", score=0)
    with session_factory() as session:
        session.add(Vote(subject_id=subject_id, voter_id="voter-alice", value=-1))
        session.commit()
        AggregateReconciler(session).mark_pending(subject_id, RuntimeError("timeout"))
        session.commit()

    worker = ReconcileSweepWorker(session_factory=session_factory, batch_size=10)

    assert worker.sweep_once() == [subject_id]
    assert read_state(subject_id) == (-1, -1, 1)
    with session_factory() as session:
        assert session.get(PendingReconciliation, subject_id) is None


def test_interval_has_a_floor() -> None:
    assert ReconcileSweepWorker(interval=0).interval == 0.1


@pytest.mark.asyncio
async def test_worker_start_and_stop(mocker) -> None:
    worker = ReconcileSweepWorker(interval=0.1)
    sweep = mocker.patch.object(worker, "sweep_once", return_value=[])

    await worker.start()
    assert worker.running
    await asyncio.sleep(0.25)
    await worker.stop()

    assert not worker.running
    assert sweep.call_count >= 1


@pytest.mark.asyncio
async def test_worker_survives_storage_errors(mocker, caplog) -> None:
    worker = ReconcileSweepWorker(interval=0.1)
    mocker.patch.object(
        worker,
        "sweep_once",
        side_effect=OperationalError("SELECT", {}, Exception("database is locked")),
    )

    with caplog.at_level(logging.WARNING, logger="vote_tally.services.reconcile_sweep"):
        await worker.start()
        await asyncio.sleep(0.15)
        assert worker.running
        await worker.stop()

    assert "storage error" in caplog.text


@pytest.mark.asyncio
async def test_stop_without_start_is_noop() -> None:
    worker = ReconcileSweepWorker()
    await worker.stop()
    assert not worker.running
