"""Background resweep of subjects whose score lags the ledger.

This module provides the ReconcileSweepWorker class that periodically picks
up subjects marked in ``pending_reconciliation`` and recomputes their score,
so a vote whose in-request reconciliation failed does not leave the published
count stale indefinitely.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from vote_tally.core.settings import settings
from vote_tally.db.session import SessionLocal
from vote_tally.services.reconciler import AggregateReconciler

# Configure logger for this module
logger = logging.getLogger(__name__)


class ReconcileSweepWorker:
    """Periodically reconciles subjects marked as lagging."""

    def __init__(
        self,
        session_factory: Callable[[], Session] | None = None,
        interval: float | None = None,
        batch_size: int | None = None,
    ) -> None:
        """Initialize the sweep worker.

        Args:
            session_factory: Creates sessions for each sweep. Defaults to SessionLocal.
            interval: Seconds between sweeps. Defaults to the configured interval.
            batch_size: Maximum subjects per sweep. Defaults to the configured size.
        """
        self._session_factory = session_factory or SessionLocal
        self.interval = max(
            0.1,
            float(interval if interval is not None else settings.reconcile_sweep_interval_seconds),
        )
        self.batch_size = batch_size or settings.reconcile_sweep_batch_size
        self._task: asyncio.Task[None] | None = None
        self._stopping = asyncio.Event()

    @property
    def running(self) -> bool:
        """True while the background loop is active."""
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        """Start the background sweep loop."""
        if not self.running:
            self._stopping.clear()
            self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        """Stop the background sweep loop."""
        if self._task is None:
            return

        self._stopping.set()
        await self._task
        self._task = None

    async def _run(self) -> None:
        while not self._stopping.is_set():
            delay = self.interval
            try:
                await asyncio.to_thread(self.sweep_once)
            except SQLAlchemyError as e:
                logger.warning("ReconcileSweepWorker encountered storage error: %s", e)
                delay = min(self.interval * 4, 300.0)
            except (OSError, ConnectionError, TimeoutError) as e:
                logger.warning("ReconcileSweepWorker encountered network error: %s", e)
                delay = min(self.interval * 4, 300.0)

            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=delay)
            except TimeoutError:
                continue

    def sweep_once(self) -> list[str]:
        """Run a single sweep and return the reconciled subject ids."""
        with self._session_factory() as db:
            return AggregateReconciler(db).sweep(self.batch_size)
