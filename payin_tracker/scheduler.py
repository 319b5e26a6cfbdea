"""
Fixed-interval runner for the transaction tracker.
"""

import asyncio
import contextlib
from typing import Optional

import structlog

from .health import HealthService
from .tracker import TransactionTracker

logger = structlog.get_logger()


class PeriodicTracker:
    """
    Runs `TransactionTracker.track()` every `interval_seconds`.

    Failures are logged and reported to the health service; the next
    tick resumes from the stored checkpoint.
    """

    def __init__(
        self,
        tracker: TransactionTracker,
        health: HealthService,
        interval_seconds: float,
    ):
        self.tracker = tracker
        self.health = health
        self.interval_seconds = interval_seconds
        self.is_running = False
        self._task: Optional[asyncio.Task[None]] = None

    async def run_once(self) -> Optional[int]:
        """Run one tracking cycle. Returns the payment count, or None on failure."""
        self.health.tracking_started()
        try:
            count = await self.tracker.track()
        except Exception as e:
            self.health.tracking_failed(e)
            logger.exception("tracking_failed", error=str(e))
            return None

        self.health.tracking_completed(count)
        return count

    async def run(self) -> None:
        """Run until `stop()` is called."""
        self.is_running = True
        logger.info("tracker_starting", poll_interval=self.interval_seconds)

        while self.is_running:
            await self.run_once()
            await asyncio.sleep(self.interval_seconds)

    def start(self) -> "asyncio.Task[None]":
        """Start the loop as a background task."""
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run(), name="periodic-tracker")
        return self._task

    async def stop(self) -> None:
        """Stop the loop, cancelling a sleeping or running cycle."""
        self.is_running = False
        if self._task is not None:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None
        logger.info("tracker_stopped")
