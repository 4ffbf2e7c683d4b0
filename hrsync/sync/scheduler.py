"""Periodic trigger for sync cycles."""

import asyncio
import logging
from typing import Optional

from hrsync.config import DEFAULT_SYNC_INTERVAL_MINUTES
from hrsync.types import CycleReport

from .orchestrator import SyncOrchestrator

logger = logging.getLogger(__name__)


class SyncScheduler:
    """Runs a cycle at start and then every ``interval_seconds``.

    Holds the lock that keeps cycles from overlapping. A trigger that
    arrives while a cycle is still running is dropped, not queued.
    """

    def __init__(
        self,
        orchestrator: SyncOrchestrator,
        interval_seconds: float = DEFAULT_SYNC_INTERVAL_MINUTES * 60,
    ):
        if interval_seconds <= 0:
            raise ValueError("Sync interval must be positive")
        self.orchestrator = orchestrator
        self.interval_seconds = interval_seconds
        self._lock = asyncio.Lock()
        self._stopped = asyncio.Event()

    @property
    def running(self) -> bool:
        """Whether a cycle is in progress."""
        return self._lock.locked()

    async def trigger(self) -> Optional[CycleReport]:
        """Run one cycle now, unless one is already running.

        Also the entry point for an on-demand "sync now".
        """
        if self._lock.locked():
            logger.info("Sync cycle already running, skipping this trigger")
            return None

        async with self._lock:
            try:
                return await self.orchestrator.run_sync_cycle()
            except Exception as e:
                logger.error(f"Sync cycle aborted: {e}", exc_info=True)
                return None

    async def run_forever(self) -> None:
        """Trigger immediately, then on every interval until stop() is called."""
        logger.info(f"Sync scheduler started, interval={self.interval_seconds:.0f}s")
        while not self._stopped.is_set():
            await self.trigger()
            try:
                await asyncio.wait_for(self._stopped.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                continue
        logger.info("Sync scheduler stopped")

    def stop(self) -> None:
        self._stopped.set()
