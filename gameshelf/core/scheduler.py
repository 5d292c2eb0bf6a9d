"""Background rescan scheduler."""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable

from loguru import logger

ScanJob = Callable[[], Awaitable[Any]]


class BackgroundScanScheduler:
    """
    Runs a scan job every *interval* seconds on the running event loop.

    Runs never overlap: a trigger arriving while a run is in progress is
    skipped, not queued.  The owner must call ``stop()`` before the loop
    closes.
    """

    def __init__(self, job: ScanJob, interval: float = 3600.0) -> None:
        if interval <= 0:
            raise ValueError("interval must be positive")
        self._job = job
        self._interval = interval
        self._run_lock = asyncio.Lock()
        self._task: asyncio.Task | None = None
        self.runs = 0
        self.skipped = 0

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def is_busy(self) -> bool:
        return self._run_lock.locked()

    def start(self) -> None:
        if self.is_running:
            return
        self._task = asyncio.create_task(self._loop(), name="background-scan")
        logger.info(f"Background scan started (every {self._interval:.0f}s)")

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("Background scan stopped")

    async def trigger(self) -> bool:
        """Run the job now unless a run is already in progress.  Returns whether it ran."""
        if self._run_lock.locked():
            self.skipped += 1
            logger.debug("Background scan already running, skipping trigger")
            return False
        async with self._run_lock:
            try:
                await self._job()
            except Exception as e:
                logger.error(f"Background scan failed: {e!r}")
            finally:
                self.runs += 1
        return True

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            await self.trigger()
