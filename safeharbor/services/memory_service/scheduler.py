"""Periodic memory consolidation.

``tick()`` is the unit of work and reads time from the injected clock, so
tests drive consolidation without sleeping. ``start()`` runs ticks in a
background task for the service process.
"""
import asyncio
import logging
from datetime import datetime
from typing import Callable, Iterable, Optional

from safeharbor.shared.utils import Clock, SystemClock
from .memory_bank import MemoryBank

logger = logging.getLogger(__name__)


class ConsolidationScheduler:
    """Runs ``consolidate()`` on every known bank once per period.

    Args:
        banks: Returns the banks to consolidate at tick time
        period_seconds: Minimum time between consolidation runs
        clock: Time source
        poll_seconds: Sleep between ticks in the background loop
    """

    def __init__(
        self,
        banks: Callable[[], Iterable[MemoryBank]],
        period_seconds: float = 300.0,
        clock: Optional[Clock] = None,
        poll_seconds: float = 30.0,
    ):
        self._banks = banks
        self.period_seconds = period_seconds
        self.clock = clock or SystemClock()
        self.poll_seconds = poll_seconds
        self._last_run: datetime = self.clock.now()
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def tick(self) -> bool:
        """Consolidate if a full period has passed since the last run.

        Returns:
            True if consolidation ran
        """
        now = self.clock.now()
        if (now - self._last_run).total_seconds() < self.period_seconds:
            return False

        self._last_run = now
        for bank in list(self._banks()):
            try:
                await bank.consolidate()
            except Exception as e:
                logger.error(
                    "MEMORY_CONSOLIDATION_FAILED",
                    extra={
                        "snapshot_key": bank.snapshot_key,
                        "error": str(e),
                        "error_type": type(e).__name__,
                    }
                )
        return True

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run())
        logger.info(
            "CONSOLIDATION_SCHEDULER_STARTED",
            extra={"period_seconds": self.period_seconds}
        )

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("CONSOLIDATION_SCHEDULER_STOPPED")

    async def _run(self) -> None:
        while True:
            await self.tick()
            await asyncio.sleep(self.poll_seconds)
