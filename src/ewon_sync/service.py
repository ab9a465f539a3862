"""Background sync service: two periodic loops driving the orchestrator.

Starts via ``SyncService.start()`` (loads the checkpoint, then spawns the
cycle and realtime tasks). Cancelled via ``SyncService.stop()``.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ewon_sync.engine.orchestrator import SyncOrchestrator
    from ewon_sync.unified_config import SyncConfig

logger = logging.getLogger(__name__)


class SyncService:
    """Runs sync cycles and realtime reads on independent cadences.

    The first cycle runs immediately; realtime reads start after one
    realtime interval, once the first cycle had a chance to register tags.
    A non-positive cadence disables that loop.
    """

    def __init__(
        self,
        orchestrator: SyncOrchestrator,
        *,
        poll_rate_minutes: float = 1.0,
        live_poll_rate_seconds: float = 10.0,
    ) -> None:
        self._orchestrator = orchestrator
        self._cycle_interval = poll_rate_minutes * 60
        self._realtime_interval = live_poll_rate_seconds
        self._cycle_task: asyncio.Task[None] | None = None
        self._realtime_task: asyncio.Task[None] | None = None

    @classmethod
    def from_config(cls, orchestrator: SyncOrchestrator, config: SyncConfig) -> SyncService:
        return cls(
            orchestrator,
            poll_rate_minutes=config.poll_rate_minutes,
            live_poll_rate_seconds=config.live_poll_rate_seconds,
        )

    @property
    def orchestrator(self) -> SyncOrchestrator:
        return self._orchestrator

    @property
    def running(self) -> bool:
        return any(
            task is not None and not task.done()
            for task in (self._cycle_task, self._realtime_task)
        )

    async def start(self) -> None:
        """Start the engine and both loops. Guards against double-start."""
        if self.running:
            return

        await self._orchestrator.startup()

        if self._cycle_interval > 0:
            self._cycle_task = asyncio.create_task(self._cycle_loop())
            self._cycle_task.add_done_callback(_log_loop_exception)
        else:
            logger.warning("Sync cycles disabled (poll_rate_minutes <= 0)")

        if self._realtime_interval > 0:
            self._realtime_task = asyncio.create_task(self._realtime_loop())
            self._realtime_task.add_done_callback(_log_loop_exception)
        else:
            logger.info("Realtime polling disabled (live_poll_rate_seconds <= 0)")

        logger.info(
            "Sync service started: cycle every %.0fs, realtime every %.1fs",
            self._cycle_interval,
            self._realtime_interval,
        )

    async def stop(self) -> None:
        """Cancel both loops and wait for them to finish."""
        tasks = [t for t in (self._cycle_task, self._realtime_task) if t is not None]
        for task in tasks:
            if not task.done():
                task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._cycle_task = None
        self._realtime_task = None
        await self._orchestrator.close()
        logger.debug("Sync service stopped")

    async def _cycle_loop(self) -> None:
        while True:
            try:
                await self._orchestrator.run_cycle()
            except Exception:
                logger.error("Scheduled sync cycle failed", exc_info=True)
            await asyncio.sleep(self._cycle_interval)

    async def _realtime_loop(self) -> None:
        while True:
            await asyncio.sleep(self._realtime_interval)
            try:
                await self._orchestrator.run_realtime()
            except Exception:
                logger.error("Scheduled realtime sync failed", exc_info=True)


def _log_loop_exception(task: asyncio.Task[None]) -> None:
    """Log unhandled exceptions from a service loop."""
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error("Sync service loop raised unhandled exception: %s", exc)
