"""Sync orchestrator — ties the historical, latest-value and realtime loops.

The orchestrator owns every piece of shared engine state (tag registry,
checkpoint store, last-sync cache, counters) and exposes the "run now"
entry points that schedulers and control points call:

- ``run_cycle()``: historical sync (if enabled) then latest-value sync
- ``run_realtime()``: live reads for flagged devices
- ``force_sync()``: start a cycle in the background right away
- ``reset_sync()``: restart historical sync from the beginning
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING

from ewon_sync.engine.apply import DeviceApplier, LiveWritePolicy, cycle_writes_live_values
from ewon_sync.engine.checkpoint_store import CheckpointStore
from ewon_sync.engine.historical import HistoricalSyncLoop, HistoricalSyncResult
from ewon_sync.engine.latest import LastSyncCache, LatestSyncResult, LatestValueSyncLoop
from ewon_sync.engine.realtime import RealtimeSyncLoop, RealtimeSyncResult
from ewon_sync.engine.registry import TagRegistry
from ewon_sync.engine.status import StatusPublisher, SyncCounters, SyncStatus
from ewon_sync.utils.timeutils import millis_since, utcnow

if TYPE_CHECKING:
    from ewon_sync.storage.base import CheckpointPersistence, HistorianSink, LiveTagStore
    from ewon_sync.transport.base import DeviceTransport

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SyncSettings:
    """Engine behaviour switches (see ``SyncConfig`` for the file form)."""

    history_enabled: bool = False
    history_provider: str = ""
    tag_names_contain_periods: bool = False
    read_all_realtime: bool = False
    live_write_policy: LiveWritePolicy = LiveWritePolicy.AUTO
    max_concurrent_devices: int = 1
    checkpoint_key: str = "default"


@dataclass(frozen=True)
class CycleResult:
    """Outcome of one sync cycle."""

    success: bool
    started_at: datetime
    duration_ms: int
    historical: HistoricalSyncResult | None = None
    latest: LatestSyncResult | None = None
    error: str | None = None


class SyncOrchestrator:
    """Runs sync cycles against one transport, live store and historian."""

    def __init__(
        self,
        transport: DeviceTransport,
        store: LiveTagStore,
        persistence: CheckpointPersistence,
        historian: HistorianSink | None = None,
        settings: SyncSettings | None = None,
    ) -> None:
        self._settings = settings or SyncSettings()
        self._store = store
        self._history_enabled = self._settings.history_enabled
        self._counters = SyncCounters()

        self._registry = TagRegistry(
            store,
            transport,
            tag_names_contain_periods=self._settings.tag_names_contain_periods,
        )
        self._checkpoints = CheckpointStore(persistence, self._settings.checkpoint_key)
        self._status = StatusPublisher(store)
        self._applier = DeviceApplier(
            self._registry,
            store,
            self._counters,
            historian=historian,
            history_sink_name=self._settings.history_provider,
            write_live_values=cycle_writes_live_values(
                self._settings.live_write_policy, self._settings.read_all_realtime
            ),
        )
        self._historical = HistoricalSyncLoop(transport, self._applier, self._checkpoints)
        self._latest = LatestValueSyncLoop(
            transport,
            self._applier,
            cache=LastSyncCache(),
            max_concurrent_devices=self._settings.max_concurrent_devices,
        )
        self._realtime = RealtimeSyncLoop(
            transport,
            self._registry,
            store,
            read_all_realtime=self._settings.read_all_realtime,
        )

        self._cycle_lock = asyncio.Lock()
        self._realtime_lock = asyncio.Lock()
        self._background: set[asyncio.Task[CycleResult]] = set()
        self._started = False
        self._last_sync_time: datetime | None = None
        self._last_sync_duration_ms: int | None = None

    @property
    def settings(self) -> SyncSettings:
        return self._settings

    @property
    def history_enabled(self) -> bool:
        """Effective historical sync switch (off when no sink is configured)."""
        return self._history_enabled

    @property
    def counters(self) -> SyncCounters:
        return self._counters

    @property
    def registry(self) -> TagRegistry:
        return self._registry

    @property
    def checkpoints(self) -> CheckpointStore:
        return self._checkpoints

    @property
    def store(self) -> LiveTagStore:
        return self._store

    @property
    def started(self) -> bool:
        return self._started

    async def startup(self) -> None:
        """Load the checkpoint and publish the status tags.

        Raises:
            Exception: If the persisted checkpoint cannot be read
        """
        if self._started:
            return

        if self._history_enabled and not self._applier.history_configured:
            logger.warning(
                "Historical sync is enabled but no history provider is configured; "
                "historical sync is disabled"
            )
            self._history_enabled = False

        state = await self._checkpoints.load()
        self._checkpoints.set_listener(self._status.publish_checkpoint)
        await self._status.configure(
            state,
            self._counters,
            on_reset=self.reset_sync,
            on_force=self.force_sync,
        )
        self._started = True
        logger.info(
            "Sync engine started (historical sync %s, transaction %d)",
            "enabled" if self._history_enabled else "disabled",
            state.transaction_id,
        )

    async def close(self) -> None:
        """Cancel forced cycles still running in the background."""
        tasks = list(self._background)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._background.clear()

    async def run_cycle(self) -> CycleResult:
        """Run historical then latest-value sync inside one failure boundary.

        Never raises for sync failures: they count as a failed cycle. The
        cycle time, duration and counters are republished either way.
        """
        self._ensure_started()
        async with self._cycle_lock:
            started_at = utcnow()
            start = time.monotonic()
            historical: HistoricalSyncResult | None = None
            latest: LatestSyncResult | None = None
            error: str | None = None

            try:
                if self._history_enabled:
                    historical = await self._historical.run()
                latest = await self._latest.run()
                self._counters.success_count += 1
            except Exception as exc:
                self._counters.failure_count += 1
                error = str(exc) or type(exc).__name__
                logger.error("Error synchronizing device data", exc_info=True)

            duration_ms = millis_since(start, time.monotonic())
            self._last_sync_time = started_at
            self._last_sync_duration_ms = duration_ms
            await self._publish_cycle(started_at, duration_ms)

        return CycleResult(
            success=error is None,
            started_at=started_at,
            duration_ms=duration_ms,
            historical=historical,
            latest=latest,
            error=error,
        )

    async def run_realtime(self) -> RealtimeSyncResult | None:
        """Run one realtime pass; failures are logged and return None."""
        self._ensure_started()
        async with self._realtime_lock:
            try:
                return await self._realtime.run()
            except Exception:
                logger.error("Realtime sync failed", exc_info=True)
                return None

    async def force_sync(self) -> asyncio.Task[CycleResult]:
        """Schedule an immediate cycle without waiting for it to finish."""
        logger.info("Forcing sync cycle")
        task = asyncio.create_task(self.run_cycle())
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        task.add_done_callback(_log_forced_exception)
        return task

    async def reset_sync(self) -> bool:
        """Zero the checkpoint and the counters, then republish status.

        Returns:
            True if the zeroed checkpoint was persisted
        """
        logger.info("Resetting historical sync transaction id")
        persisted = await self._checkpoints.reset()
        self._counters.reset()
        try:
            await self._status.publish_counters(self._counters)
        except Exception:
            logger.warning("Failed to publish status counters", exc_info=True)
        return persisted

    def status(self) -> SyncStatus:
        state = self._checkpoints.state
        return SyncStatus(
            last_sync_time=self._last_sync_time,
            last_sync_duration_ms=self._last_sync_duration_ms,
            last_historical_sync_time=state.last_local_sync,
            last_transaction_id=state.transaction_id,
            success_count=self._counters.success_count,
            failure_count=self._counters.failure_count,
            history_points=self._counters.history_points,
            history_enabled=self._history_enabled,
            realtime_devices=tuple(sorted(self._registry.realtime_devices)),
            registered_tags=len(self._registry.registered_tags),
        )

    def _ensure_started(self) -> None:
        if not self._started:
            raise RuntimeError("Sync engine not started. Call startup() first.")

    async def _publish_cycle(self, started_at: datetime, duration_ms: int) -> None:
        try:
            await self._status.publish_cycle(started_at, duration_ms)
            await self._status.publish_counters(self._counters)
        except Exception:
            logger.warning("Failed to publish sync status", exc_info=True)


def _log_forced_exception(task: asyncio.Task[CycleResult]) -> None:
    """Log unhandled exceptions from a forced cycle."""
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error("Forced sync cycle raised unhandled exception: %s", exc)
