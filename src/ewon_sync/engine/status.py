"""Status tags and control points published into the live store."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any

from ewon_sync.core.models import DataType, Quality
from ewon_sync.engine.coercion import coerce_value
from ewon_sync.utils.timeutils import utcnow

if TYPE_CHECKING:
    from ewon_sync.core.checkpoint import CheckpointState
    from ewon_sync.storage.base import LiveTagStore, WriteHandler

logger = logging.getLogger(__name__)

LAST_SYNC_TIME = "_Status/LastSyncTime"
LAST_SYNC_DURATION_MS = "_Status/LastSyncDurationMS"
LAST_HISTORICAL_SYNC_TIME = "_Status/LastHistoricalSyncTime"
LAST_HISTORICAL_TRANSACTION = "_Status/LastHistoricalTransaction"
RESET_SYNC = "_Status/ResetSync"
FORCE_SYNC = "_Status/ForceSync"
SUCCESSFUL_SYNC_COUNT = "_Status/SuccessfulSyncCount"
FAILED_SYNC_COUNT = "_Status/FailedSyncCount"
HISTORICAL_POINTS_PROCESSED = "_Status/HistoricalPointsProcessed"

STATUS_TAGS: dict[str, DataType] = {
    LAST_SYNC_TIME: DataType.DATETIME,
    LAST_SYNC_DURATION_MS: DataType.INTEGER,
    LAST_HISTORICAL_SYNC_TIME: DataType.DATETIME,
    LAST_HISTORICAL_TRANSACTION: DataType.INTEGER,
    RESET_SYNC: DataType.BOOLEAN,
    FORCE_SYNC: DataType.BOOLEAN,
    SUCCESSFUL_SYNC_COUNT: DataType.INTEGER,
    FAILED_SYNC_COUNT: DataType.INTEGER,
    HISTORICAL_POINTS_PROCESSED: DataType.INTEGER,
}

ControlAction = Callable[[], Awaitable[Any]]


@dataclass
class SyncCounters:
    """Process-lifetime sync statistics."""

    success_count: int = 0
    failure_count: int = 0
    history_points: int = 0

    def reset(self) -> None:
        self.success_count = 0
        self.failure_count = 0
        self.history_points = 0


@dataclass(frozen=True)
class SyncStatus:
    """Snapshot of the engine's progress for status surfaces."""

    last_sync_time: datetime | None
    last_sync_duration_ms: int | None
    last_historical_sync_time: datetime
    last_transaction_id: int
    success_count: int
    failure_count: int
    history_points: int
    history_enabled: bool
    realtime_devices: tuple[str, ...] = field(default_factory=tuple)
    registered_tags: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "last_sync_time": self.last_sync_time.isoformat() if self.last_sync_time else None,
            "last_sync_duration_ms": self.last_sync_duration_ms,
            "last_historical_sync_time": self.last_historical_sync_time.isoformat(),
            "last_transaction_id": self.last_transaction_id,
            "success_count": self.success_count,
            "failure_count": self.failure_count,
            "history_points": self.history_points,
            "history_enabled": self.history_enabled,
            "realtime_devices": list(self.realtime_devices),
            "registered_tags": self.registered_tags,
        }


class StatusPublisher:
    """Writes status tags and binds the reset/force control points."""

    def __init__(self, store: LiveTagStore) -> None:
        self._store = store

    async def configure(
        self,
        state: CheckpointState,
        counters: SyncCounters,
        *,
        on_reset: ControlAction,
        on_force: ControlAction,
    ) -> None:
        """Declare every status tag, set initial values and bind the controls."""
        for path, data_type in STATUS_TAGS.items():
            await self._store.register_tag_path(path, data_type)

        await self.publish_checkpoint(state)
        await self.publish_counters(counters)
        await self._set(RESET_SYNC, False)
        await self._set(FORCE_SYNC, False)

        await self._store.register_write_handler(RESET_SYNC, self._control_handler("reset", on_reset))
        await self._store.register_write_handler(FORCE_SYNC, self._control_handler("force", on_force))

    async def publish_checkpoint(self, state: CheckpointState) -> None:
        await self._set(LAST_HISTORICAL_SYNC_TIME, state.last_local_sync)
        await self._set(LAST_HISTORICAL_TRANSACTION, state.transaction_id)

    async def publish_counters(self, counters: SyncCounters) -> None:
        await self._set(SUCCESSFUL_SYNC_COUNT, counters.success_count)
        await self._set(FAILED_SYNC_COUNT, counters.failure_count)
        await self._set(HISTORICAL_POINTS_PROCESSED, counters.history_points)

    async def publish_cycle(self, started_at: datetime, duration_ms: int) -> None:
        await self._set(LAST_SYNC_TIME, started_at)
        await self._set(LAST_SYNC_DURATION_MS, duration_ms)

    async def _set(self, path: str, value: Any) -> None:
        await self._store.set_value(path, value, Quality.GOOD, utcnow())

    def _control_handler(self, name: str, action: ControlAction) -> WriteHandler:
        async def handle(path: str, value: Any) -> Quality:
            quality = Quality.GOOD
            if coerce_value(value, DataType.BOOLEAN):
                try:
                    await action()
                except Exception:
                    logger.error("Control action '%s' failed", name, exc_info=True)
                    quality = Quality.BAD
            # Control points are momentary
            await self._set(path, False)
            return quality

        return handle
