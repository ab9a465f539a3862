"""Synchronization engine: coercion, registration, checkpointing and sync loops."""

from ewon_sync.engine.apply import ApplyResult, DeviceApplier, LiveWritePolicy
from ewon_sync.engine.checkpoint_store import CheckpointStore
from ewon_sync.engine.historical import HistoricalSyncLoop, HistoricalSyncResult
from ewon_sync.engine.latest import LastSyncCache, LatestSyncResult, LatestValueSyncLoop
from ewon_sync.engine.orchestrator import CycleResult, SyncOrchestrator, SyncSettings
from ewon_sync.engine.realtime import RealtimeSyncLoop, RealtimeSyncResult
from ewon_sync.engine.registry import TagRegistry
from ewon_sync.engine.status import StatusPublisher, SyncCounters, SyncStatus

__all__ = [
    "ApplyResult",
    "CheckpointStore",
    "CycleResult",
    "DeviceApplier",
    "HistoricalSyncLoop",
    "HistoricalSyncResult",
    "LastSyncCache",
    "LatestSyncResult",
    "LatestValueSyncLoop",
    "LiveWritePolicy",
    "RealtimeSyncLoop",
    "RealtimeSyncResult",
    "StatusPublisher",
    "SyncCounters",
    "SyncOrchestrator",
    "SyncSettings",
    "SyncStatus",
    "TagRegistry",
]
