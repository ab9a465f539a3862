"""Storage backends for ewon-sync."""

from ewon_sync.storage.base import CheckpointPersistence, HistorianSink, LiveTagStore
from ewon_sync.storage.memory_store import (
    InMemoryCheckpointPersistence,
    InMemoryHistorian,
    InMemoryTagStore,
)
from ewon_sync.storage.sqlite_store import SQLiteStorage

__all__ = [
    "CheckpointPersistence",
    "HistorianSink",
    "InMemoryCheckpointPersistence",
    "InMemoryHistorian",
    "InMemoryTagStore",
    "LiveTagStore",
    "SQLiteStorage",
]
