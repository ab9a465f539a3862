"""In-memory stores for the live tag table, history and checkpoints.

The live tag store is what the engine runs against in a standalone
deployment; the historian and checkpoint stores are mainly for tests and
dry runs. Data is lost when the process exits.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from ewon_sync.core.checkpoint import CheckpointState
from ewon_sync.core.models import DataType, HistoricalSample, Quality
from ewon_sync.engine.coercion import coerce_value
from ewon_sync.storage.base import CheckpointPersistence, HistorianSink, LiveTagStore, WriteHandler
from ewon_sync.utils.timeutils import EPOCH, utcnow

logger = logging.getLogger(__name__)


@dataclass
class _TagEntry:
    data_type: DataType
    value: Any = None
    quality: Quality = Quality.BAD
    timestamp: datetime = EPOCH


class InMemoryTagStore(LiveTagStore):
    """Dict-backed live tag table with per-path write handlers."""

    def __init__(self) -> None:
        self._tags: dict[str, _TagEntry] = {}
        self._handlers: dict[str, WriteHandler] = {}

    async def register_tag_path(self, path: str, data_type: DataType) -> None:
        entry = self._tags.get(path)
        if entry is None:
            self._tags[path] = _TagEntry(data_type=data_type)
        else:
            entry.data_type = data_type

    async def set_value(
        self,
        path: str,
        value: Any,
        quality: Quality,
        timestamp: datetime | None = None,
    ) -> None:
        entry = self._get_entry(path)
        entry.value = value
        entry.quality = quality
        entry.timestamp = timestamp or utcnow()

    async def register_write_handler(self, path: str, handler: WriteHandler) -> None:
        self._get_entry(path)
        self._handlers[path] = handler

    async def write(self, path: str, value: Any) -> Quality:
        entry = self._get_entry(path)
        handler = self._handlers.get(path)
        if handler is not None:
            return await handler(path, value)

        entry.value = coerce_value(value, entry.data_type)
        entry.quality = Quality.GOOD
        entry.timestamp = utcnow()
        return Quality.GOOD

    async def get_value(self, path: str) -> tuple[Any, Quality, datetime] | None:
        entry = self._tags.get(path)
        if entry is None:
            return None
        return entry.value, entry.quality, entry.timestamp

    async def list_paths(self) -> list[str]:
        return sorted(self._tags)

    def data_type(self, path: str) -> DataType | None:
        entry = self._tags.get(path)
        return entry.data_type if entry is not None else None

    def has_write_handler(self, path: str) -> bool:
        return path in self._handlers

    def _get_entry(self, path: str) -> _TagEntry:
        entry = self._tags.get(path)
        if entry is None:
            raise KeyError(f"Unknown tag path: {path}")
        return entry


class InMemoryHistorian(HistorianSink):
    """Collects historical batches per sink name, in arrival order."""

    def __init__(self) -> None:
        self._batches: dict[str, list[tuple[HistoricalSample, ...]]] = defaultdict(list)

    async def store_batch(self, sink_name: str, samples: Sequence[HistoricalSample]) -> None:
        self._batches[sink_name].append(tuple(samples))
        logger.debug("Stored %d samples into '%s'", len(samples), sink_name)

    def batches(self, sink_name: str) -> list[tuple[HistoricalSample, ...]]:
        return list(self._batches.get(sink_name, []))

    def samples(self, sink_name: str, path: str | None = None) -> list[HistoricalSample]:
        """All stored samples of a sink, optionally for one tag path."""
        return [
            sample
            for batch in self._batches.get(sink_name, [])
            for sample in batch
            if path is None or sample.path == path
        ]


class InMemoryCheckpointPersistence(CheckpointPersistence):
    """Checkpoint records kept in a dict."""

    def __init__(self) -> None:
        self._states: dict[str, CheckpointState] = {}
        self.save_count = 0

    async def load_checkpoint(self, key: str) -> CheckpointState | None:
        return self._states.get(key)

    async def save_checkpoint(self, key: str, state: CheckpointState) -> None:
        self._states[key] = state
        self.save_count += 1
