"""Tests for the in-memory live tag store and historian."""

from __future__ import annotations

from datetime import datetime
from typing import Any

import pytest

from ewon_sync.core.models import DataType, HistoricalSample, NormalizedValue, Quality
from ewon_sync.storage.memory_store import InMemoryHistorian, InMemoryTagStore
from ewon_sync.utils.timeutils import EPOCH


class TestInMemoryTagStore:
    async def test_registered_path_starts_bad(self, tag_store: InMemoryTagStore) -> None:
        await tag_store.register_tag_path("A/Temp", DataType.FLOAT)

        assert await tag_store.get_value("A/Temp") == (None, Quality.BAD, EPOCH)
        assert await tag_store.get_value("A/Missing") is None

    async def test_redeclare_keeps_value(self, tag_store: InMemoryTagStore) -> None:
        ts = datetime(2024, 1, 1)
        await tag_store.register_tag_path("A/Temp", DataType.INTEGER)
        await tag_store.set_value("A/Temp", 4, Quality.GOOD, ts)

        await tag_store.register_tag_path("A/Temp", DataType.FLOAT)

        assert tag_store.data_type("A/Temp") is DataType.FLOAT
        assert await tag_store.get_value("A/Temp") == (4, Quality.GOOD, ts)

    async def test_unknown_path_raises(self, tag_store: InMemoryTagStore) -> None:
        with pytest.raises(KeyError):
            await tag_store.set_value("nope", 1, Quality.GOOD)
        with pytest.raises(KeyError):
            await tag_store.write("nope", 1)

    async def test_write_without_handler_coerces(self, tag_store: InMemoryTagStore) -> None:
        await tag_store.register_tag_path("A/Count", DataType.INTEGER)

        assert await tag_store.write("A/Count", "12") is Quality.GOOD

        value = await tag_store.get_value("A/Count")
        assert value is not None and value[:2] == (12, Quality.GOOD)

    async def test_write_dispatches_to_handler(self, tag_store: InMemoryTagStore) -> None:
        calls: list[tuple[str, Any]] = []

        async def handler(path: str, value: Any) -> Quality:
            calls.append((path, value))
            return Quality.BAD

        await tag_store.register_tag_path("A/Cmd", DataType.BOOLEAN)
        await tag_store.register_write_handler("A/Cmd", handler)

        assert await tag_store.write("A/Cmd", True) is Quality.BAD
        assert calls == [("A/Cmd", True)]
        assert tag_store.has_write_handler("A/Cmd")

    async def test_list_paths_sorted(self, tag_store: InMemoryTagStore) -> None:
        for path in ("B/x", "A/y", "A/x"):
            await tag_store.register_tag_path(path, DataType.STRING)

        assert await tag_store.list_paths() == ["A/x", "A/y", "B/x"]


class TestInMemoryHistorian:
    async def test_batches_per_sink(self, historian: InMemoryHistorian) -> None:
        ts = datetime(2024, 1, 1)
        sample = HistoricalSample(
            path="A/Temp",
            data_type=DataType.FLOAT,
            value=NormalizedValue(1.0, Quality.GOOD, ts),
        )

        await historian.store_batch("one", [sample])
        await historian.store_batch("one", [sample])

        assert len(historian.batches("one")) == 2
        assert historian.samples("one", "A/Temp") == [sample, sample]
        assert historian.samples("one", "B/Other") == []
        assert historian.batches("two") == []
