"""Tests for DeviceApplier: per-device application of tags and history."""

from __future__ import annotations

from datetime import datetime
from unittest.mock import AsyncMock

from ewon_sync.core.models import (
    DataPoint,
    DataType,
    DeviceData,
    InterpolationMode,
    Quality,
    TagData,
)
from ewon_sync.engine.apply import DeviceApplier, LiveWritePolicy, cycle_writes_live_values
from ewon_sync.engine.registry import TagRegistry
from ewon_sync.engine.status import SyncCounters
from ewon_sync.storage.memory_store import InMemoryHistorian, InMemoryTagStore

DEVICE_TS = datetime(2024, 6, 1, 12, 0)


def _make_tag(
    name: str,
    value: object,
    data_type: str = "Float",
    history: tuple[DataPoint, ...] = (),
    quality: str | None = "good",
) -> TagData:
    return TagData(id=1, name=name, data_type=data_type, value=value, quality=quality, history=history)


def _make_device(*tags: TagData, last_sync_at: datetime | None = DEVICE_TS) -> DeviceData:
    return DeviceData(id=7, name="PlantA", last_sync_at=last_sync_at, tags=tags)


def _make_applier(
    store: InMemoryTagStore,
    transport: AsyncMock,
    *,
    historian: InMemoryHistorian | AsyncMock | None = None,
    sink: str = "hist",
    write_live_values: bool = True,
) -> tuple[DeviceApplier, SyncCounters]:
    counters = SyncCounters()
    registry = TagRegistry(store, transport)
    applier = DeviceApplier(
        registry,
        store,
        counters,
        historian=historian,
        history_sink_name=sink,
        write_live_values=write_live_values,
    )
    return applier, counters


# ── Live values ──────────────────────────────────────────────────


class TestLiveValues:
    async def test_values_pushed_with_device_timestamp(
        self, tag_store: InMemoryTagStore, transport: AsyncMock
    ) -> None:
        applier, _ = _make_applier(tag_store, transport)

        result = await applier.apply(
            _make_device(_make_tag("Temp", "21.5"), _make_tag("Run", 1, "Boolean"))
        )

        assert result.tags_applied == 2
        assert result.tags_skipped == 0
        assert await tag_store.get_value("PlantA/Temp") == (21.5, Quality.GOOD, DEVICE_TS)
        assert await tag_store.get_value("PlantA/Run") == (True, Quality.GOOD, DEVICE_TS)
        assert tag_store.data_type("PlantA/Run") is DataType.BOOLEAN

    async def test_missing_device_timestamp_uses_now(
        self, tag_store: InMemoryTagStore, transport: AsyncMock
    ) -> None:
        applier, _ = _make_applier(tag_store, transport)

        await applier.apply(_make_device(_make_tag("Temp", 1), last_sync_at=None))

        value = await tag_store.get_value("PlantA/Temp")
        assert value is not None
        assert value[2] > DEVICE_TS

    async def test_bad_quality_token(
        self, tag_store: InMemoryTagStore, transport: AsyncMock
    ) -> None:
        applier, _ = _make_applier(tag_store, transport)

        await applier.apply(_make_device(_make_tag("Temp", 1, quality="bad")))

        value = await tag_store.get_value("PlantA/Temp")
        assert value is not None and value[1] is Quality.BAD

    async def test_invalid_name_skipped_siblings_applied(
        self, tag_store: InMemoryTagStore, transport: AsyncMock
    ) -> None:
        applier, _ = _make_applier(tag_store, transport)

        result = await applier.apply(
            _make_device(_make_tag("bad name!", 1), _make_tag("Good_One", 2))
        )

        assert result.tags_applied == 1
        assert result.tags_skipped == 1
        assert await tag_store.get_value("PlantA/Good_One") is not None
        assert "PlantA/bad name!" not in await tag_store.list_paths()

    async def test_deferred_live_writes_still_register(
        self, tag_store: InMemoryTagStore, transport: AsyncMock
    ) -> None:
        applier, _ = _make_applier(tag_store, transport, write_live_values=False)

        await applier.apply(_make_device(_make_tag("Temp", 5)))

        value = await tag_store.get_value("PlantA/Temp")
        assert value is not None
        assert value[0] is None
        assert value[1] is Quality.BAD


class TestLiveWritePolicy:
    def test_auto_defers_to_realtime_when_reading_all(self) -> None:
        assert cycle_writes_live_values(LiveWritePolicy.AUTO, read_all_realtime=False) is True
        assert cycle_writes_live_values(LiveWritePolicy.AUTO, read_all_realtime=True) is False

    def test_explicit_policies(self) -> None:
        assert cycle_writes_live_values(LiveWritePolicy.ALWAYS, read_all_realtime=True) is True
        assert (
            cycle_writes_live_values(LiveWritePolicy.REALTIME_ONLY, read_all_realtime=False)
            is False
        )


# ── History ──────────────────────────────────────────────────────


class TestHistory:
    async def test_samples_sorted_before_flush(
        self,
        tag_store: InMemoryTagStore,
        transport: AsyncMock,
        historian: InMemoryHistorian,
    ) -> None:
        history = tuple(
            DataPoint(value=v, date=f"2024-06-01T10:00:0{v}Z", quality="good") for v in (5, 1, 3)
        )
        applier, counters = _make_applier(tag_store, transport, historian=historian)

        result = await applier.apply(_make_device(_make_tag("Temp", 3, history=history)))

        samples = historian.samples("hist")
        assert [s.value.value for s in samples] == [1.0, 3.0, 5.0]
        assert [s.timestamp.second for s in samples] == [1, 3, 5]
        assert len(historian.batches("hist")) == 1
        assert result.history_points == 3
        assert result.latest_history_timestamp == datetime(2024, 6, 1, 10, 0, 5)
        assert counters.history_points == 3

    async def test_interpolation_by_type(
        self,
        tag_store: InMemoryTagStore,
        transport: AsyncMock,
        historian: InMemoryHistorian,
    ) -> None:
        point = (DataPoint(value=1, date="2024-06-01T10:00:00Z"),)
        applier, _ = _make_applier(tag_store, transport, historian=historian)

        await applier.apply(
            _make_device(
                _make_tag("Temp", 1, "Float", history=point),
                _make_tag("Count", 1, "Integer", history=point),
            )
        )

        by_path = {s.path: s for s in historian.samples("hist")}
        assert by_path["PlantA/Temp"].interpolation is InterpolationMode.ANALOG_COMPRESSED
        assert by_path["PlantA/Count"].interpolation is InterpolationMode.DISCRETE

    async def test_no_sink_no_history(
        self,
        tag_store: InMemoryTagStore,
        transport: AsyncMock,
        historian: InMemoryHistorian,
    ) -> None:
        point = (DataPoint(value=1, date="2024-06-01T10:00:00Z"),)
        applier, counters = _make_applier(tag_store, transport, historian=historian, sink="  ")

        result = await applier.apply(_make_device(_make_tag("Temp", 1, history=point)))

        assert applier.history_configured is False
        assert result.history_points == 0
        assert historian.samples("  ") == []
        assert counters.history_points == 0

    async def test_flush_failure_reported_live_values_kept(
        self, tag_store: InMemoryTagStore, transport: AsyncMock
    ) -> None:
        broken = AsyncMock()
        broken.store_batch.side_effect = OSError("historian down")
        point = (DataPoint(value=9, date="2024-06-01T10:00:00Z"),)
        applier, counters = _make_applier(tag_store, transport, historian=broken)

        result = await applier.apply(_make_device(_make_tag("Temp", 4, history=point)))

        assert result.history_failed is True
        assert result.history_points == 0
        assert counters.history_points == 0
        assert result.latest_history_timestamp is None
        value = await tag_store.get_value("PlantA/Temp")
        assert value is not None and value[0] == 4.0

    async def test_replayed_batch_counted_once(
        self, tag_store: InMemoryTagStore, transport: AsyncMock
    ) -> None:
        flaky = AsyncMock()
        flaky.store_batch.side_effect = [OSError("historian down"), None]
        point = (DataPoint(value=9, date="2024-06-01T10:00:00Z"),)
        device = _make_device(_make_tag("Temp", 4, history=point))
        applier, counters = _make_applier(tag_store, transport, historian=flaky)

        first = await applier.apply(device)
        second = await applier.apply(device)

        assert first.history_failed is True
        assert second.history_points == 1
        assert counters.history_points == 1
