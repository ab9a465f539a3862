"""Tests for the latest-value sync loop and its last-sync cache."""

from __future__ import annotations

import asyncio
from datetime import datetime
from unittest.mock import AsyncMock

import pytest

from ewon_sync.core.models import DeviceData, DeviceRecord, TagData
from ewon_sync.engine.apply import DeviceApplier
from ewon_sync.engine.latest import LastSyncCache, LatestValueSyncLoop
from ewon_sync.engine.registry import TagRegistry
from ewon_sync.engine.status import SyncCounters
from ewon_sync.storage.memory_store import InMemoryTagStore
from ewon_sync.transport.base import TransportError

T1 = datetime(2024, 6, 1, 10, 0)
T2 = datetime(2024, 6, 1, 11, 0)


def _make_device(record: DeviceRecord, value: float = 1.0) -> DeviceData:
    tag = TagData(id=1, name="Temp", data_type="Float", value=value)
    return DeviceData(id=record.id, name=record.name, last_sync_at=record.last_sync_at, tags=(tag,))


def _make_loop(
    tag_store: InMemoryTagStore, transport: AsyncMock, *, max_concurrent: int = 1
) -> LatestValueSyncLoop:
    applier = DeviceApplier(TagRegistry(tag_store, transport), tag_store, SyncCounters())
    return LatestValueSyncLoop(transport, applier, max_concurrent_devices=max_concurrent)


class TestLastSyncCache:
    def test_new_device_is_eligible(self) -> None:
        cache = LastSyncCache()
        assert cache.is_eligible(DeviceRecord(1, "A", T1))

    def test_unchanged_device_is_not_eligible(self) -> None:
        cache = LastSyncCache()
        cache.mark_synced(DeviceRecord(1, "A", T2))
        assert not cache.is_eligible(DeviceRecord(1, "A", T2))
        assert not cache.is_eligible(DeviceRecord(1, "A", T1))
        assert cache.is_eligible(DeviceRecord(1, "A", datetime(2024, 6, 1, 12, 0)))

    def test_missing_timestamp_always_eligible(self) -> None:
        cache = LastSyncCache()
        record = DeviceRecord(1, "A", None)
        cache.mark_synced(record)
        assert cache.is_eligible(record)
        assert len(cache) == 0


class TestLatestValueSync:
    async def test_only_changed_devices_are_fetched(
        self, tag_store: InMemoryTagStore, transport: AsyncMock
    ) -> None:
        a, b = DeviceRecord(1, "A", T1), DeviceRecord(2, "B", T1)
        transport.list_devices.return_value = [a, b]
        transport.fetch_device.side_effect = lambda device_id: _make_device(
            a if device_id == 1 else b
        )
        loop = _make_loop(tag_store, transport)

        first = await loop.run()
        assert first.synced == 2

        transport.fetch_device.reset_mock()
        transport.list_devices.return_value = [DeviceRecord(1, "A", T2), b]
        second = await loop.run()

        assert second.eligible == 1
        transport.fetch_device.assert_awaited_once_with(1)

    async def test_nothing_changed(self, tag_store: InMemoryTagStore, transport: AsyncMock) -> None:
        record = DeviceRecord(1, "A", T1)
        transport.list_devices.return_value = [record]
        transport.fetch_device.return_value = _make_device(record)
        loop = _make_loop(tag_store, transport)
        await loop.run()

        result = await loop.run()

        assert result.devices_listed == 1
        assert result.eligible == 0
        assert transport.fetch_device.await_count == 1

    async def test_failed_device_retried_next_run(
        self, tag_store: InMemoryTagStore, transport: AsyncMock
    ) -> None:
        a, b = DeviceRecord(1, "A", T1), DeviceRecord(2, "B", T1)
        transport.list_devices.return_value = [a, b]

        async def fetch(device_id: int) -> DeviceData:
            if device_id == 1:
                raise TransportError("device offline")
            return _make_device(b, 5.0)

        transport.fetch_device.side_effect = fetch
        loop = _make_loop(tag_store, transport)

        result = await loop.run()

        assert result.synced == 1
        assert result.failed == 1
        assert loop.cache.get(1) is None
        assert loop.cache.get(2) == T1
        value = await tag_store.get_value("B/Temp")
        assert value is not None and value[0] == 5.0
        assert loop.cache.is_eligible(a)

    async def test_listing_failure_propagates(
        self, tag_store: InMemoryTagStore, transport: AsyncMock
    ) -> None:
        transport.list_devices.side_effect = TransportError("unauthorized", status_code=403)
        loop = _make_loop(tag_store, transport)

        with pytest.raises(TransportError):
            await loop.run()

    async def test_concurrency_is_bounded(
        self, tag_store: InMemoryTagStore, transport: AsyncMock
    ) -> None:
        records = [DeviceRecord(i, f"D{i}", T1) for i in range(1, 7)]
        transport.list_devices.return_value = records
        active = 0
        peak = 0

        async def fetch(device_id: int) -> DeviceData:
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.01)
            active -= 1
            return _make_device(records[device_id - 1])

        transport.fetch_device.side_effect = fetch
        loop = _make_loop(tag_store, transport, max_concurrent=2)

        result = await loop.run()

        assert result.synced == 6
        assert peak == 2
