"""Tests for TagRegistry: name rules, idempotent registration and write-back."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest
import pytest_asyncio

from ewon_sync.core.models import DataType, Quality
from ewon_sync.engine.registry import (
    TagRegistry,
    build_path,
    sanitize_name,
    to_wire_value,
    unsanitize_name,
)
from ewon_sync.storage.memory_store import InMemoryTagStore
from ewon_sync.transport.base import TransportError


def _make_registry(
    store: InMemoryTagStore, transport: AsyncMock, *, periods: bool = False
) -> TagRegistry:
    return TagRegistry(store, transport, tag_names_contain_periods=periods)


# ── Name helpers ─────────────────────────────────────────────────


class TestNameHelpers:
    def test_sanitize_and_unsanitize(self) -> None:
        assert sanitize_name("Line1.Speed") == "Line1_Speed"
        assert unsanitize_name("Line1_Speed") == "Line1.Speed"

    def test_build_path_sanitizes_both_parts(self) -> None:
        assert build_path("plant.a", "Temp.1") == "plant_a/Temp_1"

    def test_wire_values(self) -> None:
        assert to_wire_value(True) == "1"
        assert to_wire_value(False) == "0"
        assert to_wire_value(12.5) == "12.5"
        assert to_wire_value("on") == "on"


class TestValidateTagName:
    """Per-mode tag name validation."""

    def test_default_mode_accepts_underscores(
        self, tag_store: InMemoryTagStore, transport: AsyncMock
    ) -> None:
        registry = _make_registry(tag_store, transport)
        assert registry.validate_tag_name("Pump_1 (main)") is None
        assert registry.validate_tag_name("_hidden") is None

    def test_default_mode_rejects_periods_and_symbols(
        self, tag_store: InMemoryTagStore, transport: AsyncMock
    ) -> None:
        registry = _make_registry(tag_store, transport)
        problem = registry.validate_tag_name("bad name!")
        assert problem is not None
        assert "bad name!" in problem
        assert "underscore" in problem
        assert registry.validate_tag_name("Line1.Speed") is not None

    def test_periods_mode_accepts_periods_rejects_underscores(
        self, tag_store: InMemoryTagStore, transport: AsyncMock
    ) -> None:
        registry = _make_registry(tag_store, transport, periods=True)
        assert registry.validate_tag_name("Line1.Speed") is None
        assert registry.validate_tag_name(".start") is None
        problem = registry.validate_tag_name("Pump_1")
        assert problem is not None
        assert "period" in problem


# ── Registration ─────────────────────────────────────────────────


class TestEnsureDeviceRegistered:
    async def test_registers_all_realtime_control_once(
        self, tag_store: InMemoryTagStore, transport: AsyncMock
    ) -> None:
        registry = _make_registry(tag_store, transport)

        assert await registry.ensure_device_registered("PlantA") is True
        assert await registry.ensure_device_registered("PlantA") is False

        value = await tag_store.get_value("PlantA/_config/AllRealtime")
        assert value is not None
        assert value[0] is False
        assert tag_store.data_type("PlantA/_config/AllRealtime") is DataType.BOOLEAN
        assert registry.registered_devices == frozenset({"PlantA"})

    async def test_all_realtime_write_toggles_realtime_set(
        self, tag_store: InMemoryTagStore, transport: AsyncMock
    ) -> None:
        registry = _make_registry(tag_store, transport)
        await registry.ensure_device_registered("PlantA")

        quality = await tag_store.write("PlantA/_config/AllRealtime", True)
        assert quality is Quality.GOOD
        assert registry.realtime_devices == frozenset({"PlantA"})
        value = await tag_store.get_value("PlantA/_config/AllRealtime")
        assert value is not None and value[0] is True

        await tag_store.write("PlantA/_config/AllRealtime", False)
        assert registry.realtime_devices == frozenset()

    async def test_non_boolean_write_resets_to_false(
        self, tag_store: InMemoryTagStore, transport: AsyncMock
    ) -> None:
        registry = _make_registry(tag_store, transport)
        await registry.ensure_device_registered("PlantA")
        await tag_store.write("PlantA/_config/AllRealtime", True)

        quality = await tag_store.write("PlantA/_config/AllRealtime", "yes please")

        assert quality is Quality.BAD
        assert registry.realtime_devices == frozenset()
        value = await tag_store.get_value("PlantA/_config/AllRealtime")
        assert value is not None and value[0] is False


class TestEnsureTagRegistered:
    async def test_idempotent_registration(
        self, tag_store: InMemoryTagStore, transport: AsyncMock
    ) -> None:
        registry = _make_registry(tag_store, transport)

        first = await registry.ensure_tag_registered("PlantA", "Temp", DataType.FLOAT)
        second = await registry.ensure_tag_registered("PlantA", "Temp", DataType.FLOAT)

        assert first == second == "PlantA/Temp"
        assert len(registry.registered_tags) == 1
        assert tag_store.has_write_handler("PlantA/Temp")

    async def test_type_change_redeclares_path(
        self, tag_store: InMemoryTagStore, transport: AsyncMock
    ) -> None:
        registry = _make_registry(tag_store, transport)
        await registry.ensure_tag_registered("PlantA", "Level", DataType.INTEGER)
        await registry.ensure_tag_registered("PlantA", "Level", DataType.FLOAT)

        assert tag_store.data_type("PlantA/Level") is DataType.FLOAT

    async def test_colliding_names_are_refused(
        self, tag_store: InMemoryTagStore, transport: AsyncMock
    ) -> None:
        """Two remote names mapping to one local path are never merged."""
        registry = _make_registry(tag_store, transport)

        first = await registry.ensure_tag_registered("Plant.A", "Temp", DataType.FLOAT)
        second = await registry.ensure_tag_registered("Plant_A", "Temp", DataType.FLOAT)

        assert first == "Plant_A/Temp"
        assert second is None
        assert len(registry.registered_tags) == 1
        assert registry.registered_tags[0].device_name == "Plant.A"


class TestWriteBack:
    """External writes dispatch to the remote device."""

    async def test_successful_write_reflects_value(
        self, tag_store: InMemoryTagStore, transport: AsyncMock
    ) -> None:
        registry = _make_registry(tag_store, transport)
        await registry.ensure_tag_registered("PlantA", "Enable", DataType.BOOLEAN)

        quality = await tag_store.write("PlantA/Enable", True)

        assert quality is Quality.GOOD
        transport.write_tag.assert_awaited_once_with("PlantA", "Enable", "1")
        value = await tag_store.get_value("PlantA/Enable")
        assert value is not None
        assert value[0] is True
        assert value[1] is Quality.GOOD

    async def test_periods_mode_writes_remote_spelling(
        self, tag_store: InMemoryTagStore, transport: AsyncMock
    ) -> None:
        registry = _make_registry(tag_store, transport, periods=True)
        path = await registry.ensure_tag_registered("PlantA", "Line1.Speed", DataType.FLOAT)
        assert path == "PlantA/Line1_Speed"

        await tag_store.write("PlantA/Line1_Speed", 3.5)

        transport.write_tag.assert_awaited_once_with("PlantA", "Line1.Speed", "3.5")

    async def test_transport_failure_returns_bad_without_retry(
        self, tag_store: InMemoryTagStore, transport: AsyncMock
    ) -> None:
        registry = _make_registry(tag_store, transport)
        await registry.ensure_tag_registered("PlantA", "Setpoint", DataType.FLOAT)
        await tag_store.set_value("PlantA/Setpoint", 10.0, Quality.GOOD)
        transport.write_tag.side_effect = TransportError("offline")

        quality = await tag_store.write("PlantA/Setpoint", 20.0)

        assert quality is Quality.BAD
        assert transport.write_tag.await_count == 1
        value = await tag_store.get_value("PlantA/Setpoint")
        assert value is not None and value[0] == 10.0


class TestRealtimeTargets:
    @pytest_asyncio.fixture
    async def registry(self, tag_store: InMemoryTagStore, transport: AsyncMock) -> TagRegistry:
        registry = _make_registry(tag_store, transport)
        for device in ("PlantA", "PlantB"):
            await registry.ensure_device_registered(device)
            await registry.ensure_tag_registered(device, "Temp", DataType.FLOAT)
            await registry.ensure_tag_registered(device, "Mode", DataType.STRING)
        return registry

    async def test_only_flagged_devices(self, registry: TagRegistry) -> None:
        registry.set_realtime("PlantB", True)
        targets = registry.realtime_targets(read_all=False)
        assert list(targets) == ["PlantB"]
        assert sorted(tag.tag_name for tag in targets["PlantB"]) == ["Mode", "Temp"]

    async def test_read_all_overrides_flags(self, registry: TagRegistry) -> None:
        targets = registry.realtime_targets(read_all=True)
        assert sorted(targets) == ["PlantA", "PlantB"]

    async def test_nothing_flagged(self, registry: TagRegistry) -> None:
        assert registry.realtime_targets(read_all=False) == {}
