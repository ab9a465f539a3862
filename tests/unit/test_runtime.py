"""Tests for runtime wiring of storage, transport and orchestrator."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import AsyncMock, patch

from ewon_sync.core.models import DeviceRecord
from ewon_sync.runtime import open_runtime
from ewon_sync.unified_config import SyncConfig, UnifiedConfig


def _make_config(tmp_path: Path, **sync: object) -> UnifiedConfig:
    return UnifiedConfig(data_dir=tmp_path, sync=SyncConfig(**sync))  # type: ignore[arg-type]


class TestOpenRuntime:
    async def test_wires_injected_transport(self, tmp_path: Path, transport: AsyncMock) -> None:
        config = _make_config(tmp_path, history_enabled=True, history_provider="hist")

        async with open_runtime(config, transport=transport) as runtime:
            assert runtime.transport is transport
            assert runtime.storage.db_path == (tmp_path / "sync.db").resolve()
            assert not runtime.orchestrator.started

            await runtime.orchestrator.startup()
            assert runtime.orchestrator.history_enabled is True

    async def test_checkpoint_survives_runtime(self, tmp_path: Path, transport: AsyncMock) -> None:
        config = _make_config(tmp_path, history_enabled=True, history_provider="hist")
        transport.list_devices.return_value = [DeviceRecord(1, "PlantA")]
        transport.fetch_device.side_effect = TimeoutError("offline")

        async with open_runtime(config, transport=transport) as runtime:
            await runtime.orchestrator.startup()
            await runtime.orchestrator.run_cycle()

        async with open_runtime(config, transport=transport) as runtime:
            state = await runtime.storage.load_checkpoint("default")
            assert state is not None
            assert state.transaction_id == 0

    async def test_owned_client_is_closed(self, tmp_path: Path) -> None:
        config = _make_config(tmp_path)
        client = AsyncMock()

        with patch("ewon_sync.runtime.Talk2MClient") as client_cls:
            client_cls.from_config.return_value = client
            async with open_runtime(config) as runtime:
                assert runtime.transport is client

        client.disconnect.assert_awaited_once()

    async def test_history_needs_provider(self, tmp_path: Path, transport: AsyncMock) -> None:
        config = _make_config(tmp_path, history_enabled=True)

        async with open_runtime(config, transport=transport) as runtime:
            await runtime.orchestrator.startup()
            assert runtime.orchestrator.history_enabled is False
