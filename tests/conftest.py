"""Pytest configuration and fixtures."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from pathlib import Path
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio

from ewon_sync.storage.memory_store import (
    InMemoryCheckpointPersistence,
    InMemoryHistorian,
    InMemoryTagStore,
)
from ewon_sync.storage.sqlite_store import SQLiteStorage
from ewon_sync.transport.base import DeviceTransport


@pytest.fixture
def tag_store() -> InMemoryTagStore:
    """Empty live tag store."""
    return InMemoryTagStore()


@pytest.fixture
def historian() -> InMemoryHistorian:
    """Historian collecting batches in memory."""
    return InMemoryHistorian()


@pytest.fixture
def persistence() -> InMemoryCheckpointPersistence:
    """Checkpoint persistence kept in memory."""
    return InMemoryCheckpointPersistence()


@pytest.fixture
def transport() -> AsyncMock:
    """Transport mock with an empty fleet and no incremental data."""
    mock = AsyncMock(spec=DeviceTransport)
    mock.list_devices.return_value = []
    mock.fetch_incremental.return_value = None
    mock.fetch_live_snapshot.return_value = {}
    mock.write_tag.return_value = None
    return mock


@pytest_asyncio.fixture
async def sqlite_storage(tmp_path: Path) -> AsyncGenerator[SQLiteStorage, None]:
    """Initialized SQLite storage in a temporary directory."""
    storage = SQLiteStorage(tmp_path / "sync.db")
    await storage.initialize()
    yield storage
    await storage.close()
