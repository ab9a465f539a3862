"""Wiring of the concrete stores, transport and orchestrator."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass

from ewon_sync.engine.orchestrator import SyncOrchestrator
from ewon_sync.storage.memory_store import InMemoryTagStore
from ewon_sync.storage.sqlite_store import SQLiteStorage
from ewon_sync.transport.base import DeviceTransport
from ewon_sync.transport.talk2m import Talk2MClient
from ewon_sync.unified_config import UnifiedConfig, get_config

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Runtime:
    """Everything a running sync process holds open."""

    config: UnifiedConfig
    storage: SQLiteStorage
    transport: DeviceTransport
    store: InMemoryTagStore
    orchestrator: SyncOrchestrator


@asynccontextmanager
async def open_runtime(
    config: UnifiedConfig | None = None,
    *,
    transport: DeviceTransport | None = None,
) -> AsyncIterator[Runtime]:
    """Open the SQLite store and Talk2M client and build the orchestrator.

    The orchestrator is not started; callers run ``startup()`` themselves
    (directly or through ``SyncService.start()``). A transport passed in is
    left open on exit; one created here is closed.
    """
    config = config or get_config()
    storage = SQLiteStorage(config.db_path)
    await storage.initialize()

    owned_client: Talk2MClient | None = None
    if transport is None:
        if not config.talk2m.is_configured:
            logger.warning(
                "Talk2M credentials are incomplete; set them in %s or TALK2M_* variables",
                config.config_path,
            )
        owned_client = Talk2MClient.from_config(config.talk2m)
        transport = owned_client

    store = InMemoryTagStore()
    orchestrator = SyncOrchestrator(
        transport,
        store,
        storage,
        historian=storage,
        settings=config.sync.to_settings(),
    )
    try:
        yield Runtime(
            config=config,
            storage=storage,
            transport=transport,
            store=store,
            orchestrator=orchestrator,
        )
    finally:
        await orchestrator.close()
        if owned_client is not None:
            await owned_client.disconnect()
        await storage.close()
