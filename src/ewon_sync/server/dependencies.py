"""Shared dependencies for API routes."""

from __future__ import annotations

from ewon_sync.engine.orchestrator import SyncOrchestrator


async def get_orchestrator() -> SyncOrchestrator:
    """
    Dependency to get the running orchestrator.

    This is overridden by the application at startup.
    """
    raise NotImplementedError("Orchestrator not configured")
