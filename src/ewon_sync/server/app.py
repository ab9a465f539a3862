"""FastAPI application factory."""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from ewon_sync import __version__
from ewon_sync.engine.orchestrator import SyncOrchestrator
from ewon_sync.server.models import HealthResponse
from ewon_sync.server.routes import status_router, tags_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler.

    Builds the runtime and runs the sync service unless an orchestrator
    was handed to ``create_app``.
    """
    if app.state.orchestrator is not None:
        yield
        return

    from ewon_sync.runtime import open_runtime
    from ewon_sync.service import SyncService
    from ewon_sync.unified_config import get_config

    config = get_config()
    async with open_runtime(config) as runtime:
        service = SyncService.from_config(runtime.orchestrator, config.sync)
        await service.start()
        app.state.orchestrator = runtime.orchestrator
        try:
            yield
        finally:
            await service.stop()
            app.state.orchestrator = None


def create_app(
    orchestrator: SyncOrchestrator | None = None,
    *,
    title: str = "ewon-sync",
    description: str = "Status and control surface of the eWON telemetry sync engine",
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        orchestrator: Already-running orchestrator to expose. When None, the
            app opens its own runtime and sync service on startup.
        title: API title
        description: API description

    Returns:
        Configured FastAPI application
    """
    app = FastAPI(
        title=title,
        description=description,
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.state.orchestrator = orchestrator

    # Override orchestrator dependency using the shared module
    from ewon_sync.server.dependencies import get_orchestrator as shared_get_orchestrator

    async def get_orchestrator() -> SyncOrchestrator:
        current: SyncOrchestrator | None = app.state.orchestrator
        if current is None:
            raise RuntimeError("Sync engine is not running")
        return current

    app.dependency_overrides[shared_get_orchestrator] = get_orchestrator

    app.include_router(status_router)
    app.include_router(tags_router)

    @app.get("/health", response_model=HealthResponse, tags=["health"])
    async def health_check() -> HealthResponse:
        """Health check endpoint."""
        return HealthResponse(status="healthy", version=__version__)

    return app
