"""API routes for the ewon-sync status server."""

from ewon_sync.server.routes.status import router as status_router
from ewon_sync.server.routes.tags import router as tags_router

__all__ = [
    "status_router",
    "tags_router",
]
