"""HTTP status and control server for ewon-sync."""

from ewon_sync.server.app import create_app

__all__ = ["create_app"]
