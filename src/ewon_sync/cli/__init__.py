"""ewon-sync CLI.

Usage:
    ewonsync run                Run the sync service
    ewonsync sync               Run one sync cycle
    ewonsync status             Show the persisted checkpoint
    ewonsync reset              Restart historical sync from the beginning
    ewonsync serve              Run the HTTP status API with the service
    ewonsync config show        Show configuration
"""

from ewon_sync.cli.main import app, main

__all__ = ["app", "main"]
