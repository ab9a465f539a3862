"""
ewon-sync - Incremental telemetry sync from eWON gateways via Talk2M.

Pulls historical and live tag data through the Talk2M DataMailbox and
M2Web APIs into a local tag store and historian, with a durable
transaction checkpoint so no history is lost across restarts.

Example:
    from ewon_sync.runtime import open_runtime

    async with open_runtime() as runtime:
        await runtime.orchestrator.startup()
        result = await runtime.orchestrator.run_cycle()
"""

from ewon_sync.core.checkpoint import CheckpointState
from ewon_sync.core.models import DataType, Quality
from ewon_sync.engine.orchestrator import SyncOrchestrator, SyncSettings

__version__ = "0.1.0"

__all__ = [
    "CheckpointState",
    "DataType",
    "Quality",
    "SyncOrchestrator",
    "SyncSettings",
    "__version__",
]
