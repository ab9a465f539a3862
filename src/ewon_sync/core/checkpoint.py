"""Checkpoint state for resumable historical synchronization."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from ewon_sync.utils.timeutils import EPOCH


@dataclass(frozen=True)
class CheckpointState:
    """Durable progress marker of the historical sync.

    Attributes:
        transaction_id: Last fully applied feed transaction (0 = start of history)
        last_local_sync: When this checkpoint was last durably written
        last_remote_sync: Device-side timestamp of the most recent processed data
        last_history_timestamp: Timestamp of the newest historical sample stored
    """

    transaction_id: int = 0
    last_local_sync: datetime = field(default=EPOCH)
    last_remote_sync: datetime = field(default=EPOCH)
    last_history_timestamp: datetime = field(default=EPOCH)

    @classmethod
    def initial(cls) -> CheckpointState:
        """Zero state used on first startup and after a reset."""
        return cls()

    def with_update(
        self,
        transaction_id: int | None = None,
        last_local_sync: datetime | None = None,
        last_remote_sync: datetime | None = None,
        last_history_timestamp: datetime | None = None,
    ) -> CheckpointState:
        """Create updated CheckpointState (immutable pattern)."""
        return CheckpointState(
            transaction_id=(
                transaction_id if transaction_id is not None else self.transaction_id
            ),
            last_local_sync=last_local_sync or self.last_local_sync,
            last_remote_sync=last_remote_sync or self.last_remote_sync,
            last_history_timestamp=last_history_timestamp or self.last_history_timestamp,
        )
