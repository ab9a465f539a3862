"""Historical sync loop — drains the remote incremental-change feed.

Each batch is applied in full before its transaction id is committed, so a
crash between the two replays the batch on restart (at-least-once).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING

from ewon_sync.utils.timeutils import utcnow

if TYPE_CHECKING:
    from ewon_sync.core.models import SyncBatch
    from ewon_sync.engine.apply import DeviceApplier
    from ewon_sync.engine.checkpoint_store import CheckpointStore
    from ewon_sync.transport.base import DeviceTransport

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HistoricalSyncResult:
    """Outcome of one historical sync run.

    Attributes:
        batches_applied: Feed batches fetched and applied
        commits: Checkpoints durably committed
        transaction_id: Committed transaction id after the run
        history_points: Historical samples stored during the run
    """

    batches_applied: int = 0
    commits: int = 0
    transaction_id: int = 0
    history_points: int = 0


def _latest(current: datetime | None, candidate: datetime | None) -> datetime | None:
    if candidate is None:
        return current
    if current is None or candidate > current:
        return candidate
    return current


class HistoricalSyncLoop:
    """Fetch → apply → advance, repeated while the feed reports more data."""

    def __init__(
        self,
        transport: DeviceTransport,
        applier: DeviceApplier,
        checkpoints: CheckpointStore,
    ) -> None:
        self._transport = transport
        self._applier = applier
        self._checkpoints = checkpoints

    async def run(self) -> HistoricalSyncResult:
        """Drain the feed from the committed transaction id until caught up.

        Transport and store exceptions propagate to the caller; the
        checkpoint then still points at the last fully applied batch.
        """
        batches = 0
        commits = 0
        points = 0

        while True:
            state = self._checkpoints.state
            generation = self._checkpoints.generation
            since = state.transaction_id
            logger.debug("Fetching incremental data after transaction %d", since)

            batch = await self._transport.fetch_incremental(since)
            if batch is None:
                logger.debug("No incremental data available after transaction %d", since)
                break

            batches += 1
            applied = await self._apply_batch(batch)
            points += applied.points

            if applied.failed_devices:
                logger.error(
                    "History for transaction %d not stored for %s; it will be replayed next cycle",
                    batch.transaction_id,
                    ", ".join(applied.failed_devices),
                )
                break

            if batch.transaction_id == since:
                logger.debug("Transaction id %d unchanged, historical data up to date", since)
                break
            if batch.transaction_id < since:
                logger.error(
                    "Remote transaction id went backwards (%d < %d); checkpoint left unchanged",
                    batch.transaction_id,
                    since,
                )
                break

            new_state = state.with_update(
                transaction_id=batch.transaction_id,
                last_local_sync=utcnow(),
                last_remote_sync=applied.remote_timestamp,
                last_history_timestamp=_latest(
                    state.last_history_timestamp, applied.history_timestamp
                ),
            )
            if not await self._checkpoints.commit(new_state, generation=generation):
                break
            commits += 1
            logger.info(
                "Committed transaction %d (%d historical points)",
                batch.transaction_id,
                applied.points,
            )

            if not batch.more_data_available:
                break

        return HistoricalSyncResult(
            batches_applied=batches,
            commits=commits,
            transaction_id=self._checkpoints.state.transaction_id,
            history_points=points,
        )

    async def _apply_batch(self, batch: SyncBatch) -> _BatchOutcome:
        outcome = _BatchOutcome()
        for device in batch.devices:
            result = await self._applier.apply(device)
            outcome.points += result.history_points
            outcome.remote_timestamp = _latest(outcome.remote_timestamp, result.device_timestamp)
            outcome.history_timestamp = _latest(
                outcome.history_timestamp, result.latest_history_timestamp
            )
            if result.history_failed:
                outcome.failed_devices.append(device.name)
        return outcome


@dataclass
class _BatchOutcome:
    points: int = 0
    remote_timestamp: datetime | None = None
    history_timestamp: datetime | None = None
    failed_devices: list[str] = field(default_factory=list)
