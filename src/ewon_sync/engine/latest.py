"""Latest-value sync loop — refreshes devices whose remote state changed."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ewon_sync.core.models import DeviceRecord
    from ewon_sync.engine.apply import DeviceApplier
    from ewon_sync.transport.base import DeviceTransport

logger = logging.getLogger(__name__)


class LastSyncCache:
    """Device id → last device-side sync time seen by a successful refresh.

    Process-local; a restart refreshes every device once.
    """

    def __init__(self) -> None:
        self._seen: dict[int, datetime] = {}

    def __len__(self) -> int:
        return len(self._seen)

    def get(self, device_id: int) -> datetime | None:
        return self._seen.get(device_id)

    def is_eligible(self, record: DeviceRecord) -> bool:
        """True if the device is new or reports a strictly newer sync time."""
        if record.last_sync_at is None:
            return True
        seen = self._seen.get(record.id)
        return seen is None or seen < record.last_sync_at

    def mark_synced(self, record: DeviceRecord) -> None:
        if record.last_sync_at is not None:
            self._seen[record.id] = record.last_sync_at

    def clear(self) -> None:
        self._seen.clear()


@dataclass(frozen=True)
class LatestSyncResult:
    """Outcome of one latest-value run."""

    devices_listed: int = 0
    eligible: int = 0
    synced: int = 0
    failed: int = 0


class LatestValueSyncLoop:
    """Polls current values, but only for devices that uploaded since last time."""

    def __init__(
        self,
        transport: DeviceTransport,
        applier: DeviceApplier,
        *,
        cache: LastSyncCache | None = None,
        max_concurrent_devices: int = 1,
    ) -> None:
        self._transport = transport
        self._applier = applier
        self._cache = cache if cache is not None else LastSyncCache()
        self._semaphore = asyncio.Semaphore(max(1, max_concurrent_devices))

    @property
    def cache(self) -> LastSyncCache:
        return self._cache

    async def run(self) -> LatestSyncResult:
        """List devices and refresh each eligible one.

        Raises:
            TransportError: If the device listing itself fails
        """
        records = await self._transport.list_devices()
        eligible = [record for record in records if self._cache.is_eligible(record)]
        if not eligible:
            logger.debug("No device changed since the last latest-value sync")
            return LatestSyncResult(devices_listed=len(records))

        outcomes = await asyncio.gather(*(self._sync_device(record) for record in eligible))
        synced = sum(1 for ok in outcomes if ok)
        result = LatestSyncResult(
            devices_listed=len(records),
            eligible=len(eligible),
            synced=synced,
            failed=len(eligible) - synced,
        )
        logger.info(
            "Latest values: %d/%d devices refreshed (%d failed)",
            result.synced,
            result.eligible,
            result.failed,
        )
        return result

    async def _sync_device(self, record: DeviceRecord) -> bool:
        async with self._semaphore:
            try:
                device = await self._transport.fetch_device(record.id)
                await self._applier.apply(device)
            except Exception:
                logger.error(
                    "Latest-value sync failed for device '%s' [id=%d]; it may be offline",
                    record.name,
                    record.id,
                    exc_info=True,
                )
                return False

        self._cache.mark_synced(record)
        return True
