"""Realtime sync loop — high-frequency live reads for flagged devices."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from ewon_sync.core.models import Quality
from ewon_sync.engine.coercion import classify_live_value
from ewon_sync.utils.timeutils import utcnow

if TYPE_CHECKING:
    from ewon_sync.engine.registry import RegisteredTag, TagRegistry
    from ewon_sync.storage.base import LiveTagStore
    from ewon_sync.transport.base import DeviceTransport

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RealtimeSyncResult:
    """Outcome of one realtime run."""

    devices_polled: int = 0
    devices_failed: int = 0
    tags_updated: int = 0


class RealtimeSyncLoop:
    """Reads live snapshots and pushes them with the current time.

    Targets every registered tag when read-all-realtime is on, otherwise
    the tags of devices whose AllRealtime control tag is set.
    """

    def __init__(
        self,
        transport: DeviceTransport,
        registry: TagRegistry,
        store: LiveTagStore,
        *,
        read_all_realtime: bool = False,
    ) -> None:
        self._transport = transport
        self._registry = registry
        self._store = store
        self._read_all = read_all_realtime

    async def run(self) -> RealtimeSyncResult:
        targets = self._registry.realtime_targets(self._read_all)
        if not targets:
            return RealtimeSyncResult()

        polled = 0
        failed = 0
        updated = 0
        for device_name, tags in targets.items():
            try:
                snapshot = await self._transport.fetch_live_snapshot(device_name)
            except Exception:
                failed += 1
                logger.error(
                    "Error reading live data from '%s'; the device may be offline",
                    device_name,
                    exc_info=True,
                )
                continue

            polled += 1
            updated += await self._push_snapshot(device_name, tags, snapshot)

        logger.debug(
            "Realtime: %d devices polled, %d failed, %d tags updated", polled, failed, updated
        )
        return RealtimeSyncResult(devices_polled=polled, devices_failed=failed, tags_updated=updated)

    async def _push_snapshot(
        self, device_name: str, tags: list[RegisteredTag], snapshot: dict[str, str]
    ) -> int:
        updated = 0
        now = utcnow()
        for tag in tags:
            # Registered tags keep the remote spelling, which is the
            # un-sanitized form when tag names contain periods.
            raw = snapshot.get(tag.tag_name)
            if raw is None:
                logger.warning("Tag '%s' missing from live data of '%s'", tag.tag_name, device_name)
            try:
                await self._store.set_value(tag.path, classify_live_value(raw), Quality.GOOD, now)
            except Exception:
                logger.error("Unable to update live value of '%s'", tag.path, exc_info=True)
                continue
            updated += 1
        return updated
