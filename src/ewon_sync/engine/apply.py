"""Apply one device's tags, history and current values to the local stores.

Shared by the historical and the latest-value loops. Failures are isolated
per tag; a failed history flush is reported to the caller instead of
raised so live values that were already applied stay applied.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum
from typing import TYPE_CHECKING

from ewon_sync.core.models import DeviceData, HistoricalSample, InterpolationMode, TypeClass
from ewon_sync.engine.coercion import coerce, to_data_type, to_datetime, to_quality
from ewon_sync.utils.timeutils import utcnow

if TYPE_CHECKING:
    from ewon_sync.core.models import DataType, TagData
    from ewon_sync.engine.registry import TagRegistry
    from ewon_sync.engine.status import SyncCounters
    from ewon_sync.storage.base import HistorianSink, LiveTagStore

logger = logging.getLogger(__name__)


class LiveWritePolicy(StrEnum):
    """Which loop writes current values into the live store."""

    AUTO = "auto"  # realtime loop only when read-all-realtime is on
    ALWAYS = "always"  # sync cycles always write current values
    REALTIME_ONLY = "realtime_only"  # only the realtime loop writes current values


def cycle_writes_live_values(policy: LiveWritePolicy, read_all_realtime: bool) -> bool:
    """Whether historical/latest-value cycles push current values."""
    if policy is LiveWritePolicy.ALWAYS:
        return True
    if policy is LiveWritePolicy.REALTIME_ONLY:
        return False
    return not read_all_realtime


@dataclass(frozen=True)
class ApplyResult:
    """Outcome of applying one device's batch.

    Attributes:
        device_name: Name of the device applied
        tags_applied: Tags registered and updated
        tags_skipped: Tags rejected (bad name, collision) or failed
        history_points: Historical samples accepted by the historian
        device_timestamp: Device-side sync time of the batch
        latest_history_timestamp: Newest sample stored (None if none stored)
        history_failed: True if the historian rejected this device's samples
    """

    device_name: str
    tags_applied: int = 0
    tags_skipped: int = 0
    history_points: int = 0
    device_timestamp: datetime | None = None
    latest_history_timestamp: datetime | None = None
    history_failed: bool = False


class DeviceApplier:
    """Applies DeviceData to the live store and the historian sink."""

    def __init__(
        self,
        registry: TagRegistry,
        store: LiveTagStore,
        counters: SyncCounters,
        *,
        historian: HistorianSink | None = None,
        history_sink_name: str = "",
        write_live_values: bool = True,
    ) -> None:
        self._registry = registry
        self._store = store
        self._counters = counters
        self._historian = historian
        self._sink_name = history_sink_name.strip()
        self._write_live_values = write_live_values

    @property
    def history_configured(self) -> bool:
        """True if a historian and a sink name are both configured."""
        return self._historian is not None and bool(self._sink_name)

    async def apply(self, device: DeviceData) -> ApplyResult:
        """Apply every tag of a device, then flush its history in time order."""
        await self._registry.ensure_device_registered(device.name)

        live_timestamp = device.last_sync_at or utcnow()
        samples: list[HistoricalSample] = []
        applied = 0
        skipped = 0

        for tag in device.tags:
            try:
                if await self._apply_tag(device.name, tag, live_timestamp, samples):
                    applied += 1
                else:
                    skipped += 1
            except Exception:
                skipped += 1
                logger.error(
                    "Unable to apply tag '%s/%s'", device.name, tag.name, exc_info=True
                )

        latest_history_ts: datetime | None = None
        stored = 0
        history_failed = False
        if samples and self._historian is not None:
            samples.sort(key=lambda sample: sample.timestamp)
            try:
                await self._historian.store_batch(self._sink_name, samples)
                latest_history_ts = samples[-1].timestamp
                stored = len(samples)
                self._counters.history_points += stored
            except Exception:
                history_failed = True
                logger.error(
                    "Error storing %d historical samples for device '%s'",
                    len(samples),
                    device.name,
                    exc_info=True,
                )

        return ApplyResult(
            device_name=device.name,
            tags_applied=applied,
            tags_skipped=skipped,
            history_points=stored,
            device_timestamp=device.last_sync_at,
            latest_history_timestamp=latest_history_ts,
            history_failed=history_failed,
        )

    async def _apply_tag(
        self,
        device_name: str,
        tag: TagData,
        live_timestamp: datetime,
        samples: list[HistoricalSample],
    ) -> bool:
        problem = self._registry.validate_tag_name(tag.name)
        if problem is not None:
            logger.error("%s (device '%s')", problem, device_name)
            return False

        data_type = to_data_type(tag.data_type)
        path = await self._registry.ensure_tag_registered(device_name, tag.name, data_type)
        if path is None:
            return False

        # Collected whenever a sink exists: a forced sync may carry history
        # even when scheduled historical sync is off.
        if tag.history and self.history_configured:
            samples.extend(self._history_samples(path, data_type, tag))

        value = coerce(tag.value, data_type, to_quality(tag.quality), live_timestamp)
        if self._write_live_values:
            await self._store.set_value(path, value.value, value.quality, value.timestamp)
        logger.debug("Updated value for '%s' [id=%s] to %r", path, tag.id, value.value)
        return True

    def _history_samples(
        self, path: str, data_type: DataType, tag: TagData
    ) -> list[HistoricalSample]:
        interpolation = (
            InterpolationMode.ANALOG_COMPRESSED
            if data_type.type_class is TypeClass.FLOAT
            else InterpolationMode.DISCRETE
        )
        samples = [
            HistoricalSample(
                path=path,
                data_type=data_type,
                value=coerce(
                    point.value, data_type, to_quality(point.quality), to_datetime(point.date)
                ),
                interpolation=interpolation,
            )
            for point in tag.history
        ]
        return samples
