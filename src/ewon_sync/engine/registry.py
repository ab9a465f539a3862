"""Tag registry — discovery bookkeeping, name rules and write-back wiring.

Tracks which devices and tag paths have been registered with the live
store during this process, binds exactly one write handler per path, and
owns the set of devices flagged for realtime polling.
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from ewon_sync.core.models import DataType, Quality
from ewon_sync.utils.timeutils import utcnow

if TYPE_CHECKING:
    from ewon_sync.storage.base import LiveTagStore, WriteHandler
    from ewon_sync.transport.base import DeviceTransport

logger = logging.getLogger(__name__)

# Tag names when periods mode is off: underscores allowed, periods not
ALLOWED_TAG_NAME = re.compile(r"^[A-Za-z0-9_][A-Za-z0-9_ '\-:()]*$")

# Tag names when periods mode is on: periods allowed (mapped to "_"), underscores not
ALLOWED_TAG_NAME_PERIODS = re.compile(r"^[A-Za-z0-9.][A-Za-z0-9 '.\-:()]*$")

ALL_REALTIME_TAG = "_config/AllRealtime"


def sanitize_name(name: str) -> str:
    """Map a remote name to local form ("." is illegal in local paths)."""
    return name.replace(".", "_")


def unsanitize_name(name: str) -> str:
    """Map a local name back to remote form."""
    return name.replace("_", ".")


def build_path(device_name: str, tag_name: str) -> str:
    """Build the local tag path ``<device>/<tag>`` in sanitized form."""
    return sanitize_name(f"{device_name}/{tag_name}")


def to_wire_value(value: Any) -> str:
    """Convert a locally written value to its remote wire representation."""
    if isinstance(value, bool):
        return "1" if value else "0"
    return str(value)


@dataclass(frozen=True)
class RegisteredTag:
    """A tag path registered with the live store, with its remote identity."""

    path: str
    device_name: str
    tag_name: str


class TagRegistry:
    """Registers devices and tags with the live store exactly once each.

    Registrations are append-only for the life of the instance. Two remote
    names that sanitize to the same local path are never merged: the first
    one wins and later ones are refused with an error.
    """

    def __init__(
        self,
        store: LiveTagStore,
        transport: DeviceTransport,
        *,
        tag_names_contain_periods: bool = False,
    ) -> None:
        self._store = store
        self._transport = transport
        self._periods_mode = tag_names_contain_periods
        self._tags: dict[str, RegisteredTag] = {}
        self._tag_types: dict[str, DataType] = {}
        self._devices: set[str] = set()
        self._realtime_devices: set[str] = set()
        self._lock = asyncio.Lock()

    @property
    def tag_names_contain_periods(self) -> bool:
        return self._periods_mode

    @property
    def registered_devices(self) -> frozenset[str]:
        return frozenset(self._devices)

    @property
    def registered_tags(self) -> tuple[RegisteredTag, ...]:
        return tuple(self._tags.values())

    @property
    def realtime_devices(self) -> frozenset[str]:
        """Devices currently flagged for realtime polling."""
        return frozenset(self._realtime_devices)

    def set_realtime(self, device_name: str, enabled: bool) -> None:
        if enabled:
            self._realtime_devices.add(device_name)
        else:
            self._realtime_devices.discard(device_name)

    def validate_tag_name(self, name: str) -> str | None:
        """Check a remote tag name against the active naming mode.

        Returns:
            None if the name is valid, otherwise a diagnostic message
        """
        if self._periods_mode:
            if ALLOWED_TAG_NAME_PERIODS.match(name):
                return None
            return (
                f"The tag {name!r} has an unsupported name. Supported tag names must "
                "begin with an alphanumeric or period, followed by any number of "
                "alphanumerics, spaces, or the following: ' . - : ( ) To enable "
                "support for tag names containing underscores, disable the "
                "tag_names_contain_periods option."
            )
        if ALLOWED_TAG_NAME.match(name):
            return None
        return (
            f"The tag {name!r} has an unsupported name. Supported tag names must "
            "begin with an alphanumeric or underscore, followed by any number of "
            "alphanumerics, underscores, spaces, or the following: ' - : ( )"
        )

    async def ensure_device_registered(self, device_name: str) -> bool:
        """Register the device's AllRealtime control tag on first sight.

        Returns:
            True if the device was registered by this call
        """
        async with self._lock:
            if device_name in self._devices:
                return False

            path = build_path(device_name, ALL_REALTIME_TAG)
            await self._store.register_tag_path(path, DataType.BOOLEAN)
            await self._store.set_value(path, False, Quality.GOOD, utcnow())
            await self._store.register_write_handler(
                path, self._all_realtime_handler(device_name, path)
            )
            self._devices.add(device_name)

        logger.info("Registered device '%s'", device_name)
        return True

    async def ensure_tag_registered(
        self, device_name: str, tag_name: str, data_type: DataType
    ) -> str | None:
        """Declare a tag path and bind its write-back handler on first sight.

        Later calls only refresh the declared data type when it changed.

        Returns:
            The local tag path, or None if the name collides with another tag
        """
        path = build_path(device_name, tag_name)
        async with self._lock:
            existing = self._tags.get(path)
            if existing is not None:
                if (existing.device_name, existing.tag_name) != (device_name, tag_name):
                    logger.error(
                        "Tag '%s/%s' maps to local path '%s' already used by '%s/%s'; skipping",
                        device_name,
                        tag_name,
                        path,
                        existing.device_name,
                        existing.tag_name,
                    )
                    return None
                if self._tag_types.get(path) is not data_type:
                    await self._store.register_tag_path(path, data_type)
                    self._tag_types[path] = data_type
                return path

            await self._store.register_tag_path(path, data_type)
            await self._store.register_write_handler(
                path, self._write_back_handler(device_name, tag_name, path)
            )
            self._tags[path] = RegisteredTag(path=path, device_name=device_name, tag_name=tag_name)
            self._tag_types[path] = data_type

        logger.debug("Registered tag '%s'", path)
        return path

    def realtime_targets(self, read_all: bool) -> dict[str, list[RegisteredTag]]:
        """Group the registered tags that need realtime refresh by device."""
        targets: dict[str, list[RegisteredTag]] = {}
        realtime = self._realtime_devices
        for tag in list(self._tags.values()):
            if read_all or tag.device_name in realtime:
                targets.setdefault(tag.device_name, []).append(tag)
        return targets

    # ── Write handlers ───────────────────────────────────────────────

    def _all_realtime_handler(self, device_name: str, path: str) -> WriteHandler:
        async def handle(_path: str, value: Any) -> Quality:
            if not isinstance(value, bool):
                logger.error(
                    "Writing AllRealtime for device '%s' failed: expected a boolean, got %s",
                    device_name,
                    type(value).__name__,
                )
                self.set_realtime(device_name, False)
                await self._store.register_tag_path(path, DataType.BOOLEAN)
                await self._store.set_value(path, False, Quality.GOOD, utcnow())
                return Quality.BAD

            self.set_realtime(device_name, value)
            await self._store.set_value(path, value, Quality.GOOD, utcnow())
            logger.info(
                "Realtime polling %s for device '%s'",
                "enabled" if value else "disabled",
                device_name,
            )
            return Quality.GOOD

        return handle

    def _write_back_handler(self, device_name: str, tag_name: str, path: str) -> WriteHandler:
        async def handle(_path: str, value: Any) -> Quality:
            wire_value = to_wire_value(value)
            try:
                await self._transport.write_tag(device_name, tag_name, wire_value)
            except Exception:
                logger.error(
                    "Writing tag '%s' to device '%s' failed", tag_name, device_name, exc_info=True
                )
                return Quality.BAD

            await self._store.set_value(path, value, Quality.GOOD, utcnow())
            return Quality.GOOD

        return handle
