"""Abstract interface for the remote device transport."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ewon_sync.core.models import DeviceData, DeviceRecord, SyncBatch


class TransportError(Exception):
    """Connectivity or protocol failure talking to the remote API."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class DeviceTransport(ABC):
    """
    Abstract interface for fetching device data and writing tags remotely.

    Every method may raise TransportError when the remote side is
    unreachable, times out or rejects the request.
    """

    @abstractmethod
    async def list_devices(self) -> list[DeviceRecord]:
        """List all devices with their last upload time."""
        ...

    @abstractmethod
    async def fetch_device(self, device_id: int) -> DeviceData:
        """Fetch the full current tag set of one device."""
        ...

    @abstractmethod
    async def fetch_incremental(self, since_transaction_id: int) -> SyncBatch | None:
        """
        Fetch the next incremental-change batch after a transaction id.

        Args:
            since_transaction_id: Last applied transaction (0 = start of history)

        Returns:
            The batch, or None when no data is available
        """
        ...

    @abstractmethod
    async def fetch_live_snapshot(self, device_name: str) -> dict[str, str]:
        """
        Read the live values of a device.

        Returns:
            Map of remote tag name to the raw, untyped value text
        """
        ...

    @abstractmethod
    async def write_tag(self, device_name: str, tag_name: str, value: str) -> None:
        """Write a wire-form value to a remote tag."""
        ...
