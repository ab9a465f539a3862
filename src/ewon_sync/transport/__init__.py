"""Remote device transports."""

from ewon_sync.transport.base import DeviceTransport, TransportError
from ewon_sync.transport.talk2m import Talk2MClient, parse_live_snapshot

__all__ = [
    "DeviceTransport",
    "Talk2MClient",
    "TransportError",
    "parse_live_snapshot",
]
