"""Time helpers shared across the sync engine.

All datetimes handled by the engine are naive UTC. Remote timestamps are
normalized to that form on the way in.
"""

from __future__ import annotations

from datetime import UTC, datetime

EPOCH = datetime(1970, 1, 1)


def utcnow() -> datetime:
    """Return the current time as a naive UTC datetime."""
    return datetime.now(UTC).replace(tzinfo=None)


def to_naive_utc(value: datetime) -> datetime:
    """Convert an aware datetime to naive UTC; naive values pass through."""
    if value.tzinfo is None:
        return value
    return value.astimezone(UTC).replace(tzinfo=None)


def from_epoch_millis(millis: float) -> datetime:
    """Convert milliseconds since the Unix epoch to a naive UTC datetime."""
    return datetime.fromtimestamp(millis / 1000.0, tz=UTC).replace(tzinfo=None)


def millis_since(start: float, now: float) -> int:
    """Elapsed milliseconds between two ``time.monotonic()`` readings."""
    return int(round((now - start) * 1000))
