"""Data structures exchanged between the transport, the engine and the stores."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any


class TypeClass(StrEnum):
    """Broad class of a data type, used when casting numeric values."""

    STRING = "string"
    FLOAT = "float"
    INTEGRAL = "integral"


class DataType(StrEnum):
    """Local data type of a tag."""

    STRING = "string"
    INTEGER = "integer"
    FLOAT = "float"
    BOOLEAN = "boolean"
    DATETIME = "datetime"

    @property
    def type_class(self) -> TypeClass:
        if self is DataType.STRING:
            return TypeClass.STRING
        if self is DataType.FLOAT:
            return TypeClass.FLOAT
        return TypeClass.INTEGRAL


class Quality(StrEnum):
    """Two-valued data quality."""

    GOOD = "good"
    BAD = "bad"


class InterpolationMode(StrEnum):
    """How a historian should interpolate between stored samples."""

    ANALOG_COMPRESSED = "analog_compressed"
    DISCRETE = "discrete"


@dataclass(frozen=True)
class DeviceRecord:
    """Summary of a remote device as returned by the device listing.

    Attributes:
        id: Unique remote device id
        name: Device name, root of the device's tag namespace
        last_sync_at: Device-side time of its last upload (None if unknown)
    """

    id: int
    name: str
    last_sync_at: datetime | None = None


@dataclass(frozen=True)
class DataPoint:
    """One historical observation of a remote tag."""

    value: Any
    date: str | None
    quality: str | None = None


@dataclass(frozen=True)
class TagData:
    """A remote tag with its current value and optional history."""

    id: int
    name: str
    data_type: str | None
    value: Any
    quality: str | None = None
    history: tuple[DataPoint, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class DeviceData:
    """All tags of one device, from either a device fetch or a feed batch."""

    id: int
    name: str
    last_sync_at: datetime | None = None
    tags: tuple[TagData, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class SyncBatch:
    """One response of the remote incremental-change feed."""

    transaction_id: int
    more_data_available: bool = False
    devices: tuple[DeviceData, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class NormalizedValue:
    """A value coerced to its local data type, with quality and timestamp."""

    value: Any
    quality: Quality
    timestamp: datetime


@dataclass(frozen=True)
class HistoricalSample:
    """A normalized value bound to a local tag path, ready for a historian."""

    path: str
    data_type: DataType
    value: NormalizedValue
    interpolation: InterpolationMode = InterpolationMode.DISCRETE

    @property
    def timestamp(self) -> datetime:
        return self.value.timestamp


# ── Live snapshot values ─────────────────────────────────────────────


@dataclass(frozen=True)
class EmptyValue:
    """A live tag reported with an empty payload."""


@dataclass(frozen=True)
class TextValue:
    """A live tag reported as a quoted string."""

    text: str


@dataclass(frozen=True)
class NumberValue:
    """A live tag reported as an unquoted number."""

    number: float


LiveValue = EmptyValue | TextValue | NumberValue
