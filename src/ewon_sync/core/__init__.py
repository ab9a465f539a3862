"""Core data models for ewon-sync."""

from ewon_sync.core.checkpoint import CheckpointState
from ewon_sync.core.models import (
    DataPoint,
    DataType,
    DeviceData,
    DeviceRecord,
    EmptyValue,
    HistoricalSample,
    InterpolationMode,
    LiveValue,
    NormalizedValue,
    NumberValue,
    Quality,
    SyncBatch,
    TagData,
    TextValue,
    TypeClass,
)

__all__ = [
    "CheckpointState",
    "DataPoint",
    "DataType",
    "DeviceData",
    "DeviceRecord",
    "EmptyValue",
    "HistoricalSample",
    "InterpolationMode",
    "LiveValue",
    "NormalizedValue",
    "NumberValue",
    "Quality",
    "SyncBatch",
    "TagData",
    "TextValue",
    "TypeClass",
]
