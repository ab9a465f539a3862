"""Value coercion — remote raw values to typed, quality-tagged local values.

Every function here is total: malformed input degrades to a safe default
and a logged warning, never an exception. The remote API is loosely typed
(numbers arrive as JSON numbers or strings, live values as untyped text),
so the engine normalizes everything at this boundary.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from ewon_sync.core.models import (
    DataType,
    EmptyValue,
    LiveValue,
    NormalizedValue,
    NumberValue,
    Quality,
    TextValue,
    TypeClass,
)
from ewon_sync.utils.timeutils import EPOCH, from_epoch_millis, to_naive_utc, utcnow

logger = logging.getLogger(__name__)

_ZERO_VALUES: dict[DataType, Any] = {
    DataType.STRING: "",
    DataType.INTEGER: 0,
    DataType.FLOAT: 0.0,
    DataType.BOOLEAN: False,
    DataType.DATETIME: EPOCH,
}

# Remote (Talk2M) data type names → local data types
_REMOTE_TYPES: dict[str, DataType] = {
    "boolean": DataType.BOOLEAN,
    "float": DataType.FLOAT,
    "integer": DataType.INTEGER,
    "dword": DataType.INTEGER,
    "string": DataType.STRING,
}

_TRUE_TOKENS = frozenset({"true", "1", "yes", "on"})
_FALSE_TOKENS = frozenset({"false", "0", "no", "off", ""})

_GOOD_TOKEN = "good"


def zero_value(data_type: DataType) -> Any:
    """Return the safe zero-equivalent of a data type."""
    return _ZERO_VALUES[data_type]


def to_data_type(remote_type: str | None) -> DataType:
    """Map a remote data type name to a local DataType (unknown → STRING)."""
    if not remote_type:
        return DataType.STRING
    data_type = _REMOTE_TYPES.get(remote_type.strip().lower())
    if data_type is None:
        logger.debug("Unknown remote data type %r, treating as string", remote_type)
        return DataType.STRING
    return data_type


def to_quality(token: Any) -> Quality:
    """Map a remote quality token to a Quality. Absent quality means good."""
    if token is None:
        return Quality.GOOD
    return Quality.GOOD if str(token).strip().lower() == _GOOD_TOKEN else Quality.BAD


def to_datetime(raw: Any, default: datetime | None = None) -> datetime:
    """Parse a remote timestamp into a naive UTC datetime.

    Accepts datetimes, ISO 8601 strings (a trailing ``Z`` included) and
    epoch milliseconds. Unparseable input returns ``default`` (the epoch
    when no default is given).
    """
    fallback = default if default is not None else EPOCH
    if raw is None or raw == "":
        return fallback
    try:
        return _parse_datetime(raw)
    except (ValueError, TypeError, OverflowError, OSError):
        logger.warning("Unparseable timestamp %r, using %s", raw, fallback.isoformat())
        return fallback


def coerce_value(raw: Any, data_type: DataType) -> Any:
    """Coerce a raw value to the native type of ``data_type``.

    Numbers are first cast by the type's class (string form, float, or
    truncated integer); everything else goes straight to the per-type
    conversion. ``None`` and failed conversions yield the zero value.
    """
    if raw is None:
        return zero_value(data_type)
    try:
        if _is_number(raw):
            raw = _cast_number(raw, data_type.type_class)
        return _convert(raw, data_type)
    except Exception:
        fallback = zero_value(data_type)
        logger.warning(
            "Cannot coerce %r to %s, using %r", raw, data_type.value, fallback, exc_info=True
        )
        return fallback


def coerce(
    raw: Any,
    data_type: DataType,
    quality: Quality = Quality.GOOD,
    timestamp: datetime | None = None,
) -> NormalizedValue:
    """Coerce a raw remote value into a NormalizedValue. Never raises."""
    return NormalizedValue(
        value=coerce_value(raw, data_type),
        quality=quality,
        timestamp=timestamp or utcnow(),
    )


def parse_live_value(text: str) -> LiveValue:
    """Parse one untyped live-snapshot value.

    Empty text is an EmptyValue, quote-wrapped text a TextValue with the
    quotes stripped, anything else a NumberValue. An unquoted token that is
    not a number is kept as text.
    """
    stripped = text.strip()
    if not stripped:
        return EmptyValue()
    if stripped.startswith('"'):
        if len(stripped) >= 2 and stripped.endswith('"'):
            return TextValue(stripped[1:-1])
        return TextValue(stripped[1:])
    try:
        return NumberValue(float(stripped))
    except ValueError:
        logger.warning("Live value %r is neither quoted nor numeric, keeping as text", text)
        return TextValue(stripped)


def live_value_to_native(value: LiveValue) -> Any:
    """Unwrap a LiveValue into the native value pushed to the live store."""
    if isinstance(value, NumberValue):
        return value.number
    if isinstance(value, TextValue):
        return value.text
    return ""


def classify_live_value(text: str | None) -> Any:
    """Classify a raw live value; a missing tag (None) yields an empty string."""
    if text is None:
        return ""
    return live_value_to_native(parse_live_value(text))


# ── Internals ────────────────────────────────────────────────────────


def _is_number(value: Any) -> bool:
    return isinstance(value, int | float) and not isinstance(value, bool)


def _cast_number(number: int | float, type_class: TypeClass) -> Any:
    if type_class is TypeClass.STRING:
        return str(number)
    if type_class is TypeClass.FLOAT:
        return float(number)
    return int(number)


def _convert(value: Any, data_type: DataType) -> Any:
    if data_type is DataType.STRING:
        return value if isinstance(value, str) else str(value)

    if data_type is DataType.FLOAT:
        if isinstance(value, str):
            return float(value.strip())
        return float(value)

    if data_type is DataType.INTEGER:
        if isinstance(value, datetime):
            return int((to_naive_utc(value) - EPOCH).total_seconds() * 1000)
        if isinstance(value, str):
            return int(float(value.strip()))
        return int(value)

    if data_type is DataType.BOOLEAN:
        if isinstance(value, bool):
            return value
        if _is_number(value):
            return value != 0
        token = str(value).strip().lower()
        if token in _TRUE_TOKENS:
            return True
        if token in _FALSE_TOKENS:
            return False
        return float(token) != 0

    return _parse_datetime(value)


def _parse_datetime(raw: Any) -> datetime:
    if isinstance(raw, datetime):
        return to_naive_utc(raw)
    if _is_number(raw):
        return from_epoch_millis(raw)
    text = str(raw).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return to_naive_utc(datetime.fromisoformat(text))
