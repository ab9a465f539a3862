"""SQLite mixin implementing the historian sink."""

from __future__ import annotations

import json
import logging
from collections.abc import Sequence
from datetime import datetime
from typing import TYPE_CHECKING, Any

from ewon_sync.core.models import (
    DataType,
    HistoricalSample,
    InterpolationMode,
    NormalizedValue,
    Quality,
)
from ewon_sync.engine.coercion import coerce_value

if TYPE_CHECKING:
    import aiosqlite

logger = logging.getLogger(__name__)


def _encode_value(value: Any) -> str:
    if isinstance(value, datetime):
        return json.dumps(value.isoformat())
    return json.dumps(value)


def _decode_value(raw: str | None, data_type: DataType) -> Any:
    if raw is None:
        return coerce_value(None, data_type)
    try:
        return coerce_value(json.loads(raw), data_type)
    except (json.JSONDecodeError, TypeError):
        logger.warning("Corrupt value JSON in tag_history: %r", raw)
        return coerce_value(None, data_type)


class SQLiteHistoryMixin:
    """Mixin: store and query historical tag samples."""

    def _ensure_conn(self) -> aiosqlite.Connection:
        raise NotImplementedError

    async def store_batch(self, sink_name: str, samples: Sequence[HistoricalSample]) -> None:
        """Store a batch of samples in one transaction.

        A sample with the same provider, path and timestamp as a stored one
        replaces it, so replaying a batch does not duplicate history.
        """
        if not samples:
            return
        conn = self._ensure_conn()

        rows = [
            (
                sink_name,
                sample.path,
                sample.data_type.value,
                _encode_value(sample.value.value),
                sample.value.quality.value,
                sample.timestamp.isoformat(),
                sample.interpolation.value,
            )
            for sample in samples
        ]
        try:
            await conn.executemany(
                """INSERT OR REPLACE INTO tag_history
                   (provider, path, data_type, value, quality, timestamp, interpolation)
                   VALUES (?, ?, ?, ?, ?, ?, ?)""",
                rows,
            )
            await conn.commit()
        except Exception:
            await conn.rollback()
            raise

    async def query_history(
        self,
        path: str,
        *,
        provider: str | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
        limit: int = 1000,
    ) -> list[HistoricalSample]:
        """Return samples of one tag path in ascending time order.

        Args:
            path: Local tag path
            provider: Restrict to one history provider
            start: Inclusive lower time bound
            end: Exclusive upper time bound
            limit: Maximum number of samples
        """
        conn = self._ensure_conn()

        query = """SELECT path, data_type, value, quality, timestamp, interpolation
                   FROM tag_history WHERE path = ?"""
        params: list[Any] = [path]
        if provider is not None:
            query += " AND provider = ?"
            params.append(provider)
        if start is not None:
            query += " AND timestamp >= ?"
            params.append(start.isoformat())
        if end is not None:
            query += " AND timestamp < ?"
            params.append(end.isoformat())
        query += " ORDER BY timestamp ASC LIMIT ?"
        params.append(limit)

        samples: list[HistoricalSample] = []
        async with conn.execute(query, params) as cursor:
            async for row in cursor:
                data_type = DataType(row["data_type"])
                samples.append(
                    HistoricalSample(
                        path=row["path"],
                        data_type=data_type,
                        value=NormalizedValue(
                            value=_decode_value(row["value"], data_type),
                            quality=Quality(row["quality"]),
                            timestamp=datetime.fromisoformat(row["timestamp"]),
                        ),
                        interpolation=InterpolationMode(row["interpolation"]),
                    )
                )
        return samples

    async def count_history(self, provider: str | None = None) -> int:
        conn = self._ensure_conn()
        if provider is None:
            sql, params = "SELECT COUNT(*) AS n FROM tag_history", ()
        else:
            sql, params = "SELECT COUNT(*) AS n FROM tag_history WHERE provider = ?", (provider,)
        async with conn.execute(sql, params) as cursor:
            row = await cursor.fetchone()
        return row["n"] if row else 0
