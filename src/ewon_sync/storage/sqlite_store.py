"""SQLite storage backend for checkpoints and tag history."""

from __future__ import annotations

import logging
from pathlib import Path

import aiosqlite

from ewon_sync.storage.base import CheckpointPersistence, HistorianSink
from ewon_sync.storage.sqlite_checkpoint import SQLiteCheckpointMixin
from ewon_sync.storage.sqlite_history import SQLiteHistoryMixin
from ewon_sync.storage.sqlite_schema import SCHEMA, SCHEMA_VERSION, run_migrations

logger = logging.getLogger(__name__)


class SQLiteStorage(
    SQLiteCheckpointMixin,
    SQLiteHistoryMixin,
    CheckpointPersistence,
    HistorianSink,
):
    """SQLite-based checkpoint persistence and historian sink.

    Every write is committed before the call returns, so a committed
    checkpoint survives a crash right after it.
    """

    def __init__(self, db_path: str | Path) -> None:
        self._db_path = Path(db_path).resolve()
        self._conn: aiosqlite.Connection | None = None

    @property
    def db_path(self) -> Path:
        return self._db_path

    async def initialize(self) -> None:
        """Initialize database connection and schema.

        For existing databases, runs pending migrations first, then applies
        the full schema (CREATE ... IF NOT EXISTS).
        """
        self._db_path.parent.mkdir(parents=True, exist_ok=True)

        self._conn = await aiosqlite.connect(self._db_path)
        self._conn.row_factory = aiosqlite.Row

        await self._conn.execute("PRAGMA journal_mode=WAL")
        await self._conn.execute("PRAGMA synchronous=FULL")

        # Ensure version table exists so we can read the current version
        await self._conn.execute(
            "CREATE TABLE IF NOT EXISTS schema_version (version INTEGER PRIMARY KEY)"
        )
        await self._conn.commit()

        async with self._conn.execute("SELECT version FROM schema_version") as cursor:
            row = await cursor.fetchone()

        if row is not None and row["version"] < SCHEMA_VERSION:
            await run_migrations(self._conn, row["version"])

        await self._conn.executescript(SCHEMA)

        # Stamp version for brand-new databases
        async with self._conn.execute("SELECT version FROM schema_version") as cursor:
            row = await cursor.fetchone()
            if row is None:
                await self._conn.execute(
                    "INSERT INTO schema_version (version) VALUES (?)", (SCHEMA_VERSION,)
                )
                await self._conn.commit()

        logger.debug("SQLite storage ready at %s", self._db_path)

    async def close(self) -> None:
        """Close database connection."""
        if self._conn:
            await self._conn.close()
            self._conn = None

    async def schema_version(self) -> int:
        conn = self._ensure_conn()
        async with conn.execute("SELECT version FROM schema_version") as cursor:
            row = await cursor.fetchone()
        return row["version"] if row else 0

    def _ensure_conn(self) -> aiosqlite.Connection:
        """Ensure connection is available."""
        if self._conn is None:
            raise RuntimeError("Database not initialized. Call initialize() first.")
        return self._conn
