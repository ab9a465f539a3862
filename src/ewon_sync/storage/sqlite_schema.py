"""SQLite schema definition for checkpoint and history storage."""

from __future__ import annotations

import logging
import sqlite3
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import aiosqlite

logger = logging.getLogger(__name__)

# Schema version for migrations
SCHEMA_VERSION = 1

# ── Migrations ──────────────────────────────────────────────────────
# Each entry maps (from_version -> to_version) with a list of SQL statements.
# Migrations run sequentially in initialize() when db version < SCHEMA_VERSION.

MIGRATIONS: dict[tuple[int, int], list[str]] = {}


async def run_migrations(conn: aiosqlite.Connection, current_version: int) -> int:
    """Apply all pending migrations from current_version to SCHEMA_VERSION.

    Returns the final schema version after all migrations.
    """
    version = current_version

    while version < SCHEMA_VERSION:
        next_version = version + 1
        for sql in MIGRATIONS.get((version, next_version), []):
            try:
                await conn.execute(sql)
            except sqlite3.OperationalError as e:
                # Column may already exist (partial migration or manual fix)
                if "duplicate column" in str(e).lower() or "already exists" in str(e).lower():
                    logger.debug("Migration already applied: %s", e)
                else:
                    logger.warning("Migration statement failed: %s: %s", sql[:80], e)
        version = next_version

    await conn.execute("UPDATE schema_version SET version = ?", (SCHEMA_VERSION,))
    await conn.commit()

    return version


SCHEMA = """
-- Schema version tracking
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY
);

-- Historical sync checkpoint, one row per deployment key
CREATE TABLE IF NOT EXISTS sync_checkpoints (
    key TEXT PRIMARY KEY,
    transaction_id INTEGER NOT NULL DEFAULT 0,
    last_local_sync TEXT NOT NULL,
    last_remote_sync TEXT NOT NULL,
    last_history_timestamp TEXT,
    updated_at TEXT NOT NULL
);

-- Historical samples; replayed batches overwrite instead of duplicating
CREATE TABLE IF NOT EXISTS tag_history (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    provider TEXT NOT NULL,
    path TEXT NOT NULL,
    data_type TEXT NOT NULL,
    value TEXT,  -- JSON
    quality TEXT NOT NULL,
    timestamp TEXT NOT NULL,
    interpolation TEXT NOT NULL DEFAULT 'discrete',
    UNIQUE (provider, path, timestamp)
);
CREATE INDEX IF NOT EXISTS idx_tag_history_path_ts ON tag_history(provider, path, timestamp);
"""
