"""SQLite mixin for sync checkpoint persistence."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING

from ewon_sync.core.checkpoint import CheckpointState
from ewon_sync.utils.timeutils import EPOCH, utcnow

if TYPE_CHECKING:
    import aiosqlite

logger = logging.getLogger(__name__)


def _parse_timestamp(raw: str | None, key: str, column: str) -> datetime:
    if not raw:
        return EPOCH
    try:
        return datetime.fromisoformat(raw)
    except (ValueError, TypeError):
        logger.warning("Corrupt %s in sync_checkpoints for %s: %r", column, key, raw)
        return EPOCH


class SQLiteCheckpointMixin:
    """Mixin: persist and retrieve the historical sync checkpoint."""

    def _ensure_conn(self) -> aiosqlite.Connection:
        raise NotImplementedError

    async def load_checkpoint(self, key: str) -> CheckpointState | None:
        """Load the checkpoint stored under key.

        Args:
            key: Deployment key (one checkpoint per connector instance)

        Returns:
            CheckpointState if found, None otherwise
        """
        conn = self._ensure_conn()

        async with conn.execute(
            """SELECT transaction_id, last_local_sync, last_remote_sync,
                      last_history_timestamp
               FROM sync_checkpoints
               WHERE key = ?""",
            (key,),
        ) as cursor:
            row = await cursor.fetchone()

        if row is None:
            return None

        return CheckpointState(
            transaction_id=row["transaction_id"] or 0,
            last_local_sync=_parse_timestamp(row["last_local_sync"], key, "last_local_sync"),
            last_remote_sync=_parse_timestamp(row["last_remote_sync"], key, "last_remote_sync"),
            last_history_timestamp=_parse_timestamp(
                row["last_history_timestamp"], key, "last_history_timestamp"
            ),
        )

    async def save_checkpoint(self, key: str, state: CheckpointState) -> None:
        """Persist the checkpoint under key and commit before returning.

        Uses INSERT OR REPLACE for upsert semantics.
        """
        conn = self._ensure_conn()

        await conn.execute(
            """INSERT OR REPLACE INTO sync_checkpoints
               (key, transaction_id, last_local_sync, last_remote_sync,
                last_history_timestamp, updated_at)
               VALUES (?, ?, ?, ?, ?, ?)""",
            (
                key,
                state.transaction_id,
                state.last_local_sync.isoformat(),
                state.last_remote_sync.isoformat(),
                state.last_history_timestamp.isoformat(),
                utcnow().isoformat(),
            ),
        )
        await conn.commit()

    async def delete_checkpoint(self, key: str) -> bool:
        """Remove the checkpoint stored under key.

        Returns:
            True if a row was deleted
        """
        conn = self._ensure_conn()
        cursor = await conn.execute("DELETE FROM sync_checkpoints WHERE key = ?", (key,))
        await conn.commit()
        return (cursor.rowcount or 0) > 0
