"""Checkpoint store — durable progress of the historical sync."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING

from ewon_sync.core.checkpoint import CheckpointState

if TYPE_CHECKING:
    from ewon_sync.storage.base import CheckpointPersistence

logger = logging.getLogger(__name__)

# Called with the newly committed state, e.g. to refresh status tags
CommitListener = Callable[[CheckpointState], Awaitable[None]]


class CheckpointStore:
    """Owns the in-memory checkpoint and its durable copy.

    The in-memory state only changes after the persistence layer accepted
    the new state, so a failed write leaves both copies at the previous
    checkpoint and the next cycle replays from there.
    """

    def __init__(
        self,
        persistence: CheckpointPersistence,
        key: str = "default",
        *,
        on_commit: CommitListener | None = None,
    ) -> None:
        self._persistence = persistence
        self._key = key
        self._on_commit = on_commit
        self._state = CheckpointState.initial()
        self._lock = asyncio.Lock()
        self._generation = 0

    @property
    def state(self) -> CheckpointState:
        """Last successfully committed checkpoint."""
        return self._state

    @property
    def generation(self) -> int:
        """Bumped by every reset; commits read under an older one are discarded."""
        return self._generation

    def set_listener(self, listener: CommitListener | None) -> None:
        self._on_commit = listener

    async def load(self) -> CheckpointState:
        """Load the persisted checkpoint, creating a zero state on first run.

        Raises:
            Exception: If the persistence layer cannot be read
        """
        async with self._lock:
            state = await self._persistence.load_checkpoint(self._key)
            if state is None:
                logger.info("Checkpoint '%s' not found, initializing", self._key)
                state = CheckpointState.initial()
                try:
                    await self._persistence.save_checkpoint(self._key, state)
                except Exception:
                    logger.error(
                        "Failed to create checkpoint '%s', continuing from zero state",
                        self._key,
                        exc_info=True,
                    )
            self._state = state

        logger.info(
            "Loaded checkpoint '%s': transaction %d, last local sync %s",
            self._key,
            state.transaction_id,
            state.last_local_sync.isoformat(),
        )
        return state

    async def commit(self, state: CheckpointState, *, generation: int | None = None) -> bool:
        """Durably persist a new checkpoint, then publish it.

        Args:
            state: The checkpoint to persist
            generation: Generation the caller's progress was based on; the
                commit is refused if a reset happened since

        Returns:
            True if persisted, False if refused or the write failed (state unchanged)
        """
        async with self._lock:
            if generation is not None and generation != self._generation:
                logger.warning(
                    "Checkpoint '%s' was reset during the sync; discarding transaction %d",
                    self._key,
                    state.transaction_id,
                )
                return False
            if not await self._save(state):
                return False

        await self._notify(state)
        return True

    async def reset(self) -> bool:
        """Zero the transaction id and timestamps and commit."""
        logger.info("Resetting historical sync checkpoint '%s'", self._key)
        state = CheckpointState.initial()
        async with self._lock:
            self._generation += 1
            if not await self._save(state):
                return False

        await self._notify(state)
        return True

    async def _save(self, state: CheckpointState) -> bool:
        try:
            await self._persistence.save_checkpoint(self._key, state)
        except Exception:
            logger.error(
                "Error saving checkpoint (transaction %d); keeping transaction %d",
                state.transaction_id,
                self._state.transaction_id,
                exc_info=True,
            )
            return False
        self._state = state
        return True

    async def _notify(self, state: CheckpointState) -> None:
        if self._on_commit is not None:
            try:
                await self._on_commit(state)
            except Exception:
                logger.warning("Failed to publish committed checkpoint", exc_info=True)
