"""Abstract interfaces for the stores the sync engine writes into."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Sequence
from datetime import datetime
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from ewon_sync.core.checkpoint import CheckpointState
    from ewon_sync.core.models import DataType, HistoricalSample, Quality

# Invoked with (path, written_value); returns the quality of the write.
WriteHandler = Callable[[str, Any], Awaitable["Quality"]]


class LiveTagStore(ABC):
    """
    Abstract interface for the local live tag store.

    Holds the current value of every tag path and dispatches external
    writes to the handler bound to a path.
    """

    @abstractmethod
    async def register_tag_path(self, path: str, data_type: DataType) -> None:
        """
        Declare a tag path and its data type.

        Re-declaring an existing path updates its data type and keeps the value.
        """
        ...

    @abstractmethod
    async def set_value(
        self,
        path: str,
        value: Any,
        quality: Quality,
        timestamp: datetime | None = None,
    ) -> None:
        """Set the current value of a tag path."""
        ...

    @abstractmethod
    async def register_write_handler(self, path: str, handler: WriteHandler) -> None:
        """Bind the handler invoked when the tag at path is written externally."""
        ...

    @abstractmethod
    async def write(self, path: str, value: Any) -> Quality:
        """
        Perform an external write to a tag path.

        Runs the handler bound to the path, if any, and returns its quality.
        Paths without a handler are set directly.
        """
        ...

    @abstractmethod
    async def get_value(self, path: str) -> tuple[Any, Quality, datetime] | None:
        """Return (value, quality, timestamp) for a path, or None if unknown."""
        ...

    @abstractmethod
    async def list_paths(self) -> list[str]:
        """Return all registered tag paths, sorted."""
        ...


class HistorianSink(ABC):
    """Destination for batched historical samples."""

    @abstractmethod
    async def store_batch(self, sink_name: str, samples: Sequence[HistoricalSample]) -> None:
        """
        Store an ordered batch of historical samples.

        Args:
            sink_name: Name of the history provider to store into
            samples: Samples ordered by ascending timestamp

        Raises:
            Exception: Any storage failure; the caller treats it as not stored
        """
        ...


class CheckpointPersistence(ABC):
    """Durable key/record store for the sync checkpoint."""

    @abstractmethod
    async def load_checkpoint(self, key: str) -> CheckpointState | None:
        """Load the checkpoint stored under key, or None if absent."""
        ...

    @abstractmethod
    async def save_checkpoint(self, key: str, state: CheckpointState) -> None:
        """Durably persist the checkpoint under key before returning."""
        ...
