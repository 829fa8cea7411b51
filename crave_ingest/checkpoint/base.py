from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from types import TracebackType

from crave_ingest.checkpoint.models import Checkpoint, _utc_now
from crave_ingest.exceptions import CheckpointRegression


def check_monotonic(current: Checkpoint, new: Checkpoint) -> None:
    """Raise :class:`CheckpointRegression` if *new* moves backwards."""
    if (
        new.byte_offset < current.byte_offset
        or new.records_processed < current.records_processed
        or new.last_batch_id < current.last_batch_id
    ):
        raise CheckpointRegression(
            source_id=current.source_id,
            committed_offset=current.byte_offset,
            attempted_offset=new.byte_offset,
        )


class CheckpointStore(ABC):
    """Abstract keyed store of :class:`Checkpoint` values.

    :meth:`commit` is the only write path.  It serialises writers per
    ``source_id``, refuses to move a checkpoint backwards and stamps
    ``updated_at``.  Backends implement the raw ``_read`` / ``_write``.
    """

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}

    def _lock_for(self, source_id: str) -> asyncio.Lock:
        lock = self._locks.get(source_id)
        if lock is None:
            lock = self._locks[source_id] = asyncio.Lock()
        return lock

    # ── Backend hooks ────────────────────────────────────────────────

    @abstractmethod
    async def _read(self, source_id: str) -> Checkpoint | None:
        """Return the stored checkpoint, or ``None``."""
        ...

    @abstractmethod
    async def _write(self, checkpoint: Checkpoint) -> None:
        """Durably replace the stored checkpoint for its source."""
        ...

    @abstractmethod
    async def delete(self, source_id: str) -> None:
        """Forget *source_id* so the next run starts from the beginning."""
        ...

    @abstractmethod
    async def list_checkpoints(self) -> list[Checkpoint]:
        """Return every stored checkpoint, ordered by ``source_id``."""
        ...

    # ── Public API ───────────────────────────────────────────────────

    async def load(self, source_id: str) -> Checkpoint | None:
        """Return the last committed checkpoint, or ``None`` if never started."""
        return await self._read(source_id)

    async def commit(self, checkpoint: Checkpoint) -> Checkpoint:
        """Persist *checkpoint* atomically and return the stored value."""
        async with self._lock_for(checkpoint.source_id):
            current = await self._read(checkpoint.source_id)
            if current is not None:
                check_monotonic(current, checkpoint)
            stamped = checkpoint.model_copy(update={"updated_at": _utc_now()})
            await self._write(stamped)
            return stamped

    async def close(self) -> None:
        """Release any held resources."""

    async def __aenter__(self) -> CheckpointStore:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()
