from __future__ import annotations

from typing import Any

from crave_ingest.checkpoint.base import CheckpointStore
from crave_ingest.checkpoint.models import Checkpoint


class InMemoryCheckpointStore(CheckpointStore):
    """Checkpoints in a plain dict.  Lost when the process exits."""

    def __init__(self) -> None:
        super().__init__()
        self._checkpoints: dict[str, Checkpoint] = {}

    @classmethod
    def from_config(cls, config: dict[str, Any]) -> InMemoryCheckpointStore:
        return cls()

    async def _read(self, source_id: str) -> Checkpoint | None:
        return self._checkpoints.get(source_id)

    async def _write(self, checkpoint: Checkpoint) -> None:
        self._checkpoints[checkpoint.source_id] = checkpoint

    async def delete(self, source_id: str) -> None:
        self._checkpoints.pop(source_id, None)

    async def list_checkpoints(self) -> list[Checkpoint]:
        return [self._checkpoints[k] for k in sorted(self._checkpoints)]
