from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any, TypeVar

from pydantic import ValidationError
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from crave_ingest.checkpoint.base import CheckpointStore
from crave_ingest.checkpoint.models import Checkpoint
from crave_ingest.exceptions import CheckpointError
from crave_ingest.storage.base import StorageBackend
from crave_ingest.storage.disk import DiskStorage

logger = logging.getLogger(__name__)

T = TypeVar("T")

CHECKPOINT_PREFIX = "checkpoints"


class FileCheckpointStore(CheckpointStore):
    """One JSON document per source under ``checkpoints/<source_id>.json``.

    Atomicity comes from :meth:`StorageBackend.write`; transient
    ``OSError`` on write is retried.  Any ``OSError`` that reaches the
    caller is wrapped in :class:`CheckpointError`.
    """

    def __init__(self, storage: StorageBackend, prefix: str = CHECKPOINT_PREFIX) -> None:
        super().__init__()
        self._storage = storage
        self._prefix = prefix.strip("/")

    @classmethod
    def from_config(cls, config: dict[str, Any]) -> FileCheckpointStore:
        base_path = config.get("base_path")
        if not base_path:
            raise ValueError("file checkpoint store requires 'base_path'")
        return cls(DiskStorage(base_path), prefix=config.get("prefix", CHECKPOINT_PREFIX))

    def _key(self, source_id: str) -> str:
        return f"{self._prefix}/{source_id}.json"

    def _parse(self, key: str, data: bytes) -> Checkpoint:
        try:
            return Checkpoint.model_validate_json(data)
        except ValidationError as exc:
            raise CheckpointError(f"Unreadable checkpoint {key}: {exc}") from exc

    def _read_sync(self, source_id: str) -> Checkpoint | None:
        key = self._key(source_id)
        if not self._storage.exists(key):
            return None
        return self._parse(key, self._storage.read(key))

    @retry(
        retry=retry_if_exception_type(OSError),
        stop=stop_after_attempt(3),
        wait=wait_exponential_jitter(initial=0.05, max=1, jitter=0.1),
        reraise=True,
    )
    def _write_sync(self, key: str, data: bytes) -> None:
        self._storage.write(key, data)

    async def _io(
        self, action: str, target: str, fn: Callable[..., T], *args: Any
    ) -> T:
        try:
            return await asyncio.to_thread(fn, *args)
        except OSError as exc:
            logger.error("[%s] Checkpoint %s failed: %s", target, action, exc)
            raise CheckpointError(f"Failed to {action} checkpoint {target}: {exc}") from exc

    async def _read(self, source_id: str) -> Checkpoint | None:
        return await self._io("read", source_id, self._read_sync, source_id)

    async def _write(self, checkpoint: Checkpoint) -> None:
        key = self._key(checkpoint.source_id)
        data = checkpoint.model_dump_json(indent=2).encode("utf-8")
        await self._io("write", checkpoint.source_id, self._write_sync, key, data)

    async def delete(self, source_id: str) -> None:
        await self._io("delete", source_id, self._storage.delete, self._key(source_id))

    def _list_sync(self) -> list[Checkpoint]:
        return [
            self._parse(key, self._storage.read(key))
            for key in self._storage.list_keys(self._prefix)
            if key.endswith(".json")
        ]

    async def list_checkpoints(self) -> list[Checkpoint]:
        checkpoints = await self._io("list", self._prefix, self._list_sync)
        return sorted(checkpoints, key=lambda c: c.source_id)
