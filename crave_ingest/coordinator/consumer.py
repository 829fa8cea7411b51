"""Downstream batch consumers."""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import StrEnum

from crave_ingest.batch.models import Batch
from crave_ingest.storage.base import StorageBackend

logger = logging.getLogger(__name__)


class AckStatus(StrEnum):
    OK = "ok"
    ERROR = "error"
    FATAL = "fatal"


@dataclass(frozen=True)
class BatchAck:
    """A consumer's verdict on one batch.

    Anything other than ``ok`` stops the run without committing the
    batch, so the next run redelivers it.
    """

    status: AckStatus
    message: str | None = None

    @classmethod
    def ok(cls) -> BatchAck:
        return cls(AckStatus.OK)

    @classmethod
    def error(cls, message: str) -> BatchAck:
        return cls(AckStatus.ERROR, message)

    @classmethod
    def fatal(cls, message: str) -> BatchAck:
        return cls(AckStatus.FATAL, message)

    @property
    def is_ok(self) -> bool:
        return self.status is AckStatus.OK


class BatchConsumer(ABC):
    """Receives closed batches in file order.

    Delivery is at-least-once: a batch whose checkpoint was never
    committed is redelivered on resume, so ``handle`` must tolerate
    seeing the same ``(source_id, batch_id)`` twice.
    """

    @abstractmethod
    async def handle(self, batch: Batch) -> BatchAck: ...


class CallbackConsumer(BatchConsumer):
    """Adapts a plain async callable.

    The callable may return a :class:`BatchAck`, or ``None`` for success.
    A raised exception becomes an ``error`` ack.
    """

    def __init__(self, callback: Callable[[Batch], Awaitable[BatchAck | None]]) -> None:
        self._callback = callback

    async def handle(self, batch: Batch) -> BatchAck:
        try:
            ack = await self._callback(batch)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.error(
                "[%s] Consumer callback raised on batch %d: %s",
                batch.source_id,
                batch.batch_id,
                exc,
                exc_info=True,
            )
            return BatchAck.error(f"{type(exc).__name__}: {exc}")
        return ack if ack is not None else BatchAck.ok()


class JsonlBatchWriter(BatchConsumer):
    """Writes each batch to ``batches/<source_id>/<batch_id>.jsonl``.

    Redelivery overwrites the same key, so it is idempotent.
    """

    def __init__(self, storage: StorageBackend, prefix: str = "batches") -> None:
        self._storage = storage
        self._prefix = prefix.strip("/")

    def key_for(self, batch: Batch) -> str:
        return f"{self._prefix}/{batch.source_id}/{batch.batch_id:06d}.jsonl"

    async def handle(self, batch: Batch) -> BatchAck:
        key = self.key_for(batch)
        try:
            await asyncio.to_thread(self._storage.write, key, batch.to_jsonl())
        except OSError as exc:
            return BatchAck.error(f"write {key} failed: {exc}")
        logger.debug("[%s] Wrote %d items to %s", batch.source_id, len(batch), key)
        return BatchAck.ok()
