from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field

if TYPE_CHECKING:
    from crave_ingest.batch.models import Batch


def _utc_now() -> datetime:
    return datetime.now(UTC)


class CheckpointStatus(StrEnum):
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    ABORTED = "aborted"


class Checkpoint(BaseModel):
    """Durable progress marker for one archive source.

    Immutable: advancing produces a new value, which the coordinator
    passes to :meth:`CheckpointStore.commit`.
    """

    model_config = ConfigDict(frozen=True)

    source_id: str
    byte_offset: int = Field(default=0, ge=0)
    """Decompressed offset just past the last acknowledged batch."""
    records_processed: int = Field(default=0, ge=0)
    """Lines consumed up to ``byte_offset`` (accepted, rejected and skipped)."""
    last_batch_id: int = Field(default=0, ge=0)
    status: CheckpointStatus = CheckpointStatus.IN_PROGRESS
    updated_at: datetime = Field(default_factory=_utc_now)

    @classmethod
    def initial(cls, source_id: str) -> Checkpoint:
        return cls(source_id=source_id)

    def advance(self, batch: Batch) -> Checkpoint:
        """Position after *batch* has been acknowledged."""
        return self.model_copy(
            update={
                "byte_offset": batch.cursor,
                "records_processed": batch.records_processed,
                "last_batch_id": batch.batch_id,
                "status": CheckpointStatus.IN_PROGRESS,
                "updated_at": _utc_now(),
            }
        )

    def with_status(
        self,
        status: CheckpointStatus,
        *,
        byte_offset: int | None = None,
        records_processed: int | None = None,
    ) -> Checkpoint:
        update: dict = {"status": status, "updated_at": _utc_now()}
        if byte_offset is not None:
            update["byte_offset"] = byte_offset
        if records_processed is not None:
            update["records_processed"] = records_processed
        return self.model_copy(update=update)

    @property
    def is_completed(self) -> bool:
        return self.status is CheckpointStatus.COMPLETED
