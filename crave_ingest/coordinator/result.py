from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum

from crave_ingest.checkpoint.models import Checkpoint


class IngestStatus(StrEnum):
    COMPLETED = "completed"
    FAILED = "failed"
    ABORTED = "aborted"


@dataclass(frozen=True)
class IngestResult:
    """Outcome of one coordinator run.

    ``total_records`` and ``total_batches`` are cumulative across resumed
    runs (they come from the checkpoint); the ``records_*`` and
    ``batches_delivered`` counters cover this run only.
    """

    source_id: str
    status: IngestStatus
    total_records: int
    total_batches: int
    checkpoint: Checkpoint | None
    error_kind: str | None = None
    reason: str | None = None

    records_accepted: int = 0
    records_rejected: int = 0
    records_skipped: int = 0
    lines_too_long: int = 0
    batches_delivered: int = 0
    bytes_read: int = 0
    """Decompressed bytes consumed in this run."""

    duration_seconds: float = 0.0
    peak_memory_bytes: int = 0

    @property
    def ok(self) -> bool:
        return self.status is IngestStatus.COMPLETED

    @property
    def records_processed(self) -> int:
        """Lines consumed in this run."""
        return self.records_accepted + self.records_rejected + self.records_skipped

    @property
    def throughput(self) -> float:
        """Lines per second in this run."""
        if self.duration_seconds <= 0:
            return 0.0
        return self.records_processed / self.duration_seconds

    @property
    def bytes_per_second(self) -> float:
        if self.duration_seconds <= 0:
            return 0.0
        return self.bytes_read / self.duration_seconds

    def summary(self) -> str:
        text = (
            f"{self.source_id}: {self.status.value}, "
            f"{self.total_records} records in {self.total_batches} batches "
            f"(accepted={self.records_accepted}, rejected={self.records_rejected}, "
            f"skipped={self.records_skipped})"
        )
        if self.error_kind:
            text += f" [{self.error_kind}: {self.reason}]"
        return text
