"""Custom exceptions for archive ingestion.

Every error carries a stable ``kind`` string.  The coordinator copies it
into :class:`~crave_ingest.coordinator.result.IngestResult.error_kind`
so callers can branch on it without importing the classes.
"""

from __future__ import annotations


class IngestError(Exception):
    """Base class for all ingestion errors."""

    kind: str = "ingest_error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.kind
        super().__init__(self.message)


class ConfigError(IngestError, ValueError):
    kind = "config_error"


# ── Source level ─────────────────────────────────────────────────────


class CorruptArchive(IngestError):
    """The compressed stream could not be decoded."""

    kind = "CorruptArchive"

    def __init__(self, source_id: str, message: str | None = None) -> None:
        self.source_id = source_id
        detail = f": {message}" if message else ""
        super().__init__(f"Corrupt archive {source_id}{detail}")


class TruncatedArchive(CorruptArchive):
    """The compressed stream ended in the middle of a block."""

    kind = "TruncatedArchive"


# ── Record level ─────────────────────────────────────────────────────


class LineTooLong(IngestError):
    """A single line exceeded ``max_line_length``.

    Never raised by the pipeline itself; the line reader reports an
    ``SkippedLine("too_long", ...)`` instead and keeps
    going.  Exposed for callers that want to raise on it.
    """

    kind = "LineTooLong"

    def __init__(self, offset: int, length: int, limit: int) -> None:
        self.offset = offset
        self.length = length
        self.limit = limit
        super().__init__(
            f"Line at offset {offset} is {length} bytes (limit {limit})"
        )


class ExtractionDegraded(IngestError):
    """Too many rejected records in one window: likely a schema mismatch."""

    kind = "ExtractionDegraded"

    def __init__(self, rejected: int, seen: int, threshold: float) -> None:
        self.rejected = rejected
        self.seen = seen
        self.threshold = threshold
        super().__init__(
            f"{rejected}/{seen} records rejected "
            f"(threshold {threshold:.0%}); extraction degraded"
        )


# ── Resources ────────────────────────────────────────────────────────


class ResourceExhausted(IngestError):
    kind = "ResourceExhausted"

    def __init__(self, resident_bytes: int, limit_bytes: int) -> None:
        self.resident_bytes = resident_bytes
        self.limit_bytes = limit_bytes
        super().__init__(
            f"Resident memory {resident_bytes // (1024 * 1024)}MB reached "
            f"hard limit {limit_bytes // (1024 * 1024)}MB"
        )


# ── Consumer handoff ─────────────────────────────────────────────────


class ConsumerFailed(IngestError):
    kind = "ConsumerFailed"

    def __init__(self, batch_id: int, message: str | None = None) -> None:
        self.batch_id = batch_id
        detail = f": {message}" if message else ""
        super().__init__(f"Consumer rejected batch {batch_id}{detail}")


class HandoffTimeout(IngestError):
    kind = "HandoffTimeout"

    def __init__(self, batch_id: int, timeout: float) -> None:
        self.batch_id = batch_id
        self.timeout = timeout
        super().__init__(
            f"Consumer did not acknowledge batch {batch_id} within {timeout}s"
        )


# ── Checkpoints ──────────────────────────────────────────────────────


class CheckpointError(IngestError):
    kind = "CheckpointError"


class CheckpointRegression(CheckpointError):
    """A commit tried to move a checkpoint backwards."""

    kind = "CheckpointRegression"

    def __init__(
        self, source_id: str, committed_offset: int, attempted_offset: int
    ) -> None:
        self.source_id = source_id
        self.committed_offset = committed_offset
        self.attempted_offset = attempted_offset
        IngestError.__init__(
            self,
            f"Checkpoint for {source_id} would regress from offset "
            f"{committed_offset} to {attempted_offset}",
        )


class Cancelled(IngestError):
    """Caller requested cancellation."""

    kind = "Cancelled"
