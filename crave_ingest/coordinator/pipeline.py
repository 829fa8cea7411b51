"""Synchronous stage chain: stream -> lines -> records -> batches."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from dataclasses import dataclass
from datetime import datetime, timedelta

from crave_ingest.batch.accumulator import BatchAccumulator
from crave_ingest.batch.models import Batch
from crave_ingest.checkpoint.models import Checkpoint
from crave_ingest.config import IngestConfig
from crave_ingest.core.types import ArchiveSource
from crave_ingest.exceptions import TruncatedArchive
from crave_ingest.extract.extractor import RecordExtractor, RejectRateTracker
from crave_ingest.extract.models import RejectedRecord
from crave_ingest.storage.base import StorageBackend
from crave_ingest.stream.codecs import DecompressionStream
from crave_ingest.stream.lines import LineEvent, LineReader, SkippedLine

logger = logging.getLogger(__name__)


@dataclass
class RunStats:
    """Per-run counters.  Only lines read in this run are counted."""

    lines_read: int = 0
    records_accepted: int = 0
    records_rejected: int = 0
    blank_lines: int = 0
    lines_too_long: int = 0
    bytes_read: int = 0
    """Decompressed bytes of every line consumed, newlines included."""

    @property
    def records_skipped(self) -> int:
        return self.blank_lines + self.lines_too_long


class IngestPipeline:
    """Pulls :class:`Batch` values out of one archive, one at a time.

    Everything here is blocking; the coordinator calls
    :meth:`next_batch` from a worker thread.  ``position`` and
    ``line_number`` always describe the end of the last line consumed,
    which is where the completed checkpoint lands.
    """

    def __init__(
        self,
        source: ArchiveSource,
        storage: StorageBackend,
        config: IngestConfig,
        *,
        checkpoint: Checkpoint | None = None,
        now: datetime | None = None,
    ) -> None:
        start_offset = checkpoint.byte_offset if checkpoint else 0
        start_line = checkpoint.records_processed if checkpoint else 0
        first_batch_id = checkpoint.last_batch_id + 1 if checkpoint else 1

        self.source = source
        self.stats = RunStats()
        self.position = start_offset
        self.line_number = start_line

        self._start_line = start_line
        self._stream = DecompressionStream(
            source, storage, chunk_size=config.chunk_size, start_offset=start_offset
        )
        self._reader = LineReader(
            config.max_line_length, start_offset=start_offset, start_line=start_line
        )
        self._extractor = RecordExtractor(
            source.content_type,
            now=now,
            max_future_skew=timedelta(seconds=config.max_future_skew_seconds),
        )
        self._tracker = RejectRateTracker(
            config.reject_rate_threshold,
            window=config.batch_size,
            min_sample=config.reject_min_sample,
        )
        self._accumulator = BatchAccumulator(
            source.source_id,
            config.batch_size,
            config.max_batch_bytes,
            first_batch_id=first_batch_id,
        )
        self._batches = self._iter_batches()

    def next_batch(self) -> Batch | None:
        """Return the next closed batch, or ``None`` at end of stream."""
        return next(self._batches, None)

    @property
    def archive_position(self) -> int:
        """Bytes of the archive file read so far (compressed for compressed codecs)."""
        return self._stream.raw_position

    @property
    def archive_start(self) -> int:
        """Archive position this run started reading from."""
        return self._stream.start_offset if self.source.seekable else 0

    def close(self) -> None:
        self._batches.close()
        self._stream.close()

    # -- stages ------------------------------------------------------------

    def _handle(self, event: LineEvent) -> list[Batch]:
        self.position = event.end_offset
        self.line_number = event.line_number
        self.stats.lines_read += 1
        self.stats.bytes_read += event.end_offset - event.offset

        if isinstance(event, SkippedLine):
            if event.reason == "too_long":
                self.stats.lines_too_long += 1
                logger.warning(
                    "[%s] Skipping line %d at offset %d: %d bytes exceeds limit",
                    self.source.source_id,
                    event.line_number,
                    event.offset,
                    event.size,
                )
            else:
                self.stats.blank_lines += 1
            return []

        result = self._extractor.extract(event)
        if isinstance(result, RejectedRecord):
            self.stats.records_rejected += 1
            logger.debug(
                "[%s] Rejected line %d: %s",
                self.source.source_id,
                result.line_number,
                result.reason,
            )
            self._tracker.record(accepted=False)
            return []

        self.stats.records_accepted += 1
        self._tracker.record(accepted=True)
        closed = self._accumulator.add(result, self.position, self.line_number)
        if closed:
            self._tracker.close_window()
        return closed

    def _iter_batches(self) -> Iterator[Batch]:
        try:
            for chunk in self._stream:
                for event in self._reader.feed(chunk):
                    yield from self._handle(event)
        except TruncatedArchive as exc:
            if self.line_number == self._start_line:
                raise
            dropped = self._reader.discard_partial()
            logger.warning(
                "[%s] Archive truncated after line %d, dropped %d trailing bytes: %s",
                self.source.source_id,
                self.line_number,
                dropped,
                exc,
            )
        else:
            for event in self._reader.finish():
                yield from self._handle(event)

        self._tracker.close_window()
        final = self._accumulator.flush(self.position, self.line_number)
        if final is not None:
            yield final
