"""Coordinator: the per-source ingestion state machine.

The coordinator never sleeps or loops on its own.  ``try_advance_state``
performs one transition and returns a ``ScheduleInstruction`` that the
runner interprets (see :func:`~crave_ingest.coordinator.runner.run_coordinator`).
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime

from crave_ingest.batch.models import Batch
from crave_ingest.checkpoint.base import CheckpointStore
from crave_ingest.checkpoint.models import Checkpoint, CheckpointStatus
from crave_ingest.config import IngestConfig
from crave_ingest.coordinator.consumer import BatchConsumer
from crave_ingest.coordinator.pipeline import IngestPipeline
from crave_ingest.coordinator.result import IngestResult, IngestStatus
from crave_ingest.coordinator.states import (
    AbortedState,
    CompletedState,
    CurrentState,
    FailedState,
    IdleState,
    InitializingState,
    NextState,
    State,
    StopState,
    StreamingState,
    ThrottledState,
)
from crave_ingest.core.types import ArchiveSource
from crave_ingest.exceptions import (
    Cancelled,
    ConsumerFailed,
    HandoffTimeout,
    IngestError,
    ResourceExhausted,
)
from crave_ingest.monitor import ResourceMonitor
from crave_ingest.storage.base import StorageBackend

logger = logging.getLogger(__name__)

MAX_POLL_ATTEMPTS = 500

# Error kinds that end a run as Aborted rather than Failed
_ABORT_KINDS = frozenset({Cancelled.kind, ResourceExhausted.kind})


# ---------------------------------------------------------------------------
# Schedule instruction: returned by try_advance_state
# ---------------------------------------------------------------------------


@dataclass
class ScheduleInstruction:
    """What the runner should do after a state transition.

    * ``stop=True``       → terminal, do not reschedule
    * ``countdown=None``  → reschedule immediately
    * ``countdown=N``     → reschedule after N seconds
    """

    stop: bool = False
    countdown: float | None = None


@dataclass(frozen=True)
class IngestProgress:
    """Point-in-time snapshot of a running coordinator."""

    source_id: str
    state: str
    records_processed: int
    """Line number reached in the archive, cumulative across runs."""
    batches_delivered: int
    records_accepted: int
    records_rejected: int
    records_skipped: int
    resident_memory_bytes: int | None
    archive_bytes_read: int = 0
    archive_size_bytes: int | None = None
    completion: float | None = None
    """Fraction of the archive file read, 0.0 to 1.0; ``None`` if the size is unknown."""
    estimated_total_records: int | None = None
    estimated_seconds_remaining: float | None = None


# ---------------------------------------------------------------------------
# Coordinator
# ---------------------------------------------------------------------------


class Coordinator:
    """Drives one :class:`ArchiveSource` from Idle to a terminal state.

    A coordinator runs once.  After Completed, Failed or Aborted it stays
    there; build a new one to retry (it resumes from the checkpoint).
    """

    def __init__(
        self,
        source: ArchiveSource,
        consumer: BatchConsumer,
        checkpoints: CheckpointStore,
        *,
        storage: StorageBackend,
        config: IngestConfig | None = None,
        monitor: ResourceMonitor | None = None,
        now: datetime | None = None,
    ) -> None:
        self.source = source
        self.consumer = consumer
        self.checkpoints = checkpoints
        self.storage = storage
        self.config = config or IngestConfig()
        self.monitor = monitor
        self.state: State = IdleState()
        self.checkpoint: Checkpoint | None = None

        self._now = now
        self._pipeline: IngestPipeline | None = None
        self._cancel_event = asyncio.Event()
        self._cancel_reason = "cancelled by caller"
        self._batches_delivered = 0
        self._started_at: float | None = None
        self._finished_at: float | None = None
        self._result: IngestResult | None = None
        self._archive_size: int | None = None

    @property
    def source_id(self) -> str:
        return self.source.source_id

    @property
    def result(self) -> IngestResult | None:
        """Set once a terminal state is reached."""
        return self._result

    # -- Public control -------------------------------------------------------

    @property
    def cancel_requested(self) -> bool:
        return self._cancel_event.is_set()

    def cancel(self, reason: str = "cancelled by caller") -> None:
        """Request a graceful stop.  Honoured between batches only."""
        if not self._cancel_event.is_set():
            logger.info("[%s] Cancellation requested: %s", self.source_id, reason)
            self._cancel_reason = reason
            self._cancel_event.set()

    def progress(self) -> IngestProgress:
        stats = self._pipeline.stats if self._pipeline else None
        if self._pipeline is not None:
            line_number = self._pipeline.line_number
        else:
            line_number = self.checkpoint.records_processed if self.checkpoint else 0
        latest = self.monitor.latest() if self.monitor else None
        archive_read, completion, eta = self._estimate_completion()
        estimated_total = None
        if completion and line_number:
            estimated_total = round(line_number / completion)
        return IngestProgress(
            source_id=self.source_id,
            state=self.state.status,  # type: ignore[attr-defined]
            records_processed=line_number,
            batches_delivered=self._batches_delivered,
            records_accepted=stats.records_accepted if stats else 0,
            records_rejected=stats.records_rejected if stats else 0,
            records_skipped=stats.records_skipped if stats else 0,
            resident_memory_bytes=latest.resident_memory_bytes if latest else None,
            archive_bytes_read=archive_read,
            archive_size_bytes=self._archive_size,
            completion=completion,
            estimated_total_records=estimated_total,
            estimated_seconds_remaining=eta,
        )

    def _estimate_completion(self) -> tuple[int, float | None, float | None]:
        """(archive bytes read, fraction done, seconds remaining) for this run.

        The remaining time extrapolates this run's read rate over the
        unread part of the archive file.
        """
        if isinstance(self.state, CompletedState):
            return self._archive_size or 0, 1.0, 0.0
        if self._pipeline is None or not self._archive_size:
            return 0, None, None
        position = min(self._pipeline.archive_position, self._archive_size)
        completion = position / self._archive_size
        read_this_run = position - self._pipeline.archive_start
        if self._started_at is None or read_this_run <= 0:
            return position, completion, None
        elapsed = time.monotonic() - self._started_at
        remaining = elapsed * (self._archive_size - position) / read_this_run
        return position, completion, remaining

    async def run(self) -> IngestResult:
        """Drive this coordinator to a terminal state and return the result."""
        from crave_ingest.coordinator.runner import run_coordinator

        return await run_coordinator(self)

    # -- Transitions ----------------------------------------------------------

    async def _transition(self, current_state: State) -> State | None:
        """Return the next state, or ``None`` to stop."""
        match current_state:
            case IdleState():
                logger.info(
                    "[%s] Bound %s (%s, %s)",
                    self.source_id,
                    self.source.uri,
                    self.source.content_type,
                    self.source.codec,
                )
                return InitializingState()
            case InitializingState():
                return await self._initialize()
            case StreamingState():
                return await self._stream()
            case ThrottledState():
                return self._poll_throttle(current_state)
            case StopState():
                return None
        raise ValueError(f"Unknown state: {current_state}")

    async def _initialize(self) -> State:
        self._started_at = time.monotonic()
        checkpoint: Checkpoint | None = None
        if self.config.resume_on_start:
            checkpoint = await self.checkpoints.load(self.source_id)
        else:
            await self.checkpoints.delete(self.source_id)

        if checkpoint is not None and checkpoint.is_completed:
            logger.info(
                "[%s] Already completed (%d records, %d batches); nothing to do",
                self.source_id,
                checkpoint.records_processed,
                checkpoint.last_batch_id,
            )
            self.checkpoint = checkpoint
            return CompletedState()

        if checkpoint is not None:
            logger.info(
                "[%s] Resuming at offset %d (record %d, batch %d)",
                self.source_id,
                checkpoint.byte_offset,
                checkpoint.records_processed + 1,
                checkpoint.last_batch_id + 1,
            )
        else:
            checkpoint = Checkpoint.initial(self.source_id)

        try:
            self._archive_size = await asyncio.to_thread(self.storage.size, self.source.uri)
        except OSError as exc:
            logger.warning("[%s] Archive size unknown: %s", self.source_id, exc)

        self.checkpoint = checkpoint
        self._pipeline = IngestPipeline(
            self.source,
            self.storage,
            self.config,
            checkpoint=checkpoint,
            now=self._now,
        )
        return StreamingState()

    async def _stream(self) -> State:
        assert self._pipeline is not None and self.checkpoint is not None
        if self._cancel_event.is_set():
            raise Cancelled(self._cancel_reason)

        batch = await asyncio.to_thread(self._pipeline.next_batch)
        if batch is None:
            final = self.checkpoint.with_status(
                CheckpointStatus.COMPLETED,
                byte_offset=self._pipeline.position,
                records_processed=self._pipeline.line_number,
            )
            self.checkpoint = await self.checkpoints.commit(final)
            return CompletedState()

        await self._handoff(batch)
        self.checkpoint = await self.checkpoints.commit(self.checkpoint.advance(batch))
        self._batches_delivered += 1
        logger.info(
            "[%s] Committed batch %d (%d items, offset %d)",
            self.source_id,
            batch.batch_id,
            len(batch),
            batch.cursor,
        )

        if self.monitor is not None:
            sample = self.monitor.maybe_sample("STREAMING")
            if self.monitor.should_abort():
                raise ResourceExhausted(
                    sample.resident_memory_bytes if sample else 0,
                    self.monitor.hard_limit_bytes,
                )
            if sample is not None and self.monitor.should_throttle():
                logger.info(
                    "[%s] Throttling at %d bytes resident",
                    self.source_id,
                    sample.resident_memory_bytes,
                )
                return ThrottledState(
                    base_delay=self.config.throttle_base_delay,
                    max_delay=self.config.throttle_max_delay,
                    resident_memory_bytes=sample.resident_memory_bytes,
                )

        return StreamingState(batches_delivered=self._batches_delivered)

    async def _handoff(self, batch: Batch) -> None:
        timeout = self.config.handoff_timeout_seconds
        try:
            ack = await asyncio.wait_for(self.consumer.handle(batch), timeout=timeout)
        except TimeoutError:
            raise HandoffTimeout(batch.batch_id, timeout) from None
        except IngestError:
            raise
        except Exception as exc:
            raise ConsumerFailed(batch.batch_id, f"{type(exc).__name__}: {exc}") from exc
        if not ack.is_ok:
            raise ConsumerFailed(batch.batch_id, f"{ack.status}: {ack.message}")

    def _poll_throttle(self, current: ThrottledState) -> State:
        assert self.monitor is not None
        if self._cancel_event.is_set():
            raise Cancelled(self._cancel_reason)

        sample = self.monitor.sample(current.status)
        if self.monitor.should_abort():
            raise ResourceExhausted(
                sample.resident_memory_bytes, self.monitor.hard_limit_bytes
            )
        if not self.monitor.should_throttle():
            logger.info(
                "[%s] Memory recovered (%d bytes); resuming",
                self.source_id,
                sample.resident_memory_bytes,
            )
            return StreamingState(batches_delivered=self._batches_delivered)
        if current.poll_count + 1 >= self.config.max_throttle_polls:
            logger.warning(
                "[%s] Still above soft limit after %d polls; resuming anyway",
                self.source_id,
                current.poll_count + 1,
            )
            return StreamingState(batches_delivered=self._batches_delivered)
        return current.model_copy(
            update={"resident_memory_bytes": sample.resident_memory_bytes}
        )

    # -- Core loop step -------------------------------------------------------

    async def try_advance_state(self) -> ScheduleInstruction:
        """Advance one step and return what the runner should do next."""
        current_state = self.state
        try:
            new_state = await self._transition(current_state)

            if new_state is None:
                return ScheduleInstruction(stop=True)

            # Polling: same status returned means "still waiting"
            if isinstance(new_state, CurrentState) and type(new_state) is type(
                current_state
            ):
                new_state = new_state.increment_poll_count()
                logger.info(
                    "[%s] Polling (attempt %d)", self.source_id, new_state.poll_count
                )
                if new_state.poll_count >= MAX_POLL_ATTEMPTS:
                    raise RuntimeError(
                        f"Polling exceeded {MAX_POLL_ATTEMPTS} attempts. "
                        f"State: {new_state.status}"
                    )
        except IngestError as exc:
            new_state = self._error_state(exc, current_state)
        except Exception as exc:
            logger.error(
                "[%s] Error advancing state: %s", self.source_id, exc, exc_info=True
            )
            new_state = FailedState(
                error_kind="internal",
                error_message=str(exc),
                previous_status=current_state.status,  # type: ignore[attr-defined]
            )

        self.state = new_state

        if isinstance(new_state, StopState):
            await self._finish(new_state)
            logger.info("[%s] Terminal state: %s", self.source_id, new_state.status)  # type: ignore[attr-defined]
            return ScheduleInstruction(stop=True)

        if isinstance(new_state, CurrentState):
            countdown = new_state.poll_next_countdown
            logger.info("[%s] Poll in %.2fs", self.source_id, countdown)
            return ScheduleInstruction(countdown=countdown)

        if isinstance(new_state, NextState):
            return ScheduleInstruction(countdown=None)

        raise ValueError(f"Unknown state base class for {new_state}")

    def _error_state(self, exc: IngestError, current_state: State) -> State:
        previous = current_state.status  # type: ignore[attr-defined]
        if exc.kind in _ABORT_KINDS:
            logger.warning("[%s] Aborting: %s", self.source_id, exc)
            return AbortedState(
                error_kind=exc.kind, error_message=str(exc), previous_status=previous
            )
        logger.error("[%s] Failing: %s", self.source_id, exc, exc_info=True)
        return FailedState(
            error_kind=exc.kind, error_message=str(exc), previous_status=previous
        )

    # -- Terminal handling ----------------------------------------------------

    async def _finish(self, state: State) -> None:
        self._finished_at = time.monotonic()
        if self._pipeline is not None:
            self._pipeline.close()

        if isinstance(state, (FailedState, AbortedState)) and self.checkpoint is not None:
            status = (
                CheckpointStatus.FAILED
                if isinstance(state, FailedState)
                else CheckpointStatus.ABORTED
            )
            try:
                self.checkpoint = await self.checkpoints.commit(
                    self.checkpoint.with_status(status)
                )
            except Exception as exc:
                logger.error(
                    "[%s] Could not record %s status on checkpoint: %s",
                    self.source_id,
                    status,
                    exc,
                    exc_info=True,
                )

        self._result = self._build_result(state)
        logger.info("[%s] %s", self.source_id, self._result.summary())

    def _build_result(self, state: State) -> IngestResult:
        if isinstance(state, CompletedState):
            status, error_kind, reason = IngestStatus.COMPLETED, None, None
        elif isinstance(state, AbortedState):
            status, error_kind, reason = (
                IngestStatus.ABORTED,
                state.error_kind,
                state.error_message,
            )
        elif isinstance(state, FailedState):
            status, error_kind, reason = (
                IngestStatus.FAILED,
                state.error_kind,
                state.error_message,
            )
        else:
            raise ValueError(f"Not a terminal state: {state}")

        stats = self._pipeline.stats if self._pipeline else None
        duration = 0.0
        if self._started_at is not None and self._finished_at is not None:
            duration = self._finished_at - self._started_at
        checkpoint = self.checkpoint
        return IngestResult(
            source_id=self.source_id,
            status=status,
            total_records=checkpoint.records_processed if checkpoint else 0,
            total_batches=checkpoint.last_batch_id if checkpoint else 0,
            checkpoint=checkpoint,
            error_kind=error_kind,
            reason=reason,
            records_accepted=stats.records_accepted if stats else 0,
            records_rejected=stats.records_rejected if stats else 0,
            records_skipped=stats.records_skipped if stats else 0,
            lines_too_long=stats.lines_too_long if stats else 0,
            bytes_read=stats.bytes_read if stats else 0,
            batches_delivered=self._batches_delivered,
            duration_seconds=duration,
            peak_memory_bytes=self.monitor.peak_bytes if self.monitor else 0,
        )
