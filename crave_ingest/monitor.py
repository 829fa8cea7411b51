"""Process memory sampling for throttle / abort decisions."""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import psutil

if TYPE_CHECKING:
    from crave_ingest.config import IngestConfig

logger = logging.getLogger(__name__)

DEFAULT_HISTORY = 256


def rss_probe() -> int:
    """Resident set size of the current process, in bytes."""
    return psutil.Process().memory_info().rss


@dataclass(frozen=True, slots=True)
class ResourceSample:
    timestamp_ms: int
    resident_memory_bytes: int
    pipeline_state: str


class ResourceMonitor:
    """Samples resident memory and compares it with soft / hard limits.

    Samples are kept in a bounded ring and only used for throttling
    decisions and run metrics.  Safe to share between coordinators
    running concurrently: sampling is serialised by a lock and readers
    only ever see a complete, immutable :class:`ResourceSample`.
    """

    def __init__(
        self,
        soft_limit_bytes: int,
        hard_limit_bytes: int,
        *,
        probe: Callable[[], int] = rss_probe,
        sample_interval_seconds: float = 1.0,
        sample_every_batches: int = 1,
        history: int = DEFAULT_HISTORY,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if soft_limit_bytes > hard_limit_bytes:
            raise ValueError("soft limit must not exceed hard limit")
        self.soft_limit_bytes = soft_limit_bytes
        self.hard_limit_bytes = hard_limit_bytes
        self.sample_interval_seconds = sample_interval_seconds
        self.sample_every_batches = max(1, sample_every_batches)
        self._probe = probe
        self._clock = clock
        self._lock = threading.Lock()
        self._samples: deque[ResourceSample] = deque(maxlen=history)
        self._latest: ResourceSample | None = None
        self._last_sampled_at: float | None = None
        self._calls_since_sample = 0
        self._peak = 0

    def sample(self, pipeline_state: str) -> ResourceSample:
        """Take a sample now."""
        with self._lock:
            return self._take(pipeline_state)

    def maybe_sample(self, pipeline_state: str) -> ResourceSample | None:
        """Sample every ``sample_every_batches`` calls or once the interval elapsed.

        Returns the latest sample either way (``None`` before the first).
        """
        with self._lock:
            self._calls_since_sample += 1
            now = self._clock()
            due = (
                self._last_sampled_at is None
                or self._calls_since_sample >= self.sample_every_batches
                or now - self._last_sampled_at >= self.sample_interval_seconds
            )
            if due:
                return self._take(pipeline_state)
            return self._latest

    def _take(self, pipeline_state: str) -> ResourceSample:
        rss = self._probe()
        sample = ResourceSample(
            timestamp_ms=int(time.time() * 1000),
            resident_memory_bytes=rss,
            pipeline_state=pipeline_state,
        )
        self._samples.append(sample)
        self._latest = sample
        self._last_sampled_at = self._clock()
        self._calls_since_sample = 0
        self._peak = max(self._peak, rss)
        if rss >= self.hard_limit_bytes:
            logger.warning(
                "Resident memory %d bytes at or above hard limit %d",
                rss,
                self.hard_limit_bytes,
            )
        elif rss >= self.soft_limit_bytes:
            logger.info(
                "Resident memory %d bytes at or above soft limit %d",
                rss,
                self.soft_limit_bytes,
            )
        return sample

    def latest(self) -> ResourceSample | None:
        return self._latest

    def samples(self) -> list[ResourceSample]:
        with self._lock:
            return list(self._samples)

    @property
    def peak_bytes(self) -> int:
        return self._peak

    def should_throttle(self) -> bool:
        latest = self._latest
        return latest is not None and latest.resident_memory_bytes >= self.soft_limit_bytes

    def should_abort(self) -> bool:
        latest = self._latest
        return latest is not None and latest.resident_memory_bytes >= self.hard_limit_bytes

    @classmethod
    def from_config(cls, config: IngestConfig, **kwargs: Any) -> ResourceMonitor:
        return cls(
            config.memory_soft_limit_bytes,
            config.memory_hard_limit_bytes,
            sample_interval_seconds=config.sample_interval_seconds,
            sample_every_batches=config.sample_every_batches,
            **kwargs,
        )
