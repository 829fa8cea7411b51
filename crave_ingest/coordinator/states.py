"""State classes for the ingestion coordinator.

The hierarchy controls what the runner does after each transition.

Hierarchy:
    State (ABC)
    ├── CurrentState   → runner waits ``poll_next_countdown`` seconds, then re-advances
    ├── NextState      → runner re-advances immediately
    └── StopState      → runner stops (terminal)

Lifecycle::

    Idle → Initializing → Streaming ⇄ Throttled
                              ↓
               Completed | Failed | Aborted
"""

from __future__ import annotations

from abc import abstractmethod
from datetime import UTC, datetime
from typing import Literal

from pydantic import BaseModel, Field


def _utc_now() -> datetime:
    return datetime.now(UTC)


# ---------------------------------------------------------------------------
# Abstract state bases
# ---------------------------------------------------------------------------


class State:
    """Base marker for all states."""


class CurrentState(State):
    """Polling state: the runner should wait then re-check.

    Subclasses MUST define ``poll_next_countdown`` and include
    a ``poll_count: int = 0`` field.
    """

    poll_count: int = 0

    @property
    @abstractmethod
    def poll_next_countdown(self) -> float:
        """Seconds to wait before the next poll."""

    def increment_poll_count(self) -> CurrentState:
        return self.__class__(
            **{**self.model_dump(), "poll_count": self.poll_count + 1}
        )


class NextState(State):
    """Transition state: the runner should advance immediately."""


class StopState(State):
    """Terminal state: the runner does not reschedule."""


# ---------------------------------------------------------------------------
# Concrete states
# ---------------------------------------------------------------------------


class IdleState(BaseModel, NextState):
    """No source bound yet."""

    status: Literal["IDLE"] = "IDLE"
    timestamp: datetime = Field(default_factory=_utc_now)


class InitializingState(BaseModel, NextState):
    """Loading the checkpoint and opening the archive."""

    status: Literal["INITIALIZING"] = "INITIALIZING"
    timestamp: datetime = Field(default_factory=_utc_now)


class StreamingState(BaseModel, NextState):
    """Pulling batches and handing them to the consumer."""

    status: Literal["STREAMING"] = "STREAMING"
    batches_delivered: int = 0
    timestamp: datetime = Field(default_factory=_utc_now)


class ThrottledState(BaseModel, CurrentState):
    """Paused because resident memory crossed the soft limit.

    Backs off exponentially from ``base_delay`` up to ``max_delay``.
    """

    status: Literal["THROTTLED"] = "THROTTLED"
    poll_count: int = 0
    base_delay: float
    max_delay: float
    resident_memory_bytes: int
    entered_at: datetime = Field(default_factory=_utc_now)

    @property
    def poll_next_countdown(self) -> float:
        return min(self.base_delay * (2**self.poll_count), self.max_delay)


class CompletedState(BaseModel, StopState):
    """Source fully consumed and final checkpoint committed."""

    status: Literal["COMPLETED"] = "COMPLETED"
    completed_at: datetime = Field(default_factory=_utc_now)


class FailedState(BaseModel, StopState):
    """Unrecoverable error; last good checkpoint preserved."""

    status: Literal["FAILED"] = "FAILED"
    error_kind: str
    error_message: str
    previous_status: str
    failed_at: datetime = Field(default_factory=_utc_now)


class AbortedState(BaseModel, StopState):
    """Cancelled or out of memory; last good checkpoint preserved."""

    status: Literal["ABORTED"] = "ABORTED"
    error_kind: str
    error_message: str
    previous_status: str
    aborted_at: datetime = Field(default_factory=_utc_now)


