from crave_ingest.coordinator.consumer import (
    AckStatus,
    BatchAck,
    BatchConsumer,
    CallbackConsumer,
    JsonlBatchWriter,
)
from crave_ingest.coordinator.manager import (
    Coordinator,
    IngestProgress,
    ScheduleInstruction,
)
from crave_ingest.coordinator.pipeline import IngestPipeline, RunStats
from crave_ingest.coordinator.result import IngestResult, IngestStatus
from crave_ingest.coordinator.runner import (
    cancel_on_signals,
    run_coordinator,
    run_sources,
)

__all__ = [
    "AckStatus",
    "BatchAck",
    "BatchConsumer",
    "CallbackConsumer",
    "Coordinator",
    "IngestPipeline",
    "IngestProgress",
    "IngestResult",
    "IngestStatus",
    "JsonlBatchWriter",
    "RunStats",
    "ScheduleInstruction",
    "cancel_on_signals",
    "run_coordinator",
    "run_sources",
]
