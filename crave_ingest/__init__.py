from crave_ingest.batch import Batch, BatchAccumulator
from crave_ingest.checkpoint import (
    Checkpoint,
    CheckpointStatus,
    CheckpointStore,
    FileCheckpointStore,
    InMemoryCheckpointStore,
    SqlCheckpointStore,
)
from crave_ingest.config import IngestConfig, parse_config
from crave_ingest.coordinator import (
    BatchAck,
    BatchConsumer,
    CallbackConsumer,
    Coordinator,
    IngestProgress,
    IngestResult,
    IngestStatus,
    JsonlBatchWriter,
    run_coordinator,
    run_sources,
)
from crave_ingest.core.types import ArchiveSource, Codec, ContentType
from crave_ingest.exceptions import (
    Cancelled,
    CheckpointError,
    CheckpointRegression,
    ConfigError,
    ConsumerFailed,
    CorruptArchive,
    ExtractionDegraded,
    HandoffTimeout,
    IngestError,
    LineTooLong,
    ResourceExhausted,
    TruncatedArchive,
)
from crave_ingest.extract import RecordExtractor, RedditComment, RedditPost, RejectedRecord
from crave_ingest.monitor import ResourceMonitor, ResourceSample
from crave_ingest.storage import DiskStorage, StorageBackend
from crave_ingest.stream import DecompressionStream, LineReader, RawRecord

__all__ = [
    "ArchiveSource",
    "Batch",
    "BatchAccumulator",
    "BatchAck",
    "BatchConsumer",
    "CallbackConsumer",
    "Cancelled",
    "Checkpoint",
    "CheckpointError",
    "CheckpointRegression",
    "CheckpointStatus",
    "CheckpointStore",
    "Codec",
    "ConfigError",
    "ConsumerFailed",
    "ContentType",
    "Coordinator",
    "CorruptArchive",
    "DecompressionStream",
    "DiskStorage",
    "ExtractionDegraded",
    "FileCheckpointStore",
    "HandoffTimeout",
    "InMemoryCheckpointStore",
    "IngestConfig",
    "IngestError",
    "IngestProgress",
    "IngestResult",
    "IngestStatus",
    "JsonlBatchWriter",
    "LineReader",
    "LineTooLong",
    "RawRecord",
    "RecordExtractor",
    "RedditComment",
    "RedditPost",
    "RejectedRecord",
    "ResourceExhausted",
    "ResourceMonitor",
    "ResourceSample",
    "SqlCheckpointStore",
    "StorageBackend",
    "TruncatedArchive",
    "parse_config",
    "run_coordinator",
    "run_sources",
]
