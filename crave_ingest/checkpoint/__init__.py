from crave_ingest.checkpoint.base import CheckpointStore, check_monotonic
from crave_ingest.checkpoint.disk import FileCheckpointStore
from crave_ingest.checkpoint.memory import InMemoryCheckpointStore
from crave_ingest.checkpoint.models import Checkpoint, CheckpointStatus
from crave_ingest.checkpoint.sql import SqlCheckpointStore

__all__ = [
    "Checkpoint",
    "CheckpointStatus",
    "CheckpointStore",
    "FileCheckpointStore",
    "InMemoryCheckpointStore",
    "SqlCheckpointStore",
    "check_monotonic",
]
