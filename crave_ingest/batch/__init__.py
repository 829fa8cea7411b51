from crave_ingest.batch.accumulator import BatchAccumulator
from crave_ingest.batch.models import Batch

__all__ = [
    "Batch",
    "BatchAccumulator",
]
