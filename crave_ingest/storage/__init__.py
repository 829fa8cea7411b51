from crave_ingest.storage.base import StorageBackend
from crave_ingest.storage.disk import DiskStorage

__all__ = [
    "StorageBackend",
    "DiskStorage",
]
