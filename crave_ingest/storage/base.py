from __future__ import annotations

from abc import ABC, abstractmethod
from typing import BinaryIO


class StorageBackend(ABC):
    """Where archives are read from and where checkpoints and batches land.

    Archives are read through :meth:`open_stream`; checkpoints and
    delivered batches are written through :meth:`write`, which must be
    atomic (readers never observe a half-written key).
    """

    @abstractmethod
    def write(self, key: str, data: bytes) -> None:
        """Atomically replace the contents of *key* with *data*."""
        ...

    @abstractmethod
    def read(self, key: str) -> bytes: ...

    @abstractmethod
    def open_stream(self, key: str) -> BinaryIO:
        """Binary handle for reading an archive without loading it whole."""
        ...

    @abstractmethod
    def size(self, key: str) -> int:
        """Size of the stored object in bytes."""
        ...

    @abstractmethod
    def list_keys(self, prefix: str) -> list[str]:
        """Sorted keys under *prefix*; in-progress writes are not listed."""
        ...

    @abstractmethod
    def exists(self, key: str) -> bool: ...

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove *key*.  Missing keys are not an error."""
        ...

    @abstractmethod
    def resolve_uri(self, key: str) -> str:
        """URI for *key* that can be shown to users or passed to other tools."""
        ...
