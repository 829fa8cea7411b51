from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import BinaryIO

from crave_ingest.storage.base import StorageBackend

_TMP_SUFFIX = ".tmp"


class DiskStorage(StorageBackend):
    """Local filesystem storage rooted at ``base_path``.

    Writes go to a temporary file in the target directory, are fsynced,
    then renamed over the key, so a crash mid-write leaves either the old
    contents or the new ones.  Absolute keys bypass the root, which lets
    archives outside the data directory be read directly.
    """

    def __init__(self, base_path: str) -> None:
        self.root = Path(base_path)
        self.root.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        return self.root / key

    def write(self, key: str, data: bytes) -> None:
        target = self._path(key)
        target.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            dir=target.parent, prefix=f".{target.name}.", suffix=_TMP_SUFFIX
        )
        try:
            with os.fdopen(fd, "wb") as fh:
                fh.write(data)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_name, target)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def read(self, key: str) -> bytes:
        with self.open_stream(key) as fh:
            return fh.read()

    def open_stream(self, key: str) -> BinaryIO:
        return self._path(key).open("rb")

    def size(self, key: str) -> int:
        return self._path(key).stat().st_size

    def list_keys(self, prefix: str) -> list[str]:
        base = self._path(prefix)
        if base.is_file():
            return [prefix]
        if not base.is_dir():
            return []
        return sorted(
            path.relative_to(self.root).as_posix()
            for path in base.rglob("*")
            if path.is_file() and not path.name.endswith(_TMP_SUFFIX)
        )

    def exists(self, key: str) -> bool:
        return self._path(key).exists()

    def delete(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)

    def resolve_uri(self, key: str) -> str:
        return self._path(key).resolve().as_uri()
