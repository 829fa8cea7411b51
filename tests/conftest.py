from __future__ import annotations

import bz2
import gzip
import json
import lzma
from collections.abc import Callable, Iterable
from datetime import UTC, datetime
from pathlib import Path

import pytest
import zstandard as zstd

from crave_ingest.core.types import ArchiveSource, Codec, ContentType
from crave_ingest.storage.disk import DiskStorage

# Fixed clock so timestamp validation is deterministic
FIXED_NOW = datetime(2024, 6, 1, tzinfo=UTC)
BASE_CREATED_UTC = 1_700_000_000  # 2023-11-14

_SUFFIXES: dict[Codec, str] = {
    Codec.ZSTD: ".zst",
    Codec.GZIP: ".gz",
    Codec.BZ2: ".bz2",
    Codec.XZ: ".xz",
    Codec.PLAIN: "",
}


def make_post(i: int, **overrides) -> dict:
    """A minimal but realistic ``RS_*`` submission record."""
    record = {
        "id": f"p{i:06d}",
        "author": f"user{i % 97}",
        "created_utc": BASE_CREATED_UTC + i,
        "subreddit": "AskReddit",
        "score": i % 50,
        "title": f"Post number {i}",
        "selftext": "",
        "url": f"https://www.reddit.com/r/AskReddit/comments/p{i:06d}/",
        "permalink": f"/r/AskReddit/comments/p{i:06d}/",
        "num_comments": i % 7,
        "over_18": False,
    }
    record.update(overrides)
    return record


def make_comment(i: int, **overrides) -> dict:
    """A minimal but realistic ``RC_*`` comment record."""
    record = {
        "id": f"c{i:06d}",
        "author": f"user{i % 89}",
        "created_utc": str(BASE_CREATED_UTC + i),
        "subreddit": "AskReddit",
        "score": 1,
        "body": f"Comment body {i}",
        "link_id": "t3_abc123",
        "parent_id": "t3_abc123" if i % 2 else f"t1_c{i - 1:06d}",
    }
    record.update(overrides)
    return record


def to_ndjson(records: Iterable[dict | str]) -> bytes:
    """Serialise records one per line; strings are written verbatim."""
    lines = [r if isinstance(r, str) else json.dumps(r) for r in records]
    return ("\n".join(lines) + "\n").encode("utf-8")


def compress(data: bytes, codec: Codec) -> bytes:
    if codec is Codec.ZSTD:
        return zstd.ZstdCompressor(level=3).compress(data)
    if codec is Codec.GZIP:
        return gzip.compress(data)
    if codec is Codec.BZ2:
        return bz2.compress(data)
    if codec is Codec.XZ:
        return lzma.compress(data)
    return data


ArchiveFactory = Callable[..., ArchiveSource]


@pytest.fixture()
def storage(tmp_path: Path) -> DiskStorage:
    return DiskStorage(str(tmp_path / "archives"))


@pytest.fixture()
def write_archive(storage: DiskStorage) -> ArchiveFactory:
    """Write an archive into ``storage`` and return its :class:`ArchiveSource`.

    ``name`` is the file stem (``RC_2024-01``); the codec suffix is added.
    """

    def _write(
        data: bytes,
        name: str = "RS_2024-01",
        codec: Codec = Codec.ZSTD,
        content_type: ContentType | None = None,
    ) -> ArchiveSource:
        key = f"{name}{_SUFFIXES[codec]}"
        storage.write(key, compress(data, codec))
        return ArchiveSource.from_uri(key, content_type)

    return _write


@pytest.fixture()
def posts_archive(write_archive: ArchiveFactory) -> Callable[[int], ArchiveSource]:
    """``posts_archive(n)`` writes ``n`` valid submissions as ``RS_2024-01.zst``."""

    def _build(n: int, codec: Codec = Codec.ZSTD) -> ArchiveSource:
        return write_archive(to_ndjson(make_post(i) for i in range(1, n + 1)), codec=codec)

    return _build
