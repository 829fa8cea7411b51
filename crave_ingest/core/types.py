"""Archive source types shared by every pipeline stage."""

from __future__ import annotations

import re
from enum import StrEnum
from pathlib import PurePosixPath

from pydantic import BaseModel, ConfigDict, field_validator


class ContentType(StrEnum):
    POSTS = "posts"
    COMMENTS = "comments"


class Codec(StrEnum):
    ZSTD = "zstd"
    GZIP = "gzip"
    BZ2 = "bz2"
    XZ = "xz"
    PLAIN = "plain"


_SUFFIX_CODECS: dict[str, Codec] = {
    ".zst": Codec.ZSTD,
    ".zstd": Codec.ZSTD,
    ".gz": Codec.GZIP,
    ".bz2": Codec.BZ2,
    ".xz": Codec.XZ,
    ".lzma": Codec.XZ,
}

_RECORD_SUFFIXES = {".json", ".jsonl", ".ndjson"}

# Pushshift dump names: RS_2024-01.zst (submissions), RC_2024-01.zst (comments)
_PUSHSHIFT_NAME = re.compile(r"^(RS|RC)_\d{4}-\d{2}", re.IGNORECASE)


def codec_for_path(uri: str) -> Codec:
    """Pick a codec from the file suffix; unknown suffixes are plain text."""
    return _SUFFIX_CODECS.get(PurePosixPath(uri).suffix.lower(), Codec.PLAIN)


def infer_content_type(uri: str) -> ContentType | None:
    """Infer posts/comments from a Pushshift file name, or ``None``."""
    m = _PUSHSHIFT_NAME.match(PurePosixPath(uri).name)
    if not m:
        return None
    return ContentType.POSTS if m.group(1).upper() == "RS" else ContentType.COMMENTS


def default_source_id(uri: str) -> str:
    """``RC_2024-01.zst`` -> ``RC_2024-01``; ``dump.jsonl.gz`` -> ``dump``."""
    path = PurePosixPath(uri)
    name = path.name
    for _ in range(2):
        suffix = PurePosixPath(name).suffix.lower()
        if suffix in _SUFFIX_CODECS or suffix in _RECORD_SUFFIXES:
            name = name[: -len(suffix)]
    return name or path.name


class ArchiveSource(BaseModel):
    """One compressed archive to ingest.  Never mutated once a run starts."""

    model_config = ConfigDict(frozen=True)

    source_id: str
    uri: str
    content_type: ContentType
    codec: Codec

    @field_validator("source_id")
    @classmethod
    def _safe_source_id(cls, value: str) -> str:
        if not value or "/" in value or "\\" in value or value in {".", ".."}:
            raise ValueError(f"invalid source_id: {value!r}")
        return value

    @classmethod
    def from_uri(
        cls,
        uri: str,
        content_type: ContentType | str | None = None,
        *,
        source_id: str | None = None,
        codec: Codec | str | None = None,
    ) -> ArchiveSource:
        """Build a source, inferring id, codec and content type from *uri*."""
        resolved_type = content_type or infer_content_type(uri)
        if resolved_type is None:
            raise ValueError(
                f"Cannot infer content type from {uri!r}; "
                f"pass one of {[t.value for t in ContentType]}"
            )
        return cls(
            source_id=source_id or default_source_id(uri),
            uri=uri,
            content_type=ContentType(resolved_type),
            codec=Codec(codec) if codec else codec_for_path(uri),
        )

    @property
    def seekable(self) -> bool:
        """Only uncompressed sources can resume by seeking."""
        return self.codec is Codec.PLAIN
