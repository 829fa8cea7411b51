from __future__ import annotations

import pytest
from pydantic import ValidationError

from crave_ingest.core.types import (
    ArchiveSource,
    Codec,
    ContentType,
    codec_for_path,
    default_source_id,
    infer_content_type,
)


@pytest.mark.parametrize(
    ("uri", "codec"),
    [
        ("RC_2024-01.zst", Codec.ZSTD),
        ("dump.jsonl.gz", Codec.GZIP),
        ("x.BZ2", Codec.BZ2),
        ("x.xz", Codec.XZ),
        ("x.ndjson", Codec.PLAIN),
        ("no_suffix", Codec.PLAIN),
    ],
)
def test_codec_for_path(uri: str, codec: Codec):
    assert codec_for_path(uri) is codec


@pytest.mark.parametrize(
    ("uri", "expected"),
    [
        ("/data/RS_2023-12.zst", ContentType.POSTS),
        ("rc_2024-01.zst", ContentType.COMMENTS),
        ("wallstreetbets_comments.zst", None),
    ],
)
def test_infer_content_type(uri: str, expected):
    assert infer_content_type(uri) == expected


@pytest.mark.parametrize(
    ("uri", "source_id"),
    [
        ("/a/b/RC_2024-01.zst", "RC_2024-01"),
        ("dump.jsonl.gz", "dump"),
        ("plain.ndjson", "plain"),
        ("RS_2024-01", "RS_2024-01"),
    ],
)
def test_default_source_id(uri: str, source_id: str):
    assert default_source_id(uri) == source_id


def test_from_uri_infers_everything():
    source = ArchiveSource.from_uri("/dumps/RC_2024-01.zst")
    assert source.source_id == "RC_2024-01"
    assert source.content_type is ContentType.COMMENTS
    assert source.codec is Codec.ZSTD
    assert not source.seekable


def test_from_uri_explicit_overrides():
    source = ArchiveSource.from_uri(
        "custom.txt", "posts", source_id="mine", codec="plain"
    )
    assert (source.source_id, source.content_type, source.codec) == (
        "mine",
        ContentType.POSTS,
        Codec.PLAIN,
    )
    assert source.seekable


def test_from_uri_requires_content_type_when_not_inferable():
    with pytest.raises(ValueError):
        ArchiveSource.from_uri("wallstreetbets_comments.zst")


@pytest.mark.parametrize("bad", ["", "a/b", "..", "a\\b"])
def test_source_id_must_be_a_safe_key(bad: str):
    with pytest.raises(ValidationError):
        ArchiveSource(source_id=bad, uri="x", content_type="posts", codec="zstd")


def test_source_is_frozen():
    source = ArchiveSource.from_uri("RS_2024-01.zst")
    with pytest.raises(ValidationError):
        source.uri = "other"  # type: ignore[misc]
