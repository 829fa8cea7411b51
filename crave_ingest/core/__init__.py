from crave_ingest.core.types import (
    ArchiveSource,
    Codec,
    ContentType,
    codec_for_path,
    default_source_id,
    infer_content_type,
)

__all__ = [
    "ArchiveSource",
    "Codec",
    "ContentType",
    "codec_for_path",
    "default_source_id",
    "infer_content_type",
]
