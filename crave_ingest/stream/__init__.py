from crave_ingest.stream.codecs import DEFAULT_CHUNK_SIZE, DecompressionStream
from crave_ingest.stream.lines import (
    DEFAULT_MAX_LINE_LENGTH,
    LineEvent,
    LineReader,
    RawRecord,
    SkippedLine,
    iter_lines,
)

__all__ = [
    "DEFAULT_CHUNK_SIZE",
    "DEFAULT_MAX_LINE_LENGTH",
    "DecompressionStream",
    "LineEvent",
    "LineReader",
    "RawRecord",
    "SkippedLine",
    "iter_lines",
]
