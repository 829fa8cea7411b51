"""Decompression stream: compressed archive -> lazy byte chunks.

Every codec is wrapped behind the same pull interface (iterate to get
the next chunk, exhaustion means end of stream) so the line reader and
everything after it never see the compression library.
"""

from __future__ import annotations

import bz2
import gzip
import logging
import lzma
import zlib
from collections.abc import Iterator
from typing import BinaryIO

import zstandard as zstd

from crave_ingest.core.types import ArchiveSource, Codec
from crave_ingest.exceptions import CorruptArchive, TruncatedArchive
from crave_ingest.storage.base import StorageBackend

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 256 * 1024

# Pushshift dumps are compressed with --long=31
ZSTD_MAX_WINDOW_SIZE = 2**31

_CORRUPT_ERRORS: tuple[type[BaseException], ...] = (
    zstd.ZstdError,
    gzip.BadGzipFile,
    zlib.error,
    lzma.LZMAError,
    OSError,
)


class _ZstdReader:
    """File-like reader over a zstd stream of one or more frames.

    Each frame is decoded with ``decompressobj``; leftover input after a
    frame ends starts the next one.  Input that runs out inside a frame
    raises :class:`EOFError`.
    """

    def __init__(self, raw: BinaryIO, read_size: int = DEFAULT_CHUNK_SIZE) -> None:
        self._raw = raw
        self._read_size = read_size
        self._dctx = zstd.ZstdDecompressor(max_window_size=ZSTD_MAX_WINDOW_SIZE)
        self._frame: zstd.ZstdDecompressionObj | None = None
        self._buffer = bytearray()
        self._input_done = False
        self._truncated = False

    def _fill(self) -> None:
        data = self._raw.read(self._read_size)
        if not data:
            self._input_done = True
            self._truncated = self._frame is not None and not self._frame.eof
            return
        while data:
            if self._frame is None or self._frame.eof:
                self._frame = self._dctx.decompressobj()
            self._buffer += self._frame.decompress(data)
            data = self._frame.unused_data if self._frame.eof else b""

    def read(self, size: int = -1) -> bytes:
        while not self._input_done and (size < 0 or len(self._buffer) < size):
            self._fill()
        if not self._buffer and self._truncated:
            raise EOFError("zstd input ended in the middle of a frame")
        if size < 0:
            size = len(self._buffer)
        out = bytes(self._buffer[:size])
        del self._buffer[:size]
        return out

    def close(self) -> None:
        self._buffer.clear()
        self._raw.close()


def _decompressing_reader(codec: Codec, raw: BinaryIO, read_size: int) -> BinaryIO:
    if codec is Codec.ZSTD:
        return _ZstdReader(raw, read_size)  # type: ignore[return-value]
    if codec is Codec.GZIP:
        return gzip.GzipFile(fileobj=raw, mode="rb")  # type: ignore[return-value]
    if codec is Codec.BZ2:
        return bz2.BZ2File(raw, mode="rb")  # type: ignore[return-value]
    if codec is Codec.XZ:
        return lzma.LZMAFile(raw, mode="rb")  # type: ignore[return-value]
    return raw


class DecompressionStream:
    """Pull-based chunk iterator over one :class:`ArchiveSource`.

    ``start_offset`` is a position in the *decompressed* stream.  Plain
    sources seek straight to it; compressed sources are decompressed
    from the beginning and the first ``start_offset`` bytes discarded.

    Not restartable: iterate once, then build a new stream.
    """

    def __init__(
        self,
        source: ArchiveSource,
        storage: StorageBackend,
        *,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        start_offset: int = 0,
    ) -> None:
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        if start_offset < 0:
            raise ValueError("start_offset must not be negative")
        self.source = source
        self.chunk_size = chunk_size
        self.start_offset = start_offset
        self.position = start_offset
        """Decompressed offset of the next byte to be yielded."""
        self.raw_position = start_offset if source.seekable else 0
        """Bytes of the underlying archive file consumed so far."""

        self._storage = storage
        self._raw: BinaryIO | None = None
        self._reader: BinaryIO | None = None
        self._started = False

    # -- lifecycle ---------------------------------------------------------

    def _open(self) -> BinaryIO:
        try:
            self._raw = self._storage.open_stream(self.source.uri)
        except OSError as exc:
            raise CorruptArchive(
                self.source.source_id, f"cannot open {self.source.uri}: {exc}"
            ) from exc

        if self.source.seekable:
            self._raw.seek(self.start_offset)
            self._reader = self._raw
        else:
            self._reader = _decompressing_reader(
                self.source.codec, self._raw, self.chunk_size
            )
        return self._reader

    def close(self) -> None:
        for handle in (self._reader, self._raw):
            if handle is None:
                continue
            try:
                handle.close()
            except OSError:
                logger.debug(
                    "[%s] Error closing stream", self.source.source_id, exc_info=True
                )
        self._reader = None
        self._raw = None

    def __enter__(self) -> DecompressionStream:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # -- iteration ---------------------------------------------------------

    def _read(self, reader: BinaryIO, size: int) -> bytes:
        try:
            return reader.read(size)
        except EOFError as exc:
            raise TruncatedArchive(self.source.source_id, str(exc)) from exc
        except _CORRUPT_ERRORS as exc:
            raise CorruptArchive(self.source.source_id, str(exc)) from exc

    def _raw_tell(self) -> int:
        if self._raw is None:
            return self.raw_position
        try:
            return self._raw.tell()
        except (OSError, ValueError):
            return self.raw_position

    def _skip_to_start(self, reader: BinaryIO) -> None:
        remaining = self.start_offset
        while remaining > 0:
            data = self._read(reader, min(self.chunk_size, remaining))
            if not data:
                raise CorruptArchive(
                    self.source.source_id,
                    f"stream ended at offset {self.start_offset - remaining}, "
                    f"before resume offset {self.start_offset}",
                )
            remaining -= len(data)

    def __iter__(self) -> Iterator[bytes]:
        if self._started:
            raise RuntimeError("DecompressionStream can only be iterated once")
        self._started = True

        reader = self._open()
        try:
            if self.start_offset and not self.source.seekable:
                logger.info(
                    "[%s] Re-decompressing to resume offset %d",
                    self.source.source_id,
                    self.start_offset,
                )
                self._skip_to_start(reader)
            while True:
                chunk = self._read(reader, self.chunk_size)
                if not chunk:
                    self.raw_position = self._raw_tell()
                    return
                self.position += len(chunk)
                self.raw_position = self._raw_tell()
                yield chunk
        finally:
            self.close()
