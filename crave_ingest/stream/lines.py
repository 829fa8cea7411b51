"""Line reader: byte chunks -> complete newline-delimited lines."""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from typing import Literal

DEFAULT_MAX_LINE_LENGTH = 4 * 1024 * 1024


@dataclass(frozen=True, slots=True)
class RawRecord:
    """One decoded line and where it sits in the decompressed stream."""

    text: str
    offset: int
    """Offset of the first byte of the line."""
    end_offset: int
    """Offset just past the line's newline (or end of stream)."""
    line_number: int
    """1-based line number in the decompressed stream."""
    size: int
    """Line length in bytes, newline excluded."""


@dataclass(frozen=True, slots=True)
class SkippedLine:
    """A line the reader dropped without decoding.

    ``reason`` is ``"too_long"`` for lines over ``max_line_length``
    (the LineTooLong case) or ``"blank"`` for whitespace-only lines.
    """

    reason: Literal["too_long", "blank"]
    offset: int
    end_offset: int
    line_number: int
    size: int


LineEvent = RawRecord | SkippedLine


class LineReader:
    """Splits a chunked byte stream into lines, carrying fragments across chunks.

    Output is independent of how the input was chunked.  A line longer
    than ``max_line_length`` is never buffered whole: once the carry-over
    passes the limit the reader switches to discarding until the next
    newline and reports a single ``SkippedLine("too_long", ...)``.
    """

    def __init__(
        self,
        max_line_length: int = DEFAULT_MAX_LINE_LENGTH,
        *,
        start_offset: int = 0,
        start_line: int = 0,
    ) -> None:
        if max_line_length <= 0:
            raise ValueError("max_line_length must be positive")
        self.max_line_length = max_line_length
        self._consumed = start_offset
        self._line_start = start_offset
        self._line_number = start_line
        self._carry = bytearray()
        self._discarding = False
        self._discarded = 0
        self._finished = False

    @property
    def consumed(self) -> int:
        """Total decompressed bytes fed so far (including ``start_offset``)."""
        return self._consumed

    @property
    def line_number(self) -> int:
        """Number of the last line emitted."""
        return self._line_number

    def _emit(self, data: bytes, end_offset: int, length: int) -> LineEvent:
        self._line_number += 1
        start = self._line_start
        self._line_start = end_offset
        if self._discarding or length > self.max_line_length:
            self._discarding = False
            self._discarded = 0
            return SkippedLine("too_long", start, end_offset, self._line_number, length)
        if data.endswith(b"\r"):
            data = data[:-1]
        if not data.strip():
            return SkippedLine("blank", start, end_offset, self._line_number, len(data))
        return RawRecord(
            text=data.decode("utf-8", errors="replace"),
            offset=start,
            end_offset=end_offset,
            line_number=self._line_number,
            size=len(data),
        )

    def _hold(self, fragment: bytes) -> None:
        if self._discarding:
            self._discarded += len(fragment)
            return
        self._carry += fragment
        if len(self._carry) > self.max_line_length:
            self._discarding = True
            self._discarded = len(self._carry)
            self._carry.clear()

    def feed(self, chunk: bytes) -> Iterator[LineEvent]:
        """Yield every line completed by *chunk*."""
        if self._finished:
            raise RuntimeError("LineReader.feed() called after finish()")
        base = self._consumed
        self._consumed += len(chunk)
        pos = 0
        while True:
            nl = chunk.find(b"\n", pos)
            if nl == -1:
                self._hold(chunk[pos:])
                return
            piece = chunk[pos:nl]
            end_offset = base + nl + 1
            if self._discarding:
                length = self._discarded + len(piece)
                data = b""
            else:
                data = bytes(self._carry) + piece if self._carry else piece
                length = len(data)
            self._carry.clear()
            yield self._emit(data, end_offset, length)
            pos = nl + 1

    def finish(self) -> Iterator[LineEvent]:
        """Flush the trailing line that had no newline, if any."""
        if self._finished:
            return
        self._finished = True
        if self._discarding:
            yield self._emit(b"", self._consumed, self._discarded)
        elif self._carry:
            data = bytes(self._carry)
            self._carry.clear()
            yield self._emit(data, self._consumed, len(data))

    def discard_partial(self) -> int:
        """Drop the unterminated fragment (used on a truncated archive).

        Returns the number of bytes dropped.
        """
        dropped = self._discarded if self._discarding else len(self._carry)
        self._carry.clear()
        self._discarding = False
        self._discarded = 0
        self._finished = True
        return dropped


def iter_lines(
    chunks: Iterable[bytes],
    max_line_length: int = DEFAULT_MAX_LINE_LENGTH,
) -> Iterator[LineEvent]:
    """Convenience wrapper: run a whole chunk iterable through a reader."""
    reader = LineReader(max_line_length)
    for chunk in chunks:
        yield from reader.feed(chunk)
    yield from reader.finish()
