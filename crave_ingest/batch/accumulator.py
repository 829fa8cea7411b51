"""Batch accumulator: extracted items -> bounded batches."""

from __future__ import annotations

from crave_ingest.batch.models import Batch
from crave_ingest.extract.models import RedditComment, RedditPost


class BatchAccumulator:
    """Groups items into batches of at most ``batch_size`` items and
    ``max_batch_bytes`` bytes, whichever limit is hit first.

    When the next item would push the pending batch over
    ``max_batch_bytes`` the pending batch is closed first and the item
    opens the next one.  :meth:`flush` emits the final partial batch.
    """

    def __init__(
        self,
        source_id: str,
        batch_size: int,
        max_batch_bytes: int | None = None,
        *,
        first_batch_id: int = 1,
    ) -> None:
        if batch_size <= 0:
            raise ValueError("batch_size must be positive")
        if max_batch_bytes is not None and max_batch_bytes <= 0:
            raise ValueError("max_batch_bytes must be positive")
        self.source_id = source_id
        self.batch_size = batch_size
        self.max_batch_bytes = max_batch_bytes
        self._next_batch_id = first_batch_id
        self._items: list[RedditPost | RedditComment] = []
        self._bytes = 0
        self._cursor = 0
        self._records = 0

    @property
    def pending(self) -> int:
        return len(self._items)

    @property
    def next_batch_id(self) -> int:
        return self._next_batch_id

    def _close(self) -> Batch:
        batch = Batch(
            source_id=self.source_id,
            batch_id=self._next_batch_id,
            items=tuple(self._items),
            cursor=self._cursor,
            records_processed=self._records,
            total_bytes=self._bytes,
        )
        self._next_batch_id += 1
        self._items = []
        self._bytes = 0
        return batch

    def add(
        self,
        item: RedditPost | RedditComment,
        cursor: int,
        records_processed: int,
    ) -> list[Batch]:
        """Add *item*, returning any batches closed as a result.

        *cursor* / *records_processed* are the stream position just past
        the item's line.
        """
        if (
            self.max_batch_bytes is not None
            and item.size_bytes > self.max_batch_bytes
        ):
            raise ValueError(
                f"item {item.id} is {item.size_bytes} bytes, "
                f"larger than max_batch_bytes={self.max_batch_bytes}"
            )
        closed: list[Batch] = []
        if (
            self.max_batch_bytes is not None
            and self._items
            and self._bytes + item.size_bytes > self.max_batch_bytes
        ):
            closed.append(self._close())

        self._items.append(item)
        self._bytes += item.size_bytes
        self._cursor = cursor
        self._records = records_processed

        if len(self._items) >= self.batch_size:
            closed.append(self._close())
        return closed

    def flush(self, cursor: int, records_processed: int) -> Batch | None:
        """Close the final partial batch at the end of the stream.

        The batch's position is moved to *cursor* so that trailing
        rejected or skipped lines are covered by its checkpoint.
        """
        if not self._items:
            return None
        self._cursor = max(self._cursor, cursor)
        self._records = max(self._records, records_processed)
        return self._close()
