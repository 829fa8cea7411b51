from __future__ import annotations

from dataclasses import dataclass

from crave_ingest.extract.models import RedditComment, RedditPost


@dataclass(frozen=True)
class Batch:
    """An ordered, bounded group of items handed to the consumer as one unit.

    ``cursor`` and ``records_processed`` describe the stream position
    just past this batch; committing them is what marks the batch as
    consumed.
    """

    source_id: str
    batch_id: int
    items: tuple[RedditPost | RedditComment, ...]
    cursor: int
    records_processed: int
    total_bytes: int

    def __len__(self) -> int:
        return len(self.items)

    @property
    def first_sequence(self) -> int:
        return self.items[0].sequence

    @property
    def last_sequence(self) -> int:
        return self.items[-1].sequence

    def to_jsonl(self) -> bytes:
        """Serialise the items, one JSON object per line."""
        return b"".join(
            item.model_dump_json().encode("utf-8") + b"\n" for item in self.items
        )
