"""Typed extraction output: the tagged ``RedditPost | RedditComment`` union."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class _ItemBase(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    author: str | None
    """``None`` when the account was deleted."""
    created_at: datetime
    subreddit: str | None = None
    score: int = 0
    permalink: str | None = None

    sequence: int = Field(ge=1)
    """1-based line number in the decompressed archive.

    Strictly increasing within a source and stable across resumed runs.
    """
    offset: int = Field(ge=0)
    size_bytes: int = Field(ge=0)


class RedditPost(_ItemBase):
    kind: Literal["post"] = "post"

    title: str = ""
    selftext: str = ""
    url: str | None = None
    num_comments: int = 0
    over_18: bool = False


class RedditComment(_ItemBase):
    kind: Literal["comment"] = "comment"

    body: str = ""
    parent_id: str
    """Fullname of the parent (``t1_...`` comment or ``t3_...`` post)."""
    link_id: str | None = None


ExtractedItem = Annotated[RedditPost | RedditComment, Field(discriminator="kind")]

extracted_item_adapter: TypeAdapter[RedditPost | RedditComment] = TypeAdapter(
    ExtractedItem
)


@dataclass(frozen=True, slots=True)
class RejectedRecord:
    """A line that failed parsing or validation.  Counted, never raised."""

    offset: int
    line_number: int
    reason: str
