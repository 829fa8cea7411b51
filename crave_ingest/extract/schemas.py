"""Pydantic schemas for raw Pushshift archive lines."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

# Placeholders Reddit writes in place of a removed account
DELETED_AUTHORS = frozenset({"[deleted]", "[removed]", ""})


class PushshiftBaseModel(BaseModel):
    """Base for raw dump records.

    Unknown keys are ignored (dumps carry ~100 fields we never read).
    ``author`` must be present but may be null; deleted-account
    placeholders are normalised to ``None``.
    """

    model_config = ConfigDict(extra="ignore")

    id: str = Field(min_length=1)
    author: str | None
    created_utc: float
    subreddit: str | None = None
    score: int = 0
    permalink: str | None = None

    @field_validator("id")
    @classmethod
    def _strip_id(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("id must not be blank")
        return value

    @field_validator("author")
    @classmethod
    def _normalise_author(cls, value: str | None) -> str | None:
        if value is None or value.strip() in DELETED_AUTHORS:
            return None
        return value

    @field_validator("score", mode="before")
    @classmethod
    def _coerce_score(cls, value: Any) -> Any:
        if value is None:
            return 0
        if isinstance(value, float):
            return int(value)
        return value


# ---------------------------------------------------------------------------
# Raw archive schemas
# ---------------------------------------------------------------------------


class PushshiftSubmission(PushshiftBaseModel):
    """One line of an ``RS_*`` dump."""

    title: str = ""
    selftext: str | None = ""
    url: str | None = None
    num_comments: int = 0
    over_18: bool = False


class PushshiftComment(PushshiftBaseModel):
    """One line of an ``RC_*`` dump."""

    body: str | None = ""
    link_id: str | None = None
    parent_id: str | None = None

    @model_validator(mode="after")
    def _require_parent_reference(self) -> PushshiftComment:
        if not (self.parent_id or self.link_id):
            raise ValueError("comment has no parent_id or link_id")
        return self
