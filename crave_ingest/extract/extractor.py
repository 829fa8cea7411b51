"""Record extractor: one :class:`RawRecord` -> typed item or rejection."""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime, timedelta

from pydantic import ValidationError

from crave_ingest.core.types import ContentType
from crave_ingest.exceptions import ExtractionDegraded
from crave_ingest.extract.models import (
    RedditComment,
    RedditPost,
    RejectedRecord,
)
from crave_ingest.extract.schemas import (
    PushshiftBaseModel,
    PushshiftComment,
    PushshiftSubmission,
)
from crave_ingest.stream.lines import RawRecord

logger = logging.getLogger(__name__)

# Timestamps above this threshold are treated as milliseconds (year 2100+)
_MAX_SECONDS_EPOCH = 4_102_444_800  # 2100-01-01 00:00 UTC

# Nothing on Reddit predates its launch
REDDIT_FOUNDED = datetime(2005, 6, 15, tzinfo=UTC)

DEFAULT_MAX_FUTURE_SKEW = timedelta(days=1)

_SCHEMAS: dict[ContentType, type[PushshiftBaseModel]] = {
    ContentType.POSTS: PushshiftSubmission,
    ContentType.COMMENTS: PushshiftComment,
}


def _to_datetime(ts: float) -> datetime:
    """Convert a Unix epoch to datetime, handling ms-vs-s ambiguity."""
    if ts > _MAX_SECONDS_EPOCH:
        ts /= 1000.0
    return datetime.fromtimestamp(ts, tz=UTC)


def _summarise(exc: ValidationError) -> str:
    err = exc.errors()[0]
    loc = ".".join(str(p) for p in err["loc"]) or "record"
    return f"{loc}: {err['msg']}"


class RecordExtractor:
    """Parses and validates one archive line for a given content type.

    ``extract`` never raises on bad input; it returns a
    :class:`RejectedRecord` with the reason instead.  The clock is
    frozen at construction, so the result depends only on the line.
    """

    def __init__(
        self,
        content_type: ContentType | str,
        *,
        now: datetime | None = None,
        max_future_skew: timedelta = DEFAULT_MAX_FUTURE_SKEW,
    ) -> None:
        self.content_type = ContentType(content_type)
        self._schema = _SCHEMAS[self.content_type]
        self._latest_allowed = (now or datetime.now(UTC)) + max_future_skew

    def extract(self, raw: RawRecord) -> RedditPost | RedditComment | RejectedRecord:
        try:
            data = json.loads(raw.text)
        except json.JSONDecodeError as exc:
            return self._reject(raw, f"invalid JSON: {exc.msg}")
        if not isinstance(data, dict):
            return self._reject(raw, f"expected a JSON object, got {type(data).__name__}")

        try:
            record = self._schema.model_validate(data)
        except ValidationError as exc:
            return self._reject(raw, _summarise(exc))

        try:
            created_at = _to_datetime(record.created_utc)
        except (OverflowError, OSError, ValueError):
            return self._reject(raw, f"created_utc out of range: {record.created_utc}")
        if created_at < REDDIT_FOUNDED:
            return self._reject(raw, f"created_utc predates Reddit: {created_at.isoformat()}")
        if created_at > self._latest_allowed:
            return self._reject(raw, f"created_utc in the future: {created_at.isoformat()}")

        common = {
            "id": record.id,
            "author": record.author,
            "created_at": created_at,
            "subreddit": record.subreddit,
            "score": record.score,
            "permalink": record.permalink,
            "sequence": raw.line_number,
            "offset": raw.offset,
            "size_bytes": raw.size,
        }
        if isinstance(record, PushshiftComment):
            return RedditComment(
                **common,
                body=record.body or "",
                parent_id=record.parent_id or record.link_id,
                link_id=record.link_id,
            )
        assert isinstance(record, PushshiftSubmission)
        return RedditPost(
            **common,
            title=record.title,
            selftext=record.selftext or "",
            url=record.url,
            num_comments=record.num_comments,
            over_18=record.over_18,
        )

    @staticmethod
    def _reject(raw: RawRecord, reason: str) -> RejectedRecord:
        return RejectedRecord(offset=raw.offset, line_number=raw.line_number, reason=reason)


class RejectRateTracker:
    """Escalates a run of rejected records into :class:`ExtractionDegraded`.

    Lines are counted in windows of ``window`` lines.  A window is judged
    when it fills up or when the caller closes it (a batch closed, or the
    stream ended).  Windows holding fewer than ``min_sample`` lines are
    not judged, so a single bad trailing line cannot fail a run.
    """

    def __init__(self, threshold: float, window: int, min_sample: int = 10) -> None:
        if not 0.0 <= threshold <= 1.0:
            raise ValueError("threshold must be between 0 and 1")
        if window <= 0:
            raise ValueError("window must be positive")
        self.threshold = threshold
        self.window = window
        self.min_sample = min(max(min_sample, 1), window)
        self._seen = 0
        self._rejected = 0

    def record(self, accepted: bool) -> None:
        self._seen += 1
        if not accepted:
            self._rejected += 1
        if self._seen >= self.window:
            self.close_window()

    def close_window(self) -> None:
        seen, rejected = self._seen, self._rejected
        self._seen = 0
        self._rejected = 0
        if seen < self.min_sample:
            return
        if rejected / seen > self.threshold:
            logger.warning(
                "Reject rate %d/%d exceeds threshold %.2f", rejected, seen, self.threshold
            )
            raise ExtractionDegraded(rejected=rejected, seen=seen, threshold=self.threshold)
