from crave_ingest.extract.extractor import (
    REDDIT_FOUNDED,
    RecordExtractor,
    RejectRateTracker,
)
from crave_ingest.extract.models import (
    ExtractedItem,
    RedditComment,
    RedditPost,
    RejectedRecord,
    extracted_item_adapter,
)
from crave_ingest.extract.schemas import PushshiftComment, PushshiftSubmission

__all__ = [
    "REDDIT_FOUNDED",
    "ExtractedItem",
    "PushshiftComment",
    "PushshiftSubmission",
    "RecordExtractor",
    "RedditComment",
    "RedditPost",
    "RejectRateTracker",
    "RejectedRecord",
    "extracted_item_adapter",
]
