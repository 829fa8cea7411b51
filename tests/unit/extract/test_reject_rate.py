from __future__ import annotations

import pytest

from crave_ingest.exceptions import ExtractionDegraded
from crave_ingest.extract.extractor import RejectRateTracker


def test_window_over_threshold_raises():
    tracker = RejectRateTracker(threshold=0.5, window=10, min_sample=5)
    for accepted in [True] * 4 + [False] * 5:
        tracker.record(accepted)
    with pytest.raises(ExtractionDegraded) as exc_info:
        tracker.record(False)
    assert exc_info.value.rejected == 6
    assert exc_info.value.seen == 10
    assert exc_info.value.kind == "ExtractionDegraded"


def test_exactly_at_threshold_is_tolerated():
    tracker = RejectRateTracker(threshold=0.5, window=10, min_sample=5)
    for accepted in [True, False] * 5:
        tracker.record(accepted)


def test_windows_are_independent():
    tracker = RejectRateTracker(threshold=0.5, window=4, min_sample=1)
    # Each window of 4 has 2 rejects: never strictly over half
    for _ in range(10):
        for accepted in (False, False, True, True):
            tracker.record(accepted)


def test_close_window_judges_partial_window():
    tracker = RejectRateTracker(threshold=0.5, window=100, min_sample=3)
    for _ in range(3):
        tracker.record(False)
    with pytest.raises(ExtractionDegraded):
        tracker.close_window()


def test_small_trailing_window_not_judged():
    tracker = RejectRateTracker(threshold=0.5, window=100, min_sample=10)
    tracker.record(False)
    tracker.record(False)
    tracker.close_window()


def test_close_window_resets_counts():
    tracker = RejectRateTracker(threshold=0.5, window=100, min_sample=2)
    tracker.record(True)
    tracker.record(True)
    tracker.close_window()
    tracker.record(True)
    tracker.record(False)
    tracker.close_window()


def test_min_sample_capped_at_window():
    tracker = RejectRateTracker(threshold=0.5, window=2, min_sample=50)
    assert tracker.min_sample == 2
    tracker.record(False)
    with pytest.raises(ExtractionDegraded):
        tracker.record(False)


@pytest.mark.parametrize(("threshold", "window"), [(-0.1, 10), (1.5, 10), (0.5, 0)])
def test_invalid_arguments(threshold: float, window: int):
    with pytest.raises(ValueError):
        RejectRateTracker(threshold=threshold, window=window)
