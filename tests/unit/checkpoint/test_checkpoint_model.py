from __future__ import annotations

from datetime import UTC, datetime

import pytest
from pydantic import ValidationError

from crave_ingest.batch.models import Batch
from crave_ingest.checkpoint.base import check_monotonic
from crave_ingest.checkpoint.models import Checkpoint, CheckpointStatus
from crave_ingest.exceptions import CheckpointRegression


def test_initial_checkpoint():
    cp = Checkpoint.initial("RC_2024-01")
    assert (cp.byte_offset, cp.records_processed, cp.last_batch_id) == (0, 0, 0)
    assert cp.status == CheckpointStatus.IN_PROGRESS
    assert cp.updated_at.tzinfo is UTC


def test_advance_takes_batch_position():
    cp = Checkpoint.initial("s")
    batch = Batch(
        source_id="s", batch_id=3, items=(), cursor=4096, records_processed=30, total_bytes=0
    )
    advanced = cp.advance(batch)
    assert (advanced.byte_offset, advanced.records_processed, advanced.last_batch_id) == (
        4096,
        30,
        3,
    )
    # Original is untouched
    assert cp.byte_offset == 0


def test_with_status_keeps_offsets_unless_given():
    cp = Checkpoint(source_id="s", byte_offset=10, records_processed=2, last_batch_id=1)
    failed = cp.with_status(CheckpointStatus.FAILED)
    assert failed.byte_offset == 10
    done = cp.with_status(CheckpointStatus.COMPLETED, byte_offset=20, records_processed=3)
    assert (done.byte_offset, done.records_processed) == (20, 3)
    assert done.is_completed


def test_checkpoint_is_frozen():
    cp = Checkpoint.initial("s")
    with pytest.raises(ValidationError):
        cp.byte_offset = 5  # type: ignore[misc]


def test_negative_offset_rejected():
    with pytest.raises(ValidationError):
        Checkpoint(source_id="s", byte_offset=-1)


def test_json_round_trip():
    cp = Checkpoint(
        source_id="s",
        byte_offset=1,
        records_processed=1,
        last_batch_id=1,
        status=CheckpointStatus.COMPLETED,
        updated_at=datetime(2024, 1, 1, tzinfo=UTC),
    )
    assert Checkpoint.model_validate_json(cp.model_dump_json()) == cp


@pytest.mark.parametrize(
    "new",
    [
        {"byte_offset": 9, "records_processed": 5, "last_batch_id": 2},
        {"byte_offset": 10, "records_processed": 4, "last_batch_id": 2},
        {"byte_offset": 10, "records_processed": 5, "last_batch_id": 1},
    ],
)
def test_check_monotonic_rejects_any_backward_field(new: dict):
    current = Checkpoint(source_id="s", byte_offset=10, records_processed=5, last_batch_id=2)
    with pytest.raises(CheckpointRegression) as exc_info:
        check_monotonic(current, Checkpoint(source_id="s", **new))
    assert exc_info.value.committed_offset == 10
