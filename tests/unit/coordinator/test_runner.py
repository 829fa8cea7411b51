from __future__ import annotations

import os
import signal

import pytest

from crave_ingest.batch.models import Batch
from crave_ingest.checkpoint.disk import FileCheckpointStore
from crave_ingest.checkpoint.memory import InMemoryCheckpointStore
from crave_ingest.checkpoint.models import Checkpoint, CheckpointStatus
from crave_ingest.config import IngestConfig
from crave_ingest.coordinator.consumer import CallbackConsumer, JsonlBatchWriter
from crave_ingest.coordinator.result import IngestStatus
from crave_ingest.coordinator.runner import run_sources
from crave_ingest.core.types import ArchiveSource, Codec
from crave_ingest.monitor import ResourceMonitor
from crave_ingest.storage.disk import DiskStorage
from tests.conftest import make_comment, make_post, to_ndjson


async def test_sources_run_concurrently_and_independently(write_archive, storage, tmp_path):
    posts = write_archive(to_ndjson(make_post(i) for i in range(1, 121)), name="RS_2024-01")
    comments = write_archive(
        to_ndjson(make_comment(i) for i in range(1, 81)), name="RC_2024-01", codec=Codec.GZIP
    )
    storage.write("RS_2024-02.xz", b"garbage, not xz")
    broken = ArchiveSource.from_uri("RS_2024-02.xz")

    output = DiskStorage(str(tmp_path / "out"))
    checkpoints = FileCheckpointStore(output)
    monitor = ResourceMonitor(10**12, 10**12, probe=lambda: 1)

    results = await run_sources(
        [posts, comments, broken],
        JsonlBatchWriter(output),
        checkpoints,
        storage=storage,
        config=IngestConfig(batch_size=50),
        monitor=monitor,
    )

    assert [r.source_id for r in results] == ["RS_2024-01", "RC_2024-01", "RS_2024-02"]
    assert [r.status for r in results] == [
        IngestStatus.COMPLETED,
        IngestStatus.COMPLETED,
        IngestStatus.FAILED,
    ]
    assert (results[0].total_records, results[0].total_batches) == (120, 3)
    assert (results[1].total_records, results[1].total_batches) == (80, 2)
    assert results[2].error_kind == "CorruptArchive"

    assert len(output.list_keys("batches/RS_2024-01")) == 3
    assert len(output.list_keys("batches/RC_2024-01")) == 2
    listed = await checkpoints.list_checkpoints()
    assert [c.source_id for c in listed] == ["RC_2024-01", "RS_2024-01", "RS_2024-02"]
    assert len(monitor.samples()) > 0


async def test_duplicate_source_ids_rejected(posts_archive, storage, tmp_path):
    source = posts_archive(3)
    with pytest.raises(ValueError):
        await run_sources(
            [source, source],
            JsonlBatchWriter(DiskStorage(str(tmp_path / "out"))),
            FileCheckpointStore(DiskStorage(str(tmp_path / "out"))),
            storage=storage,
        )


async def _accept(batch: Batch) -> None:
    return None


class _FailingReadsFor(InMemoryCheckpointStore):
    def __init__(self, source_id: str) -> None:
        super().__init__()
        self.source_id = source_id

    async def _read(self, source_id: str) -> Checkpoint | None:
        if source_id == self.source_id:
            raise OSError("checkpoint volume went away")
        return await super()._read(source_id)


async def test_store_failure_does_not_sink_sibling_sources(write_archive, storage):
    first = write_archive(to_ndjson(make_post(i) for i in range(1, 31)), name="RS_2024-01")
    second = write_archive(to_ndjson(make_post(i) for i in range(1, 31)), name="RS_2024-02")

    results = await run_sources(
        [first, second],
        CallbackConsumer(_accept),
        _FailingReadsFor("RS_2024-02"),
        storage=storage,
        config=IngestConfig(batch_size=10),
        monitor=ResourceMonitor(10**12, 10**12, probe=lambda: 1),
    )

    assert [r.status for r in results] == [IngestStatus.COMPLETED, IngestStatus.FAILED]
    assert results[0].total_records == 30
    assert "checkpoint volume went away" in results[1].reason


async def test_sigint_cancels_gracefully(posts_archive, storage):
    source = posts_archive(500)
    store = InMemoryCheckpointStore()
    delivered: list[int] = []

    async def interrupt_once(batch: Batch) -> None:
        if not delivered:
            os.kill(os.getpid(), signal.SIGINT)
        delivered.append(batch.batch_id)

    [result] = await run_sources(
        [source],
        CallbackConsumer(interrupt_once),
        store,
        storage=storage,
        config=IngestConfig(batch_size=10),
        monitor=ResourceMonitor(10**12, 10**12, probe=lambda: 1),
        handle_signals=True,
    )

    assert result.status is IngestStatus.ABORTED
    assert result.error_kind == "Cancelled"
    assert "SIGINT" in result.reason
    assert 1 <= result.batches_delivered < 50
    checkpoint = await store.load(source.source_id)
    assert checkpoint is not None
    assert checkpoint.status == CheckpointStatus.ABORTED
    assert checkpoint.last_batch_id == result.batches_delivered == len(delivered)
