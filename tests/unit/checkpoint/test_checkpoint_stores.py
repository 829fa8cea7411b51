from __future__ import annotations

import json
from pathlib import Path

import pytest
from sqlalchemy import create_engine, text

from crave_ingest.checkpoint.disk import FileCheckpointStore
from crave_ingest.checkpoint.memory import InMemoryCheckpointStore
from crave_ingest.checkpoint.models import Checkpoint, CheckpointStatus
from crave_ingest.checkpoint.sql import SqlCheckpointStore
from crave_ingest.exceptions import CheckpointError
from crave_ingest.storage.disk import DiskStorage
from crave_ingest.testing import CheckpointStoreTestKit


class TestInMemoryCheckpointStore(CheckpointStoreTestKit):
    @pytest.fixture()
    def store(self, tmp_path):
        return InMemoryCheckpointStore()


class TestFileCheckpointStore(CheckpointStoreTestKit):
    @pytest.fixture()
    def store(self, tmp_path):
        return FileCheckpointStore(DiskStorage(str(tmp_path / "data")))


class TestSqlCheckpointStoreInMemory(CheckpointStoreTestKit):
    @pytest.fixture()
    def store(self, tmp_path):
        return SqlCheckpointStore("sqlite:///:memory:")


class TestSqlCheckpointStoreOnDisk(CheckpointStoreTestKit):
    @pytest.fixture()
    def store(self, tmp_path):
        return SqlCheckpointStore(f"sqlite:///{tmp_path / 'checkpoints.db'}")


# ── File store specifics ─────────────────────────────────────────────


async def test_file_store_layout_and_format(tmp_path: Path):
    store = FileCheckpointStore(DiskStorage(str(tmp_path)))
    await store.commit(
        Checkpoint(source_id="RC_2024-01", byte_offset=10, records_processed=2, last_batch_id=1)
    )
    path = tmp_path / "checkpoints" / "RC_2024-01.json"
    data = json.loads(path.read_text())
    assert set(data) == {
        "source_id",
        "byte_offset",
        "records_processed",
        "last_batch_id",
        "status",
        "updated_at",
    }
    assert data["status"] == "in_progress"
    # No temp files left behind
    assert [p.name for p in path.parent.iterdir()] == ["RC_2024-01.json"]


async def test_file_store_survives_reopen(tmp_path: Path):
    first = FileCheckpointStore(DiskStorage(str(tmp_path)))
    await first.commit(Checkpoint(source_id="s", byte_offset=77, records_processed=7))
    second = FileCheckpointStore(DiskStorage(str(tmp_path)))
    loaded = await second.load("s")
    assert loaded is not None
    assert loaded.byte_offset == 77


async def test_file_store_corrupt_document(tmp_path: Path):
    storage = DiskStorage(str(tmp_path))
    storage.write("checkpoints/s.json", b"{ half a docu")
    with pytest.raises(CheckpointError):
        await FileCheckpointStore(storage).load("s")


class _FlakyStorage(DiskStorage):
    def __init__(self, base_path: str, failures: int) -> None:
        super().__init__(base_path)
        self.failures = failures
        self.attempts = 0

    def write(self, key: str, data: bytes) -> None:
        self.attempts += 1
        if self.attempts <= self.failures:
            raise OSError("disk hiccup")
        super().write(key, data)


async def test_file_store_retries_transient_write_errors(tmp_path: Path):
    storage = _FlakyStorage(str(tmp_path), failures=2)
    store = FileCheckpointStore(storage)
    await store.commit(Checkpoint(source_id="s", byte_offset=5))
    assert storage.attempts == 3
    loaded = await store.load("s")
    assert loaded is not None and loaded.byte_offset == 5


async def test_file_store_gives_up_after_retries(tmp_path: Path):
    storage = _FlakyStorage(str(tmp_path), failures=100)
    store = FileCheckpointStore(storage)
    with pytest.raises(CheckpointError):
        await store.commit(Checkpoint(source_id="s", byte_offset=5))
    assert await store.load("s") is None


async def test_failed_write_keeps_previous_checkpoint(tmp_path: Path):
    storage = _FlakyStorage(str(tmp_path), failures=0)
    store = FileCheckpointStore(storage)
    await store.commit(Checkpoint(source_id="s", byte_offset=5, records_processed=1))
    storage.failures = 100
    with pytest.raises(CheckpointError):
        await store.commit(Checkpoint(source_id="s", byte_offset=9, records_processed=2))
    loaded = await store.load("s")
    assert loaded is not None and loaded.byte_offset == 5


class _UnreachableStorage(DiskStorage):
    def exists(self, key: str) -> bool:
        raise OSError("stale file handle")

    def delete(self, key: str) -> None:
        raise OSError("stale file handle")

    def list_keys(self, prefix: str) -> list[str]:
        raise OSError("stale file handle")


async def test_file_store_wraps_storage_errors(tmp_path: Path):
    store = FileCheckpointStore(_UnreachableStorage(str(tmp_path)))
    with pytest.raises(CheckpointError, match="stale file handle"):
        await store.load("s")
    with pytest.raises(CheckpointError):
        await store.commit(Checkpoint(source_id="s", byte_offset=5))
    with pytest.raises(CheckpointError):
        await store.delete("s")
    with pytest.raises(CheckpointError):
        await store.list_checkpoints()


# ── SQL store specifics ──────────────────────────────────────────────


async def test_sql_store_persists_across_instances(tmp_path: Path):
    url = f"sqlite:///{tmp_path / 'cp.db'}"
    async with SqlCheckpointStore(url) as store:
        await store.commit(
            Checkpoint(
                source_id="RS_2024-01",
                byte_offset=123,
                records_processed=4,
                last_batch_id=2,
                status=CheckpointStatus.ABORTED,
            )
        )
    async with SqlCheckpointStore(url) as reopened:
        loaded = await reopened.load("RS_2024-01")
    assert loaded is not None
    assert loaded.status == CheckpointStatus.ABORTED
    assert loaded.updated_at.tzinfo is not None


def test_sql_store_from_config(tmp_path: Path):
    store = SqlCheckpointStore.from_config({"path": str(tmp_path / "x.db")})
    assert isinstance(store, SqlCheckpointStore)
    assert (tmp_path / "x.db").exists()


async def test_sql_store_wraps_database_errors(tmp_path: Path):
    url = f"sqlite:///{tmp_path / 'cp.db'}"
    store = SqlCheckpointStore(url)
    await store.commit(Checkpoint(source_id="s", byte_offset=5))
    other = create_engine(url)
    with other.begin() as conn:
        conn.execute(text("DROP TABLE ingest_checkpoints"))
    other.dispose()

    with pytest.raises(CheckpointError, match="ingest_checkpoints"):
        await store.load("s")
    with pytest.raises(CheckpointError):
        await store.commit(Checkpoint(source_id="t", byte_offset=1))
    with pytest.raises(CheckpointError):
        await store.delete("s")
    with pytest.raises(CheckpointError):
        await store.list_checkpoints()
    await store.close()
