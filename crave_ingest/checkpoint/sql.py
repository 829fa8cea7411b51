from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any, TypeVar

from sqlalchemy import BigInteger, DateTime, Integer, String, create_engine, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, sessionmaker
from sqlalchemy.pool import StaticPool

from crave_ingest.checkpoint.base import CheckpointStore
from crave_ingest.checkpoint.models import Checkpoint, CheckpointStatus
from crave_ingest.exceptions import CheckpointError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Base(DeclarativeBase):
    pass


class CheckpointRow(Base):
    __tablename__ = "ingest_checkpoints"

    source_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    byte_offset: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    records_processed: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    last_batch_id: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status: Mapped[str] = mapped_column(String(32), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    def to_checkpoint(self) -> Checkpoint:
        updated_at = self.updated_at
        # SQLite drops the tzinfo
        if updated_at.tzinfo is None:
            updated_at = updated_at.replace(tzinfo=UTC)
        return Checkpoint(
            source_id=self.source_id,
            byte_offset=self.byte_offset,
            records_processed=self.records_processed,
            last_batch_id=self.last_batch_id,
            status=CheckpointStatus(self.status),
            updated_at=updated_at,
        )


class SqlCheckpointStore(CheckpointStore):
    """Checkpoints in the ``ingest_checkpoints`` table of any SQLAlchemy URL.

    Each commit is its own transaction.  Blocking database calls run in
    a worker thread so the event loop is never held.
    """

    def __init__(self, url: str = "sqlite:///:memory:") -> None:
        super().__init__()
        kwargs: dict[str, Any] = {"echo": False}
        if url.startswith("sqlite"):
            kwargs["connect_args"] = {"check_same_thread": False}
            if url in ("sqlite://", "sqlite:///:memory:"):
                kwargs["poolclass"] = StaticPool
        self._engine = create_engine(url, **kwargs)
        self._session_factory = sessionmaker(bind=self._engine, expire_on_commit=False)
        Base.metadata.create_all(self._engine)

    @classmethod
    def from_config(cls, config: dict[str, Any]) -> SqlCheckpointStore:
        if "url" in config:
            return cls(config["url"])
        path = config.get("path", ":memory:")
        return cls(f"sqlite:///{path}")

    def _read_sync(self, source_id: str) -> Checkpoint | None:
        with self._session_factory() as session:
            row = session.get(CheckpointRow, source_id)
            return row.to_checkpoint() if row is not None else None

    def _write_sync(self, checkpoint: Checkpoint) -> None:
        with self._session_factory.begin() as session:
            row = session.get(CheckpointRow, checkpoint.source_id)
            if row is None:
                row = CheckpointRow(source_id=checkpoint.source_id)
                session.add(row)
            row.byte_offset = checkpoint.byte_offset
            row.records_processed = checkpoint.records_processed
            row.last_batch_id = checkpoint.last_batch_id
            row.status = checkpoint.status.value
            row.updated_at = checkpoint.updated_at

    def _delete_sync(self, source_id: str) -> None:
        with self._session_factory.begin() as session:
            row = session.get(CheckpointRow, source_id)
            if row is not None:
                session.delete(row)

    def _list_sync(self) -> list[Checkpoint]:
        with self._session_factory() as session:
            rows = session.scalars(select(CheckpointRow).order_by(CheckpointRow.source_id))
            return [row.to_checkpoint() for row in rows]

    async def _db(
        self, action: str, target: str, fn: Callable[..., T], *args: Any
    ) -> T:
        try:
            return await asyncio.to_thread(fn, *args)
        except SQLAlchemyError as exc:
            logger.error("[%s] Checkpoint %s failed: %s", target, action, exc)
            raise CheckpointError(f"Failed to {action} checkpoint {target}: {exc}") from exc

    async def _read(self, source_id: str) -> Checkpoint | None:
        return await self._db("read", source_id, self._read_sync, source_id)

    async def _write(self, checkpoint: Checkpoint) -> None:
        await self._db("write", checkpoint.source_id, self._write_sync, checkpoint)

    async def delete(self, source_id: str) -> None:
        await self._db("delete", source_id, self._delete_sync, source_id)

    async def list_checkpoints(self) -> list[Checkpoint]:
        return await self._db("list", CheckpointRow.__tablename__, self._list_sync)

    async def close(self) -> None:
        self._engine.dispose()
