from __future__ import annotations

from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from crave_ingest.checkpoint.base import CheckpointStore
from crave_ingest.exceptions import ConfigError
from crave_ingest.storage.base import StorageBackend

_MiB = 1024 * 1024

T = TypeVar("T")


class IngestConfig(BaseModel):
    """Tuning knobs for one ingestion run.  Shared by every source in a run."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    batch_size: int = Field(default=1000, gt=0)
    max_batch_bytes: int | None = Field(default=64 * _MiB, gt=0)
    max_line_length: int = Field(default=4 * _MiB, gt=0)
    memory_soft_limit_bytes: int = Field(default=1024 * _MiB, gt=0)
    memory_hard_limit_bytes: int = Field(default=2048 * _MiB, gt=0)
    reject_rate_threshold: float = Field(default=0.5, ge=0.0, le=1.0)
    resume_on_start: bool = True

    chunk_size: int = Field(default=256 * 1024, gt=0)
    handoff_timeout_seconds: float = Field(default=300.0, gt=0)
    throttle_base_delay: float = Field(default=0.5, ge=0)
    throttle_max_delay: float = Field(default=30.0, ge=0)
    max_throttle_polls: int = Field(default=20, gt=0)
    reject_min_sample: int = Field(default=10, gt=0)
    max_future_skew_seconds: float = Field(default=86_400.0, ge=0)
    sample_every_batches: int = Field(default=1, gt=0)
    sample_interval_seconds: float = Field(default=1.0, ge=0)

    @model_validator(mode="after")
    def _check_limits(self) -> IngestConfig:
        if self.memory_soft_limit_bytes > self.memory_hard_limit_bytes:
            raise ValueError(
                "memory_soft_limit_bytes must not exceed memory_hard_limit_bytes"
            )
        if (
            self.max_batch_bytes is not None
            and self.max_line_length > self.max_batch_bytes
        ):
            raise ValueError("max_line_length must not exceed max_batch_bytes")
        if self.throttle_base_delay > self.throttle_max_delay:
            raise ValueError("throttle_base_delay must not exceed throttle_max_delay")
        return self

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> IngestConfig:
        """Validate *data*, raising :class:`ConfigError` on bad input."""
        try:
            return cls.model_validate(data)
        except ValidationError as exc:
            raise ConfigError(f"Invalid ingest config: {exc}") from exc


class _Registry(Generic[T]):
    """Lazily-populated factory registry.

    Each backend module registers itself via :meth:`register`.
    :meth:`build` resolves a provider name to a factory, calling
    ``factory.from_config(config)`` if available, otherwise
    ``factory(**config)``.
    """

    def __init__(self, label: str) -> None:
        self._label = label
        self._factories: dict[str, type[T]] = {}
        self._defaults_loaded = False

    def register(self, name: str, cls: type[T]) -> None:
        self._factories[name] = cls

    @property
    def names(self) -> list[str]:
        self._ensure_defaults()
        return list(self._factories)

    def _ensure_defaults(self) -> None:
        if not self._defaults_loaded:
            self._load_defaults()
            self._defaults_loaded = True

    def build(self, provider: str, config: dict[str, Any]) -> T:
        self._ensure_defaults()
        factory = self._factories.get(provider)
        if factory is None:
            raise ConfigError(
                f"Unknown {self._label} provider '{provider}'. "
                f"Available: {list(self._factories)}"
            )
        if hasattr(factory, "from_config"):
            return factory.from_config(config)  # type: ignore[return-value]
        return factory(**config)  # type: ignore[return-value]

    def _load_defaults(self) -> None:
        """Override point: subclasses populate built-in factories here."""


class _StorageRegistry(_Registry[StorageBackend]):
    def _load_defaults(self) -> None:
        from crave_ingest.storage.disk import DiskStorage

        self.register("disk", DiskStorage)


class _CheckpointStoreRegistry(_Registry[CheckpointStore]):
    def _load_defaults(self) -> None:
        from crave_ingest.checkpoint.disk import FileCheckpointStore
        from crave_ingest.checkpoint.memory import InMemoryCheckpointStore
        from crave_ingest.checkpoint.sql import SqlCheckpointStore

        self.register("memory", InMemoryCheckpointStore)
        self.register("file", FileCheckpointStore)
        self.register("sql", SqlCheckpointStore)


# Singleton instances
storage_registry = _StorageRegistry("storage")
checkpoint_registry = _CheckpointStoreRegistry("checkpoint store")


def parse_config(
    config: dict[str, Any],
) -> tuple[StorageBackend, CheckpointStore, IngestConfig]:
    """Parse a user config dict and return (storage, checkpoints, ingest).

    Expected shape::

        {
            "storage": {"provider": "disk", "config": {"base_path": "."}},
            "checkpoints": {"provider": "file", "config": {"base_path": "data"}},
            "ingest": {"batch_size": 1000, "reject_rate_threshold": 0.5},
        }

    Every section is optional.  Storage defaults to disk rooted at the
    current directory, checkpoints to in-memory.
    """
    storage_cfg = config.get("storage", {})
    checkpoint_cfg = config.get("checkpoints", {})

    storage = storage_registry.build(
        storage_cfg.get("provider", "disk"),
        storage_cfg.get("config", {"base_path": "."}),
    )
    checkpoints = checkpoint_registry.build(
        checkpoint_cfg.get("provider", "memory"),
        checkpoint_cfg.get("config", {}),
    )
    ingest = IngestConfig.from_dict(config.get("ingest", {}))

    return storage, checkpoints, ingest
