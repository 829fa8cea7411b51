"""Configuration management for the crave-ingest CLI.

Reads/writes a TOML config file and provides a typed Config dataclass.
Default location: ``~/.config/crave-ingest/config.toml``.
Override with the ``CRAVE_INGEST_CONFIG`` environment variable.

Data directory layout::

    data/
      batches/       <- one JSONL file per delivered batch
      checkpoints/   <- one JSON checkpoint per source (file store)
      checkpoints.db <- checkpoint table (sql store)
"""

from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from crave_ingest.config import IngestConfig

_DEFAULT_CONFIG_DIR = Path("~/.config/crave-ingest").expanduser()
_DEFAULT_DATA_DIR = Path("./data")
_MiB = 1024 * 1024


def _config_path() -> Path:
    env = os.environ.get("CRAVE_INGEST_CONFIG")
    if env:
        return Path(env).expanduser()
    return _DEFAULT_CONFIG_DIR / "config.toml"


@dataclass
class Config:
    data_dir: str = str(_DEFAULT_DATA_DIR)

    # Checkpoint store: "file" (default), "sql" or "memory"
    checkpoint_provider: str = "file"
    # Only used when checkpoint_provider == "sql"; empty means data/checkpoints.db
    database_url: str = ""

    batch_size: int = 1000
    max_batch_bytes: int = 64 * _MiB
    max_line_length: int = 4 * _MiB
    memory_soft_limit_mb: int = 1024
    memory_hard_limit_mb: int = 2048
    reject_rate_threshold: float = 0.5
    resume_on_start: bool = True

    @property
    def batches_dir(self) -> Path:
        return Path(self.data_dir) / "batches"

    @property
    def checkpoints_dir(self) -> Path:
        return Path(self.data_dir) / "checkpoints"

    @property
    def resolved_database_url(self) -> str:
        if self.database_url:
            return self.database_url
        return f"sqlite:///{Path(self.data_dir) / 'checkpoints.db'}"

    def ensure_dirs(self) -> None:
        """Create the data directory if it doesn't exist."""
        Path(self.data_dir).mkdir(parents=True, exist_ok=True)

    def checkpoint_store_config(self) -> dict[str, Any]:
        """Provider section for :func:`crave_ingest.config.parse_config`."""
        if self.checkpoint_provider == "sql":
            config: dict[str, Any] = {"url": self.resolved_database_url}
        elif self.checkpoint_provider == "file":
            config = {"base_path": self.data_dir}
        else:
            config = {}
        return {"provider": self.checkpoint_provider, "config": config}

    def to_ingest_config(self, **overrides: Any) -> IngestConfig:
        values: dict[str, Any] = {
            "batch_size": self.batch_size,
            "max_batch_bytes": self.max_batch_bytes,
            "max_line_length": self.max_line_length,
            "memory_soft_limit_bytes": self.memory_soft_limit_mb * _MiB,
            "memory_hard_limit_bytes": self.memory_hard_limit_mb * _MiB,
            "reject_rate_threshold": self.reject_rate_threshold,
            "resume_on_start": self.resume_on_start,
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return IngestConfig.from_dict(values)


def _env_bool(value: str) -> bool:
    return value.strip().lower() in {"1", "true", "yes", "on"}


def load_config() -> Config:
    """Load config from disk, falling back to defaults + env overrides."""
    path = _config_path()
    cfg = Config()

    if path.exists():
        with open(path, "rb") as f:
            data = tomllib.load(f)
        data_section = data.get("data", {})
        checkpoint_section = data.get("checkpoints", {})
        ingest_section = data.get("ingest", {})

        cfg.data_dir = data_section.get("dir", cfg.data_dir)

        cfg.checkpoint_provider = checkpoint_section.get(
            "provider", cfg.checkpoint_provider
        )
        cfg.database_url = checkpoint_section.get("database_url", cfg.database_url)

        cfg.batch_size = int(ingest_section.get("batch_size", cfg.batch_size))
        cfg.max_batch_bytes = int(
            ingest_section.get("max_batch_bytes", cfg.max_batch_bytes)
        )
        cfg.max_line_length = int(
            ingest_section.get("max_line_length", cfg.max_line_length)
        )
        cfg.memory_soft_limit_mb = int(
            ingest_section.get("memory_soft_limit_mb", cfg.memory_soft_limit_mb)
        )
        cfg.memory_hard_limit_mb = int(
            ingest_section.get("memory_hard_limit_mb", cfg.memory_hard_limit_mb)
        )
        cfg.reject_rate_threshold = float(
            ingest_section.get("reject_rate_threshold", cfg.reject_rate_threshold)
        )
        cfg.resume_on_start = bool(
            ingest_section.get("resume_on_start", cfg.resume_on_start)
        )

    # Environment variables always take precedence
    env = os.environ
    cfg.data_dir = env.get("CRAVE_INGEST_DATA_DIR", cfg.data_dir)
    cfg.checkpoint_provider = env.get("CRAVE_INGEST_CHECKPOINTS", cfg.checkpoint_provider)
    cfg.database_url = env.get("CRAVE_INGEST_DATABASE_URL", cfg.database_url)
    cfg.batch_size = int(env.get("CRAVE_INGEST_BATCH_SIZE", str(cfg.batch_size)))
    cfg.max_batch_bytes = int(
        env.get("CRAVE_INGEST_MAX_BATCH_BYTES", str(cfg.max_batch_bytes))
    )
    cfg.memory_soft_limit_mb = int(
        env.get("CRAVE_INGEST_MEMORY_SOFT_LIMIT_MB", str(cfg.memory_soft_limit_mb))
    )
    cfg.memory_hard_limit_mb = int(
        env.get("CRAVE_INGEST_MEMORY_HARD_LIMIT_MB", str(cfg.memory_hard_limit_mb))
    )
    cfg.reject_rate_threshold = float(
        env.get("CRAVE_INGEST_REJECT_RATE_THRESHOLD", str(cfg.reject_rate_threshold))
    )
    if "CRAVE_INGEST_RESUME" in env:
        cfg.resume_on_start = _env_bool(env["CRAVE_INGEST_RESUME"])

    return cfg


def save_config(cfg: Config) -> Path:
    """Write config to the TOML file. Returns the path written."""
    path = _config_path()
    path.parent.mkdir(parents=True, exist_ok=True)

    lines = [
        "[data]",
        f'dir = "{cfg.data_dir}"',
        "",
        "[checkpoints]",
        f'provider = "{cfg.checkpoint_provider}"',
    ]
    if cfg.database_url:
        lines.append(f'database_url = "{cfg.database_url}"')
    lines.extend(
        [
            "",
            "[ingest]",
            f"batch_size = {cfg.batch_size}",
            f"max_batch_bytes = {cfg.max_batch_bytes}",
            f"max_line_length = {cfg.max_line_length}",
            f"memory_soft_limit_mb = {cfg.memory_soft_limit_mb}",
            f"memory_hard_limit_mb = {cfg.memory_hard_limit_mb}",
            f"reject_rate_threshold = {cfg.reject_rate_threshold}",
            f"resume_on_start = {'true' if cfg.resume_on_start else 'false'}",
            "",
        ]
    )

    path.write_text("\n".join(lines), encoding="utf-8")
    return path


def config_exists() -> bool:
    return _config_path().exists()


def config_path_display() -> str:
    return str(_config_path())
