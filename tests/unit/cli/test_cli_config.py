from __future__ import annotations

from pathlib import Path

import pytest

from crave_ingest.cli.config import Config, load_config, save_config
from crave_ingest.exceptions import ConfigError

_ENV_VARS = [
    "CRAVE_INGEST_DATA_DIR",
    "CRAVE_INGEST_CHECKPOINTS",
    "CRAVE_INGEST_DATABASE_URL",
    "CRAVE_INGEST_BATCH_SIZE",
    "CRAVE_INGEST_MAX_BATCH_BYTES",
    "CRAVE_INGEST_MEMORY_SOFT_LIMIT_MB",
    "CRAVE_INGEST_MEMORY_HARD_LIMIT_MB",
    "CRAVE_INGEST_REJECT_RATE_THRESHOLD",
    "CRAVE_INGEST_RESUME",
]


@pytest.fixture
def config_file(tmp_path: Path, monkeypatch) -> Path:
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    path = tmp_path / "config.toml"
    monkeypatch.setenv("CRAVE_INGEST_CONFIG", str(path))
    return path


def test_defaults_without_file(config_file: Path):
    cfg = load_config()
    assert cfg == Config()


def test_reads_toml_sections(config_file: Path):
    config_file.write_text(
        "[data]\n"
        'dir = "/srv/ingest"\n'
        "[checkpoints]\n"
        'provider = "sql"\n'
        "[ingest]\n"
        "batch_size = 250\n"
        "reject_rate_threshold = 0.2\n"
        "resume_on_start = false\n"
    )
    cfg = load_config()
    assert cfg.data_dir == "/srv/ingest"
    assert cfg.checkpoint_provider == "sql"
    assert cfg.batch_size == 250
    assert cfg.reject_rate_threshold == 0.2
    assert cfg.resume_on_start is False


def test_env_overrides_file(config_file: Path, monkeypatch):
    config_file.write_text("[ingest]\nbatch_size = 250\n")
    monkeypatch.setenv("CRAVE_INGEST_BATCH_SIZE", "10")
    monkeypatch.setenv("CRAVE_INGEST_RESUME", "no")
    cfg = load_config()
    assert cfg.batch_size == 10
    assert cfg.resume_on_start is False


def test_save_then_load(config_file: Path):
    cfg = Config(
        data_dir="/tmp/x",
        checkpoint_provider="sql",
        database_url="sqlite:////tmp/x/cp.db",
        batch_size=42,
        resume_on_start=False,
    )
    assert save_config(cfg) == config_file
    assert load_config() == cfg


def test_resolved_database_url_defaults_under_data_dir():
    cfg = Config(data_dir="/srv/ingest")
    assert cfg.resolved_database_url == "sqlite:////srv/ingest/checkpoints.db"
    assert Config(database_url="sqlite://").resolved_database_url == "sqlite://"


def test_checkpoint_store_config():
    assert Config(data_dir="d").checkpoint_store_config() == {
        "provider": "file",
        "config": {"base_path": "d"},
    }
    assert Config(checkpoint_provider="memory").checkpoint_store_config() == {
        "provider": "memory",
        "config": {},
    }


def test_to_ingest_config():
    ingest = Config(memory_soft_limit_mb=10, memory_hard_limit_mb=20).to_ingest_config(
        batch_size=7, max_batch_bytes=None
    )
    assert ingest.batch_size == 7
    assert ingest.max_batch_bytes == 64 * 1024 * 1024
    assert ingest.memory_soft_limit_bytes == 10 * 1024 * 1024
    assert ingest.memory_hard_limit_bytes == 20 * 1024 * 1024


def test_to_ingest_config_invalid():
    with pytest.raises(ConfigError):
        Config(memory_soft_limit_mb=30, memory_hard_limit_mb=20).to_ingest_config()
