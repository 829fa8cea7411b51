from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from collections.abc import Callable, Coroutine
from pathlib import Path
from typing import Any

from crave_ingest.checkpoint.base import CheckpointStore
from crave_ingest.cli import output as out
from crave_ingest.cli.config import (
    Config,
    config_exists,
    config_path_display,
    load_config,
)
from crave_ingest.config import checkpoint_registry, parse_config
from crave_ingest.coordinator.consumer import JsonlBatchWriter
from crave_ingest.coordinator.result import IngestResult
from crave_ingest.coordinator.runner import run_sources
from crave_ingest.core.types import ArchiveSource, ContentType
from crave_ingest.exceptions import ConfigError
from crave_ingest.storage.disk import DiskStorage

DESCRIPTION = """\
crave-ingest: resumable batch ingestion of Reddit archive dumps

Streams compressed NDJSON dumps (RS_*.zst submissions, RC_*.zst comments)
into validated batches of posts and comments, checkpointing after every
batch so an interrupted run picks up where it stopped.

Batches are written as JSONL under <data dir>/batches/<source id>/."""


# ── Infrastructure helpers ──────────────────────────────────────────


def _build_checkpoints(cfg: Config) -> CheckpointStore:
    section = cfg.checkpoint_store_config()
    return checkpoint_registry.build(section["provider"], section["config"])


def _print_result(result: IngestResult) -> None:
    label = f"{result.source_id}: {out.status_color(result.status.value)}"
    if result.ok:
        out.success(label)
    else:
        out.error(label)
    out.kv("Records", f"{result.total_records:,} total, {result.records_processed:,} this run", indent=4)
    out.kv("Batches", f"{result.total_batches:,} total, {result.batches_delivered:,} this run", indent=4)
    out.kv(
        "Accepted / rejected / skipped",
        f"{result.records_accepted:,} / {result.records_rejected:,} / "
        f"{result.records_skipped:,}",
        indent=4,
    )
    if result.lines_too_long:
        out.kv("Lines too long", f"{result.lines_too_long:,}", indent=4)
    out.kv(
        "Time",
        f"{result.duration_seconds:.1f}s ({result.throughput:,.0f} lines/s, "
        f"{out.human_bytes(int(result.bytes_per_second))}/s)",
        indent=4,
    )
    if result.peak_memory_bytes:
        out.kv("Peak memory", out.human_bytes(result.peak_memory_bytes), indent=4)
    if result.error_kind:
        out.kv("Error", f"{result.error_kind}: {result.reason}", indent=4)
    if result.checkpoint is not None and not result.ok:
        out.kv(
            "Resume from",
            f"offset {result.checkpoint.byte_offset:,}, "
            f"record {result.checkpoint.records_processed + 1:,}",
            indent=4,
        )


# ── run ─────────────────────────────────────────────────────────────


async def cmd_run(args: argparse.Namespace) -> int:
    """Ingest one or more archives."""
    cfg = load_config()
    if args.out:
        cfg.data_dir = args.out
    if args.source_id and len(args.paths) > 1:
        out.error("--source-id can only be used with a single archive")
        return 1

    try:
        ingest = cfg.to_ingest_config(
            batch_size=args.batch_size,
            max_batch_bytes=args.max_batch_bytes,
            resume_on_start=False if args.no_resume else None,
        )
    except ConfigError as exc:
        out.error(str(exc))
        return 1

    sources: list[ArchiveSource] = []
    for raw_path in args.paths:
        path = Path(raw_path).expanduser().resolve()
        if not path.is_file():
            out.error(f"File not found: {raw_path}")
            return 1
        try:
            sources.append(
                ArchiveSource.from_uri(
                    str(path), args.content_type, source_id=args.source_id
                )
            )
        except ValueError as exc:
            out.error(str(exc))
            return 1

    cfg.ensure_dirs()
    storage, checkpoints, ingest = parse_config(
        {
            "storage": {"provider": "disk", "config": {"base_path": str(Path.cwd())}},
            "checkpoints": cfg.checkpoint_store_config(),
            "ingest": ingest.model_dump(),
        }
    )
    writer = JsonlBatchWriter(DiskStorage(cfg.data_dir))

    out.header(f"Ingesting {len(sources)} archive(s)")
    for source in sources:
        out.kv(source.source_id, f"{source.content_type} ({source.codec})")

    async with checkpoints:
        results = await run_sources(
            sources,
            writer,
            checkpoints,
            storage=storage,
            config=ingest,
            handle_signals=True,
        )

    out.header("Results")
    for result in results:
        _print_result(result)
    print()
    out.info(f"Batches written to {out.bold(str(cfg.batches_dir))}")
    return 0 if all(r.ok for r in results) else 1


# ── status / reset ──────────────────────────────────────────────────


async def cmd_status(args: argparse.Namespace) -> int:
    """Show committed checkpoints."""
    cfg = load_config()
    async with _build_checkpoints(cfg) as store:
        if args.source_id:
            cp = await store.load(args.source_id)
            checkpoints = [cp] if cp is not None else []
        else:
            checkpoints = await store.list_checkpoints()

    out.header(f"Checkpoints ({cfg.checkpoint_provider})")
    if not checkpoints:
        out.info(out.dim("No checkpoints found"))
        return 0
    for cp in checkpoints:
        out.kv(
            cp.source_id,
            f"{out.status_color(cp.status.value)}  "
            f"{cp.records_processed:,} records, {cp.last_batch_id} batches, "
            f"offset {cp.byte_offset:,}  "
            + out.dim(cp.updated_at.strftime("%Y-%m-%d %H:%M:%S UTC")),
        )
    return 0


async def cmd_reset(args: argparse.Namespace) -> int:
    """Delete a checkpoint so the next run starts from the beginning."""
    cfg = load_config()
    async with _build_checkpoints(cfg) as store:
        if await store.load(args.source_id) is None:
            out.warn(f"No checkpoint for {args.source_id}")
            return 0
        await store.delete(args.source_id)
    out.success(f"Checkpoint for {args.source_id} deleted")
    return 0


# ── config ──────────────────────────────────────────────────────────


async def cmd_config_show(args: argparse.Namespace) -> int:
    """Display current configuration."""
    cfg = load_config()

    suffix = "" if config_exists() else ", defaults"
    out.header(f"Configuration ({config_path_display()}{suffix})")
    print()
    out.kv("Data directory", cfg.data_dir)
    out.kv("Checkpoint store", cfg.checkpoint_provider)
    if cfg.checkpoint_provider == "sql":
        out.kv("Database URL", cfg.resolved_database_url)
    out.kv("Batch size", cfg.batch_size)
    out.kv("Max batch bytes", out.human_bytes(cfg.max_batch_bytes))
    out.kv("Max line length", out.human_bytes(cfg.max_line_length))
    out.kv(
        "Memory limits",
        f"soft {cfg.memory_soft_limit_mb}MB, hard {cfg.memory_hard_limit_mb}MB",
    )
    out.kv("Reject rate threshold", f"{cfg.reject_rate_threshold:.0%}")
    out.kv("Resume on start", "yes" if cfg.resume_on_start else "no")
    return 0


async def cmd_config_path(args: argparse.Namespace) -> int:
    print(config_path_display())
    return 0


# ── Parser ──────────────────────────────────────────────────────────


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="crave-ingest",
        description=DESCRIPTION,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--verbose", "-v", action="store_true", help="Show pipeline logs"
    )
    sub = parser.add_subparsers(dest="command", title="commands")

    # run
    p_run = sub.add_parser(
        "run",
        help="Ingest one or more archives",
        description=(
            "Ingest archives concurrently. Content type is inferred from "
            "Pushshift names (RS_ = posts, RC_ = comments) unless given."
        ),
    )
    p_run.add_argument("paths", nargs="+", metavar="PATH", help="Archive file(s)")
    p_run.add_argument(
        "--content-type",
        choices=[t.value for t in ContentType],
        default=None,
        help="Record type (default: inferred from the file name)",
    )
    p_run.add_argument("--source-id", default=None, help="Override the source id")
    p_run.add_argument("--batch-size", type=int, default=None)
    p_run.add_argument("--max-batch-bytes", type=int, default=None)
    p_run.add_argument("--out", metavar="DIR", help="Data directory override")
    p_run.add_argument(
        "--no-resume",
        action="store_true",
        help="Discard existing checkpoints and start from the beginning",
    )

    # status
    p_status = sub.add_parser("status", help="Show checkpoints")
    p_status.add_argument("source_id", nargs="?", default=None)

    # reset
    p_reset = sub.add_parser("reset", help="Delete a checkpoint")
    p_reset.add_argument("source_id")

    # config
    p_cfg = sub.add_parser("config", help="View settings")
    cfg_sub = p_cfg.add_subparsers(dest="config_command", title="config commands")
    cfg_sub.add_parser("show", help="Show current settings")
    cfg_sub.add_parser("path", help="Print config file location")

    return parser


# ── Dispatch ────────────────────────────────────────────────────────

_CommandHandler = Callable[[argparse.Namespace], Coroutine[Any, Any, int]]

_COMMAND_MAP: dict[str, _CommandHandler] = {
    "run": cmd_run,
    "status": cmd_status,
    "reset": cmd_reset,
}

_CONFIG_MAP: dict[str, _CommandHandler] = {
    "show": cmd_config_show,
    "path": cmd_config_path,
}


def main(argv: list[str] | None = None) -> None:
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.verbose:
        logging.basicConfig(
            level=logging.INFO,
            format="  %(name)s: %(message)s",
        )

    if not args.command:
        parser.print_help()
        return

    if args.command == "config":
        if not args.config_command:
            parser.parse_args(["config", "--help"])
            return
        handler = _CONFIG_MAP.get(args.config_command)
    else:
        handler = _COMMAND_MAP.get(args.command)

    if handler is None:
        parser.print_help()
        return

    try:
        code = asyncio.run(handler(args))
    except KeyboardInterrupt:
        print()
        code = 1
    if code:
        sys.exit(code)


if __name__ == "__main__":
    main()
