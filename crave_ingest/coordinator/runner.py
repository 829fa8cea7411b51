from __future__ import annotations

import asyncio
import logging
import signal
from collections.abc import Callable

from crave_ingest.checkpoint.base import CheckpointStore
from crave_ingest.config import IngestConfig
from crave_ingest.coordinator.consumer import BatchConsumer
from crave_ingest.coordinator.manager import Coordinator, ScheduleInstruction
from crave_ingest.coordinator.result import IngestResult
from crave_ingest.core.types import ArchiveSource
from crave_ingest.monitor import ResourceMonitor
from crave_ingest.storage.base import StorageBackend

logger = logging.getLogger(__name__)


async def run_coordinator(coordinator: Coordinator) -> IngestResult:
    """Drive a single coordinator to a terminal state using an async loop."""
    while True:
        instruction: ScheduleInstruction = await coordinator.try_advance_state()

        if instruction.stop:
            break

        if instruction.countdown:
            await asyncio.sleep(instruction.countdown)
        else:
            # Let sibling coordinators run between batches
            await asyncio.sleep(0)

    result = coordinator.result
    assert result is not None
    return result


def cancel_on_signals(
    coordinators: list[Coordinator],
    signals: tuple[signal.Signals, ...] = (signal.SIGINT, signal.SIGTERM),
) -> Callable[[], None]:
    """Turn *signals* into a graceful :meth:`Coordinator.cancel` on every coordinator.

    In-flight batches still finish and commit.  A second signal removes
    the handlers so the one after that interrupts immediately.  Returns
    a function that removes the handlers.
    """
    loop = asyncio.get_running_loop()
    installed: list[signal.Signals] = []

    def restore() -> None:
        while installed:
            loop.remove_signal_handler(installed.pop())

    def handle(sig: signal.Signals) -> None:
        if all(c.cancel_requested for c in coordinators):
            logger.warning("Received %s again; next signal interrupts", sig.name)
            restore()
            return
        logger.warning("Received %s; stopping after in-flight batches", sig.name)
        for coordinator in coordinators:
            coordinator.cancel(f"received {sig.name}")

    for sig in signals:
        try:
            loop.add_signal_handler(sig, handle, sig)
        except (NotImplementedError, RuntimeError, ValueError):
            # Windows loops and non-main threads cannot take signal handlers
            logger.debug("Cannot install %s handler", sig.name)
            continue
        installed.append(sig)
    return restore


async def run_sources(
    sources: list[ArchiveSource],
    consumer: BatchConsumer,
    checkpoints: CheckpointStore,
    *,
    storage: StorageBackend,
    config: IngestConfig | None = None,
    monitor: ResourceMonitor | None = None,
    handle_signals: bool = False,
) -> list[IngestResult]:
    """Ingest several sources concurrently, one coordinator each.

    The coordinators share *consumer*, *checkpoints* and one
    :class:`ResourceMonitor` (built from *config* when not given).
    Results come back in the order of *sources*.  With *handle_signals*,
    SIGINT and SIGTERM cancel every coordinator gracefully.
    """
    config = config or IngestConfig()
    ids = [s.source_id for s in sources]
    if len(set(ids)) != len(ids):
        raise ValueError(f"Duplicate source_id in {ids}")
    monitor = monitor or ResourceMonitor.from_config(config)

    coordinators = [
        Coordinator(
            source,
            consumer,
            checkpoints,
            storage=storage,
            config=config,
            monitor=monitor,
        )
        for source in sources
    ]
    logger.info("Running %d source(s)", len(coordinators))
    restore = cancel_on_signals(coordinators) if handle_signals else None
    try:
        results = await asyncio.gather(*(run_coordinator(c) for c in coordinators))
    finally:
        if restore is not None:
            restore()
    return list(results)
