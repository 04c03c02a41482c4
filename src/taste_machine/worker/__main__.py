"""Recompute worker entry point: python -m taste_machine.worker"""

import asyncio
import signal

import structlog

from taste_machine.config.settings import get_settings
from taste_machine.db.session import get_session_factory
from taste_machine.engine.recompute import RecomputeEngine
from taste_machine.logging_config import configure_logging
from taste_machine.rating.config import load_rating_config
from taste_machine.store.dirty import DirtySet
from taste_machine.store.retry import RetryPolicy
from taste_machine.worker.scheduler import run_recompute_loop


async def main() -> None:
    settings = get_settings()
    configure_logging(json_output=settings.log_json, log_level=settings.log_level)
    log = structlog.get_logger()

    session_factory = get_session_factory()
    config = load_rating_config(settings.rating_config_path)
    retry = RetryPolicy(config.retry)
    engine = RecomputeEngine(session_factory, DirtySet(session_factory, retry), config, retry)

    log.info(
        "worker_starting",
        interval_seconds=settings.recompute_interval_seconds,
        mode=config.recompute.mode,
        database=settings.database_url.split("@")[-1],
    )

    # Graceful shutdown via SIGTERM/SIGINT
    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, stop_event.set)

    await run_recompute_loop(
        engine,
        settings.recompute_interval_seconds,
        stop_event,
        max_items=settings.recompute_batch_size,
    )
    log.info("worker_shutdown")


if __name__ == "__main__":
    asyncio.run(main())
