"""Periodic dirty-set drain."""

from __future__ import annotations

import asyncio
import contextlib

import structlog

from taste_machine.engine.recompute import RecomputeEngine

logger = structlog.get_logger()


async def run_recompute_loop(
    engine: RecomputeEngine,
    interval_seconds: float,
    stop_event: asyncio.Event,
    max_items: int | None = None,
) -> int:
    """Drain the dirty set every ``interval_seconds`` until ``stop_event`` is set.

    A full batch is followed immediately by another drain instead of
    waiting out the interval.  Returns the number of drains run.
    """
    drains = 0
    while not stop_event.is_set():
        try:
            stats = await engine.drain(max_items)
        except Exception:
            logger.exception("recompute_drain_failed")
            stats = None
        drains += 1

        limit = max_items if max_items is not None else engine.config.recompute.batch_size
        if stats is not None and stats.claimed >= limit and stats.errors == 0:
            continue

        with contextlib.suppress(TimeoutError):
            await asyncio.wait_for(stop_event.wait(), timeout=interval_seconds)
    logger.info("recompute_loop_stopped", drains=drains)
    return drains
