"""Centralized retry policy for Rating Store and Event Log access.

Every store operation is a self-contained unit of work (its own session
and transaction), so re-running it after a transient failure is safe.
Writes additionally rely on ``event_id`` idempotency: if an attempt
committed but the acknowledgement was lost, the retry sees a duplicate.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

import structlog
from sqlalchemy.exc import DBAPIError, OperationalError
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    RetryError,
    retry_if_exception,
    stop_after_attempt,
    wait_random_exponential,
)

from taste_machine.errors import TransientStoreError
from taste_machine.rating.config import RetryConfig

logger = structlog.get_logger()

T = TypeVar("T")


def is_transient(exc: BaseException) -> bool:
    """Timeouts, dropped connections and lock contention are retried."""
    if isinstance(exc, (TimeoutError, ConnectionError, OperationalError)):
        return True
    if isinstance(exc, DBAPIError) and exc.connection_invalidated:
        return True
    return False


class RetryPolicy:
    """Bounded retry with short randomized exponential backoff.

    Each attempt is capped by ``timeout_seconds``.  When attempts run out
    the last transient error is wrapped in ``TransientStoreError``;
    non-transient errors propagate unchanged on the first occurrence.
    """

    def __init__(self, config: RetryConfig | None = None) -> None:
        self.config = config or RetryConfig()

    def _log_retry(self, retry_state: RetryCallState, name: str) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            "store_retry",
            operation=name,
            attempt=retry_state.attempt_number,
            error=str(exc) if exc else None,
        )

    async def run(self, operation: Callable[[], Awaitable[T]], name: str = "store_op") -> T:
        cfg = self.config
        retrying = AsyncRetrying(
            stop=stop_after_attempt(cfg.attempts),
            wait=wait_random_exponential(min=cfg.backoff_min, max=cfg.backoff_max),
            retry=retry_if_exception(is_transient),
            before_sleep=lambda state: self._log_retry(state, name),
        )
        try:
            async for attempt in retrying:
                with attempt:
                    async with asyncio.timeout(cfg.timeout_seconds):
                        return await operation()
        except RetryError as exc:
            last = exc.last_attempt.exception()
            logger.error("store_retries_exhausted", operation=name, attempts=cfg.attempts, error=str(last))
            raise TransientStoreError(f"{name} failed after {cfg.attempts} attempts: {last}") from last
        raise AssertionError("unreachable")  # pragma: no cover
