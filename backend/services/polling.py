"""Poll-until-done and bounded-retry helpers shared by the orchestrator and adapters."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[None]]


class PollDeadlineExceeded(RuntimeError):
    def __init__(self, attempts: int, elapsed_seconds: float) -> None:
        super().__init__(f"Polling gave up after {attempts} attempts ({elapsed_seconds:.1f}s)")
        self.attempts = attempts
        self.elapsed_seconds = elapsed_seconds


async def poll_until(
    check: Callable[[], Awaitable[T]],
    is_terminal: Callable[[T], bool],
    *,
    interval: float,
    max_attempts: int,
    deadline_seconds: float | None = None,
    on_result: Callable[[T, int], None] | None = None,
    sleep: Sleep = asyncio.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> T:
    """Call ``check`` every ``interval`` seconds until ``is_terminal`` accepts a result.

    The first check happens after one interval. Checks never overlap: the next
    wait starts only once the previous check has resolved. Raises
    ``PollDeadlineExceeded`` once ``max_attempts`` checks (or ``deadline_seconds``
    of wall-clock time) pass without a terminal result.
    """
    started = clock()
    attempts = 0
    while attempts < max_attempts:
        await sleep(interval)
        attempts += 1
        result = await check()
        if on_result is not None:
            on_result(result, attempts)
        if is_terminal(result):
            return result
        if deadline_seconds is not None and clock() - started >= deadline_seconds:
            break
    raise PollDeadlineExceeded(attempts, clock() - started)


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    *,
    attempts: int,
    backoff_seconds: float,
    retry_on: type[BaseException] | tuple[type[BaseException], ...],
    description: str = "operation",
    sleep: Sleep = asyncio.sleep,
) -> T:
    """Run ``operation`` up to ``attempts`` times with linear backoff between tries.

    The first try is immediate; try ``n`` waits ``backoff_seconds * (n - 1)``.
    The last exception is re-raised once attempts are exhausted.
    """
    for attempt in range(1, attempts + 1):
        try:
            return await operation()
        except retry_on as exc:
            if attempt >= attempts:
                logger.error(
                    "%s failed after %d attempts: %s: %s",
                    description,
                    attempt,
                    type(exc).__name__,
                    exc,
                )
                raise
            delay = backoff_seconds * attempt
            logger.warning(
                "%s attempt %d/%d failed (%s: %s), retrying in %.1fs",
                description,
                attempt,
                attempts,
                type(exc).__name__,
                exc,
                delay,
            )
            await sleep(delay)
    raise ValueError("attempts must be at least 1")
