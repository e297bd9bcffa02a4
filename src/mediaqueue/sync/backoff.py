"""Exponential backoff with jitter and a generic async retry helper.

Delays are in milliseconds. Jitter is only ever added to the base delay,
so a retrier never waits less than ``initial_delay * factor ** (attempt - 1)``
unless that exceeds ``max_delay``.
"""

import asyncio
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, TypeVar

from mediaqueue.logging import sync_logger

T = TypeVar("T")

SleepFunc = Callable[[float], Awaitable[Any]]
ShouldRetry = Callable[[BaseException, int], bool]

DEFAULT_INITIAL_DELAY_MS = 1000.0
DEFAULT_MAX_DELAY_MS = 10000.0
DEFAULT_FACTOR = 2.0
JITTER_RATIO = 0.3

log = sync_logger()


@dataclass(frozen=True)
class RetryConfig:
    """Settings for retry_with_backoff.

    max_retries counts retries after the first call, so an operation is
    invoked at most ``max_retries + 1`` times.
    """

    max_retries: int = 3
    initial_delay: float = DEFAULT_INITIAL_DELAY_MS
    max_delay: float = DEFAULT_MAX_DELAY_MS
    factor: float = DEFAULT_FACTOR

    def delay(self, attempt: int) -> float:
        return backoff_delay(attempt, self.initial_delay, self.max_delay, self.factor)


@dataclass
class RetryResult:
    """Outcome of retry_with_result."""

    success: bool
    value: Any = None
    error: BaseException | None = None
    attempts: int = 0


def backoff_delay(
    attempt: int,
    initial_delay: float = DEFAULT_INITIAL_DELAY_MS,
    max_delay: float = DEFAULT_MAX_DELAY_MS,
    factor: float = DEFAULT_FACTOR,
) -> float:
    """Compute the delay before retry number ``attempt``.

    Args:
        attempt: 1-based retry number
        initial_delay: Delay for the first retry in milliseconds
        max_delay: Upper bound for the returned delay in milliseconds
        factor: Multiplier applied per attempt

    Returns:
        Delay in milliseconds, in ``[min(base, max_delay), max_delay]``
    """
    if attempt < 1:
        raise ValueError("attempt must be at least 1")

    try:
        base = float(initial_delay) * float(factor) ** (attempt - 1)
    except OverflowError:
        return max_delay
    jitter = random.random() * JITTER_RATIO * base
    return min(base + jitter, max_delay)


async def _sleep_ms(delay_ms: float) -> None:
    await asyncio.sleep(delay_ms / 1000.0)


async def retry_with_backoff(
    operation: Callable[[], Awaitable[T]],
    config: RetryConfig | None = None,
    should_retry: ShouldRetry | None = None,
    sleep: SleepFunc = _sleep_ms,
) -> T:
    """Run an async operation, retrying failures with exponential backoff.

    Args:
        operation: Zero-argument coroutine function to call
        config: Retry limits and delays (defaults to RetryConfig())
        should_retry: Optional predicate ``(error, attempt) -> bool``; a False
            result stops retrying and re-raises the error
        sleep: Coroutine taking a delay in milliseconds

    Returns:
        The operation's result

    Raises:
        The last exception raised by the operation once retries are exhausted
    """
    config = config or RetryConfig()
    attempt = 0

    while True:
        try:
            return await operation()
        except Exception as e:
            attempt += 1
            if attempt > config.max_retries:
                raise
            if should_retry is not None and not should_retry(e, attempt):
                raise

            delay = config.delay(attempt)
            log.debug(
                "Retrying after error: attempt=%d/%d, delay_ms=%.0f, error=%s",
                attempt, config.max_retries, delay, e,
            )
            await sleep(delay)


async def retry_with_result(
    operation: Callable[[], Awaitable[T]],
    config: RetryConfig | None = None,
    should_retry: ShouldRetry | None = None,
    sleep: SleepFunc = _sleep_ms,
) -> RetryResult:
    """Like retry_with_backoff, but report the outcome instead of raising."""
    calls = 0

    async def counted() -> T:
        nonlocal calls
        calls += 1
        return await operation()

    try:
        value = await retry_with_backoff(counted, config, should_retry, sleep)
    except Exception as e:
        log.debug("Operation failed after %d attempts: %s", calls, e)
        return RetryResult(success=False, error=e, attempts=calls)
    return RetryResult(success=True, value=value, attempts=calls)
