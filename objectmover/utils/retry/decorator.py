from __future__ import annotations

import asyncio
from functools import wraps
import logging
import time
from typing import TYPE_CHECKING, Any, ParamSpec, TypeVar

from objectmover.infra.metrics.tracking import (
    track_retry_attempt,
    track_retry_exhausted,
    track_retry_success,
)

from .exceptions import RetryError, RetryStatistics
from .strategies import RetryStrategy

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)

P = ParamSpec("P")
R = TypeVar("R")


async def retry_call(
    func: Callable[..., Awaitable[R]],
    *args: Any,
    strategy: RetryStrategy,
    timeout: float | None = None,
    name: str | None = None,
    on_retry: Callable[[Exception, int], None] | None = None,
    **kwargs: Any,
) -> R:
    """Await ``func(*args, **kwargs)`` under ``strategy``.

    Each attempt is bounded by ``timeout`` seconds; an attempt that runs out
    of time raises ``TimeoutError`` and is judged by the strategy like any
    other failure, so timeouts consume the same budget as network errors.

    Raises:
        RetryError: When a retryable failure persists past ``max_attempts``
            or past ``stop_after_delay``.
        Exception: The original exception, unchanged, when the strategy
            declines to retry it.
    """
    operation = name or getattr(func, "__name__", "call")
    statistics = RetryStatistics(start_time=time.monotonic())

    for attempt in range(strategy.max_attempts):
        try:
            if timeout is None:
                result = await func(*args, **kwargs)
            else:
                async with asyncio.timeout(timeout):
                    result = await func(*args, **kwargs)
            if statistics.attempts > 0:
                track_retry_success(operation, statistics.attempts + 1)
            return result
        except Exception as e:
            if not strategy.should_retry(e):
                logger.debug(
                    f"Non-retryable exception in {operation}: {e}",
                    extra={"function": operation, "exception": str(e)},
                )
                raise

            elapsed = time.monotonic() - statistics.start_time
            if strategy.stop_after_delay is not None and elapsed >= strategy.stop_after_delay:
                statistics.end_time = time.monotonic()
                track_retry_exhausted(operation)
                raise RetryError(e, attempt + 1, statistics) from e

            if attempt >= strategy.max_attempts - 1:
                statistics.end_time = time.monotonic()
                track_retry_exhausted(operation)
                logger.warning(
                    f"All retry attempts exhausted for {operation}",
                    extra={
                        "function": operation,
                        "attempts": attempt + 1,
                        "last_exception": str(e),
                        "total_delay": statistics.total_delay,
                        "duration": statistics.duration,
                    },
                )
                raise RetryError(e, attempt + 1, statistics) from e

            delay = strategy.calculate_delay(attempt)
            statistics.attempts += 1
            statistics.total_delay += delay
            statistics.exceptions.append(type(e).__name__)

            track_retry_attempt(operation, attempt + 2)

            logger.info(
                f"Retrying {operation} after {delay:.2f}s (attempt {attempt + 1}/{strategy.max_attempts})",
                extra={
                    "function": operation,
                    "attempt": attempt + 1,
                    "max_attempts": strategy.max_attempts,
                    "delay": delay,
                    "exception": str(e),
                },
            )

            if on_retry:
                on_retry(e, attempt + 1)

            await asyncio.sleep(delay)

    msg = "Retry logic error: exhausted all attempts"
    raise RuntimeError(msg)


def retry(
    max_attempts: int = 3,
    initial_delay: float = 1.0,
    max_delay: float = 60.0,
    exponential_base: float = 2.0,
    jitter: bool = True,
    jitter_range: tuple[float, float] = (0.5, 1.5),
    exceptions: tuple[type[Exception], ...] = (Exception,),
    retry_if: Callable[[Exception], bool] | None = None,
    stop_after_delay: float | None = None,
    on_retry: Callable[[Exception, int], None] | None = None,
    timeout: float | None = None,
) -> Callable[[Callable[P, Awaitable[R]]], Callable[P, Awaitable[R]]]:
    """Decorator form of :func:`retry_call` for coroutine functions."""
    strategy = RetryStrategy(
        max_attempts=max_attempts,
        initial_delay=initial_delay,
        max_delay=max_delay,
        exponential_base=exponential_base,
        jitter=jitter,
        jitter_range=jitter_range,
        exceptions=exceptions,
        retry_if=retry_if,
        stop_after_delay=stop_after_delay,
    )

    def decorator(func: Callable[P, Awaitable[R]]) -> Callable[P, Awaitable[R]]:
        @wraps(func)
        async def async_wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            return await retry_call(
                func,
                *args,
                strategy=strategy,
                timeout=timeout,
                name=func.__name__,
                on_retry=on_retry,
                **kwargs,
            )

        return async_wrapper

    return decorator
