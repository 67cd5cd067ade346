"""Retry decorator with exponential backoff for async callables.

Used by the SSH transport while a freshly created instance boots and
does not accept connections yet.

Example:
    from skystep.retry import retry

    @retry(on=(OSError, asyncssh.Error), max_attempts=60, max_delay=10.0)
    async def dial():
        ...
"""

from __future__ import annotations

import asyncio
import functools
import random
from collections.abc import Awaitable, Callable
from typing import ParamSpec, TypeVar

from loguru import logger

P = ParamSpec("P")
T = TypeVar("T")

type RetryPredicate = Callable[[Exception], bool]

log = logger.bind(component="retry")


def retry(
    on: type[Exception] | tuple[type[Exception], ...] | RetryPredicate = Exception,
    max_attempts: int = 5,
    base_delay: float = 1.0,
    exponential_base: float = 2.0,
    max_delay: float = 60.0,
    jitter: bool = True,
) -> Callable[[Callable[P, Awaitable[T]]], Callable[P, Awaitable[T]]]:
    """Retry an async function with exponential backoff.

    Args:
        on: Exception class, tuple of classes, or predicate deciding
            whether a failure is retried.
        max_attempts: Maximum number of attempts, including the first.
        base_delay: Delay before the first retry, in seconds.
        exponential_base: Backoff multiplier. ``1.0`` gives a fixed delay.
        max_delay: Upper bound for a single delay.
        jitter: Add up to 10% random jitter to each delay.

    Cancellation is never retried: ``asyncio.CancelledError`` propagates
    out of the sleep between attempts.
    """
    if isinstance(on, type) and issubclass(on, Exception):
        should_retry: RetryPredicate = lambda e: isinstance(e, on)
    elif isinstance(on, tuple):
        should_retry = lambda e: isinstance(e, on)
    else:
        should_retry = on

    def decorator(func: Callable[P, Awaitable[T]]) -> Callable[P, Awaitable[T]]:
        @functools.wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            for attempt in range(max_attempts):
                try:
                    return await func(*args, **kwargs)
                except Exception as e:
                    if not should_retry(e) or attempt >= max_attempts - 1:
                        raise

                    delay = min(base_delay * (exponential_base**attempt), max_delay)
                    if jitter:
                        delay += random.uniform(0, delay * 0.1)

                    log.debug(
                        "Retry {attempt}/{total} after {error}: {message}. Waiting {delay:.1f}s",
                        attempt=attempt + 1,
                        total=max_attempts,
                        error=type(e).__name__,
                        message=e,
                        delay=delay,
                    )
                    await asyncio.sleep(delay)

            raise RuntimeError("retry loop exited without a result")

        return wrapper  # type: ignore[return-value]

    return decorator
