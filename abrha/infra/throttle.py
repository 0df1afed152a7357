"""Throttle decorator for rate limiting async functions.

Combines concurrency limiting (semaphore) with interval enforcement
to control the rate of outgoing API requests.

Example:
    from abrha.infra.throttle import Limiter, throttle

    # At most 2 requests per second, shared by every call site
    api_limiter = Limiter(interval=0.5)

    @throttle(limiter=api_limiter)
    async def api_call(): ...
"""

import asyncio
import functools
import time
from collections.abc import Awaitable, Callable

from loguru import logger


class Limiter:
    """Shared throttle state for controlling concurrency and intervals.

    Args:
        max_concurrent: Maximum simultaneous executions. None = unlimited.
        interval: Minimum seconds between call starts. None = no limit.
    """

    def __init__(
        self,
        max_concurrent: int | None = None,
        interval: float | None = None,
    ) -> None:
        self._max_concurrent = max_concurrent
        self._interval = interval
        self._semaphore = asyncio.Semaphore(max_concurrent) if max_concurrent else None
        self._last_call: float = 0.0
        self._lock = asyncio.Lock()

    @classmethod
    def per_second(cls, requests_per_second: float) -> "Limiter | None":
        """Limiter spacing calls evenly at the given rate; None when unlimited."""
        if requests_per_second <= 0:
            return None
        return cls(interval=1.0 / requests_per_second)

    async def acquire(self) -> None:
        """Wait until the next call is allowed."""
        if self._interval is not None:
            async with self._lock:
                now = time.monotonic()
                wait_time = self._interval - (now - self._last_call)

                if wait_time > 0:
                    logger.debug(f"Throttle: waiting {wait_time:.2f}s for interval")
                    await asyncio.sleep(wait_time)

                self._last_call = time.monotonic()

        if self._semaphore is not None:
            await self._semaphore.acquire()

    def release(self) -> None:
        """Release semaphore after execution completes."""
        if self._semaphore is not None:
            self._semaphore.release()

    def __repr__(self) -> str:
        return f"Limiter(max_concurrent={self._max_concurrent}, interval={self._interval})"


def throttle[**P, T](
    max_concurrent: int | None = None,
    interval: float | None = None,
    limiter: Limiter | None = None,
) -> Callable[[Callable[P, Awaitable[T]]], Callable[P, Awaitable[T]]]:
    """Decorator that throttles async function calls.

    Args:
        max_concurrent: Maximum simultaneous executions. None = unlimited.
        interval: Minimum seconds between call starts. None = no limit.
        limiter: Shared Limiter instance. If provided, max_concurrent and
                 interval parameters are ignored.
    """
    _limiter = limiter or Limiter(max_concurrent=max_concurrent, interval=interval)

    def decorator(func: Callable[P, Awaitable[T]]) -> Callable[P, Awaitable[T]]:
        @functools.wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            await _limiter.acquire()
            try:
                return await func(*args, **kwargs)
            finally:
                _limiter.release()

        return wrapper

    return decorator
