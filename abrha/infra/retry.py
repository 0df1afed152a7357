"""Retry controllers for transient API errors, built on tenacity.

Only the failure classes a predicate selects are retried; everything else
propagates on the first attempt.

Example:
    from abrha.infra.retry import on_api_error, on_status_code, retrying

    # Retry rate limiting and gateway errors with exponential backoff
    await retrying(on_status_code(429, 503), max_attempts=5)(api_call)

    # Retry a specific rejection on a fixed interval for up to 5 minutes
    await retrying(on_api_error(422, "pending event"), timeout=300, interval=5)(attach)
"""

from __future__ import annotations

import functools
import operator
from collections.abc import Callable

from loguru import logger
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    stop_after_delay,
    stop_never,
    wait_exponential,
    wait_fixed,
)
from tenacity.stop import stop_base
from tenacity.wait import wait_base

from abrha.core.exceptions import ApiError

type RetryPredicate = Callable[[BaseException], bool]


def _log_before_sleep(state: RetryCallState) -> None:
    exc = state.outcome.exception() if state.outcome else None
    delay = state.next_action.sleep if state.next_action else 0.0
    logger.bind(component="retry").warning(
        "Retry {attempt} after {kind}: {exc}. Waiting {delay:.1f}s...",
        attempt=state.attempt_number,
        kind=type(exc).__name__,
        exc=exc,
        delay=delay,
    )


def _normalize(on: type[BaseException] | tuple[type[BaseException], ...] | RetryPredicate) -> RetryPredicate:
    if isinstance(on, type) and issubclass(on, BaseException):
        return lambda e: isinstance(e, on)
    if isinstance(on, tuple):
        return lambda e: isinstance(e, on)
    return on


def retrying(
    on: type[BaseException] | tuple[type[BaseException], ...] | RetryPredicate = Exception,
    *,
    max_attempts: int | None = None,
    timeout: float | None = None,
    interval: float | None = None,
    base_delay: float = 1.0,
    max_delay: float = 30.0,
) -> AsyncRetrying:
    """Build an AsyncRetrying controller.

    Args:
        on: Exception class, tuple of classes, or predicate selecting what to retry.
        max_attempts: Maximum number of attempts including the first one.
        timeout: Maximum seconds spent retrying.
        interval: Fixed delay between attempts. Exponential backoff when None.
        base_delay: Initial backoff delay in seconds.
        max_delay: Backoff cap in seconds.
    """
    stops: list[stop_base] = []
    if max_attempts is not None:
        stops.append(stop_after_attempt(max_attempts))
    if timeout is not None:
        stops.append(stop_after_delay(timeout))
    stop = functools.reduce(operator.or_, stops) if stops else stop_never

    wait: wait_base = (
        wait_fixed(interval)
        if interval is not None
        else wait_exponential(multiplier=base_delay, min=base_delay, max=max_delay)
    )

    return AsyncRetrying(
        stop=stop,
        wait=wait,
        retry=retry_if_exception(_normalize(on)),
        before_sleep=_log_before_sleep,
        reraise=True,
    )


# =============================================================================
# Predicates
# =============================================================================


def on_status_code(*codes: int) -> RetryPredicate:
    """Retry when the exception exposes one of the given HTTP status codes."""

    def predicate(e: BaseException) -> bool:
        status = getattr(e, "status", None)
        return status in codes

    return predicate


def on_api_error(status: int, message: str) -> RetryPredicate:
    """Retry an ApiError with this status whose message contains ``message``."""

    def predicate(e: BaseException) -> bool:
        return isinstance(e, ApiError) and e.matches(status, message)

    return predicate


__all__ = ["on_api_error", "on_status_code", "retrying"]
