"""Bounded polling of asynchronous remote operations.

A mutation against the control plane returns immediately; its effect shows
up later. wait_for_state() polls a refresh function until the observed
state reaches the target, a fatal state shows up, or the deadline passes.

Example:
    from abrha.wait import Convergence, Observation, wait_for_state

    async def refresh() -> Observation[dict]:
        vm = await client.get_vm(vm_id)
        return Observation(vm, vm["status"], locked=vm["locked"])

    vm = await wait_for_state(
        refresh,
        Convergence(target="active", pending=frozenset({"new"}), resource=f"vm {vm_id}"),
    )
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING

from loguru import logger

from abrha.core.exceptions import (
    ActionFailedError,
    ConvergenceTimeoutError,
    NotFoundError,
    NotFoundExhaustedError,
    RefreshFailedError,
    UnexpectedStateError,
    ValidationError,
)

if TYPE_CHECKING:
    from abrha.api.client import AbrhaClient
    from abrha.api.types import ActionResponse

ACTION_COMPLETED = "completed"
ACTION_IN_PROGRESS = "in-progress"
ACTION_ERRORED = "errored"


@dataclass(frozen=True, slots=True)
class Observation[T]:
    """One refresh result.

    Attributes:
        result: The raw resource as read from the API.
        state: Value of the awaited attribute, rendered as a string.
        locked: The resource is busy with an unrelated action; state is
            not evaluated and the poll is repeated.
    """

    result: T
    state: str
    locked: bool = False


@dataclass(frozen=True, slots=True)
class PollTimings:
    """Delay, interval and not-found tolerance for a family of waits.

    Attributes:
        delay: Seconds to sleep before the first refresh.
        interval: Seconds between refreshes.
        min_timeout: Floor for the interval.
        not_found_checks: Consecutive not-found refreshes tolerated.
    """

    delay: float = 10.0
    interval: float = 3.0
    min_timeout: float = 3.0
    not_found_checks: int = 60

    def __post_init__(self) -> None:
        if self.delay < 0 or self.interval < 0 or self.min_timeout < 0:
            raise ValidationError("poll timings must be non-negative")
        if self.not_found_checks < 0:
            raise ValidationError("not_found_checks must be >= 0")


ACTION_TIMINGS = PollTimings(delay=10.0, interval=3.0, min_timeout=3.0, not_found_checks=60)


@dataclass(frozen=True, slots=True)
class Convergence:
    """What to wait for and for how long.

    The target must not be one of the pending or failed states.
    """

    target: str
    pending: frozenset[str] = frozenset()
    failed: frozenset[str] = frozenset({ACTION_ERRORED})
    delay: float = 10.0
    interval: float = 3.0
    min_timeout: float = 3.0
    timeout: float = 3600.0
    not_found_checks: int = 0
    resource: str = "resource"
    attribute: str = "status"

    def __post_init__(self) -> None:
        if self.target in self.pending:
            raise ValidationError(f"target {self.target!r} is also a pending state")
        if self.target in self.failed:
            raise ValidationError(f"target {self.target!r} is also a failed state")
        if self.timeout <= 0:
            raise ValidationError("timeout must be > 0")
        if self.delay < 0 or self.interval < 0 or self.min_timeout < 0:
            raise ValidationError("poll timings must be non-negative")
        if self.not_found_checks < 0:
            raise ValidationError("not_found_checks must be >= 0")

    @classmethod
    def of(
        cls,
        target: str,
        pending: set[str] | frozenset[str],
        *,
        timings: PollTimings,
        timeout: float,
        resource: str,
        attribute: str = "status",
        failed: set[str] | frozenset[str] = frozenset({ACTION_ERRORED}),
    ) -> Convergence:
        """Build a Convergence from a PollTimings preset."""
        return cls(
            target=target,
            pending=frozenset(pending),
            failed=frozenset(failed),
            delay=timings.delay,
            interval=timings.interval,
            min_timeout=timings.min_timeout,
            timeout=timeout,
            not_found_checks=timings.not_found_checks,
            resource=resource,
            attribute=attribute,
        )

    @property
    def wait(self) -> float:
        return max(self.interval, self.min_timeout)


type Refresh[T] = Callable[[], Awaitable[Observation[T]]]


async def wait_for_state[T](refresh: Refresh[T], convergence: Convergence) -> T:
    """Poll ``refresh`` until the observed state equals the target.

    Args:
        refresh: Reads the resource once. Raising NotFoundError counts
            toward the not-found tolerance; any other exception is fatal.
        convergence: Target, pending set and timings.

    Returns:
        The result of the observation that reached the target.

    Raises:
        ConvergenceTimeoutError: Deadline passed while still pending.
        ActionFailedError: A failed state was observed.
        UnexpectedStateError: A state outside target and pending was observed.
        NotFoundExhaustedError: The resource stayed invisible too long.
        RefreshFailedError: Refresh raised a non-not-found error.
    """
    c = convergence
    log = logger.bind(component="wait", resource=c.resource, attribute=c.attribute)
    log.info("Waiting for {attribute} to become {target!r}", attribute=c.attribute, target=c.target)

    last_state: str | None = None
    not_found = 0

    try:
        async with asyncio.timeout(c.timeout):
            if c.delay:
                await asyncio.sleep(c.delay)

            while True:
                try:
                    observation = await refresh()
                except NotFoundError as e:
                    not_found += 1
                    if not_found > c.not_found_checks:
                        raise NotFoundExhaustedError(
                            c.resource, c.attribute, c.target, not_found
                        ) from e
                    log.debug("Not found ({count}/{limit}), retrying", count=not_found, limit=c.not_found_checks)
                    await asyncio.sleep(c.wait)
                    continue
                except Exception as e:
                    raise RefreshFailedError(c.resource, c.attribute, c.target, e) from e

                if observation.locked:
                    log.debug("Resource is locked, skipping state check")
                    await asyncio.sleep(c.wait)
                    continue

                state = observation.state
                last_state = state

                if state == c.target:
                    log.info("{attribute} reached {target!r}", attribute=c.attribute, target=c.target)
                    return observation.result

                if state in c.failed:
                    raise ActionFailedError(c.resource, c.attribute, c.target, state)

                if state not in c.pending:
                    raise UnexpectedStateError(c.resource, c.attribute, c.target, state, c.pending)

                not_found = 0
                log.debug("Still {state!r}, next poll in {wait:.1f}s", state=state, wait=c.wait)
                await asyncio.sleep(c.wait)
    except TimeoutError as e:
        raise ConvergenceTimeoutError(
            c.resource, c.attribute, c.target, c.timeout, last_state
        ) from e


# =============================================================================
# Actions
# =============================================================================


def action_state(action: ActionResponse) -> str:
    """Reduce an action to one of completed / in-progress / errored."""
    status = action.get("status")
    if status == ACTION_ERRORED:
        return ACTION_ERRORED
    if status == ACTION_COMPLETED or action.get("completed_at"):
        return ACTION_COMPLETED
    return ACTION_IN_PROGRESS


def action_refresh(client: AbrhaClient, action_id: int) -> Refresh[ActionResponse]:
    """Refresh function that reads one action by id."""

    async def refresh() -> Observation[ActionResponse]:
        action = await client.get_action(action_id)
        return Observation(action, action_state(action))

    return refresh


async def wait_for_action(
    client: AbrhaClient,
    action: ActionResponse | None,
    *,
    resource: str,
    timings: PollTimings | None = None,
    timeout: float = 3600.0,
    pending: frozenset[str] = frozenset({ACTION_IN_PROGRESS}),
) -> ActionResponse | None:
    """Wait for an action to complete.

    An action without an id is treated as already completed.
    """
    if not action or not action.get("id"):
        return action

    action_id = action["id"]
    logger.bind(component="wait", resource=resource, action_id=action_id).debug(
        "Waiting for action {type} to complete", type=action.get("type", "unknown")
    )
    return await wait_for_state(
        action_refresh(client, action_id),
        Convergence.of(
            ACTION_COMPLETED,
            pending,
            timings=timings or ACTION_TIMINGS,
            timeout=timeout,
            resource=resource,
            attribute=f"action {action_id}",
        ),
    )


__all__ = [
    "ACTION_COMPLETED",
    "ACTION_ERRORED",
    "ACTION_IN_PROGRESS",
    "ACTION_TIMINGS",
    "Convergence",
    "Observation",
    "PollTimings",
    "Refresh",
    "action_refresh",
    "action_state",
    "wait_for_action",
    "wait_for_state",
]
