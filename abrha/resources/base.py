"""Shared plumbing for resource controllers."""

from __future__ import annotations

from collections.abc import Awaitable
from dataclasses import dataclass
from typing import ClassVar

from loguru import logger

from abrha.api.client import AbrhaClient
from abrha.api.types import ActionResponse
from abrha.core.exceptions import ApiError, SubmissionError, ValidationError
from abrha.wait import ACTION_IN_PROGRESS, ACTION_TIMINGS, PollTimings, wait_for_action

ACTION_TIMEOUT = 3600.0


@dataclass(frozen=True, slots=True)
class Timeouts:
    """Per-operation convergence timeouts in seconds."""

    create: float = 3600.0
    update: float = 3600.0
    delete: float = 60.0

    def __post_init__(self) -> None:
        if min(self.create, self.update, self.delete) <= 0:
            raise ValidationError("timeouts must be > 0")


class Controller:
    """Base class for resource controllers.

    Holds the injected client, the poll timings and the timeouts. Subclasses
    set ``kind``, ``default_timeouts`` and, where they poll with other
    cadences than actions, ``default_timings``.
    """

    kind: ClassVar[str] = "resource"
    default_timeouts: ClassVar[Timeouts] = Timeouts()
    default_timings: ClassVar[PollTimings] = ACTION_TIMINGS

    def __init__(
        self,
        client: AbrhaClient,
        *,
        timings: PollTimings | None = None,
        timeouts: Timeouts | None = None,
    ) -> None:
        self.client = client
        self.timings = timings or self.default_timings
        self.timeouts = timeouts or self.default_timeouts
        self._log = logger.bind(component=self.kind)

    def label(self, resource_id: str) -> str:
        return f"{self.kind} ({resource_id})"

    async def submit[T](self, resource_id: str, operation: str, call: Awaitable[T]) -> T:
        """Await a mutating request, wrapping API rejections in SubmissionError."""
        self._log.debug("Submitting {operation}", operation=operation, resource_id=resource_id)
        try:
            return await call
        except ApiError as e:
            raise SubmissionError(resource_id, operation, e) from e

    async def wait_action(
        self,
        resource_id: str,
        action: ActionResponse | None,
        *,
        timeout: float = ACTION_TIMEOUT,
        pending: frozenset[str] = frozenset({ACTION_IN_PROGRESS}),
    ) -> ActionResponse | None:
        return await wait_for_action(
            self.client,
            action,
            resource=self.label(resource_id),
            timings=self.timings,
            timeout=timeout,
            pending=pending,
        )


__all__ = ["ACTION_TIMEOUT", "Controller", "Timeouts"]
