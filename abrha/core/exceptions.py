"""Custom exception hierarchy for abrha.

All abrha-specific exceptions inherit from AbrhaError, enabling
callers to catch every provider failure with a single except clause.

Convergence failures share ConvergenceError so a caller can tell
"the remote side is probably still working" (ConvergenceTimeoutError)
apart from "the change definitely failed" (everything else).
"""

from __future__ import annotations


class AbrhaError(Exception):
    """Base exception for all abrha errors."""


class ConfigurationError(AbrhaError):
    """Raised for invalid configuration or missing required settings."""


class ValidationError(AbrhaError):
    """Raised when a request violates a local precondition.

    Never reaches the remote API.
    """


# =============================================================================
# Remote API
# =============================================================================


class ApiError(AbrhaError):
    """Raised when the remote API rejects a request."""

    def __init__(self, status: int, message: str) -> None:
        self.status = status
        self.message = message
        super().__init__(f"API error {status}: {message}")

    def matches(self, status: int, message: str) -> bool:
        """True if this error has the given status and its message contains ``message``."""
        return self.status == status and message.lower() in self.message.lower()


class NotFoundError(ApiError):
    """Raised when the requested remote resource does not exist."""


class AlreadyDivergedError(ApiError):
    """Best-effort cleanup target is already out of sync with local state.

    Raised for mutations whose rejection means the desired end state
    already holds (e.g. unassigning a reserved IP that is no longer
    assigned). Callers decide explicitly whether to ignore it.
    """


class SubmissionError(AbrhaError):
    """Raised when submitting a mutation to the remote API fails."""

    def __init__(self, resource_id: str, operation: str, cause: Exception) -> None:
        self.resource_id = resource_id
        self.operation = operation
        self.cause = cause
        super().__init__(f"Error {operation} ({resource_id}): {cause}")


# =============================================================================
# Convergence
# =============================================================================


class ConvergenceError(AbrhaError):
    """Base class for failures while waiting on an attribute to converge."""

    def __init__(self, resource: str, attribute: str, target: str, detail: str) -> None:
        self.resource = resource
        self.attribute = attribute
        self.target = target
        super().__init__(
            f"{resource}: waiting for {attribute} to become {target!r}: {detail}"
        )


class ConvergenceTimeoutError(ConvergenceError):
    """The awaited attribute did not reach its target within the timeout.

    The remote mutation may still complete on its own.
    """

    def __init__(
        self,
        resource: str,
        attribute: str,
        target: str,
        timeout: float,
        last_state: str | None = None,
    ) -> None:
        self.timeout = timeout
        self.last_state = last_state
        super().__init__(
            resource,
            attribute,
            target,
            f"timeout after {timeout:.1f}s (last state: {last_state!r})",
        )


class ActionFailedError(ConvergenceError):
    """The remote system reported that the action itself failed."""

    def __init__(self, resource: str, attribute: str, target: str, state: str) -> None:
        self.state = state
        super().__init__(resource, attribute, target, f"remote reported {state!r}")


class NotFoundExhaustedError(ConvergenceError):
    """The resource stayed invisible for more than the tolerated number of polls."""

    def __init__(self, resource: str, attribute: str, target: str, checks: int) -> None:
        self.checks = checks
        super().__init__(
            resource, attribute, target, f"resource not found after {checks} checks"
        )


class UnexpectedStateError(ConvergenceError):
    """The attribute reached a value that is neither the target nor pending."""

    def __init__(
        self,
        resource: str,
        attribute: str,
        target: str,
        state: str,
        pending: frozenset[str],
    ) -> None:
        self.state = state
        expected = ", ".join(sorted(pending)) or "none"
        super().__init__(
            resource,
            attribute,
            target,
            f"unexpected state {state!r} (pending: {expected})",
        )


class RefreshFailedError(ConvergenceError):
    """Reading the resource failed with an error that is not retried."""

    def __init__(self, resource: str, attribute: str, target: str, cause: Exception) -> None:
        self.cause = cause
        super().__init__(resource, attribute, target, f"refresh failed: {cause}")


# =============================================================================
# Compensation
# =============================================================================


class RollbackError(AbrhaError):
    """A compensating action failed after a primary step had already failed.

    Carries both errors; neither is discarded.
    """

    def __init__(self, resource_id: str, original: Exception, rollback: Exception) -> None:
        self.resource_id = resource_id
        self.original = original
        self.rollback = rollback
        super().__init__(
            f"{resource_id}: {original}; rollback also failed: {rollback}"
        )
