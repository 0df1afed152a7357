"""Core types shared across abrha: the exception hierarchy."""

from .exceptions import (
    AbrhaError,
    ActionFailedError,
    AlreadyDivergedError,
    ApiError,
    ConfigurationError,
    ConvergenceError,
    ConvergenceTimeoutError,
    NotFoundError,
    NotFoundExhaustedError,
    RefreshFailedError,
    RollbackError,
    SubmissionError,
    UnexpectedStateError,
    ValidationError,
)

__all__ = [
    "AbrhaError",
    "ActionFailedError",
    "AlreadyDivergedError",
    "ApiError",
    "ConfigurationError",
    "ConvergenceError",
    "ConvergenceTimeoutError",
    "NotFoundError",
    "NotFoundExhaustedError",
    "RefreshFailedError",
    "RollbackError",
    "SubmissionError",
    "UnexpectedStateError",
    "ValidationError",
]
