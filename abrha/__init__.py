"""abrha - Asynchronous reconciliation of Abrha cloud resources.

Example:

    from abrha import AbrhaClient, load_config
    from abrha.resources import VmController, VmSpec

    async with AbrhaClient(load_config()) as client:
        vms = VmController(client)
        vm = await vms.create(VmSpec(name="web-1", region="fra1", size="s-1", image="ubuntu-24-04"))
        result = await vms.update(vm["id"], prior, desired)
"""

__version__ = "0.1.0"

# Configuration
from abrha.config import Abrha, load_config

# Exceptions
from abrha.core.exceptions import (
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

# API client
from abrha.api.client import AbrhaClient

# Polling
from abrha.wait import (
    Convergence,
    Observation,
    PollTimings,
    action_refresh,
    wait_for_action,
    wait_for_state,
)

# Logging
from abrha.observability.logging import LogConfig, setup_logging, teardown_logging

__all__ = [
    "Abrha",
    "AbrhaClient",
    "AbrhaError",
    "ActionFailedError",
    "AlreadyDivergedError",
    "ApiError",
    "ConfigurationError",
    "Convergence",
    "ConvergenceError",
    "ConvergenceTimeoutError",
    "LogConfig",
    "NotFoundError",
    "NotFoundExhaustedError",
    "Observation",
    "PollTimings",
    "RefreshFailedError",
    "RollbackError",
    "SubmissionError",
    "UnexpectedStateError",
    "ValidationError",
    "__version__",
    "action_refresh",
    "load_config",
    "setup_logging",
    "teardown_logging",
    "wait_for_action",
    "wait_for_state",
]
