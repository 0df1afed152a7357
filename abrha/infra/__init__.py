"""Internal machinery: HTTP, retry, throttle."""

from .retry import (
    on_api_error,
    on_status_code,
    retrying,
)
from .throttle import (
    Limiter,
    throttle,
)
from .http import (
    Auth,
    BearerAuth,
    HttpClient,
    HttpError,
)

__all__ = [
    "Auth",
    "BearerAuth",
    "HttpClient",
    "HttpError",
    "Limiter",
    "on_api_error",
    "on_status_code",
    "retrying",
    "throttle",
]
