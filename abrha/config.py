"""TOML-based provider configuration.

Loads ~/.abrha/defaults.toml (global) and abrha.toml (project), merges
their ``[provider]`` tables, then applies ABRHA_* environment variables on
top.
"""

from __future__ import annotations

import dataclasses
import os
import tomllib
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from abrha.core.exceptions import ConfigurationError

type RawConfig = dict[str, Any]

GLOBAL_CONFIG_PATH = Path.home() / ".abrha" / "defaults.toml"
PROJECT_CONFIG_NAME = "abrha.toml"
DEFAULT_API_ENDPOINT = "https://my.abrha.net/cserver/api"


# =============================================================================
# Configuration
# =============================================================================


@dataclass(frozen=True, slots=True)
class Abrha:
    """Abrha provider configuration.

    Example:
        >>> from abrha.config import Abrha
        >>> config = Abrha(token="...", requests_per_second=5)

    Args:
        token: API token. Falls back to ABRHA_TOKEN / ABRHA_ACCESS_TOKEN.
        api_endpoint: Base URL of the Abrha API.
        requests_per_second: Client-side rate limit. 0 disables it.
        http_retry_max: Retries for 429 and 5xx responses. 0 disables them.
        http_retry_wait_min: Minimum backoff between HTTP retries in seconds.
        http_retry_wait_max: Maximum backoff between HTTP retries in seconds.
        request_timeout: Total timeout of a single HTTP request in seconds.
    """

    token: str | None = None
    api_endpoint: str = DEFAULT_API_ENDPOINT
    requests_per_second: float = 0.0
    http_retry_max: int = 4
    http_retry_wait_min: float = 1.0
    http_retry_wait_max: float = 30.0
    request_timeout: float = 30.0

    def __post_init__(self) -> None:
        if self.requests_per_second < 0:
            raise ConfigurationError("requests_per_second must be >= 0")
        if self.http_retry_max < 0:
            raise ConfigurationError("http_retry_max must be >= 0")
        if self.http_retry_wait_min > self.http_retry_wait_max:
            raise ConfigurationError("http_retry_wait_min must not exceed http_retry_wait_max")
        if self.request_timeout <= 0:
            raise ConfigurationError("request_timeout must be > 0")

    def require_token(self) -> str:
        if not self.token:
            raise ConfigurationError(
                "Abrha API token is not set. Configure 'token' under [provider] "
                "or set ABRHA_TOKEN."
            )
        return self.token


# =============================================================================
# Loading
# =============================================================================

_ENV_VARS: dict[str, tuple[str, ...]] = {
    "token": ("ABRHA_TOKEN", "ABRHA_ACCESS_TOKEN"),
    "api_endpoint": ("ABRHA_API_URL",),
    "requests_per_second": ("ABRHA_REQUESTS_PER_SECOND",),
    "http_retry_max": ("ABRHA_HTTP_RETRY_MAX",),
    "http_retry_wait_min": ("ABRHA_HTTP_RETRY_WAIT_MIN",),
    "http_retry_wait_max": ("ABRHA_HTTP_RETRY_WAIT_MAX",),
}

_CASTS: dict[str, type] = {
    "requests_per_second": float,
    "http_retry_max": int,
    "http_retry_wait_min": float,
    "http_retry_wait_max": float,
    "request_timeout": float,
}


def _deep_merge(base: RawConfig, override: RawConfig) -> RawConfig:
    result = dict(base)
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _read_toml(path: Path) -> RawConfig:
    if not path.is_file():
        return {}
    try:
        with path.open("rb") as f:
            return tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigurationError(f"Invalid TOML in {path}: {e}") from e


def _from_env(environ: Mapping[str, str]) -> RawConfig:
    raw: RawConfig = {}
    for key, names in _ENV_VARS.items():
        for name in names:
            if value := environ.get(name):
                raw[key] = value
                break
    return raw


def _coerce(raw: RawConfig) -> RawConfig:
    known = {f.name for f in dataclasses.fields(Abrha)}
    unknown = set(raw) - known
    if unknown:
        raise ConfigurationError(
            f"Unknown provider setting(s): {', '.join(sorted(unknown))}. "
            f"Valid: {', '.join(sorted(known))}"
        )

    result = dict(raw)
    for key, cast in _CASTS.items():
        if key in result:
            try:
                result[key] = cast(result[key])
            except (TypeError, ValueError) as e:
                raise ConfigurationError(f"Invalid value for {key}: {result[key]!r}") from e
    return result


def load_raw_config(
    *,
    project_dir: Path | None = None,
    global_path: Path | None = None,
) -> RawConfig:
    global_cfg = _read_toml(global_path or GLOBAL_CONFIG_PATH)
    project_path = (project_dir or Path.cwd()) / PROJECT_CONFIG_NAME
    project_cfg = _read_toml(project_path)

    merged = _deep_merge(global_cfg, project_cfg)
    merged.setdefault("provider", {})
    return merged


def load_config(
    *,
    project_dir: Path | None = None,
    global_path: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> Abrha:
    """Resolve the provider configuration.

    Precedence, lowest to highest: defaults, global TOML, project TOML,
    environment.
    """
    raw = load_raw_config(project_dir=project_dir, global_path=global_path)["provider"]
    if not isinstance(raw, dict):
        raise ConfigurationError("[provider] must be a table")
    merged = _deep_merge(raw, _from_env(os.environ if environ is None else environ))
    return Abrha(**_coerce(merged))


__all__ = [
    "Abrha",
    "DEFAULT_API_ENDPOINT",
    "GLOBAL_CONFIG_PATH",
    "PROJECT_CONFIG_NAME",
    "load_config",
    "load_raw_config",
]
