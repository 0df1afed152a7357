"""Observability for abrha: loguru-based logging setup."""

from .logging import LogConfig, LogLevel, setup_logging, teardown_logging

__all__ = ["LogConfig", "LogLevel", "setup_logging", "teardown_logging"]
