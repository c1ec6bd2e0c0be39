"""Structured logging for the user service.

Usage:
    from user_service.infra.logging import setup_logging, set_log_context

    setup_logging()
    set_log_context(correlation_id="abc-123")
"""

from __future__ import annotations

from .config import configure_logging, setup_logging, shutdown
from .context import (
    ContextInjectingFilter,
    clear_log_context,
    get_log_context,
    log_context,
    remove_from_log_context,
    set_log_context,
)
from .formatters import JSONFormatter
from .lazy import LazyLoggerAdapter, get_lazy_logger

__all__ = [
    "ContextInjectingFilter",
    "JSONFormatter",
    "LazyLoggerAdapter",
    "clear_log_context",
    "configure_logging",
    "get_lazy_logger",
    "get_log_context",
    "log_context",
    "remove_from_log_context",
    "set_log_context",
    "setup_logging",
    "shutdown",
]
