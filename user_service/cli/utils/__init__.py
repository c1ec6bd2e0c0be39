"""Helpers shared by the CLI command groups."""

from __future__ import annotations

from user_service.cli.utils.async_runner import coro
from user_service.cli.utils.formatters import (
    emit_json,
    error,
    header,
    info,
    key_value,
    success,
    warning,
)

__all__ = [
    "coro",
    "emit_json",
    "error",
    "header",
    "info",
    "key_value",
    "success",
    "warning",
]
