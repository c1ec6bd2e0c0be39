"""Terminal output for the command groups.

Status lines are coloured and prefixed with a symbol. Errors go to stderr
so that ``--format json`` output on stdout stays machine-readable.
"""

from __future__ import annotations

import json
from typing import Any

import click

_STATUS_STYLES = {
    "success": ("✓", "green"),
    "error": ("✗", "red"),
    "warning": ("⚠", "yellow"),
    "info": ("ℹ", "blue"),
}


def _status(kind: str, message: str, *, err: bool = False) -> None:
    symbol, colour = _STATUS_STYLES[kind]
    click.secho(f"{symbol} {message}", fg=colour, err=err)


def success(message: str) -> None:
    _status("success", message)


def error(message: str) -> None:
    _status("error", message, err=True)


def warning(message: str) -> None:
    _status("warning", message)


def info(message: str) -> None:
    _status("info", message)


def header(title: str) -> None:
    """Print a bold section title preceded by a blank line."""
    click.secho(f"\n{title}", fg="cyan", bold=True)


def key_value(key: str, value: Any, *, width: int = 24) -> None:
    """Print an aligned ``key: value`` row; ``None`` renders as ``-``."""
    shown = "-" if value is None else value
    click.echo(f"  {key + ':':<{width}} {shown}")


def emit_json(data: Any) -> None:
    """Print ``data`` as indented JSON (UUIDs and datetimes as strings)."""
    click.echo(json.dumps(data, indent=2, default=str))
