"""CLI command modules."""

from __future__ import annotations

from user_service.cli.commands import db, outbox, users

__all__ = [
    "db",
    "outbox",
    "users",
]
