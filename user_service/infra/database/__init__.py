"""Database infrastructure: engine, sessions and lifecycle helpers."""

from __future__ import annotations

from .session import (
    close_database,
    create_tables,
    get_engine,
    get_session_factory,
    init_database,
)

__all__ = [
    "close_database",
    "create_tables",
    "get_engine",
    "get_session_factory",
    "init_database",
]
