"""Database foundations: declarative base, mixins and repositories."""

from __future__ import annotations

from .base import NAMING_CONVENTION, Base, IntegerPKMixin, JSONType, TimestampMixin, UUIDPKMixin
from .exceptions import NotFoundError, RepositoryError
from .repository import BaseRepository, insert_ignore

__all__ = [
    "NAMING_CONVENTION",
    "Base",
    "BaseRepository",
    "IntegerPKMixin",
    "JSONType",
    "NotFoundError",
    "RepositoryError",
    "TimestampMixin",
    "UUIDPKMixin",
    "insert_ignore",
]
