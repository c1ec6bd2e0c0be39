"""Declarative base and column mixins shared by every table.

    class Department(Base, TimestampMixin):
        __tablename__ = "departments"
        code: Mapped[str] = mapped_column(String(32), primary_key=True)

    class User(Base, UUIDPKMixin, TimestampMixin):
        __tablename__ = "users"
        email: Mapped[str] = mapped_column(String(255), unique=True)

All timestamps are timezone-aware UTC. Python-side defaults fill them for
ORM and Core inserts; server defaults cover rows written by hand or by
migrations.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime

from sqlalchemy import JSON, DateTime, MetaData, Uuid
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.sql import func

# Constraint names the initial migration relies on
NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

# JSONB on PostgreSQL, JSON text on SQLite
JSONType = JSON().with_variant(JSONB(), "postgresql")


def utcnow() -> datetime:
    return datetime.now(UTC)


class Base(DeclarativeBase):
    """Declarative base bound to the convention-named metadata."""

    metadata = MetaData(naming_convention=NAMING_CONVENTION)
    type_annotation_map = {
        datetime: DateTime(timezone=True),
        uuid.UUID: Uuid(),
    }


class IntegerPKMixin:
    """Auto-increment integer key; outbox ids double as claim order."""

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)


class UUIDPKMixin:
    """Random UUID key generated on the Python side."""

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)


class TimestampMixin:
    """``created_at`` on insert, ``updated_at`` refreshed on every ORM update."""

    created_at: Mapped[datetime] = mapped_column(
        default=utcnow,
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        default=utcnow,
        server_default=func.now(),
        onupdate=utcnow,
        nullable=False,
    )


__all__ = [
    "NAMING_CONVENTION",
    "Base",
    "IntegerPKMixin",
    "JSONType",
    "TimestampMixin",
    "UUIDPKMixin",
    "utcnow",
]
