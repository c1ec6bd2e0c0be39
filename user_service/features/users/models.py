"""SQLAlchemy models for user administration."""

from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum
from typing import Any

from sqlalchemy import Boolean, ForeignKey, String, Text, true
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column

from user_service.core.database.base import Base, IntegerPKMixin, JSONType, TimestampMixin, UUIDPKMixin


class Role(str, Enum):
    """User roles. INSTRUCTOR additionally owns an ``Instructor`` row."""

    ADMIN = "ADMIN"
    INSTRUCTOR = "INSTRUCTOR"
    MANAGER = "MANAGER"
    EMPLOYEE = "EMPLOYEE"


class Department(Base, TimestampMixin):
    """Organizational unit users belong to."""

    __tablename__ = "departments"

    code: Mapped[str] = mapped_column(
        String(32),
        primary_key=True,
        comment="Short department code (e.g. 'ENG')",
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    manager_id: Mapped[uuid.UUID | None] = mapped_column(
        nullable=True,
        comment="User id of the department manager",
    )

    def __repr__(self) -> str:
        return f"<Department(code={self.code!r}, name={self.name!r})>"


class User(Base, UUIDPKMixin, TimestampMixin):
    """Employee account administered by this service."""

    __tablename__ = "users"

    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[Role] = mapped_column(
        SAEnum(Role, name="user_role", native_enum=False, length=32, validate_strings=True),
        nullable=False,
        default=Role.EMPLOYEE,
        comment="Current role; INSTRUCTOR implies an instructors row",
    )
    department_id: Mapped[str | None] = mapped_column(
        String(32),
        ForeignKey("departments.code", ondelete="SET NULL"),
        nullable=True,
    )
    active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
        server_default=true(),
    )
    password_reset_requested_at: Mapped[datetime | None] = mapped_column(
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email!r}, role={self.role.value})>"


class Instructor(Base, IntegerPKMixin, TimestampMixin):
    """Instructor profile, present exactly while the owning user has role INSTRUCTOR."""

    __tablename__ = "instructors"

    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )
    bio: Mapped[str | None] = mapped_column(Text, nullable=True)
    specialties: Mapped[list[Any]] = mapped_column(
        JSONType,
        nullable=False,
        default=list,
    )

    def __repr__(self) -> str:
        return f"<Instructor(user_id={self.user_id})>"


__all__ = ["Department", "Instructor", "Role", "User"]
