"""Pydantic schemas for the users feature."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from user_service.features.users.models import Role


class UserCreate(BaseModel):
    """Payload used when registering a user."""

    email: str = Field(..., min_length=3, max_length=255, pattern=r"^[^@\s]+@[^@\s]+$")
    name: str = Field(..., min_length=1, max_length=255)
    role: Role = Role.EMPLOYEE
    department_id: str | None = Field(default=None, max_length=32)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        """Emails are stored lowercase with no surrounding whitespace."""
        return v.strip().lower()


class UserRead(BaseModel):
    """Representation of a committed user."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    email: str
    name: str
    role: Role
    department_id: str | None = None
    active: bool
    password_reset_requested_at: datetime | None = None
    created_at: datetime
    updated_at: datetime


class InstructorProfileUpdate(BaseModel):
    """Partial update of an instructor profile."""

    bio: str | None = Field(default=None, max_length=5000)
    specialties: list[str] | None = None


class InstructorRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: UUID
    bio: str | None = None
    specialties: list[str] = Field(default_factory=list)


class DepartmentCreate(BaseModel):
    """Payload used when creating a department."""

    code: str = Field(..., min_length=1, max_length=32, pattern=r"^[A-Za-z0-9_-]+$")
    name: str = Field(..., min_length=1, max_length=255)
    description: str | None = None
    manager_id: UUID | None = None

    @field_validator("code")
    @classmethod
    def normalize_code(cls, v: str) -> str:
        return v.strip().upper()


class DepartmentUpdate(BaseModel):
    """Payload for updating a department. Unset fields are left unchanged.

    Dumped with ``by_alias=True`` it gives the camelCase ``changes`` of the
    ``department.updated`` event.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    name: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    manager_id: UUID | None = None


class DepartmentRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    code: str
    name: str
    description: str | None = None
    manager_id: UUID | None = None
    created_at: datetime
    updated_at: datetime


__all__ = [
    "DepartmentCreate",
    "DepartmentRead",
    "DepartmentUpdate",
    "InstructorProfileUpdate",
    "InstructorRead",
    "UserCreate",
    "UserRead",
]
