"""User administration: users, instructor profiles and departments."""

from __future__ import annotations

from .exceptions import (
    DepartmentAlreadyExistsError,
    DepartmentNotFoundError,
    InstructorNotFoundError,
    InvalidRoleError,
    MutationFailedError,
    UserAlreadyExistsError,
    UserNotFoundError,
)
from .models import Department, Instructor, Role, User
from .repository import DepartmentRepository, InstructorRepository, UserRepository
from .schemas import (
    DepartmentCreate,
    DepartmentRead,
    DepartmentUpdate,
    InstructorProfileUpdate,
    InstructorRead,
    UserCreate,
    UserRead,
)
from .service import UserService, parse_role

__all__ = [
    "Department",
    "DepartmentAlreadyExistsError",
    "DepartmentCreate",
    "DepartmentNotFoundError",
    "DepartmentRead",
    "DepartmentRepository",
    "DepartmentUpdate",
    "Instructor",
    "InstructorNotFoundError",
    "InstructorProfileUpdate",
    "InstructorRead",
    "InstructorRepository",
    "InvalidRoleError",
    "MutationFailedError",
    "Role",
    "User",
    "UserAlreadyExistsError",
    "UserCreate",
    "UserNotFoundError",
    "UserRead",
    "UserRepository",
    "UserService",
    "parse_role",
]
