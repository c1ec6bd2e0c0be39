"""Domain errors raised by the user administration transactors.

Every one of them is raised before commit, so a caller that catches one
knows that nothing was written and no event was staged.
"""

from __future__ import annotations

from typing import Any

from user_service.core.exceptions import (
    ConflictException,
    InternalServerException,
    NotFoundException,
    ValidationException,
)


class UserNotFoundError(NotFoundException):
    """A user id or email did not resolve to a user."""

    default_type = "user-not-found"

    def __init__(self, identifier: Any) -> None:
        self.identifier = identifier
        super().__init__(f"User not found: {identifier}", extra={"user": str(identifier)})


class InstructorNotFoundError(NotFoundException):
    """An instructor profile was edited for a user who has none."""

    default_type = "instructor-not-found"

    def __init__(self, user_id: Any) -> None:
        self.user_id = user_id
        super().__init__(
            f"Instructor profile not found for user: {user_id}",
            extra={"user_id": str(user_id)},
        )


class DepartmentNotFoundError(NotFoundException):
    default_type = "department-not-found"

    def __init__(self, code: str) -> None:
        self.code = code
        super().__init__(f"Department not found: {code}", extra={"code": code})


class UserAlreadyExistsError(ConflictException):
    default_type = "user-already-exists"

    def __init__(self, email: str) -> None:
        self.email = email
        super().__init__(f"User with email {email} already exists", extra={"email": email})


class DepartmentAlreadyExistsError(ConflictException):
    default_type = "department-already-exists"

    def __init__(self, code: str) -> None:
        self.code = code
        super().__init__(f"Department {code} already exists", extra={"code": code})


class InvalidRoleError(ValidationException):
    """A role value is not one of ``Role``."""

    default_type = "invalid-role"

    def __init__(self, role: Any) -> None:
        self.role = role
        super().__init__(f"Invalid role: {role!r}", extra={"role": str(role)})


class MutationFailedError(InternalServerException):
    """The mutation's transaction failed and was rolled back.

    Attributes:
        operation: Transactor method name, e.g. "apply_role_transition".
        reason: Class name of the underlying database error.
    """

    default_type = "mutation-failed"

    def __init__(self, operation: str, reason: str) -> None:
        self.operation = operation
        self.reason = reason
        super().__init__(
            f"{operation} failed; no change occurred",
            extra={"operation": operation, "reason": reason},
        )


__all__ = [
    "DepartmentAlreadyExistsError",
    "DepartmentNotFoundError",
    "InstructorNotFoundError",
    "InvalidRoleError",
    "MutationFailedError",
    "UserAlreadyExistsError",
    "UserNotFoundError",
]
