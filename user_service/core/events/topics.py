"""Routing keys for the domain events this service emits."""

from __future__ import annotations

from enum import Enum


class EventTopic(str, Enum):
    """Event types, used verbatim as RabbitMQ routing keys."""

    USER_CREATED = "user.created"
    USER_ROLE_CHANGED = "user.role_changed"
    USER_STATUS_CHANGED = "user.status_changed"
    USER_PASSWORD_RESET_REQUESTED = "user.password_reset_requested"
    INSTRUCTOR_PROFILE_UPDATED = "instructor.profile_updated"
    DEPARTMENT_CREATED = "department.created"
    DEPARTMENT_UPDATED = "department.updated"

    def __str__(self) -> str:
        return self.value
