"""Model registry.

Importing this package registers every table on ``Base.metadata`` so
Alembic autogenerate and ``create_all`` see the whole schema.
"""

from __future__ import annotations

from user_service.core.database.base import Base
from user_service.features.users.models import Department, Instructor, Role, User
from user_service.infra.events.outbox.models import OutboxEvent

__all__ = [
    "Base",
    "Department",
    "Instructor",
    "OutboxEvent",
    "Role",
    "User",
]
