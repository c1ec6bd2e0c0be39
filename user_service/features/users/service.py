"""Transactional mutations for users, instructors and departments.

Every mutation runs as one unit of work: the business rows, any derived
rows and exactly one outbox event are written in a single transaction and
committed together. Nothing here talks to the broker; the outbox processor
publishes the staged events after commit.

Usage:
    service = UserService(get_session_factory())
    user = await service.apply_role_transition(user_id, Role.INSTRUCTOR, actor_id)
"""

from __future__ import annotations

import logging
import uuid
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from user_service.core.events.topics import EventTopic
from user_service.features.users.exceptions import (
    DepartmentAlreadyExistsError,
    DepartmentNotFoundError,
    InstructorNotFoundError,
    InvalidRoleError,
    MutationFailedError,
    UserAlreadyExistsError,
    UserNotFoundError,
)
from user_service.features.users.models import Department, Role, User
from user_service.features.users.repository import (
    DepartmentRepository,
    InstructorRepository,
    UserRepository,
    get_department_repository,
    get_instructor_repository,
    get_user_repository,
)
from user_service.features.users.schemas import DepartmentRead, InstructorRead, UserRead
from user_service.infra.events.outbox.repository import OutboxRepository
from user_service.infra.logging import get_lazy_logger

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from user_service.features.users.schemas import (
        DepartmentCreate,
        DepartmentUpdate,
        InstructorProfileUpdate,
        UserCreate,
    )

# Standard logger for INFO/WARNING/ERROR
logger = logging.getLogger(__name__)
# Lazy logger for DEBUG (zero overhead when DEBUG disabled)
lazy_logger = get_lazy_logger(__name__)


def parse_role(value: Role | str) -> Role:
    """Return ``value`` as a ``Role``.

    Raises:
        InvalidRoleError: If ``value`` is not a role or a role's string value.
    """
    if isinstance(value, Role):
        return value
    try:
        return Role(value)
    except ValueError:
        raise InvalidRoleError(value) from None


def _parse_user_id(value: uuid.UUID | str) -> uuid.UUID:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except ValueError:
        raise UserNotFoundError(value) from None


def _str_or_none(value: uuid.UUID | str | None) -> str | None:
    return str(value) if value is not None else None


def _is_unique_violation(error: IntegrityError, constraint: str, column: str) -> bool:
    """Whether ``error`` is a duplicate on ``constraint`` (PostgreSQL) or ``column`` (SQLite).

    Foreign-key and not-null violations also raise ``IntegrityError`` and
    must not be reported as duplicates.
    """
    diag = getattr(error.orig, "diag", None)
    constraint_name = getattr(diag, "constraint_name", None)
    if constraint_name is not None:
        return constraint_name == constraint
    return f"UNIQUE constraint failed: {column}" in str(error.orig)


class UserService:
    """Domain mutation transactor for the user administration model.

    Owns the ``role == INSTRUCTOR`` iff instructor-row invariant and the
    guarantee that every externally visible change stages an outbox event
    in the same commit.

    Failure semantics for every mutation:
        - Domain errors (not found, conflict, invalid role) are raised before
          anything is committed.
        - Any other database error rolls the transaction back and surfaces
          as ``MutationFailedError``.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        users: UserRepository | None = None,
        instructors: InstructorRepository | None = None,
        departments: DepartmentRepository | None = None,
        outbox: OutboxRepository | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._users = users or get_user_repository()
        self._instructors = instructors or get_instructor_repository()
        self._departments = departments or get_department_repository()
        self._outbox = outbox or OutboxRepository()

    async def apply_role_transition(
        self,
        user_id: uuid.UUID | str,
        new_role: Role | str,
        actor_id: uuid.UUID | str,
        *,
        correlation_id: str | None = None,
    ) -> UserRead:
        """Change a user's role, keep the instructor row consistent and stage ``user.role_changed``.

        Runs in one transaction:
            1. Lock the user row (``SELECT ... FOR UPDATE``).
            2. Update the role.
            3. Into INSTRUCTOR: insert the instructor row if absent.
               Out of INSTRUCTOR: delete it.
            4. Stage one outbox event.

        Re-applying the current role succeeds and still stages one event.

        Raises:
            InvalidRoleError: If ``new_role`` is not a known role.
            UserNotFoundError: If the user does not exist.
            MutationFailedError: If the transaction failed and was rolled back.
        """
        role = parse_role(new_role)
        uid = _parse_user_id(user_id)

        try:
            async with self._session_factory() as session, session.begin():
                user = await self._users.get_for_update(session, uid)
                if user is None:
                    raise UserNotFoundError(uid)

                previous = user.role
                user.role = role

                if role is Role.INSTRUCTOR:
                    await self._instructors.ensure_for_user(session, uid)
                elif previous is Role.INSTRUCTOR:
                    await self._instructors.delete_for_user(session, uid)

                await self._outbox.insert_event(
                    session,
                    EventTopic.USER_ROLE_CHANGED.value,
                    {"userId": str(uid), "role": role.value, "changedBy": _str_or_none(actor_id)},
                    correlation_id=correlation_id,
                )
                await session.flush()
                result = UserRead.model_validate(user)
        except SQLAlchemyError as e:
            raise self._mutation_failed("apply_role_transition", e, user_id=str(uid)) from e

        logger.info(
            "User role changed",
            extra={
                "user_id": str(uid),
                "previous_role": previous.value,
                "role": role.value,
                "changed_by": _str_or_none(actor_id),
            },
        )
        return result

    async def register_user(
        self,
        data: UserCreate,
        *,
        actor_id: uuid.UUID | str | None = None,
        correlation_id: str | None = None,
    ) -> UserRead:
        """Create a user and stage ``user.created``.

        A user created as INSTRUCTOR gets its instructor row in the same
        transaction.

        Raises:
            UserAlreadyExistsError: If the email is taken.
            DepartmentNotFoundError: If ``department_id`` does not exist.
            MutationFailedError: If the transaction failed and was rolled back.
        """
        try:
            async with self._session_factory() as session, session.begin():
                if await self._users.get_by_email(session, data.email) is not None:
                    raise UserAlreadyExistsError(data.email)
                if data.department_id is not None:
                    await self._require_department(session, data.department_id)

                user = await self._users.create(
                    session,
                    User(
                        email=data.email,
                        name=data.name,
                        role=data.role,
                        department_id=data.department_id,
                    ),
                )
                if user.role is Role.INSTRUCTOR:
                    await self._instructors.ensure_for_user(session, user.id)

                await self._outbox.insert_event(
                    session,
                    EventTopic.USER_CREATED.value,
                    {
                        "userId": str(user.id),
                        "email": user.email,
                        "name": user.name,
                        "role": user.role.value,
                        "departmentId": user.department_id,
                        "createdBy": _str_or_none(actor_id),
                    },
                    correlation_id=correlation_id,
                )
                result = UserRead.model_validate(user)
        except IntegrityError as e:
            # Lost a race on the unique email; any other violation is a failed mutation
            if not _is_unique_violation(e, "ix_users_email", "users.email"):
                raise self._mutation_failed("register_user", e, email=data.email) from e
            raise UserAlreadyExistsError(data.email) from e
        except SQLAlchemyError as e:
            raise self._mutation_failed("register_user", e, email=data.email) from e

        logger.info(
            "User registered",
            extra={"user_id": str(result.id), "role": result.role.value},
        )
        return result

    async def request_password_reset(
        self,
        email: str,
        *,
        correlation_id: str | None = None,
    ) -> UserRead:
        """Stamp a password reset request and stage ``user.password_reset_requested``.

        Raises:
            UserNotFoundError: If no user has this email.
            MutationFailedError: If the transaction failed and was rolled back.
        """
        try:
            async with self._session_factory() as session, session.begin():
                user = await self._users.get_by_email_for_update(session, email)
                if user is None:
                    raise UserNotFoundError(email)

                user.password_reset_requested_at = datetime.now(UTC)
                await self._outbox.insert_event(
                    session,
                    EventTopic.USER_PASSWORD_RESET_REQUESTED.value,
                    {"userId": str(user.id), "email": user.email},
                    correlation_id=correlation_id,
                )
                await session.flush()
                result = UserRead.model_validate(user)
        except SQLAlchemyError as e:
            raise self._mutation_failed("request_password_reset", e) from e

        logger.info("Password reset requested", extra={"user_id": str(result.id)})
        return result

    async def set_user_active(
        self,
        user_id: uuid.UUID | str,
        active: bool,
        actor_id: uuid.UUID | str,
        *,
        correlation_id: str | None = None,
    ) -> UserRead:
        """Activate or deactivate a user and stage ``user.status_changed``.

        Raises:
            UserNotFoundError: If the user does not exist.
            MutationFailedError: If the transaction failed and was rolled back.
        """
        uid = _parse_user_id(user_id)
        try:
            async with self._session_factory() as session, session.begin():
                user = await self._users.get_for_update(session, uid)
                if user is None:
                    raise UserNotFoundError(uid)

                user.active = active
                await self._outbox.insert_event(
                    session,
                    EventTopic.USER_STATUS_CHANGED.value,
                    {"userId": str(uid), "active": active, "changedBy": _str_or_none(actor_id)},
                    correlation_id=correlation_id,
                )
                await session.flush()
                result = UserRead.model_validate(user)
        except SQLAlchemyError as e:
            raise self._mutation_failed("set_user_active", e, user_id=str(uid)) from e

        logger.info(
            "User status changed",
            extra={"user_id": str(uid), "active": active, "changed_by": _str_or_none(actor_id)},
        )
        return result

    async def update_instructor_profile(
        self,
        user_id: uuid.UUID | str,
        data: InstructorProfileUpdate,
        actor_id: uuid.UUID | str,
        *,
        correlation_id: str | None = None,
    ) -> InstructorRead:
        """Edit an instructor profile and stage ``instructor.profile_updated``.

        Raises:
            InstructorNotFoundError: If the user has no instructor row.
            MutationFailedError: If the transaction failed and was rolled back.
        """
        uid = _parse_user_id(user_id)
        changes = data.model_dump(exclude_unset=True)
        try:
            async with self._session_factory() as session, session.begin():
                instructor = await self._instructors.get_by_user_id_for_update(session, uid)
                if instructor is None:
                    raise InstructorNotFoundError(uid)

                if "bio" in changes:
                    instructor.bio = changes["bio"]
                if "specialties" in changes:
                    instructor.specialties = list(changes["specialties"] or [])

                await self._outbox.insert_event(
                    session,
                    EventTopic.INSTRUCTOR_PROFILE_UPDATED.value,
                    {
                        "userId": str(uid),
                        "bio": instructor.bio,
                        "specialties": list(instructor.specialties),
                        "changedBy": _str_or_none(actor_id),
                    },
                    correlation_id=correlation_id,
                )
                await session.flush()
                result = InstructorRead.model_validate(instructor)
        except SQLAlchemyError as e:
            raise self._mutation_failed("update_instructor_profile", e, user_id=str(uid)) from e

        logger.info(
            "Instructor profile updated",
            extra={"user_id": str(uid), "fields": sorted(changes)},
        )
        return result

    async def create_department(
        self,
        data: DepartmentCreate,
        actor_id: uuid.UUID | str,
        *,
        correlation_id: str | None = None,
    ) -> DepartmentRead:
        """Create a department and stage ``department.created``.

        Raises:
            DepartmentAlreadyExistsError: If the code is taken.
            MutationFailedError: If the transaction failed and was rolled back.
        """
        try:
            async with self._session_factory() as session, session.begin():
                if await self._departments.get(session, data.code) is not None:
                    raise DepartmentAlreadyExistsError(data.code)

                department = await self._departments.create(
                    session,
                    Department(
                        code=data.code,
                        name=data.name,
                        description=data.description,
                        manager_id=data.manager_id,
                    ),
                )
                await self._outbox.insert_event(
                    session,
                    EventTopic.DEPARTMENT_CREATED.value,
                    {
                        "code": department.code,
                        "name": department.name,
                        "description": department.description,
                        "managerId": _str_or_none(department.manager_id),
                        "createdBy": _str_or_none(actor_id),
                    },
                    correlation_id=correlation_id,
                )
                result = DepartmentRead.model_validate(department)
        except IntegrityError as e:
            if not _is_unique_violation(e, "pk_departments", "departments.code"):
                raise self._mutation_failed("create_department", e, code=data.code) from e
            raise DepartmentAlreadyExistsError(data.code) from e
        except SQLAlchemyError as e:
            raise self._mutation_failed("create_department", e, code=data.code) from e

        logger.info("Department created", extra={"code": result.code})
        return result

    async def update_department(
        self,
        code: str,
        data: DepartmentUpdate,
        actor_id: uuid.UUID | str,
        *,
        correlation_id: str | None = None,
    ) -> DepartmentRead:
        """Apply the set fields of ``data`` and stage ``department.updated``.

        The event payload carries only the fields that were set.

        Raises:
            DepartmentNotFoundError: If the department does not exist.
            MutationFailedError: If the transaction failed and was rolled back.
        """
        changes = data.model_dump(exclude_unset=True)
        try:
            async with self._session_factory() as session, session.begin():
                department = await self._departments.get_for_update(session, code)
                if department is None:
                    raise DepartmentNotFoundError(code)

                for field_name, value in changes.items():
                    setattr(department, field_name, value)

                await self._outbox.insert_event(
                    session,
                    EventTopic.DEPARTMENT_UPDATED.value,
                    {
                        "code": code,
                        "changes": data.model_dump(mode="json", by_alias=True, exclude_unset=True),
                        "changedBy": _str_or_none(actor_id),
                    },
                    correlation_id=correlation_id,
                )
                await session.flush()
                result = DepartmentRead.model_validate(department)
        except SQLAlchemyError as e:
            raise self._mutation_failed("update_department", e, code=code) from e

        logger.info("Department updated", extra={"code": code, "fields": sorted(changes)})
        return result

    async def get_user(self, user_id: uuid.UUID | str) -> UserRead:
        """Read a committed user.

        Raises:
            UserNotFoundError: If the user does not exist.
        """
        uid = _parse_user_id(user_id)
        async with self._session_factory() as session:
            user = await self._users.get(session, uid)
            if user is None:
                raise UserNotFoundError(uid)
            result = UserRead.model_validate(user)

        lazy_logger.debug(lambda: f"service.get_user({uid}) -> {result.role.value}")
        return result

    async def get_instructor(self, user_id: uuid.UUID | str) -> InstructorRead | None:
        """Read the instructor profile of a user, if any."""
        uid = _parse_user_id(user_id)
        async with self._session_factory() as session:
            instructor = await self._instructors.get_by_user_id(session, uid)
            return InstructorRead.model_validate(instructor) if instructor else None

    async def _require_department(self, session: AsyncSession, code: str) -> None:
        if await self._departments.get(session, code) is None:
            raise DepartmentNotFoundError(code)

    def _mutation_failed(
        self,
        operation: str,
        error: SQLAlchemyError,
        **context: Any,
    ) -> MutationFailedError:
        logger.exception(
            "Mutation rolled back",
            extra={"operation": operation, "error_type": type(error).__name__, **context},
        )
        return MutationFailedError(operation, type(error).__name__)


__all__ = ["UserService", "parse_role"]
