"""Unit tests for the transactional user mutations."""

from __future__ import annotations

import uuid

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, OperationalError

from user_service.features.users import (
    DepartmentAlreadyExistsError,
    DepartmentCreate,
    DepartmentNotFoundError,
    DepartmentUpdate,
    Instructor,
    InstructorNotFoundError,
    InstructorProfileUpdate,
    InvalidRoleError,
    MutationFailedError,
    Role,
    User,
    UserAlreadyExistsError,
    UserCreate,
    UserNotFoundError,
    UserService,
)
from user_service.features.users.repository import UserRepository
from user_service.infra.events.outbox import OutboxEvent, OutboxRepository

ACTOR = "00000000-0000-4000-8000-0000000000ad"


class _PgError(Exception):
    """Driver error carrying PostgreSQL diagnostics, like psycopg raises."""

    def __init__(self, message: str, constraint_name: str) -> None:
        super().__init__(message)
        self.diag = type("Diag", (), {"constraint_name": constraint_name})()


class RacingUserRepository(UserRepository):
    """Inserts fail with a given driver error, as if another writer got there first."""

    def __init__(self, orig: Exception) -> None:
        super().__init__()
        self.orig = orig

    async def create(self, session, instance):
        raise IntegrityError("INSERT INTO users", {}, self.orig)


class BrokenOutbox(OutboxRepository):
    """Outbox whose writes fail as if the connection dropped mid-transaction."""

    async def insert_event(self, session, topic, payload, *, correlation_id=None):
        raise OperationalError("INSERT INTO outbox_events", {}, Exception("connection reset"))


@pytest.fixture
def service(session_factory) -> UserService:
    return UserService(session_factory)


@pytest.fixture
def register(service):
    async def _register(email: str = "ada@example.com", role: Role = Role.EMPLOYEE, **kwargs):
        return await service.register_user(UserCreate(email=email, name="Ada", role=role, **kwargs))

    return _register


async def _events(session_factory, topic: str | None = None) -> list[OutboxEvent]:
    stmt = select(OutboxEvent).order_by(OutboxEvent.id)
    if topic is not None:
        stmt = stmt.where(OutboxEvent.topic == topic)
    async with session_factory() as session:
        return list((await session.execute(stmt)).scalars())


async def _instructor_count(session_factory, user_id) -> int:
    async with session_factory() as session:
        stmt = select(func.count()).select_from(Instructor).where(Instructor.user_id == user_id)
        return (await session.execute(stmt)).scalar_one()


async def _stored_role(session_factory, user_id) -> Role:
    async with session_factory() as session:
        return (await session.execute(select(User.role).where(User.id == user_id))).scalar_one()


@pytest.mark.unit
class TestApplyRoleTransition:
    async def test_into_instructor_creates_profile_and_event(self, service, register, session_factory):
        user = await register()

        result = await service.apply_role_transition(user.id, "INSTRUCTOR", ACTOR)

        assert result.role is Role.INSTRUCTOR
        assert await _instructor_count(session_factory, user.id) == 1
        (event,) = await _events(session_factory, "user.role_changed")
        assert event.payload == {"userId": str(user.id), "role": "INSTRUCTOR", "changedBy": ACTOR}
        assert event.processed is False

    async def test_out_of_instructor_removes_profile(self, service, register, session_factory):
        user = await register(role=Role.INSTRUCTOR)
        assert await _instructor_count(session_factory, user.id) == 1

        result = await service.apply_role_transition(user.id, Role.MANAGER, ACTOR)

        assert result.role is Role.MANAGER
        assert await _instructor_count(session_factory, user.id) == 0
        assert await service.get_instructor(user.id) is None

    async def test_repeated_transition_keeps_one_row_and_stages_each_time(
        self, service, register, session_factory
    ):
        user = await register()

        await service.apply_role_transition(user.id, Role.INSTRUCTOR, ACTOR)
        await service.apply_role_transition(user.id, Role.INSTRUCTOR, ACTOR)

        assert await _instructor_count(session_factory, user.id) == 1
        assert len(await _events(session_factory, "user.role_changed")) == 2

    async def test_between_non_instructor_roles_leaves_profiles_alone(
        self, service, register, session_factory
    ):
        user = await register()

        await service.apply_role_transition(user.id, Role.ADMIN, ACTOR)

        assert await _instructor_count(session_factory, user.id) == 0
        assert await _stored_role(session_factory, user.id) is Role.ADMIN

    async def test_invalid_role_changes_nothing(self, service, register, session_factory):
        user = await register()

        with pytest.raises(InvalidRoleError):
            await service.apply_role_transition(user.id, "SUPERUSER", ACTOR)

        assert await _stored_role(session_factory, user.id) is Role.EMPLOYEE
        assert await _events(session_factory, "user.role_changed") == []

    async def test_unknown_user(self, service, session_factory):
        with pytest.raises(UserNotFoundError):
            await service.apply_role_transition(uuid.uuid4(), Role.ADMIN, ACTOR)
        with pytest.raises(UserNotFoundError):
            await service.apply_role_transition("not-a-uuid", Role.ADMIN, ACTOR)

        assert await _events(session_factory) == []

    async def test_failed_outbox_write_rolls_back_everything(self, register, session_factory):
        user = await register()
        broken = UserService(session_factory, outbox=BrokenOutbox())

        with pytest.raises(MutationFailedError) as exc_info:
            await broken.apply_role_transition(user.id, Role.INSTRUCTOR, ACTOR)

        assert exc_info.value.operation == "apply_role_transition"
        assert await _stored_role(session_factory, user.id) is Role.EMPLOYEE
        assert await _instructor_count(session_factory, user.id) == 0
        assert await _events(session_factory, "user.role_changed") == []

    async def test_correlation_id_is_stored(self, service, register, session_factory):
        user = await register()

        await service.apply_role_transition(user.id, Role.ADMIN, ACTOR, correlation_id="req-1")

        (event,) = await _events(session_factory, "user.role_changed")
        assert event.correlation_id == "req-1"


@pytest.mark.unit
class TestRegisterUser:
    async def test_stages_user_created(self, service, session_factory):
        user = await service.register_user(
            UserCreate(email="  Grace@Example.com ", name="Grace"), actor_id=ACTOR
        )

        assert user.email == "grace@example.com"
        assert user.active is True
        (event,) = await _events(session_factory)
        assert event.topic == "user.created"
        assert event.payload == {
            "userId": str(user.id),
            "email": "grace@example.com",
            "name": "Grace",
            "role": "EMPLOYEE",
            "departmentId": None,
            "createdBy": ACTOR,
        }

    async def test_duplicate_email(self, register, session_factory):
        await register()

        with pytest.raises(UserAlreadyExistsError):
            await register()

        assert len(await _events(session_factory)) == 1

    @pytest.mark.parametrize(
        ("orig", "expected"),
        [
            (Exception("UNIQUE constraint failed: users.email"), UserAlreadyExistsError),
            (Exception("FOREIGN KEY constraint failed"), MutationFailedError),
            (_PgError("duplicate key", "ix_users_email"), UserAlreadyExistsError),
            (_PgError("violates foreign key", "fk_users_department_id_departments"), MutationFailedError),
        ],
    )
    async def test_integrity_errors_on_insert(self, session_factory, orig, expected):
        service = UserService(session_factory, users=RacingUserRepository(orig))

        with pytest.raises(expected):
            await service.register_user(UserCreate(email="race@example.com", name="Race"))

        assert await _events(session_factory) == []

    async def test_unknown_department(self, register, session_factory):
        with pytest.raises(DepartmentNotFoundError):
            await register(department_id="NOPE")

        assert await _events(session_factory) == []

    async def test_instructor_gets_profile(self, register, session_factory):
        user = await register(role=Role.INSTRUCTOR)

        assert await _instructor_count(session_factory, user.id) == 1


@pytest.mark.unit
class TestOtherMutations:
    async def test_set_user_active(self, service, register, session_factory):
        user = await register()

        result = await service.set_user_active(user.id, False, ACTOR)

        assert result.active is False
        (event,) = await _events(session_factory, "user.status_changed")
        assert event.payload == {"userId": str(user.id), "active": False, "changedBy": ACTOR}

    async def test_request_password_reset(self, service, register, session_factory):
        user = await register()

        result = await service.request_password_reset("ada@example.com")

        assert result.password_reset_requested_at is not None
        (event,) = await _events(session_factory, "user.password_reset_requested")
        assert event.payload == {"userId": str(user.id), "email": "ada@example.com"}

    async def test_password_reset_unknown_email(self, service, session_factory):
        with pytest.raises(UserNotFoundError):
            await service.request_password_reset("nobody@example.com")

        assert await _events(session_factory) == []

    async def test_update_instructor_profile(self, service, register, session_factory):
        user = await register(role=Role.INSTRUCTOR)

        profile = await service.update_instructor_profile(
            user.id, InstructorProfileUpdate(bio="Teaches SQL", specialties=["sql"]), ACTOR
        )

        assert profile.bio == "Teaches SQL"
        assert profile.specialties == ["sql"]
        (event,) = await _events(session_factory, "instructor.profile_updated")
        assert event.payload["specialties"] == ["sql"]

    async def test_update_profile_requires_instructor(self, service, register):
        user = await register()

        with pytest.raises(InstructorNotFoundError):
            await service.update_instructor_profile(user.id, InstructorProfileUpdate(bio="x"), ACTOR)

    async def test_department_lifecycle(self, service, register, session_factory):
        created = await service.create_department(
            DepartmentCreate(code="eng", name="Engineering"), ACTOR
        )
        assert created.code == "ENG"

        with pytest.raises(DepartmentAlreadyExistsError):
            await service.create_department(DepartmentCreate(code="ENG", name="Again"), ACTOR)

        updated = await service.update_department("ENG", DepartmentUpdate(name="R&D"), ACTOR)
        assert updated.name == "R&D"

        user = await register(department_id="ENG")
        assert user.department_id == "ENG"

        topics = [e.topic for e in await _events(session_factory)]
        assert topics == ["department.created", "department.updated", "user.created"]
        (update_event,) = await _events(session_factory, "department.updated")
        assert update_event.payload == {"code": "ENG", "changes": {"name": "R&D"}, "changedBy": ACTOR}

    async def test_department_update_changes_are_camel_case(self, service, session_factory):
        await service.create_department(DepartmentCreate(code="OPS", name="Operations"), ACTOR)
        manager = uuid.uuid4()

        await service.update_department("OPS", DepartmentUpdate(manager_id=manager), ACTOR)

        (update_event,) = await _events(session_factory, "department.updated")
        assert update_event.payload["changes"] == {"managerId": str(manager)}

    async def test_update_missing_department(self, service):
        with pytest.raises(DepartmentNotFoundError):
            await service.update_department("OPS", DepartmentUpdate(name="Ops"), ACTOR)

    async def test_get_user(self, service, register):
        user = await register()

        assert (await service.get_user(str(user.id))).email == "ada@example.com"
        with pytest.raises(UserNotFoundError):
            await service.get_user(uuid.uuid4())
