"""Repositories for the users feature."""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import delete, select

from user_service.core.database.repository import BaseRepository, insert_ignore
from user_service.features.users.models import Department, Instructor, User

if TYPE_CHECKING:
    from uuid import UUID

    from sqlalchemy.ext.asyncio import AsyncSession


class UserRepository(BaseRepository[User]):
    """Repository for User model.

    Inherits get / get_or_raise / get_by / get_for_update / create / delete
    from BaseRepository.
    """

    def __init__(self) -> None:
        super().__init__(User)

    async def get_by_email(self, session: AsyncSession, email: str) -> User | None:
        return await self.get_by(session, User.email, email.strip().lower())

    async def get_by_email_for_update(self, session: AsyncSession, email: str) -> User | None:
        """Get a user by email holding a row lock until the transaction ends."""
        stmt = (
            select(User)
            .where(User.email == email.strip().lower())
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await session.execute(stmt)
        user = result.scalar_one_or_none()

        self._lazy.debug(lambda: f"db.get_by_email_for_update({email!r}) -> {user is not None}")
        return user


class InstructorRepository(BaseRepository[Instructor]):
    """Repository for the derived instructors table."""

    def __init__(self) -> None:
        super().__init__(Instructor)

    async def get_by_user_id(self, session: AsyncSession, user_id: UUID) -> Instructor | None:
        return await self.get_by(session, Instructor.user_id, user_id)

    async def get_by_user_id_for_update(
        self,
        session: AsyncSession,
        user_id: UUID,
    ) -> Instructor | None:
        stmt = (
            select(Instructor)
            .where(Instructor.user_id == user_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    async def ensure_for_user(self, session: AsyncSession, user_id: UUID) -> bool:
        """Insert an instructor row for ``user_id`` unless one exists.

        Emits ``INSERT ... ON CONFLICT (user_id) DO NOTHING`` so repeated
        calls and concurrent transitions never fail on the unique key.

        Returns:
            True if a row was inserted, False if it already existed.
        """
        stmt = insert_ignore(
            session,
            Instructor,
            {"user_id": user_id, "specialties": []},
            index_elements=["user_id"],
        )
        result = await session.execute(stmt)
        inserted = bool(result.rowcount)

        self._lazy.debug(lambda: f"db.ensure_for_user({user_id}) -> inserted={inserted}")
        return inserted

    async def delete_for_user(self, session: AsyncSession, user_id: UUID) -> int:
        """Delete the instructor row owned by ``user_id``.

        Returns:
            Number of rows removed (0 or 1).
        """
        result = await session.execute(
            delete(Instructor)
            .where(Instructor.user_id == user_id)
            .execution_options(synchronize_session="fetch")
        )
        removed = result.rowcount or 0

        self._lazy.debug(lambda: f"db.delete_for_user({user_id}) -> {removed}")
        return removed


class DepartmentRepository(BaseRepository[Department]):
    """Repository for Department model."""

    def __init__(self) -> None:
        super().__init__(Department)


# Factory functions for dependency injection
_user_repository: UserRepository | None = None
_instructor_repository: InstructorRepository | None = None
_department_repository: DepartmentRepository | None = None


def get_user_repository() -> UserRepository:
    global _user_repository
    if _user_repository is None:
        _user_repository = UserRepository()
    return _user_repository


def get_instructor_repository() -> InstructorRepository:
    global _instructor_repository
    if _instructor_repository is None:
        _instructor_repository = InstructorRepository()
    return _instructor_repository


def get_department_repository() -> DepartmentRepository:
    global _department_repository
    if _department_repository is None:
        _department_repository = DepartmentRepository()
    return _department_repository


__all__ = [
    "DepartmentRepository",
    "InstructorRepository",
    "UserRepository",
    "get_department_repository",
    "get_instructor_repository",
    "get_user_repository",
]
