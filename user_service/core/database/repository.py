"""Repository base class and dialect helpers.

Repositories never open, commit or roll back sessions; the transactor that
owns the transaction passes its session into every call.

Example:
    class DepartmentRepository(BaseRepository[Department]):
        def __init__(self) -> None:
            super().__init__(Department)
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from sqlalchemy import inspect as sa_inspect
from sqlalchemy import select
from sqlalchemy.dialects import postgresql, sqlite

from user_service.core.database.exceptions import NotFoundError, RepositoryError
from user_service.infra.logging import get_lazy_logger

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession
    from sqlalchemy.orm import InstrumentedAttribute
    from sqlalchemy.sql.dml import Insert

_INSERT_BY_DIALECT = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def insert_ignore(
    session: AsyncSession,
    model: type[Any],
    values: dict[str, Any],
    *,
    index_elements: list[str],
) -> Insert:
    """``INSERT ... ON CONFLICT (index_elements) DO NOTHING`` for the session's dialect.

    Raises:
        RepositoryError: The session is bound to neither PostgreSQL nor SQLite.
    """
    dialect = session.get_bind().dialect.name
    build = _INSERT_BY_DIALECT.get(dialect)
    if build is None:
        raise RepositoryError(
            "Insert-if-absent is not supported for this dialect",
            details={"dialect": dialect, "model": model.__name__},
        )
    return build(model).values(**values).on_conflict_do_nothing(index_elements=index_elements)


T = TypeVar("T")


class BaseRepository(Generic[T]):
    """Primary-key lookups, row locks, inserts and deletes for one model."""

    __slots__ = ("_lazy", "_logger", "_pk", "model")

    def __init__(self, model: type[T]) -> None:
        self.model = model
        mapper = sa_inspect(model)
        self._pk: InstrumentedAttribute[Any] = getattr(
            model, mapper.get_property_by_column(mapper.primary_key[0]).key
        )
        self._logger = logging.getLogger(f"repository.{model.__name__}")
        self._lazy = get_lazy_logger(f"repository.{model.__name__}")

    @property
    def _name(self) -> str:
        return self.model.__name__

    async def get(self, session: AsyncSession, id: Any) -> T | None:  # noqa: A002
        instance = await session.get(self.model, id)
        self._lazy.debug(lambda: f"db.get {self._name}({id}) -> {instance is not None}")
        return instance

    async def get_or_raise(self, session: AsyncSession, id: Any) -> T:  # noqa: A002
        """Like ``get``, but a missing row raises ``NotFoundError``."""
        instance = await self.get(session, id)
        if instance is None:
            raise NotFoundError(self._name, {"id": id})
        return instance

    async def get_by(
        self,
        session: AsyncSession,
        attr: InstrumentedAttribute[Any],
        value: Any,
    ) -> T | None:
        """First row whose ``attr`` equals ``value`` (use on unique columns)."""
        result = await session.execute(select(self.model).where(attr == value))
        instance = result.scalar_one_or_none()
        self._lazy.debug(lambda: f"db.get_by {self._name}.{attr.key}={value!r} -> {instance is not None}")
        return instance

    async def get_for_update(self, session: AsyncSession, id: Any) -> T | None:  # noqa: A002
        """Load a row and hold its lock until the session's transaction ends.

        PostgreSQL takes a row lock (``SELECT ... FOR UPDATE``). SQLite drops
        the clause; its single writer serializes transactions instead.
        ``populate_existing`` refreshes an instance already in the identity map.
        """
        stmt = (
            select(self.model)
            .where(self._pk == id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        instance = (await session.execute(stmt)).scalar_one_or_none()
        self._lazy.debug(lambda: f"db.get_for_update {self._name}({id}) -> {instance is not None}")
        return instance

    async def create(self, session: AsyncSession, instance: T) -> T:
        """Add and flush ``instance`` so generated columns are populated."""
        session.add(instance)
        await session.flush()
        await session.refresh(instance)
        self._lazy.debug(lambda: f"db.create {self._name}({getattr(instance, 'id', None)})")
        return instance

    async def delete(self, session: AsyncSession, instance: T) -> None:
        await session.delete(instance)
        await session.flush()
        self._logger.info("Row deleted", extra={"entity": self._name, "operation": "db.delete"})


__all__ = ["BaseRepository", "insert_ignore"]
