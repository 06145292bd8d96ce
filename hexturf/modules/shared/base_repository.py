"""
Base Repository Pattern

Purpose
-------
Type-safe, generic repository abstraction over SQLAlchemy 2.0 async
sessions. Repositories encapsulate data access; they never open, commit or
roll back transactions.

Design Notes
------------
This base repository provides:
- Lookups by primary key, with or without ``SELECT ... FOR UPDATE``
- Batch lookups that lock rows in primary key order
- Filtered queries and counting
- Structured debug logging

Usage
-----
    class ActivityRepository(BaseRepository[Activity]):
        async def get_by_external_id(self, session, external_id):
            return await self.find_one_where(session, Activity.external_id == external_id)
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Generic, List, Optional, Sequence, Type, TypeVar

from sqlalchemy import func, select

if TYPE_CHECKING:
    from logging import Logger

    from sqlalchemy import ColumnElement
    from sqlalchemy.ext.asyncio import AsyncSession

T = TypeVar("T")


class BaseRepository(Generic[T]):
    """
    Generic base repository.

    Type Parameters:
        T: The SQLAlchemy model class this repository manages

    Args:
        model_class: The SQLAlchemy model class
        logger: Structured logger instance
        pk_attr: Name of the primary key attribute (``"id"`` by default)
    """

    def __init__(self, model_class: Type[T], logger: Logger, pk_attr: str = "id") -> None:
        self.model_class = model_class
        self.log = logger
        self.pk_attr = pk_attr

    @property
    def _pk(self) -> Any:
        return getattr(self.model_class, self.pk_attr)

    async def get(self, session: AsyncSession, id_value: Any) -> Optional[T]:
        """Get a single record by primary key (no lock)."""
        result = await session.execute(select(self.model_class).where(self._pk == id_value))
        instance = result.scalar_one_or_none()

        self.log.debug(
            f"Repository.get: {self.model_class.__name__}",
            extra={
                "model": self.model_class.__name__,
                "id": id_value,
                "found": instance is not None,
            },
        )
        return instance

    async def get_for_update(self, session: AsyncSession, id_value: Any) -> Optional[T]:
        """Get a single record by primary key with a row lock held until commit."""
        result = await session.execute(
            select(self.model_class).where(self._pk == id_value).with_for_update()
        )
        instance = result.scalar_one_or_none()

        self.log.debug(
            f"Repository.get_for_update: {self.model_class.__name__}",
            extra={
                "model": self.model_class.__name__,
                "id": id_value,
                "found": instance is not None,
            },
        )
        return instance

    async def get_many_for_update(
        self, session: AsyncSession, id_values: Sequence[Any]
    ) -> List[T]:
        """
        Lock many rows at once.

        Rows are locked in primary key order so that two transactions
        locking overlapping sets cannot deadlock.
        """
        if not id_values:
            return []

        stmt = (
            select(self.model_class)
            .where(self._pk.in_(list(id_values)))
            .order_by(self._pk)
            .with_for_update()
        )
        result = await session.execute(stmt)
        instances = list(result.scalars().all())

        self.log.debug(
            f"Repository.get_many_for_update: {self.model_class.__name__}",
            extra={
                "model": self.model_class.__name__,
                "requested": len(id_values),
                "found": len(instances),
            },
        )
        return instances

    async def find_one_where(
        self, session: AsyncSession, *conditions: ColumnElement[bool]
    ) -> Optional[T]:
        result = await session.execute(select(self.model_class).where(*conditions))
        return result.scalars().first()

    async def find_many_where(
        self,
        session: AsyncSession,
        *conditions: ColumnElement[bool],
        order_by: Optional[Any] = None,
        limit: Optional[int] = None,
        for_update: bool = False,
    ) -> List[T]:
        stmt = select(self.model_class).where(*conditions)
        if order_by is not None:
            stmt = stmt.order_by(order_by)
        if limit is not None:
            stmt = stmt.limit(limit)
        if for_update:
            stmt = stmt.with_for_update()

        result = await session.execute(stmt)
        instances = list(result.scalars().all())

        self.log.debug(
            f"Repository.find_many_where: {self.model_class.__name__}",
            extra={"model": self.model_class.__name__, "found": len(instances)},
        )
        return instances

    async def count(self, session: AsyncSession, *conditions: ColumnElement[bool]) -> int:
        stmt = select(func.count()).select_from(self.model_class)
        if conditions:
            stmt = stmt.where(*conditions)
        result = await session.execute(stmt)
        return int(result.scalar_one())

    def add(self, session: AsyncSession, instance: T) -> T:
        session.add(instance)
        return instance

    async def delete(self, session: AsyncSession, instance: T) -> None:
        await session.delete(instance)
