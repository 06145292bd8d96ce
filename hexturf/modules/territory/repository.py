"""
Read-only queries over the ownership ledger.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, List, Optional, Sequence, Tuple

from sqlalchemy import func, select

from hexturf.core.logging.logger import get_logger
from hexturf.database.models.hexagon import Hexagon
from hexturf.database.models.user import User
from hexturf.domain.models.tile import Tile
from hexturf.modules.capture.repository import tile_from_row
from hexturf.modules.shared.base_repository import BaseRepository

if TYPE_CHECKING:
    from logging import Logger

    from sqlalchemy.ext.asyncio import AsyncSession
    from sqlalchemy.sql.elements import ColumnElement


class TerritoryRepository(BaseRepository[Hexagon]):
    def __init__(self, logger: Optional[Logger] = None) -> None:
        super().__init__(Hexagon, logger or get_logger(__name__), pk_attr="tile_id")

    async def get_tile(self, session: AsyncSession, tile_id: str) -> Optional[Tile]:
        row = await self.get(session, tile_id)
        return tile_from_row(row) if row is not None else None

    async def owned_by(
        self, session: AsyncSession, user_id: int, limit: int, offset: int
    ) -> List[Tile]:
        stmt = (
            select(Hexagon)
            .where(Hexagon.current_owner_id == user_id)
            .order_by(Hexagon.last_captured_at.desc(), Hexagon.tile_id)
            .limit(limit)
            .offset(offset)
        )
        result = await session.execute(stmt)
        return [tile_from_row(row) for row in result.scalars().all()]

    async def in_parents(self, session: AsyncSession, parent_ids: Sequence[str]) -> List[Tile]:
        if not parent_ids:
            return []
        rows = await self.find_many_where(
            session,
            Hexagon.parent_tile_id.in_(list(parent_ids)),
            order_by=Hexagon.tile_id,
        )
        return [tile_from_row(row) for row in rows]

    async def recent_in_parents(
        self,
        session: AsyncSession,
        parent_ids: Sequence[str],
        limit: int,
        owner_id: Optional[int] = None,
    ) -> List[Tile]:
        """Newest captures first under ``parent_ids``, optionally one owner's only."""
        if not parent_ids:
            return []
        stmt = select(Hexagon).where(Hexagon.parent_tile_id.in_(list(parent_ids)))
        if owner_id is not None:
            stmt = stmt.where(Hexagon.current_owner_id == owner_id)
        stmt = stmt.order_by(Hexagon.last_captured_at.desc(), Hexagon.tile_id).limit(limit)
        result = await session.execute(stmt)
        return [tile_from_row(row) for row in result.scalars().all()]

    async def stolen_from(self, session: AsyncSession, user_id: int) -> List[Tile]:
        rows = await self.find_many_where(
            session,
            Hexagon.last_previous_owner_id == user_id,
            order_by=Hexagon.last_captured_at.desc(),
        )
        return [tile_from_row(row) for row in rows]

    async def most_contested(self, session: AsyncSession, limit: int) -> List[Tile]:
        stmt = (
            select(Hexagon)
            .order_by(Hexagon.capture_count.desc(), Hexagon.tile_id)
            .limit(limit)
        )
        result = await session.execute(stmt)
        return [tile_from_row(row) for row in result.scalars().all()]

    async def count_where(self, session: AsyncSession, *conditions: ColumnElement[bool]) -> int:
        stmt = select(func.count()).select_from(Hexagon).where(*conditions)
        result = await session.execute(stmt)
        return int(result.scalar_one())

    async def first_owned(
        self, session: AsyncSession, user_id: int, *order_by: ColumnElement
    ) -> Optional[Tile]:
        stmt = (
            select(Hexagon)
            .where(Hexagon.current_owner_id == user_id)
            .order_by(*order_by)
            .limit(1)
        )
        result = await session.execute(stmt)
        row = result.scalar_one_or_none()
        return tile_from_row(row) if row is not None else None

    async def regional_counts(
        self,
        session: AsyncSession,
        group_column: ColumnElement,
        parent_ids: Sequence[str],
        limit: int,
    ) -> List[Tuple[User, int]]:
        """
        Tile counts in ``parent_ids`` grouped by ``group_column``, joined to users.

        Groups whose user row is gone are dropped by the inner join.
        """
        if not parent_ids:
            return []

        counts = (
            select(group_column.label("user_id"), func.count().label("tile_count"))
            .where(Hexagon.parent_tile_id.in_(list(parent_ids)))
            .group_by(group_column)
            .subquery("regional_counts")
        )
        stmt = (
            select(User, counts.c.tile_count)
            .join(counts, counts.c.user_id == User.id)
            .order_by(counts.c.tile_count.desc(), User.id)
            .limit(limit)
        )
        result = await session.execute(stmt)
        rows = [(user, int(count)) for user, count in result.all()]

        self.log.debug(
            "Regional counts loaded",
            extra={"parents": len(parent_ids), "rows": len(rows)},
        )
        return rows
