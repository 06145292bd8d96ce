"""
Ledger repositories.

Purpose
-------
Data access for tiles and activities used by the capture and rollback
engines. Repositories run inside the caller's transaction; they never
commit.

Design Notes
------------
- Tiles are returned as domain ``Tile`` objects; rows never leave this module
- Tile reads for mutation lock rows ``FOR UPDATE`` in ``tile_id`` order
- Inserts, updates and deletes are each issued as one batched statement
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, List, Optional, Sequence, Tuple

from sqlalchemy import delete, insert, select, update

from hexturf.core.logging.logger import get_logger
from hexturf.database.models.activity import Activity
from hexturf.database.models.hexagon import Hexagon
from hexturf.database.models.user import User
from hexturf.domain.models.route import ActivityInput, RouteType, RunnerIdentity
from hexturf.domain.models.tile import CaptureHistoryStack, Tile
from hexturf.modules.shared.base_repository import BaseRepository
from hexturf.modules.shared.exceptions import PermissionDeniedError

if TYPE_CHECKING:
    from logging import Logger

    from sqlalchemy.ext.asyncio import AsyncSession

LOCK_CHUNK_SIZE = 5000


def tile_from_row(row: Hexagon) -> Tile:
    return Tile(
        row.tile_id,
        parent_tile_id=row.parent_tile_id,
        owner_id=row.current_owner_id,
        owner_external_id=row.current_owner_external_id,
        activity_id=row.current_activity_id,
        activity_external_id=row.current_activity_external_id,
        capture_count=row.capture_count,
        first_captured_at=row.first_captured_at,
        first_captured_by=row.first_captured_by,
        last_captured_at=row.last_captured_at,
        activity_type=row.activity_type,
        route_type=row.route_type,
        last_previous_owner_id=row.last_previous_owner_id,
        history=CaptureHistoryStack.from_list(row.capture_history),
    )


def tile_to_values(tile: Tile) -> Dict[str, Any]:
    return {
        "tile_id": tile.tile_id,
        "parent_tile_id": tile.parent_tile_id,
        "current_owner_id": tile.owner_id,
        "current_owner_external_id": tile.owner_external_id,
        "current_activity_id": tile.activity_id,
        "current_activity_external_id": tile.activity_external_id,
        "capture_count": tile.capture_count,
        "first_captured_at": tile.first_captured_at,
        "first_captured_by": tile.first_captured_by,
        "last_captured_at": tile.last_captured_at,
        "activity_type": tile.activity_type,
        "route_type": tile.route_type,
        "last_previous_owner_id": tile.last_previous_owner_id,
        "capture_history": tile.history.to_list(),
    }


class TileRepository(BaseRepository[Hexagon]):
    def __init__(self, logger: Optional[Logger] = None) -> None:
        super().__init__(Hexagon, logger or get_logger(__name__), pk_attr="tile_id")

    async def lock_tiles(self, session: AsyncSession, tile_ids: Sequence[str]) -> Dict[str, Tile]:
        """
        Load and lock every existing tile among ``tile_ids``.

        Missing ids are simply absent from the result.
        """
        ordered = sorted(set(tile_ids))
        found: Dict[str, Tile] = {}

        for start in range(0, len(ordered), LOCK_CHUNK_SIZE):
            chunk = ordered[start : start + LOCK_CHUNK_SIZE]
            for row in await self.get_many_for_update(session, chunk):
                found[row.tile_id] = tile_from_row(row)

        self.log.debug(
            "Tiles locked",
            extra={"requested": len(ordered), "existing": len(found)},
        )
        return found

    async def lock_by_current_activity(self, session: AsyncSession, activity_id: int) -> List[Tile]:
        rows = await self.find_many_where(
            session,
            Hexagon.current_activity_id == activity_id,
            order_by=Hexagon.tile_id,
            for_update=True,
        )
        return [tile_from_row(row) for row in rows]

    async def get_tile(self, session: AsyncSession, tile_id: str) -> Optional[Tile]:
        row = await self.get(session, tile_id)
        return tile_from_row(row) if row is not None else None

    async def insert_many(self, session: AsyncSession, tiles: Sequence[Tile]) -> int:
        if not tiles:
            return 0
        # tile_id order, matching lock_tiles.
        ordered = sorted(tiles, key=lambda tile: tile.tile_id)
        await session.execute(insert(Hexagon), [tile_to_values(tile) for tile in ordered])
        self.log.debug("Tiles inserted", extra={"count": len(tiles)})
        return len(tiles)

    async def update_many(self, session: AsyncSession, tiles: Sequence[Tile]) -> int:
        """Bulk UPDATE by primary key; ``first_captured_*`` never change."""
        if not tiles:
            return 0
        rows = []
        for tile in tiles:
            values = tile_to_values(tile)
            values.pop("first_captured_at")
            values.pop("first_captured_by")
            rows.append(values)
        await session.execute(update(Hexagon), rows)
        self.log.debug("Tiles updated", extra={"count": len(tiles)})
        return len(tiles)

    async def delete_many(self, session: AsyncSession, tile_ids: Sequence[str]) -> int:
        if not tile_ids:
            return 0
        await session.execute(
            delete(Hexagon)
            .where(Hexagon.tile_id.in_(list(tile_ids)))
            .execution_options(synchronize_session=False)
        )
        self.log.debug("Tiles deleted", extra={"count": len(tile_ids)})
        return len(tile_ids)


class ActivityRepository(BaseRepository[Activity]):
    def __init__(self, logger: Optional[Logger] = None) -> None:
        super().__init__(Activity, logger or get_logger(__name__))

    async def get_by_external_id(
        self, session: AsyncSession, external_id: str, for_update: bool = False
    ) -> Optional[Activity]:
        stmt = select(Activity).where(Activity.external_id == external_id)
        if for_update:
            stmt = stmt.with_for_update()
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    async def upsert(
        self,
        session: AsyncSession,
        runner: RunnerIdentity,
        activity: ActivityInput,
        route_type: RouteType,
        last_tile_id: Optional[str],
    ) -> Tuple[Activity, bool]:
        """
        Create or refresh the activity row by external id.

        Returns the row (with its id assigned) and whether it was created.

        Raises
        ------
        PermissionDeniedError
            If the external id already belongs to another runner.
        """
        row = await self.get_by_external_id(session, activity.external_id, for_update=True)
        created = row is None

        if row is None:
            row = Activity(external_id=activity.external_id, user_id=runner.user_id)
            session.add(row)
        elif row.user_id != runner.user_id:
            raise PermissionDeniedError("process_activity", runner.user_id, activity.external_id)

        row.name = activity.name
        row.activity_type = activity.activity_type
        row.sport_type = activity.sport_type
        row.start_date = activity.start_date
        row.distance = activity.distance
        row.moving_time = activity.moving_time
        row.elapsed_time = activity.elapsed_time
        row.summary_polyline = activity.summary_polyline
        if activity.coordinates is not None:
            row.coordinates = activity.coordinates
        row.route_type = route_type.value
        row.last_tile_id = last_tile_id

        await session.flush()

        self.log.debug(
            "Activity upserted",
            extra={"activity_id": row.id, "external_id": row.external_id, "activity_created": created},
        )
        return row, created

    async def set_user_last_tile(self, session: AsyncSession, user_id: int, last_tile_id: str) -> None:
        await session.execute(
            update(User)
            .where(User.id == user_id)
            .values(last_tile_id=last_tile_id)
            .execution_options(synchronize_session=False)
        )

    async def delete_activity(self, session: AsyncSession, activity_id: int) -> None:
        await session.execute(
            delete(Activity)
            .where(Activity.id == activity_id)
            .execution_options(synchronize_session=False)
        )
