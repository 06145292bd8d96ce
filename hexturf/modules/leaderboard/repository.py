"""
Leaderboard data access: the ownership aggregation and the cache row.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import func, select
from sqlalchemy.dialects.postgresql import insert

from hexturf.core.logging.logger import get_logger
from hexturf.database.models.activity import Activity
from hexturf.database.models.enums import LeaderboardType
from hexturf.database.models.hexagon import Hexagon
from hexturf.database.models.leaderboard_cache import LeaderboardCache
from hexturf.database.models.user import User
from hexturf.modules.leaderboard.models import LeaderboardEntry, LeaderboardSnapshot
from hexturf.modules.shared.base_repository import BaseRepository

if TYPE_CHECKING:
    from logging import Logger

    from sqlalchemy.ext.asyncio import AsyncSession


def display_name(username: Optional[str], first_name: Optional[str], last_name: Optional[str]) -> Optional[str]:
    if username:
        return username
    full = " ".join(part for part in (first_name, last_name) if part)
    return full or None


class LeaderboardRepository(BaseRepository[LeaderboardCache]):
    def __init__(self, logger: Optional[Logger] = None) -> None:
        super().__init__(LeaderboardCache, logger or get_logger(__name__))

    async def aggregate_ownership(
        self,
        session: AsyncSession,
        since: Optional[datetime] = None,
    ) -> List[LeaderboardEntry]:
        """
        Count owned tiles per owner and attach profile and activity stats.

        ``since`` restricts tiles to ``last_captured_at >= since`` and
        activities to ``start_date >= since``. Owners without a user row are
        dropped. Rows come back ordered by user id, unranked.
        """
        tile_stmt = select(
            Hexagon.current_owner_id.label("user_id"),
            func.count().label("tile_count"),
        ).where(Hexagon.current_owner_id.is_not(None))
        if since is not None:
            tile_stmt = tile_stmt.where(Hexagon.last_captured_at >= since)
        tile_counts = tile_stmt.group_by(Hexagon.current_owner_id).subquery("tile_counts")

        activity_stmt = select(
            Activity.user_id.label("user_id"),
            func.count(Activity.id).label("activity_count"),
            func.coalesce(func.sum(Activity.distance), 0.0).label("total_distance"),
        )
        if since is not None:
            activity_stmt = activity_stmt.where(Activity.start_date >= since)
        activity_stats = activity_stmt.group_by(Activity.user_id).subquery("activity_stats")

        stmt = (
            select(
                User.id,
                User.external_id,
                User.username,
                User.first_name,
                User.last_name,
                User.image_hex,
                User.profile_image_url,
                tile_counts.c.tile_count,
                func.coalesce(activity_stats.c.activity_count, 0),
                func.coalesce(activity_stats.c.total_distance, 0.0),
            )
            .join(tile_counts, tile_counts.c.user_id == User.id)
            .outerjoin(activity_stats, activity_stats.c.user_id == User.id)
            .order_by(User.id)
        )

        result = await session.execute(stmt)
        entries = [
            LeaderboardEntry(
                user_id=row[0],
                external_id=row[1],
                username=display_name(row[2], row[3], row[4]),
                image_hex=row[5] or "default",
                profile_image_url=row[6],
                tile_count=int(row[7]),
                activity_count=int(row[8]),
                total_distance=float(row[9]),
            )
            for row in result.all()
        ]

        self.log.debug(
            "Ownership aggregated",
            extra={"owners": len(entries), "since": since.isoformat() if since else None},
        )
        return entries

    async def get_cache(
        self, session: AsyncSession, leaderboard_type: LeaderboardType
    ) -> Optional[LeaderboardSnapshot]:
        row = await self.find_one_where(session, LeaderboardCache.type == leaderboard_type.value)
        if row is None:
            return None
        return LeaderboardSnapshot(
            type=leaderboard_type,
            entries=[LeaderboardEntry.from_dict(item) for item in row.entries],
            last_updated=row.last_updated,
            next_update=row.next_update,
        )

    async def upsert_cache(self, session: AsyncSession, snapshot: LeaderboardSnapshot) -> None:
        entries = [entry.to_dict() for entry in snapshot.entries]
        stmt = insert(LeaderboardCache).values(
            type=snapshot.type.value,
            entries=entries,
            last_updated=snapshot.last_updated,
            next_update=snapshot.next_update,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["type"],
            set_={
                "entries": stmt.excluded.entries,
                "last_updated": stmt.excluded.last_updated,
                "next_update": stmt.excluded.next_update,
                "updated_at": func.now(),
            },
        )
        await session.execute(stmt)

        self.log.debug(
            "Leaderboard cache upserted",
            extra={"leaderboard_type": snapshot.type.value, "entries": len(entries)},
        )
