"""
Leaderboard Aggregator.

Purpose
-------
Rebuild the ranked ownership snapshot for each leaderboard type and serve
it from the ``leaderboard_cache`` table.

Responsibilities
----------------
- Serialize aggregation runs behind an injected ``AggregationLock``
- Aggregate, rank and upsert the cache row in one transaction
- Serve cached snapshots, refreshing once on a cache miss
- Publish ``leaderboard.refreshed`` after each successful run

Non-Responsibilities
--------------------
- Scheduling (see ``hexturf.modules.leaderboard.job``)
- Retrying failed runs; the previous snapshot stays until the next one
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Any, Callable, Optional, Union

from hexturf.core.config.manager import ConfigManager
from hexturf.core.database.service import DatabaseService
from hexturf.core.event import event_bus as default_event_bus
from hexturf.core.logging.logger import LogContext, get_logger
from hexturf.database.models.enums import LeaderboardType
from hexturf.modules.leaderboard.locks import AggregationLock, build_aggregation_lock
from hexturf.modules.leaderboard.models import LeaderboardEntry, LeaderboardSnapshot, rank_entries
from hexturf.modules.leaderboard.repository import LeaderboardRepository
from hexturf.modules.shared.base_service import BaseService
from hexturf.modules.shared.exceptions import ValidationError

if TYPE_CHECKING:
    from logging import Logger

    from hexturf.core.event.bus import EventBus

REFRESHED_EVENT = "leaderboard.refreshed"
DEFAULT_INTERVAL_MINUTES = 60


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def coerce_leaderboard_type(value: Union[str, LeaderboardType]) -> LeaderboardType:
    if isinstance(value, LeaderboardType):
        return value
    try:
        return LeaderboardType(str(value).lower())
    except ValueError:
        allowed = ", ".join(member.value for member in LeaderboardType)
        raise ValidationError("type", f"Unknown leaderboard type '{value}'; expected one of {allowed}")


class LeaderboardService(BaseService):
    """Aggregates and serves ranked territory ownership."""

    def __init__(
        self,
        database: Any = DatabaseService,
        repository: Optional[LeaderboardRepository] = None,
        lock: Optional[AggregationLock] = None,
        clock: Optional[Callable[[], datetime]] = None,
        config_manager: Any = ConfigManager,
        event_bus: Optional[EventBus] = None,
        logger: Optional[Logger] = None,
    ) -> None:
        super().__init__(config_manager, event_bus or default_event_bus, logger or get_logger(__name__))
        self._db = database
        self._repository = repository or LeaderboardRepository()
        self._lock = lock or build_aggregation_lock(self.get_config("leaderboard.lock_backend", "local"))
        self._clock = clock or _utc_now

    @property
    def interval(self) -> timedelta:
        minutes = self.get_config("leaderboard.interval_minutes", DEFAULT_INTERVAL_MINUTES)
        return timedelta(minutes=float(minutes))

    def window_start(self, leaderboard_type: LeaderboardType, now: datetime) -> Optional[datetime]:
        days = leaderboard_type.window_days
        return None if days is None else now - timedelta(days=days)

    async def refresh_leaderboard(self, leaderboard_type: Union[str, LeaderboardType]) -> LeaderboardSnapshot:
        """
        Rebuild and store the snapshot for ``leaderboard_type``.

        Runs are serialized by the aggregation lock. On failure the
        transaction rolls back, the previous cache row stays, and the error
        propagates.

        Raises
        ------
        ValidationError
            Unknown leaderboard type.
        LockAcquisitionError
            The Redis lock could not be acquired in time.
        """
        board = coerce_leaderboard_type(leaderboard_type)

        async with LogContext(component="leaderboard", operation="refresh_leaderboard"):
            async with self._lock.hold():
                now = self._clock()
                since = self.window_start(board, now)
                try:
                    async with self._db.get_transaction() as session:
                        entries = await self._repository.aggregate_ownership(session, since)
                        snapshot = LeaderboardSnapshot(
                            type=board,
                            entries=rank_entries(entries),
                            last_updated=now,
                            next_update=now + self.interval,
                        )
                        await self._repository.upsert_cache(session, snapshot)
                except Exception as exc:
                    self.log_error("refresh_leaderboard", exc, leaderboard_type=board.value)
                    raise

            self.log.info(
                "Leaderboard refreshed",
                extra={"leaderboard_type": board.value, "entries": len(snapshot.entries)},
            )

        await self.emit_event(
            REFRESHED_EVENT,
            {
                "type": board.value,
                "entries": len(snapshot.entries),
                "last_updated": snapshot.last_updated.isoformat(),
            },
        )
        return snapshot

    async def get_leaderboard(self, leaderboard_type: Union[str, LeaderboardType]) -> LeaderboardSnapshot:
        """Cached snapshot; a missing row is built synchronously once."""
        board = coerce_leaderboard_type(leaderboard_type)

        async with self._db.get_session() as session:
            snapshot = await self._repository.get_cache(session, board)

        if snapshot is None:
            self.log.info("Leaderboard cache miss", extra={"leaderboard_type": board.value})
            snapshot = await self.refresh_leaderboard(board)
        return snapshot

    async def get_user_rank(
        self,
        user_id: int,
        leaderboard_type: Union[str, LeaderboardType] = LeaderboardType.GLOBAL,
    ) -> Optional[LeaderboardEntry]:
        self.check_id(user_id, "user_id")
        snapshot = await self.get_leaderboard(leaderboard_type)
        return snapshot.entry_for(user_id)
