"""
Unit Tests for LeaderboardService
=================================

Test Coverage
-------------
- Ranking: tile count descending, ties in owner id order
- Windows: global, weekly (7 days), monthly (30 days)
- Cache reads, cache-miss refresh, failed refresh keeps the old snapshot
- Serialized aggregation runs
- User rank lookup and input validation
- ``leaderboard.refreshed`` payload

Testing Strategy
----------------
An in-memory repository returns fixed aggregation rows; the clock is
injected so windows and ``next_update`` are deterministic.
"""

import asyncio
from datetime import timedelta

import pytest

from hexturf.core.config.manager import ConfigManager
from hexturf.database.models.enums import LeaderboardType
from hexturf.modules.leaderboard.locks import ProcessLocalLock
from hexturf.modules.leaderboard.models import LeaderboardEntry, LeaderboardSnapshot, rank_entries
from hexturf.modules.leaderboard.service import (
    REFRESHED_EVENT,
    LeaderboardService,
    coerce_leaderboard_type,
)
from hexturf.modules.shared.exceptions import ValidationError
from tests.factories import at
from tests.fakes import FakeDatabase, InMemoryLeaderboardRepository, entry

NOW = at(24)


@pytest.fixture
def leaderboard_repository() -> InMemoryLeaderboardRepository:
    return InMemoryLeaderboardRepository(
        [entry(3, 5), entry(1, 9), entry(2, 5), entry(4, 1)]
    )


@pytest.fixture
def leaderboard_database(leaderboard_repository) -> FakeDatabase:
    return FakeDatabase(leaderboard_repository)


@pytest.fixture
def leaderboard_service(leaderboard_database, leaderboard_repository, event_bus) -> LeaderboardService:
    return LeaderboardService(
        database=leaderboard_database,
        repository=leaderboard_repository,
        lock=ProcessLocalLock(),
        clock=lambda: NOW,
        event_bus=event_bus,
    )


# ============================================================================
# RANKING
# ============================================================================


@pytest.mark.unit
class TestRanking:
    def test_rank_by_tile_count_descending(self):
        ranked = rank_entries([entry(1, 2), entry(2, 7), entry(3, 4)])

        assert [(e.user_id, e.rank) for e in ranked] == [(2, 1), (3, 2), (1, 3)]

    def test_ties_keep_input_order(self):
        ranked = rank_entries([entry(1, 5), entry(2, 5), entry(3, 5)])

        assert [e.user_id for e in ranked] == [1, 2, 3]
        assert [e.rank for e in ranked] == [1, 2, 3]

    def test_empty(self):
        assert rank_entries([]) == []

    def test_entry_from_dict_defaults_image(self):
        restored = LeaderboardEntry.from_dict(
            {"user_id": 1, "external_id": "athlete-1", "tile_count": 3, "image_hex": None}
        )

        assert restored.image_hex == "default"
        assert restored.activity_count == 0
        assert restored.rank == 0


# ============================================================================
# REFRESH
# ============================================================================


@pytest.mark.unit
class TestRefreshLeaderboard:
    async def test_refresh_ranks_and_caches(self, leaderboard_service, leaderboard_repository):
        # Act
        snapshot = await leaderboard_service.refresh_leaderboard(LeaderboardType.GLOBAL)

        # Assert
        assert [(e.user_id, e.rank) for e in snapshot.entries] == [(1, 1), (2, 2), (3, 3), (4, 4)]
        assert snapshot.last_updated == NOW
        assert snapshot.next_update == NOW + timedelta(minutes=60)
        assert leaderboard_repository.cache["global"] is snapshot

    @pytest.mark.parametrize(
        "board, expected_since",
        [
            ("global", None),
            ("weekly", NOW - timedelta(days=7)),
            ("monthly", NOW - timedelta(days=30)),
        ],
    )
    async def test_window_passed_to_aggregation(
        self, leaderboard_service, leaderboard_repository, board, expected_since
    ):
        await leaderboard_service.refresh_leaderboard(board)

        assert leaderboard_repository.aggregate_calls == [expected_since]

    async def test_interval_from_config(self, leaderboard_service):
        # Arrange
        ConfigManager.override("leaderboard.interval_minutes", 15)

        # Act
        snapshot = await leaderboard_service.refresh_leaderboard("weekly")

        # Assert
        assert snapshot.next_update - snapshot.last_updated == timedelta(minutes=15)

    async def test_failure_keeps_previous_snapshot(
        self, leaderboard_service, leaderboard_repository, leaderboard_database
    ):
        # Arrange
        previous = await leaderboard_service.refresh_leaderboard("global")
        leaderboard_repository.fail_with = RuntimeError("aggregation failed")

        # Act
        with pytest.raises(RuntimeError):
            await leaderboard_service.refresh_leaderboard("global")

        # Assert
        assert leaderboard_repository.cache["global"] is previous
        assert leaderboard_database.rollbacks == 1

    async def test_unknown_type_rejected(self, leaderboard_service, leaderboard_repository):
        with pytest.raises(ValidationError) as exc_info:
            await leaderboard_service.refresh_leaderboard("yearly")

        assert exc_info.value.field == "type"
        assert leaderboard_repository.aggregate_calls == []

    async def test_refreshed_event(self, leaderboard_service, event_bus):
        # Arrange
        received = []

        async def on_refreshed(payload):
            received.append(payload)

        event_bus.subscribe(REFRESHED_EVENT, on_refreshed)

        # Act
        await leaderboard_service.refresh_leaderboard("monthly")

        # Assert
        assert received == [{"type": "monthly", "entries": 4, "last_updated": NOW.isoformat()}]


@pytest.mark.unit
class TestAggregationSerialized:
    async def test_concurrent_refreshes_do_not_overlap(self, event_bus):
        # Arrange
        class SlowRepository(InMemoryLeaderboardRepository):
            def __init__(self):
                super().__init__([entry(1, 1)])
                self.running = 0
                self.max_running = 0

            async def aggregate_ownership(self, session, since=None):
                self.running += 1
                self.max_running = max(self.max_running, self.running)
                await asyncio.sleep(0.01)
                self.running -= 1
                return await super().aggregate_ownership(session, since)

        repository = SlowRepository()
        service = LeaderboardService(
            database=FakeDatabase(repository),
            repository=repository,
            lock=ProcessLocalLock(),
            clock=lambda: NOW,
            event_bus=event_bus,
        )

        # Act
        await asyncio.gather(*(service.refresh_leaderboard("global") for _ in range(3)))

        # Assert
        assert repository.max_running == 1
        assert len(repository.aggregate_calls) == 3


# ============================================================================
# READS
# ============================================================================


@pytest.mark.unit
class TestGetLeaderboard:
    async def test_cache_hit_does_not_aggregate(self, leaderboard_service, leaderboard_repository):
        # Arrange
        cached = LeaderboardSnapshot(
            type=LeaderboardType.WEEKLY,
            entries=rank_entries([entry(7, 2)]),
            last_updated=at(0),
            next_update=at(1),
        )
        leaderboard_repository.cache["weekly"] = cached

        # Act
        snapshot = await leaderboard_service.get_leaderboard("weekly")

        # Assert
        assert snapshot is cached
        assert leaderboard_repository.aggregate_calls == []

    async def test_cache_miss_refreshes_once(self, leaderboard_service, leaderboard_repository):
        first = await leaderboard_service.get_leaderboard("global")
        second = await leaderboard_service.get_leaderboard("global")

        assert first is second
        assert len(leaderboard_repository.aggregate_calls) == 1

    async def test_user_rank(self, leaderboard_service):
        found = await leaderboard_service.get_user_rank(2)

        assert found.rank == 2
        assert found.tile_count == 5

    async def test_user_rank_missing_user(self, leaderboard_service):
        assert await leaderboard_service.get_user_rank(42, "weekly") is None

    async def test_user_rank_rejects_invalid_id(self, leaderboard_service):
        with pytest.raises(ValidationError):
            await leaderboard_service.get_user_rank(0)


@pytest.mark.unit
class TestCoerceLeaderboardType:
    def test_accepts_enum_and_strings(self):
        assert coerce_leaderboard_type(LeaderboardType.MONTHLY) is LeaderboardType.MONTHLY
        assert coerce_leaderboard_type("Weekly") is LeaderboardType.WEEKLY

    def test_rejects_unknown(self):
        with pytest.raises(ValidationError):
            coerce_leaderboard_type("daily")
