"""
Unit Tests for CaptureService
=============================

Purpose
-------
Exercise the capture transaction against in-memory repositories.

Test Coverage
-------------
- Two runners competing for overlapping tiles
- Older activities losing to newer claims, ties included
- Idempotent re-capture of the same activity
- All-or-nothing behaviour on write failures
- Unique violations surfacing as CaptureConflictError
- ``territory.captured`` payload
- Structured log records emitted at DEBUG
- Runner's last tile pointer kept with the activity's

Testing Strategy
----------------
``FakeDatabase`` snapshots the stores when a transaction opens and restores
them when the block raises, so atomicity is observable without PostgreSQL.
"""

import logging

import pytest
from sqlalchemy.exc import IntegrityError

from hexturf.domain.models.route import RouteType
from hexturf.modules.capture.repository import ActivityRepository
from hexturf.modules.capture.service import CAPTURED_EVENT, is_unique_violation
from hexturf.modules.shared.exceptions import CaptureConflictError, PermissionDeniedError
from tests.factories import make_activity, make_tile
from tests.fakes import ForeignKeyViolation, unique_violation


# ============================================================================
# COMPETING RUNNERS
# ============================================================================


@pytest.mark.unit
class TestCompetingCaptures:
    async def test_first_capture_creates_every_tile(
        self, capture_service, tile_repository, activity_repository, runner_a
    ):
        # Act
        result = await capture_service.apply_capture(
            runner_a, make_activity("a-1", hours=0), ["t1", "t2", "t3"]
        )

        # Assert
        assert result.created_ids == ["t1", "t2", "t3"]
        assert result.updated == 0
        assert result.activity_created is True
        assert result.last_tile_id == "parent:t1"
        assert activity_repository.user_last_tiles == {runner_a.user_id: "parent:t1"}
        tile = tile_repository.load("t2")
        assert tile.owner_id == runner_a.user_id
        assert tile.first_captured_by == runner_a.user_id
        assert tile.capture_count == 1

    async def test_newer_runner_steals_overlap(self, capture_service, tile_repository, runner_a, runner_b):
        # Arrange
        await capture_service.apply_capture(runner_a, make_activity("a-1", hours=0), ["t1", "t2", "t3"])

        # Act
        result = await capture_service.apply_capture(
            runner_b, make_activity("b-1", hours=1), ["t2", "t3", "t4"]
        )

        # Assert
        assert result.created_ids == ["t4"]
        assert result.updated_ids == ["t2", "t3"]
        assert result.stolen_from == {runner_a.user_id: 2}
        stolen = tile_repository.load("t3")
        assert stolen.owner_id == runner_b.user_id
        assert stolen.capture_count == 2
        assert stolen.last_previous_owner_id == runner_a.user_id
        assert stolen.first_captured_by == runner_a.user_id
        assert tile_repository.load("t1").owner_id == runner_a.user_id

    async def test_older_activity_is_skipped(self, capture_service, tile_repository, runner_a, runner_b):
        # Arrange
        await capture_service.apply_capture(runner_b, make_activity("b-1", hours=5), ["t1"])

        # Act
        result = await capture_service.apply_capture(runner_a, make_activity("a-0", hours=1), ["t1", "t2"])

        # Assert
        assert result.skipped_ids == ["t1"]
        assert result.created_ids == ["t2"]
        assert tile_repository.load("t1").owner_id == runner_b.user_id

    async def test_same_start_time_does_not_steal(self, capture_service, tile_repository, runner_a, runner_b):
        # Arrange
        await capture_service.apply_capture(runner_a, make_activity("a-1", hours=2), ["t1"])

        # Act
        result = await capture_service.apply_capture(runner_b, make_activity("b-1", hours=2), ["t1"])

        # Assert
        assert result.skipped == 1
        assert tile_repository.load("t1").owner_id == runner_a.user_id

    async def test_own_newer_activity_refreshes(self, capture_service, tile_repository, runner_a):
        # Arrange
        await capture_service.apply_capture(runner_a, make_activity("a-1", hours=0), ["t1"])

        # Act
        result = await capture_service.apply_capture(
            runner_a, make_activity("a-2", hours=3), ["t1"], RouteType.AREA
        )

        # Assert
        assert result.updated_ids == ["t1"]
        assert result.stolen_from == {}
        tile = tile_repository.load("t1")
        assert tile.activity_external_id == "a-2"
        assert tile.route_type == "area"
        assert tile.capture_count == 1


# ============================================================================
# IDEMPOTENCY
# ============================================================================


@pytest.mark.unit
class TestRecapture:
    async def test_same_activity_twice_changes_nothing(
        self, capture_service, tile_repository, activity_repository, runner_a
    ):
        # Arrange
        activity = make_activity("a-1", hours=0)
        await capture_service.apply_capture(runner_a, activity, ["t1", "t2"])
        before = tile_repository.snapshot()

        # Act
        result = await capture_service.apply_capture(runner_a, activity, ["t1", "t2"])

        # Assert
        assert result.skipped_ids == ["t1", "t2"]
        assert result.activity_created is False
        assert tile_repository.snapshot() == before
        assert len(activity_repository.rows) == 1

    async def test_duplicate_tile_ids_counted_once(self, capture_service, runner_a):
        result = await capture_service.apply_capture(
            runner_a, make_activity("a-1"), ["t1", "t2", "t1", "t2"]
        )

        assert result.tile_ids == ["t1", "t2"]
        assert result.created == 2

    async def test_empty_tile_list_records_activity(self, capture_service, activity_repository, runner_a):
        # Act
        result = await capture_service.apply_capture(runner_a, make_activity("a-1"), [])

        # Assert
        assert result.created == 0
        assert result.last_tile_id is None
        assert activity_repository.by_external_id("a-1").last_tile_id is None
        assert activity_repository.user_last_tiles == {}


# ============================================================================
# ATOMICITY
# ============================================================================


@pytest.mark.unit
class TestCaptureAtomicity:
    async def test_failed_update_rolls_back_inserts(
        self, capture_service, tile_repository, activity_repository, fake_database, runner_a, runner_b
    ):
        # Arrange
        await capture_service.apply_capture(runner_a, make_activity("a-1", hours=0), ["t1"])
        before_tiles = tile_repository.snapshot()
        tile_repository.fail_update_with = RuntimeError("connection dropped")

        # Act
        with pytest.raises(RuntimeError):
            await capture_service.apply_capture(runner_b, make_activity("b-1", hours=1), ["t1", "t2"])

        # Assert
        assert tile_repository.snapshot() == before_tiles
        assert activity_repository.by_external_id("b-1") is None
        assert runner_b.user_id not in activity_repository.user_last_tiles
        assert fake_database.rollbacks == 1

    async def test_unique_violation_becomes_conflict(self, capture_service, tile_repository, runner_a):
        # Arrange
        tile_repository.fail_insert_with = unique_violation()

        # Act
        with pytest.raises(CaptureConflictError) as exc_info:
            await capture_service.apply_capture(runner_a, make_activity("a-1"), ["t1", "t2"])

        # Assert
        assert exc_info.value.is_retryable
        assert exc_info.value.tile_count == 2
        assert tile_repository.rows == {}

    async def test_other_integrity_errors_propagate(self, capture_service, tile_repository, runner_a):
        tile_repository.fail_insert_with = IntegrityError("INSERT", {}, ForeignKeyViolation("fk"))

        with pytest.raises(IntegrityError):
            await capture_service.apply_capture(runner_a, make_activity("a-1"), ["t1"])

    async def test_activity_owned_by_other_runner_rejected(
        self, capture_service, tile_repository, runner_a, runner_b
    ):
        # Arrange
        await capture_service.apply_capture(runner_a, make_activity("shared", hours=0), ["t1"])

        # Act & Assert
        with pytest.raises(PermissionDeniedError):
            await capture_service.apply_capture(runner_b, make_activity("shared", hours=4), ["t1"])
        assert tile_repository.load("t1").owner_id == runner_a.user_id

    async def test_tiles_locked_in_sorted_order(self, capture_service, tile_repository, runner_a):
        tile_repository.seed(make_tile("b", owner_id=2, activity_id=20))

        await capture_service.apply_capture(runner_a, make_activity("a-1", hours=1), ["c", "a", "b"])

        assert tile_repository.lock_calls == [["a", "b", "c"]]


@pytest.mark.unit
class TestUniqueViolationDetection:
    def test_detects_sqlstate(self):
        assert is_unique_violation(unique_violation())

    def test_ignores_other_codes(self):
        assert not is_unique_violation(IntegrityError("INSERT", {}, ForeignKeyViolation("fk")))


# ============================================================================
# EVENTS
# ============================================================================


@pytest.mark.unit
class TestCaptureEvents:
    async def test_captured_event_published_after_commit(
        self, capture_service, event_bus, fake_database, runner_a, runner_b
    ):
        # Arrange
        received = []

        async def on_captured(payload):
            received.append((fake_database.commits, payload))

        event_bus.subscribe(CAPTURED_EVENT, on_captured)
        await capture_service.apply_capture(runner_a, make_activity("a-1", hours=0), ["t1"])

        # Act
        await capture_service.apply_capture(runner_b, make_activity("b-1", hours=1), ["t1", "t2"])

        # Assert
        commits, payload = received[-1]
        assert commits == 2
        assert payload["user_id"] == runner_b.user_id
        assert payload["activity_external_id"] == "b-1"
        assert payload["created"] == 1
        assert payload["updated"] == 1
        assert payload["stolen_from"] == {runner_a.user_id: 1}
        assert payload["route_type"] == "line"

    async def test_no_event_when_capture_fails(self, capture_service, tile_repository, mock_event_bus, runner_a):
        # Arrange
        capture_service._events = mock_event_bus
        tile_repository.fail_insert_with = unique_violation()

        # Act
        with pytest.raises(CaptureConflictError):
            await capture_service.apply_capture(runner_a, make_activity("a-1"), ["t1"])

        # Assert
        mock_event_bus.publish.assert_not_awaited()


# ============================================================================
# LOGGING
# ============================================================================


@pytest.mark.unit
class TestCaptureLogging:
    async def test_capture_logs_counts_at_debug(
        self, capture_service, event_bus, tile_repository, caplog, runner_a, runner_b
    ):
        # Arrange
        caplog.set_level(logging.DEBUG)
        received = []

        async def on_captured(payload):
            received.append(payload)

        event_bus.subscribe(CAPTURED_EVENT, on_captured)
        await capture_service.apply_capture(runner_a, make_activity("a-1", hours=0), ["t1"])

        # Act
        result = await capture_service.apply_capture(
            runner_b, make_activity("b-1", hours=1), ["t1", "t2"]
        )

        # Assert
        assert result.created == 1
        assert len(received) == 2
        committed = [record for record in caplog.records if record.getMessage() == "Capture committed"]
        assert [(r.created_count, r.updated_count, r.skipped_count, r.victims) for r in committed] == [
            (1, 0, 0, 0),
            (1, 1, 0, 1),
        ]
        assert tile_repository.load("t1").owner_id == runner_b.user_id

    async def test_activity_upsert_logs_created_flag(self, mocker, caplog, runner_a):
        # Arrange
        caplog.set_level(logging.DEBUG)
        repository = ActivityRepository()
        mocker.patch.object(repository, "get_by_external_id", mocker.AsyncMock(return_value=None))
        session = mocker.MagicMock()
        session.flush = mocker.AsyncMock()

        # Act
        row, created = await repository.upsert(
            session, runner_a, make_activity("a-1"), RouteType.LINE, "parent:t1"
        )

        # Assert
        assert created is True
        assert row.last_tile_id == "parent:t1"
        session.add.assert_called_once_with(row)
        upserted = [record for record in caplog.records if record.getMessage() == "Activity upserted"]
        assert upserted[0].activity_created is True
