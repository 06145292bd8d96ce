"""
Unit Tests for plan_capture.
"""

import pytest

from hexturf.modules.capture.planner import plan_capture
from tests.factories import make_claim, make_tile


def parent_of(tile_id):
    return f"parent:{tile_id}"


@pytest.mark.unit
class TestPlanCapture:
    def test_unknown_tiles_are_created(self):
        # Arrange
        claim = make_claim(1, 10, hours=0)

        # Act
        plan = plan_capture({}, ["t1", "t2"], claim, parent_of)

        # Assert
        assert plan.created_ids == ["t1", "t2"]
        assert [tile.parent_tile_id for tile in plan.inserts] == ["parent:t1", "parent:t2"]
        assert plan.updated == 0
        assert plan.skipped == 0

    def test_duplicate_ids_planned_once(self):
        plan = plan_capture({}, ["t1", "t1", "t2", "t1"], make_claim(1, 10), parent_of)

        assert plan.created_ids == ["t1", "t2"]

    def test_mixed_outcomes(self):
        # Arrange
        existing = {
            "old": make_tile("old", owner_id=2, activity_id=20, hours=0),
            "mine": make_tile("mine", owner_id=1, activity_id=11, hours=0),
            "future": make_tile("future", owner_id=3, activity_id=30, hours=9),
        }
        claim = make_claim(1, 10, hours=5)

        # Act
        plan = plan_capture(existing, ["old", "mine", "future", "new"], claim, parent_of)

        # Assert
        assert plan.created_ids == ["new"]
        assert plan.updated_ids == ["old", "mine"]
        assert plan.captured_ids == ["old"]
        assert plan.skipped_ids == ["future"]
        assert plan.stolen_from == {2: 1}

    def test_stolen_counts_aggregate_per_owner(self):
        # Arrange
        existing = {
            "a": make_tile("a", owner_id=2, activity_id=20),
            "b": make_tile("b", owner_id=2, activity_id=20),
            "c": make_tile("c", owner_id=3, activity_id=30),
        }

        # Act
        plan = plan_capture(existing, ["a", "b", "c"], make_claim(1, 10, hours=1), parent_of)

        # Assert
        assert plan.stolen_from == {2: 2, 3: 1}

    def test_all_stale_is_noop(self):
        existing = {"a": make_tile("a", owner_id=2, activity_id=20, hours=3)}

        plan = plan_capture(existing, ["a"], make_claim(1, 10, hours=3), parent_of)

        assert plan.is_noop
        assert plan.skipped_ids == ["a"]
