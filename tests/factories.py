"""Builders for domain objects used across the test suite."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from hexturf.database.models.user import User
from hexturf.domain.models.route import ActivityInput, RunnerIdentity
from hexturf.domain.models.tile import Claim, Tile

BASE_TIME = datetime(2024, 5, 1, 7, 0, tzinfo=timezone.utc)


def at(hours: float) -> datetime:
    return BASE_TIME + timedelta(hours=hours)


def make_activity(external_id: str, hours: float = 0, **overrides) -> ActivityInput:
    """Activity starting ``hours`` after ``BASE_TIME``."""
    values = {
        "external_id": external_id,
        "start_date": at(hours),
        "activity_type": "Run",
        "distance": 5000.0,
    }
    values.update(overrides)
    return ActivityInput(**values)


def make_claim(owner_id: int, activity_id: int, hours: float = 0, **overrides) -> Claim:
    values = {
        "owner_id": owner_id,
        "owner_external_id": f"athlete-{owner_id}",
        "activity_id": activity_id,
        "activity_external_id": f"act-{activity_id}",
        "captured_at": at(hours),
        "activity_type": "Run",
        "route_type": "line",
    }
    values.update(overrides)
    return Claim(**values)


def make_tile(tile_id: str, owner_id: int, activity_id: int, hours: float = 0) -> Tile:
    return Tile.discover(tile_id, make_claim(owner_id, activity_id, hours), parent_tile_id=f"parent:{tile_id}")


async def insert_user(session, external_id: str, **fields) -> RunnerIdentity:
    """Persist a ``User`` row and return the matching runner identity."""
    user = User(external_id=external_id, **fields)
    session.add(user)
    await session.flush()
    is_admin = bool(fields.get("is_admin", False))
    return RunnerIdentity(user_id=user.id, external_id=external_id, is_admin=is_admin)
