"""
Leaderboard value objects and ranking.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from hexturf.database.models.enums import LeaderboardType
from hexturf.domain.models.tile import ensure_utc


@dataclass(frozen=True)
class LeaderboardEntry:
    user_id: int
    external_id: str
    username: Optional[str]
    image_hex: str
    profile_image_url: Optional[str]
    tile_count: int
    activity_count: int = 0
    total_distance: float = 0.0
    rank: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "external_id": self.external_id,
            "username": self.username,
            "image_hex": self.image_hex,
            "profile_image_url": self.profile_image_url,
            "tile_count": self.tile_count,
            "activity_count": self.activity_count,
            "total_distance": self.total_distance,
            "rank": self.rank,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> LeaderboardEntry:
        return cls(
            user_id=int(data["user_id"]),
            external_id=str(data["external_id"]),
            username=data.get("username"),
            image_hex=data.get("image_hex") or "default",
            profile_image_url=data.get("profile_image_url"),
            tile_count=int(data["tile_count"]),
            activity_count=int(data.get("activity_count", 0)),
            total_distance=float(data.get("total_distance", 0.0)),
            rank=int(data.get("rank", 0)),
        )


@dataclass(frozen=True)
class LeaderboardSnapshot:
    type: LeaderboardType
    entries: List[LeaderboardEntry]
    last_updated: datetime
    next_update: datetime

    def __post_init__(self) -> None:
        object.__setattr__(self, "last_updated", ensure_utc(self.last_updated))
        object.__setattr__(self, "next_update", ensure_utc(self.next_update))

    def entry_for(self, user_id: int) -> Optional[LeaderboardEntry]:
        for entry in self.entries:
            if entry.user_id == user_id:
                return entry
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "entries": [entry.to_dict() for entry in self.entries],
            "last_updated": self.last_updated.isoformat(),
            "next_update": self.next_update.isoformat(),
        }


def rank_entries(entries: Iterable[LeaderboardEntry]) -> List[LeaderboardEntry]:
    """
    Order by tile count, highest first, and assign 1-based ranks.

    The sort is stable: equal counts keep their input order, which the
    aggregation query fixes by owner id.
    """
    ordered = sorted(entries, key=lambda entry: entry.tile_count, reverse=True)
    return [replace(entry, rank=position) for position, entry in enumerate(ordered, start=1)]
