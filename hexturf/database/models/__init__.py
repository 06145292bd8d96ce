"""
ORM models for the territory ledger.

Importing this package registers every table on ``Base.metadata``.
"""

from hexturf.database.models.activity import Activity
from hexturf.database.models.enums import LeaderboardType
from hexturf.database.models.hexagon import Hexagon
from hexturf.database.models.leaderboard_cache import LeaderboardCache
from hexturf.database.models.user import User

__all__ = [
    "Activity",
    "Hexagon",
    "LeaderboardCache",
    "LeaderboardType",
    "User",
]
