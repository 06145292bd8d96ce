from hexturf.modules.leaderboard.job import register_leaderboard_jobs
from hexturf.modules.leaderboard.locks import (
    AggregationLock,
    ProcessLocalLock,
    RedisAggregationLock,
    build_aggregation_lock,
)
from hexturf.modules.leaderboard.models import (
    LeaderboardEntry,
    LeaderboardSnapshot,
    LeaderboardType,
    rank_entries,
)
from hexturf.modules.leaderboard.repository import LeaderboardRepository
from hexturf.modules.leaderboard.service import REFRESHED_EVENT, LeaderboardService

__all__ = [
    "AggregationLock",
    "LeaderboardEntry",
    "LeaderboardRepository",
    "LeaderboardService",
    "LeaderboardSnapshot",
    "LeaderboardType",
    "ProcessLocalLock",
    "REFRESHED_EVENT",
    "RedisAggregationLock",
    "build_aggregation_lock",
    "rank_entries",
    "register_leaderboard_jobs",
]
