"""
Database Model Enums
====================

Lightweight enumerations for categorical columns. Declarative schema
helpers only.
"""

from __future__ import annotations

import enum


class LeaderboardType(str, enum.Enum):
    """
    Leaderboard windows.

    ``GLOBAL`` counts every owned tile; ``WEEKLY`` and ``MONTHLY`` count
    tiles whose last capture falls within the trailing 7 or 30 days.
    """

    GLOBAL = "global"
    WEEKLY = "weekly"
    MONTHLY = "monthly"

    @property
    def window_days(self) -> int | None:
        return {
            LeaderboardType.GLOBAL: None,
            LeaderboardType.WEEKLY: 7,
            LeaderboardType.MONTHLY: 30,
        }[self]

