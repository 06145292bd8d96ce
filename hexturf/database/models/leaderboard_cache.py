"""
LeaderboardCache: one precomputed ranking per leaderboard type.
Schema only.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List

from sqlalchemy import JSON, DateTime, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from hexturf.core.database.base import Base, IdMixin, TimestampMixin

EntriesJSON = JSON().with_variant(JSONB(), "postgresql")


class LeaderboardCache(Base, IdMixin, TimestampMixin):
    """The whole row is replaced on every aggregation run."""

    __tablename__ = "leaderboard_cache"

    type: Mapped[str] = mapped_column(String(20), nullable=False, unique=True)

    entries: Mapped[List[Dict[str, Any]]] = mapped_column(
        EntriesJSON,
        nullable=False,
        default=list,
    )

    last_updated: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    next_update: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
