"""
Activity Model
==============

A processed upstream activity. Its start date orders competing claims and
its id is what tiles point at through ``current_activity_id``.
Schema only.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, List, Optional

from sqlalchemy import JSON, BigInteger, DateTime, Float, ForeignKey, Index, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from hexturf.core.database.base import Base, IdMixin, TimestampMixin

CoordinatesJSON = JSON().with_variant(JSONB(), "postgresql")


class Activity(Base, IdMixin, TimestampMixin):
    """One run imported from the upstream provider."""

    __tablename__ = "activities"
    __table_args__ = (
        Index("ix_activities_user_start", "user_id", "start_date"),
    )

    external_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        unique=True,
        index=True,
        doc="Upstream activity id",
    )

    user_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    activity_type: Mapped[str] = mapped_column(String(50), nullable=False, default="Run")
    sport_type: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    start_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    distance: Mapped[Optional[float]] = mapped_column(Float, nullable=True, doc="Metres")
    moving_time: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, doc="Seconds")
    elapsed_time: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, doc="Seconds")

    summary_polyline: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    coordinates: Mapped[Optional[List[Any]]] = mapped_column(CoordinatesJSON, nullable=True)

    route_type: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    last_tile_id: Mapped[Optional[str]] = mapped_column(
        String(20),
        nullable=True,
        doc="Resolution-6 parent of the first captured tile",
    )

    def __repr__(self) -> str:
        return f"<Activity id={self.id} external_id={self.external_id!r} user_id={self.user_id}>"
