"""
Hexagon Model
=============

One H3 cell of the ownership ledger, keyed by the cell id.

Schema-only representation of:
- Current claim (owner, activity, timestamp, type, route shape)
- Capture provenance (first capture, capture count)
- The capture history stack (JSON array, oldest first)
- The resolution-6 parent used for regional queries

Ownership rules live in ``hexturf.domain.models.tile``.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import JSON, BigInteger, DateTime, Index, Integer, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from hexturf.core.database.base import Base, TimestampMixin

HistoryJSON = JSON().with_variant(JSONB(), "postgresql")


class Hexagon(Base, TimestampMixin):
    """Current ownership of one tile plus its reversible history."""

    # ========================================================================
    # TABLE CONFIGURATION
    # ========================================================================

    __tablename__ = "hexagons"
    __table_args__ = (
        Index("ix_hexagons_current_owner_id", "current_owner_id"),
        Index("ix_hexagons_current_activity_id", "current_activity_id"),
        Index("ix_hexagons_parent_tile_id", "parent_tile_id"),
        Index("ix_hexagons_last_previous_owner_id", "last_previous_owner_id"),
        Index("ix_hexagons_capture_count", "capture_count"),
        Index("ix_hexagons_first_captured_by", "first_captured_by"),
    )

    # ========================================================================
    # IDENTITY
    # ========================================================================

    tile_id: Mapped[str] = mapped_column(
        String(20),
        primary_key=True,
        doc="H3 cell id at capture resolution",
    )

    parent_tile_id: Mapped[Optional[str]] = mapped_column(
        String(20),
        nullable=True,
        doc="H3 resolution-6 ancestor",
    )

    # ========================================================================
    # CURRENT CLAIM
    # ========================================================================

    current_owner_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    current_owner_external_id: Mapped[str] = mapped_column(String(64), nullable=False)
    current_activity_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    current_activity_external_id: Mapped[str] = mapped_column(String(64), nullable=False)

    last_captured_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        doc="Start date of the activity holding the tile; orders claims",
    )

    activity_type: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    route_type: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)

    # ========================================================================
    # PROVENANCE
    # ========================================================================

    capture_count: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    first_captured_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    first_captured_by: Mapped[int] = mapped_column(BigInteger, nullable=False)

    last_previous_owner_id: Mapped[Optional[int]] = mapped_column(
        BigInteger,
        nullable=True,
        doc="Owner on top of capture_history; NULL when the history is empty",
    )

    capture_history: Mapped[List[Dict[str, Any]]] = mapped_column(
        HistoryJSON,
        nullable=False,
        default=list,
        doc="Prior claims, oldest first",
    )

    def __repr__(self) -> str:
        return (
            f"<Hexagon tile_id={self.tile_id!r} owner={self.current_owner_id} "
            f"count={self.capture_count}>"
        )
