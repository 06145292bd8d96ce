"""
User Model
==========

Runner identity as created by the authentication layer. The engine reads
users (leaderboard profiles, regional leaders, admin checks) and writes only
``last_tile_id`` inside a capture transaction.
"""

from __future__ import annotations

from typing import Optional

from sqlalchemy import Boolean, String
from sqlalchemy.orm import Mapped, mapped_column

from hexturf.core.database.base import Base, IdMixin, TimestampMixin


class User(Base, IdMixin, TimestampMixin):
    """A registered runner linked to an upstream athlete account."""

    __tablename__ = "users"

    external_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        unique=True,
        index=True,
        doc="Athlete id at the upstream provider",
    )

    username: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    first_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    last_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    profile_image_url: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)

    image_hex: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        default="default",
        server_default="default",
        doc="Avatar hexagon style",
    )

    is_admin: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default="false",
    )

    last_tile_id: Mapped[Optional[str]] = mapped_column(
        String(20),
        nullable=True,
        doc="Resolution-6 parent of the first tile of the latest capture",
    )

    def __repr__(self) -> str:
        return f"<User id={self.id} external_id={self.external_id!r} username={self.username!r}>"
