"""
Territory query service.

Read-only views over the ownership ledger used by map and profile screens:
tile lookups, map viewports, "stolen from" feeds, per-user battle and record
stats, head-to-head counts and regional leader boards keyed by parent cell.

Viewport queries narrow by parent cell in SQL, then keep the tiles whose
centre lies inside the box.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Sequence

from hexturf.core.config.manager import ConfigManager
from hexturf.core.database.service import DatabaseService
from hexturf.core.event import event_bus as default_event_bus
from hexturf.core.logging.logger import get_logger
from hexturf.database.models.hexagon import Hexagon
from hexturf.modules.leaderboard.repository import display_name
from hexturf.modules.shared.base_service import BaseService
from hexturf.modules.shared.exceptions import ValidationError
from hexturf.modules.territory.repository import TerritoryRepository
from hexturf.modules.tiling.hex_grid import HexGridTiler

if TYPE_CHECKING:
    from logging import Logger

    from hexturf.core.event.bus import EventBus
    from hexturf.domain.models.tile import Tile

DEFAULT_TILE_PAGE = 1000
MAX_TILE_PAGE = 10000
DEFAULT_CONTESTED_LIMIT = 100
DEFAULT_REGIONAL_LIMIT = 10
MAX_VIEWPORT_TILES = 10000
MAX_OWNER_VIEWPORT_TILES = 5000
MAX_VIEWPORT_PARENTS = 2000


@dataclass(frozen=True)
class BoundingBox:
    """Map viewport in degrees. Boxes crossing the antimeridian are rejected."""

    south: float
    west: float
    north: float
    east: float

    def __post_init__(self) -> None:
        if not (-90.0 <= self.south <= self.north <= 90.0):
            raise ValidationError("bbox", f"need -90 <= south <= north <= 90, got {self.south}, {self.north}")
        if not (-180.0 <= self.west <= self.east <= 180.0):
            raise ValidationError("bbox", f"need -180 <= west <= east <= 180, got {self.west}, {self.east}")

    def contains(self, lat: float, lng: float) -> bool:
        return self.south <= lat <= self.north and self.west <= lng <= self.east


@dataclass(frozen=True)
class BattleStats:
    og: int
    conquered: int
    clean: int
    total: int

    def to_dict(self) -> Dict[str, int]:
        return {"og": self.og, "conquered": self.conquered, "clean": self.clean, "total": self.total}


@dataclass(frozen=True)
class VersusStats:
    first_stole_from_second: int
    second_stole_from_first: int


@dataclass(frozen=True)
class TileRecord:
    tile_id: str
    capture_count: int
    last_captured_at: datetime


@dataclass(frozen=True)
class RecordStats:
    most_contested: Optional[TileRecord]
    longest_held: Optional[TileRecord]


@dataclass(frozen=True)
class RegionalLeader:
    user_id: int
    external_id: str
    username: Optional[str]
    image_hex: str
    tile_count: int


def _record(tile: Optional[Tile]) -> Optional[TileRecord]:
    if tile is None:
        return None
    return TileRecord(tile.tile_id, tile.capture_count, tile.last_captured_at)


class TerritoryQueryService(BaseService):
    def __init__(
        self,
        database: Any = DatabaseService,
        repository: Optional[TerritoryRepository] = None,
        tiler: Optional[HexGridTiler] = None,
        config_manager: Any = ConfigManager,
        event_bus: Optional[EventBus] = None,
        logger: Optional[Logger] = None,
    ) -> None:
        super().__init__(config_manager, event_bus or default_event_bus, logger or get_logger(__name__))
        self._db = database
        self._repository = repository or TerritoryRepository()
        self._tiler = tiler or HexGridTiler()

    async def get_tile(self, tile_id: str) -> Optional[Tile]:
        async with self._db.get_session() as session:
            return await self._repository.get_tile(session, tile_id)

    async def tiles_for_owner(
        self, user_id: int, limit: int = DEFAULT_TILE_PAGE, offset: int = 0
    ) -> List[Tile]:
        """Tiles held by ``user_id``, most recently captured first."""
        self.check_id(user_id, "user_id")
        self.check_bounds(limit, "limit", 1, MAX_TILE_PAGE)
        self.check_bounds(offset, "offset", 0, 2**31 - 1)
        async with self._db.get_session() as session:
            return await self._repository.owned_by(session, user_id, limit, offset)

    async def tiles_by_parents(self, parent_ids: Sequence[str]) -> List[Tile]:
        async with self._db.get_session() as session:
            return await self._repository.in_parents(session, list(dict.fromkeys(parent_ids)))

    async def tiles_in_bbox(self, bbox: BoundingBox, limit: int = MAX_VIEWPORT_TILES) -> List[Tile]:
        """Every owner's tiles centred inside ``bbox``, newest capture first."""
        self.check_bounds(limit, "limit", 1, MAX_VIEWPORT_TILES)
        return await self._viewport(bbox, limit, None)

    async def my_tiles_in_bbox(
        self, user_id: int, bbox: BoundingBox, limit: int = MAX_OWNER_VIEWPORT_TILES
    ) -> List[Tile]:
        self.check_id(user_id, "user_id")
        self.check_bounds(limit, "limit", 1, MAX_OWNER_VIEWPORT_TILES)
        return await self._viewport(bbox, limit, user_id)

    async def _viewport(self, bbox: BoundingBox, limit: int, owner_id: Optional[int]) -> List[Tile]:
        estimate = self._tiler.estimate_parents_in_box(bbox.south, bbox.west, bbox.north, bbox.east)
        if estimate > MAX_VIEWPORT_PARENTS:
            raise ValidationError(
                "bbox", f"box spans about {estimate} regions; the limit is {MAX_VIEWPORT_PARENTS}"
            )
        parent_ids = self._tiler.parents_in_box(bbox.south, bbox.west, bbox.north, bbox.east)
        async with self._db.get_session() as session:
            tiles = await self._repository.recent_in_parents(session, parent_ids, limit, owner_id)
        return [tile for tile in tiles if bbox.contains(*self._tiler.center_of(tile.tile_id))]

    async def tile_count(self) -> int:
        async with self._db.get_session() as session:
            return await self._repository.count_where(session)

    async def tiles_stolen_from(self, user_id: int) -> List[Tile]:
        """Tiles whose immediate previous owner is ``user_id``, newest capture first."""
        self.check_id(user_id, "user_id")
        async with self._db.get_session() as session:
            return await self._repository.stolen_from(session, user_id)

    async def contested_tiles(self, limit: int = DEFAULT_CONTESTED_LIMIT) -> List[Tile]:
        self.check_bounds(limit, "limit", 1, MAX_TILE_PAGE)
        async with self._db.get_session() as session:
            return await self._repository.most_contested(session, limit)

    async def battle_stats(self, user_id: int) -> BattleStats:
        """
        Counts over the tiles ``user_id`` holds now.

        ``og`` tiles were first discovered by the user, ``conquered`` tiles by
        someone else, and ``clean`` tiles have never changed hands.
        """
        self.check_id(user_id, "user_id")
        owned = Hexagon.current_owner_id == user_id
        async with self._db.get_session() as session:
            og = await self._repository.count_where(session, owned, Hexagon.first_captured_by == user_id)
            conquered = await self._repository.count_where(
                session, owned, Hexagon.first_captured_by != user_id
            )
            clean = await self._repository.count_where(session, owned, Hexagon.capture_count == 1)
            total = await self._repository.count_where(session, owned)
        return BattleStats(og=og, conquered=conquered, clean=clean, total=total)

    async def versus_stats(self, first_user_id: int, second_user_id: int) -> VersusStats:
        """Direct steals between two users, counted on current ownership."""
        self.check_id(first_user_id, "first_user_id")
        self.check_id(second_user_id, "second_user_id")
        async with self._db.get_session() as session:
            first = await self._repository.count_where(
                session,
                Hexagon.current_owner_id == first_user_id,
                Hexagon.last_previous_owner_id == second_user_id,
            )
            second = await self._repository.count_where(
                session,
                Hexagon.current_owner_id == second_user_id,
                Hexagon.last_previous_owner_id == first_user_id,
            )
        return VersusStats(first_stole_from_second=first, second_stole_from_first=second)

    async def record_stats(self, user_id: int) -> RecordStats:
        self.check_id(user_id, "user_id")
        async with self._db.get_session() as session:
            contested = await self._repository.first_owned(
                session, user_id, Hexagon.capture_count.desc(), Hexagon.tile_id
            )
            held = await self._repository.first_owned(
                session, user_id, Hexagon.last_captured_at.asc(), Hexagon.tile_id
            )
        return RecordStats(most_contested=_record(contested), longest_held=_record(held))

    async def regional_active_leaders(
        self, parent_ids: Sequence[str], limit: int = DEFAULT_REGIONAL_LIMIT
    ) -> List[RegionalLeader]:
        """Current owners ranked by tiles held inside ``parent_ids``."""
        return await self._regional(Hexagon.current_owner_id, parent_ids, limit)

    async def regional_og_discoverers(
        self, parent_ids: Sequence[str], limit: int = DEFAULT_REGIONAL_LIMIT
    ) -> List[RegionalLeader]:
        """First discoverers ranked by tiles found inside ``parent_ids``."""
        return await self._regional(Hexagon.first_captured_by, parent_ids, limit)

    async def _regional(
        self, group_column: Any, parent_ids: Sequence[str], limit: int
    ) -> List[RegionalLeader]:
        self.check_bounds(limit, "limit", 1, 1000)
        async with self._db.get_session() as session:
            rows = await self._repository.regional_counts(
                session, group_column, list(dict.fromkeys(parent_ids)), limit
            )
        return [
            RegionalLeader(
                user_id=user.id,
                external_id=user.external_id,
                username=display_name(user.username, user.first_name, user.last_name),
                image_hex=user.image_hex or "default",
                tile_count=count,
            )
            for user, count in rows
        ]
