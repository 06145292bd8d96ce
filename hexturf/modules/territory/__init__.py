from hexturf.modules.territory.repository import TerritoryRepository
from hexturf.modules.territory.service import (
    BattleStats,
    BoundingBox,
    RecordStats,
    RegionalLeader,
    TerritoryQueryService,
    TileRecord,
    VersusStats,
)

__all__ = [
    "BattleStats",
    "BoundingBox",
    "RecordStats",
    "RegionalLeader",
    "TerritoryQueryService",
    "TerritoryRepository",
    "TileRecord",
    "VersusStats",
]
