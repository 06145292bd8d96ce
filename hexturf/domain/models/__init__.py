from hexturf.domain.models.base import DomainValidationError, Entity
from hexturf.domain.models.route import (
    ActivityInput,
    LatLng,
    RouteTiles,
    RouteType,
    RunnerIdentity,
)
from hexturf.domain.models.tile import (
    CaptureHistoryEntry,
    CaptureHistoryStack,
    Claim,
    ClaimOutcome,
    RevertOutcome,
    Tile,
    ensure_utc,
)

__all__ = [
    "Entity",
    "DomainValidationError",
    "ActivityInput",
    "LatLng",
    "RouteTiles",
    "RouteType",
    "RunnerIdentity",
    "CaptureHistoryEntry",
    "CaptureHistoryStack",
    "Claim",
    "ClaimOutcome",
    "RevertOutcome",
    "Tile",
    "ensure_utc",
]
