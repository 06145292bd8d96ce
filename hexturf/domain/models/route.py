"""
Route and activity value objects.

These are the validated inputs the caller hands to the engine (who is
running, which activity, how it was classified) and the tiling output that
flows from the classifier into the capture service.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, List, Optional, Sequence, Tuple

from hexturf.domain.models.base import DomainValidationError, validate_not_blank, validate_positive
from hexturf.domain.models.tile import ensure_utc

LatLng = Tuple[float, float]


class RouteType(str, Enum):
    LINE = "line"
    AREA = "area"


@dataclass(frozen=True)
class RouteTiles:
    """Ordered, de-duplicated capture resolution cells and the route shape."""

    tile_ids: Tuple[str, ...]
    route_type: RouteType = RouteType.LINE

    def __len__(self) -> int:
        return len(self.tile_ids)

    @property
    def is_empty(self) -> bool:
        return not self.tile_ids


@dataclass(frozen=True)
class RunnerIdentity:
    """
    The authenticated runner on whose behalf the engine acts.

    Attributes
    ----------
    user_id : int
        Internal user id
    external_id : str
        Athlete id at the upstream provider
    is_admin : bool
        Admins may delete other runners' activities
    """

    user_id: int
    external_id: str
    is_admin: bool = False

    def __post_init__(self) -> None:
        validate_positive(self.user_id, "user_id")
        validate_not_blank(self.external_id, "external_id")


@dataclass(frozen=True)
class ActivityInput:
    """A fetched upstream activity, before it is persisted."""

    external_id: str
    start_date: datetime
    activity_type: str = "Run"
    sport_type: Optional[str] = None
    name: Optional[str] = None
    distance: Optional[float] = None
    moving_time: Optional[int] = None
    elapsed_time: Optional[int] = None
    summary_polyline: Optional[str] = None
    coordinates: Optional[List[List[float]]] = field(default=None, compare=False)

    def __post_init__(self) -> None:
        validate_not_blank(self.external_id, "external_id")
        if not isinstance(self.start_date, datetime):
            raise DomainValidationError("start_date must be a datetime", field="start_date")
        object.__setattr__(self, "start_date", ensure_utc(self.start_date))

    @property
    def effective_type(self) -> str:
        return self.sport_type or self.activity_type

    def with_coordinates(self, points: Sequence[Sequence[Any]]) -> ActivityInput:
        """Copy with the decoded route attached for storage."""
        return ActivityInput(
            external_id=self.external_id,
            start_date=self.start_date,
            activity_type=self.activity_type,
            sport_type=self.sport_type,
            name=self.name,
            distance=self.distance,
            moving_time=self.moving_time,
            elapsed_time=self.elapsed_time,
            summary_polyline=self.summary_polyline,
            coordinates=[list(point) for point in points],
        )
