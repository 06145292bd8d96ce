"""
Route Classifier.

Decides whether a route is a line or a closed loop ("area") and produces
the final tile list for capture.

Rules
-----
- Fewer than 3 points → line.
- First and last point within ``tiling.closing_threshold_m`` (haversine,
  inclusive) → area: polygon interior cells plus the gap-filled line
  cells, so an area always covers at least the line cells. If the polygon
  fill fails the result degrades to the line cells.
- Otherwise → line.
"""

from __future__ import annotations

import math
from typing import Any, List, Optional, Sequence, Tuple

import h3

from hexturf.core.config.manager import ConfigManager
from hexturf.core.logging.logger import get_logger
from hexturf.domain.models.route import RouteTiles, RouteType
from hexturf.modules.tiling.hex_grid import HexGridTiler, normalize_points

logger = get_logger(__name__)

EARTH_RADIUS_M = 6_371_000.0
DEFAULT_CLOSING_THRESHOLD_M = 200.0


def haversine_distance_m(a: Tuple[float, float], b: Tuple[float, float]) -> float:
    """Great-circle distance in metres between two ``(lat, lng)`` points."""
    lat1, lng1 = math.radians(a[0]), math.radians(a[1])
    lat2, lng2 = math.radians(b[0]), math.radians(b[1])
    d_lat = lat2 - lat1
    d_lng = lng2 - lng1

    h = math.sin(d_lat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(d_lng / 2) ** 2
    return EARTH_RADIUS_M * 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))


class RouteClassifier:
    def __init__(
        self,
        tiler: Optional[HexGridTiler] = None,
        closing_threshold_m: Optional[float] = None,
        fill_gaps: Optional[bool] = None,
    ) -> None:
        self.tiler = tiler or HexGridTiler()
        self.closing_threshold_m = float(
            closing_threshold_m
            if closing_threshold_m is not None
            else ConfigManager.get("tiling.closing_threshold_m", DEFAULT_CLOSING_THRESHOLD_M)
        )
        self.fill_gaps = bool(
            fill_gaps if fill_gaps is not None else ConfigManager.get("tiling.fill_gaps", True)
        )

    def classify(self, points: Optional[Sequence[Any]]) -> RouteType:
        coords = normalize_points(points)
        if coords is None or len(coords) < 3:
            return RouteType.LINE

        gap = haversine_distance_m(coords[0], coords[-1])
        if gap <= self.closing_threshold_m:
            return RouteType.AREA
        return RouteType.LINE

    def convert_route(self, points: Optional[Sequence[Any]]) -> RouteTiles:
        """
        Classify a route and compute its tiles.

        Malformed or empty input yields an empty ``RouteTiles`` of type line.
        """
        route_type = self.classify(points)
        line = self.tiler.line_cells(points, fill_gaps=self.fill_gaps)
        if not line:
            return RouteTiles(tile_ids=(), route_type=RouteType.LINE)

        if route_type is RouteType.LINE:
            return RouteTiles(tile_ids=tuple(line), route_type=RouteType.LINE)

        try:
            interior = self.tiler.polygon_cells(points)
        except (h3.H3BaseException, ValueError):
            logger.warning(
                "Area route degraded to line cells",
                extra={"line_cells": len(line)},
            )
            return RouteTiles(tile_ids=tuple(line), route_type=RouteType.AREA)

        seen = set(line)
        combined: List[str] = list(line)
        combined.extend(cell for cell in interior if cell not in seen)

        logger.debug(
            "Area route converted",
            extra={
                "line_cells": len(line),
                "interior_cells": len(interior),
                "total_cells": len(combined),
            },
        )
        return RouteTiles(tile_ids=tuple(combined), route_type=RouteType.AREA)


def convert_route(points: Optional[Sequence[Any]]) -> RouteTiles:
    """Convert a route with the configured tiler and threshold."""
    return RouteClassifier().convert_route(points)
