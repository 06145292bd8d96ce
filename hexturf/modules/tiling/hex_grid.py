"""
Hex Grid Tiler.

Purpose
-------
Turn decoded GPS routes into H3 cell ids at the capture resolution, and map
cells to their coarse regional parent.

Responsibilities
----------------
- Point → cell conversion at a fixed resolution
- Gap filling between consecutive points with ``h3.grid_path_cells``
- Polygon interior cells for closed loops
- Parent cell lookup for regional queries and map viewports

Non-Responsibilities
--------------------
- Deciding between line and area (``hexturf.modules.tiling.classifier``)
- Polyline decoding (callers pass decoded points)

Design Notes
------------
Malformed input is not exceptional here: a route with any bad point yields
an empty list and a warning, and the caller captures nothing.
"""

from __future__ import annotations

import math
from typing import Any, Iterable, List, Optional, Sequence, Tuple

import h3

from hexturf.core.config.manager import ConfigManager
from hexturf.core.logging.logger import get_logger

logger = get_logger(__name__)

DEFAULT_RESOLUTION = 10
DEFAULT_PARENT_RESOLUTION = 6


def normalize_points(points: Optional[Sequence[Any]]) -> Optional[List[Tuple[float, float]]]:
    """
    Validate and coerce a ``(lat, lng)`` sequence.

    Returns None when any point is not a numeric, finite, in-range pair.
    Booleans are rejected even though they are ints.
    """
    if not points:
        return None

    normalized: List[Tuple[float, float]] = []
    for point in points:
        if isinstance(point, (str, bytes)) or not isinstance(point, Sequence) or len(point) != 2:
            return None
        lat, lng = point[0], point[1]
        if isinstance(lat, bool) or isinstance(lng, bool):
            return None
        if not isinstance(lat, (int, float)) or not isinstance(lng, (int, float)):
            return None
        lat_f, lng_f = float(lat), float(lng)
        if not (math.isfinite(lat_f) and math.isfinite(lng_f)):
            return None
        if not (-90.0 <= lat_f <= 90.0 and -180.0 <= lng_f <= 180.0):
            return None
        normalized.append((lat_f, lng_f))
    return normalized


def _unique(cells: Iterable[str]) -> List[str]:
    seen: set[str] = set()
    ordered: List[str] = []
    for cell in cells:
        if cell not in seen:
            seen.add(cell)
            ordered.append(cell)
    return ordered


class HexGridTiler:
    """
    H3 tiling at a fixed resolution.

    Parameters
    ----------
    resolution:
        Capture resolution; defaults to ``tiling.resolution`` (10).
    parent_resolution:
        Regional resolution; defaults to ``tiling.parent_resolution`` (6).
    """

    def __init__(
        self,
        resolution: Optional[int] = None,
        parent_resolution: Optional[int] = None,
    ) -> None:
        self.resolution = int(
            resolution
            if resolution is not None
            else ConfigManager.get("tiling.resolution", DEFAULT_RESOLUTION)
        )
        self.parent_resolution = int(
            parent_resolution
            if parent_resolution is not None
            else ConfigManager.get("tiling.parent_resolution", DEFAULT_PARENT_RESOLUTION)
        )
        if not 0 <= self.parent_resolution <= self.resolution <= 15:
            raise ValueError(
                f"Invalid H3 resolutions: parent={self.parent_resolution} "
                f"capture={self.resolution}"
            )

    # ------------------------------------------------------------------ #
    # Single cells
    # ------------------------------------------------------------------ #

    def cell_for(self, lat: float, lng: float) -> str:
        return h3.latlng_to_cell(lat, lng, self.resolution)

    def parent_of(self, cell: str) -> str:
        """Resolution-6 (by default) ancestor of a capture cell."""
        return h3.cell_to_parent(cell, self.parent_resolution)

    # ------------------------------------------------------------------ #
    # Routes
    # ------------------------------------------------------------------ #

    def line_cells(self, points: Optional[Sequence[Any]], fill_gaps: bool = True) -> List[str]:
        """
        Cells a route passes through, in route order, without duplicates.

        With ``fill_gaps`` the grid path between consecutive differing cells
        is included; when H3 cannot build that path only the destination
        cell is kept.
        """
        coords = normalize_points(points)
        if coords is None:
            if points:
                logger.warning(
                    "Malformed route points; no cells produced",
                    extra={"point_count": len(points)},
                )
            return []

        point_cells = [self.cell_for(lat, lng) for lat, lng in coords]
        if not fill_gaps:
            return _unique(point_cells)

        cells: List[str] = [point_cells[0]]
        for current, following in zip(point_cells, point_cells[1:]):
            if current == following:
                continue
            try:
                cells.extend(h3.grid_path_cells(current, following))
            except h3.H3BaseException:
                logger.debug(
                    "Grid path unavailable; keeping destination cell only",
                    extra={"from_cell": current, "to_cell": following},
                )
                cells.append(following)
        return _unique(cells)

    def polygon_cells(self, points: Optional[Sequence[Any]]) -> List[str]:
        """
        Cells whose centres fall inside the ring formed by the points.

        A duplicated closing point is dropped. Rings with fewer than three
        distinct vertices yield an empty list. Output is sorted.

        Raises
        ------
        h3.H3BaseException, ValueError
            If H3 rejects the ring (e.g. self-intersecting across the antimeridian).
        """
        coords = normalize_points(points)
        if coords is None:
            return []

        if len(coords) > 1 and coords[0] == coords[-1]:
            coords = coords[:-1]
        if len(set(coords)) < 3:
            return []

        try:
            cells = h3.polygon_to_cells(h3.LatLngPoly(coords), self.resolution)
        except (h3.H3BaseException, ValueError) as exc:
            logger.warning(
                "Polygon fill failed",
                extra={
                    "vertex_count": len(coords),
                    "error": str(exc),
                    "error_type": type(exc).__name__,
                },
            )
            raise
        return sorted(cells)

    # ------------------------------------------------------------------ #
    # Map viewport
    # ------------------------------------------------------------------ #

    def parents_in_box(self, south: float, west: float, north: float, east: float) -> List[str]:
        """
        Parent cells that can hold a capture cell centred inside the box.

        Cells filled from the box plus its corner cells, widened by one ring
        because a child's centre may sit just outside its parent's outline.
        Output is sorted.
        """
        corners = [(south, west), (south, east), (north, east), (north, west)]
        seeds = {h3.latlng_to_cell(lat, lng, self.parent_resolution) for lat, lng in corners}
        if south < north and west < east:
            seeds.update(h3.polygon_to_cells(h3.LatLngPoly(corners), self.parent_resolution))

        covering: set[str] = set()
        for cell in seeds:
            covering.update(h3.grid_disk(cell, 1))
        return sorted(covering)

    @staticmethod
    def center_of(cell: str) -> Tuple[float, float]:
        return h3.cell_to_latlng(cell)

    def estimate_parents_in_box(self, south: float, west: float, north: float, east: float) -> int:
        """Rough parent cell count for the box, cheap enough to check before filling."""
        km_per_degree = 111.32
        height = (north - south) * km_per_degree
        width = (east - west) * km_per_degree * math.cos(math.radians((north + south) / 2))
        area = max(height, 0.0) * max(width, 0.0)
        return math.ceil(area / h3.average_hexagon_area(self.parent_resolution, unit="km^2"))
