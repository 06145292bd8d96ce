from hexturf.modules.tiling.classifier import (
    EARTH_RADIUS_M,
    RouteClassifier,
    convert_route,
    haversine_distance_m,
)
from hexturf.modules.tiling.hex_grid import HexGridTiler, normalize_points

__all__ = [
    "EARTH_RADIUS_M",
    "HexGridTiler",
    "RouteClassifier",
    "convert_route",
    "haversine_distance_m",
    "normalize_points",
]
