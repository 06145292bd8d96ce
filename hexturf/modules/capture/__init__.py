from hexturf.modules.capture.planner import CapturePlan, plan_capture
from hexturf.modules.capture.repository import (
    ActivityRepository,
    TileRepository,
    tile_from_row,
    tile_to_values,
)
from hexturf.modules.capture.service import CAPTURED_EVENT, CaptureResult, CaptureService

__all__ = [
    "CAPTURED_EVENT",
    "ActivityRepository",
    "CapturePlan",
    "CaptureResult",
    "CaptureService",
    "TileRepository",
    "plan_capture",
    "tile_from_row",
    "tile_to_values",
]
