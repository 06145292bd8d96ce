"""
Activity processing.

Entry point for fetched activities: screen out non-running activities,
convert the decoded route into tiles, and hand the claim set to the capture
engine. Deletion goes through the rollback engine.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, FrozenSet, Optional, Sequence

from hexturf.core.config.manager import ConfigManager
from hexturf.core.event import event_bus as default_event_bus
from hexturf.core.logging.logger import LogContext, get_logger
from hexturf.modules.capture.service import CaptureService
from hexturf.modules.rollback.service import RollbackService
from hexturf.modules.shared.base_service import BaseService
from hexturf.modules.shared.exceptions import ValidationError
from hexturf.modules.tiling.classifier import RouteClassifier

if TYPE_CHECKING:
    from logging import Logger

    from hexturf.core.event.bus import EventBus
    from hexturf.domain.models.route import ActivityInput, RunnerIdentity
    from hexturf.modules.capture.service import CaptureResult
    from hexturf.modules.rollback.service import RollbackResult

DEFAULT_SPORT_TYPES = ("Run", "TrailRun", "VirtualRun")


class ActivityService(BaseService):
    def __init__(
        self,
        capture_service: Optional[CaptureService] = None,
        rollback_service: Optional[RollbackService] = None,
        classifier: Optional[RouteClassifier] = None,
        config_manager: Any = ConfigManager,
        event_bus: Optional[EventBus] = None,
        logger: Optional[Logger] = None,
    ) -> None:
        super().__init__(config_manager, event_bus or default_event_bus, logger or get_logger(__name__))
        self._capture = capture_service or CaptureService()
        self._rollback = rollback_service or RollbackService()
        self._classifier = classifier or RouteClassifier()

    @property
    def allowed_sport_types(self) -> FrozenSet[str]:
        return frozenset(self.get_config("capture.allowed_sport_types", list(DEFAULT_SPORT_TYPES)))

    def is_running_activity(self, activity: ActivityInput) -> bool:
        allowed = self.allowed_sport_types
        return activity.activity_type in allowed or (
            activity.sport_type is not None and activity.sport_type in allowed
        )

    async def process_activity(
        self,
        runner: RunnerIdentity,
        activity: ActivityInput,
        points: Optional[Sequence[Sequence[Any]]],
    ) -> CaptureResult:
        """
        Convert ``points`` to tiles and capture them for ``runner``.

        A route whose points fail validation converts to no tiles; the
        activity is still recorded.

        Raises
        ------
        ValidationError
            Not a running activity, or no GPS points.
        CaptureConflictError
            A concurrent capture won a race on a new tile.
        """
        async with LogContext(user_id=runner.user_id, operation="process_activity"):
            if not self.is_running_activity(activity):
                allowed = ", ".join(sorted(self.allowed_sport_types))
                raise ValidationError(
                    "sport_type",
                    f"Only running activities can be processed; got type "
                    f"'{activity.activity_type}' (sport type '{activity.sport_type}'). "
                    f"Allowed: {allowed}",
                )
            if not points:
                raise ValidationError("coordinates", "Activity has no GPS data")

            route = self._classifier.convert_route(points)
            if route.is_empty:
                self.log.warning(
                    "Route produced no tiles",
                    extra={"activity_external_id": activity.external_id, "points": len(points)},
                )

            return await self._capture.apply_capture(
                runner,
                activity.with_coordinates(points),
                list(route.tile_ids),
                route.route_type,
            )

    async def delete_activity(
        self, external_id: str, requested_by: Optional[RunnerIdentity] = None
    ) -> RollbackResult:
        """Roll back the activity's claims and delete it."""
        return await self._rollback.rollback_external_activity(external_id, requested_by)
