"""
Capture Transaction Engine.

Purpose
-------
Apply one activity's tile claims to the ownership ledger in a single
transaction, keeping every touched tile's history stack reversible.

Responsibilities
----------------
- Upsert the activity and the "last tile" pointer on activity and runner
- Lock existing tiles in the claim set (``FOR UPDATE``, ``tile_id`` order)
- Plan per tile (create / capture / refresh / skip) via ``plan_capture``
- Persist inserts and updates as two batches, all-or-nothing
- Publish ``territory.captured`` after commit

Non-Responsibilities
--------------------
- Route conversion (``hexturf.modules.tiling``)
- Retrying conflicts (callers decide)

Concurrency
-----------
Row locks serialize captures that touch the same existing tiles, so the
"strictly newer wins" rule is evaluated against committed state. Two
first claims on the same new tile race on the primary key; the loser's
transaction rolls back and surfaces as ``CaptureConflictError``.

Events
------
``territory.captured`` with ``activity_id``, ``activity_external_id``,
``user_id``, ``created``, ``updated``, ``skipped``, ``route_type``,
``stolen_from`` (previous owner id → tile count) and ``last_tile_id``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Sequence

from sqlalchemy.exc import IntegrityError

from hexturf.core.config.manager import ConfigManager
from hexturf.core.database.service import DatabaseService
from hexturf.core.event import event_bus as default_event_bus
from hexturf.core.logging.logger import LogContext, get_logger
from hexturf.domain.models.route import ActivityInput, RouteType, RunnerIdentity
from hexturf.domain.models.tile import Claim
from hexturf.modules.capture.planner import plan_capture
from hexturf.modules.capture.repository import ActivityRepository, TileRepository
from hexturf.modules.shared.base_service import BaseService
from hexturf.modules.shared.exceptions import CaptureConflictError
from hexturf.modules.tiling.hex_grid import HexGridTiler

if TYPE_CHECKING:
    from logging import Logger

    from hexturf.core.event.bus import EventBus

UNIQUE_VIOLATION = "23505"

CAPTURED_EVENT = "territory.captured"


def is_unique_violation(exc: IntegrityError) -> bool:
    orig = exc.orig
    code = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    return code == UNIQUE_VIOLATION


@dataclass
class CaptureResult:
    """Outcome of one capture, returned to the caller."""

    activity_id: int
    activity_external_id: str
    activity_created: bool
    route_type: RouteType
    last_tile_id: Optional[str]
    tile_ids: List[str] = field(default_factory=list)
    created_ids: List[str] = field(default_factory=list)
    updated_ids: List[str] = field(default_factory=list)
    skipped_ids: List[str] = field(default_factory=list)
    stolen_from: Dict[int, int] = field(default_factory=dict)

    @property
    def created(self) -> int:
        return len(self.created_ids)

    @property
    def updated(self) -> int:
        return len(self.updated_ids)

    @property
    def skipped(self) -> int:
        return len(self.skipped_ids)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "activity_id": self.activity_id,
            "activity_external_id": self.activity_external_id,
            "activity_created": self.activity_created,
            "route_type": self.route_type.value,
            "last_tile_id": self.last_tile_id,
            "created": self.created,
            "updated": self.updated,
            "skipped": self.skipped,
            "stolen_from": dict(self.stolen_from),
        }


class CaptureService(BaseService):
    """Applies tile claims for one activity at a time."""

    def __init__(
        self,
        database: Any = DatabaseService,
        tile_repository: Optional[TileRepository] = None,
        activity_repository: Optional[ActivityRepository] = None,
        tiler: Optional[HexGridTiler] = None,
        config_manager: Any = ConfigManager,
        event_bus: Optional[EventBus] = None,
        logger: Optional[Logger] = None,
    ) -> None:
        super().__init__(config_manager, event_bus or default_event_bus, logger or get_logger(__name__))
        self._db = database
        self._tiles = tile_repository or TileRepository()
        self._activities = activity_repository or ActivityRepository()
        self._tiler = tiler or HexGridTiler()

    async def apply_capture(
        self,
        runner: RunnerIdentity,
        activity: ActivityInput,
        tile_ids: Sequence[str],
        route_type: RouteType = RouteType.LINE,
    ) -> CaptureResult:
        """
        Apply the activity's claims to every tile in ``tile_ids``.

        Raises
        ------
        CaptureConflictError
            A concurrent capture inserted one of the new tiles first. Nothing
            was written; the call may be retried.
        PermissionDeniedError
            The activity's external id belongs to another runner.
        """
        unique_ids = list(dict.fromkeys(tile_ids))
        last_tile_id = self._tiler.parent_of(unique_ids[0]) if unique_ids else None

        async with LogContext(user_id=runner.user_id, operation="apply_capture"):
            self.log_operation(
                "apply_capture",
                activity_external_id=activity.external_id,
                tile_count=len(unique_ids),
                route_type=route_type.value,
            )

            try:
                async with self._db.get_transaction() as session:
                    row, created = await self._activities.upsert(
                        session, runner, activity, route_type, last_tile_id
                    )
                    if last_tile_id is not None:
                        await self._activities.set_user_last_tile(session, runner.user_id, last_tile_id)

                    claim = Claim(
                        owner_id=runner.user_id,
                        owner_external_id=runner.external_id,
                        activity_id=row.id,
                        activity_external_id=activity.external_id,
                        captured_at=activity.start_date,
                        activity_type=activity.effective_type,
                        route_type=route_type.value,
                    )

                    existing = await self._tiles.lock_tiles(session, unique_ids)
                    plan = plan_capture(existing, unique_ids, claim, self._tiler.parent_of)

                    await self._tiles.insert_many(session, plan.inserts)
                    await self._tiles.update_many(session, plan.updates)

            except IntegrityError as exc:
                if not is_unique_violation(exc):
                    raise
                self.log_error(
                    "apply_capture",
                    exc,
                    activity_external_id=activity.external_id,
                    tile_count=len(unique_ids),
                )
                raise CaptureConflictError(activity.external_id, len(unique_ids)) from exc

            result = CaptureResult(
                activity_id=row.id,
                activity_external_id=activity.external_id,
                activity_created=created,
                route_type=route_type,
                last_tile_id=last_tile_id,
                tile_ids=unique_ids,
                created_ids=plan.created_ids,
                updated_ids=plan.updated_ids,
                skipped_ids=plan.skipped_ids,
                stolen_from=plan.stolen_from,
            )

            self.log.info(
                "Capture committed",
                extra={
                    "activity_external_id": activity.external_id,
                    "created_count": result.created,
                    "updated_count": result.updated,
                    "skipped_count": result.skipped,
                    "victims": len(result.stolen_from),
                },
            )

        await self.emit_event(CAPTURED_EVENT, result.to_dict(), {"user_id": runner.user_id})
        return result
