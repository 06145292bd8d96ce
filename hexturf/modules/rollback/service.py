"""
Rollback Engine.

Purpose
-------
Undo every claim an activity currently holds and delete the activity, in
one transaction. The exact inverse of the capture engine's ownership
change: each tile pops its most recent former owner, and tiles nobody held
before are deleted.

Responsibilities
----------------
- Load the activity and check that the requester owns it or is an admin
- Lock the activity's tiles (``FOR UPDATE``, ``tile_id`` order)
- Restore or delete each tile, batch the writes, delete the activity
- Publish ``territory.rolled_back`` after commit

Non-Responsibilities
--------------------
- Re-awarding tiles the activity lost earlier to someone else (those tiles
  point at another activity and are untouched)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from hexturf.core.config.manager import ConfigManager
from hexturf.core.database.service import DatabaseService
from hexturf.core.event import event_bus as default_event_bus
from hexturf.core.logging.logger import LogContext, get_logger
from hexturf.domain.models.route import RunnerIdentity
from hexturf.domain.models.tile import RevertOutcome, Tile
from hexturf.modules.capture.repository import ActivityRepository, TileRepository
from hexturf.modules.shared.base_service import BaseService
from hexturf.modules.shared.exceptions import NotFoundError, PermissionDeniedError

if TYPE_CHECKING:
    from logging import Logger

    from sqlalchemy.ext.asyncio import AsyncSession

    from hexturf.core.event.bus import EventBus
    from hexturf.database.models.activity import Activity

ROLLED_BACK_EVENT = "territory.rolled_back"


@dataclass
class RollbackResult:
    activity_id: int
    activity_external_id: str
    restored_ids: List[str] = field(default_factory=list)
    deleted_ids: List[str] = field(default_factory=list)

    @property
    def restored(self) -> int:
        return len(self.restored_ids)

    @property
    def deleted(self) -> int:
        return len(self.deleted_ids)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "activity_id": self.activity_id,
            "activity_external_id": self.activity_external_id,
            "restored": self.restored,
            "deleted": self.deleted,
        }


class RollbackService(BaseService):
    """Reverses the claims of deleted activities."""

    def __init__(
        self,
        database: Any = DatabaseService,
        tile_repository: Optional[TileRepository] = None,
        activity_repository: Optional[ActivityRepository] = None,
        config_manager: Any = ConfigManager,
        event_bus: Optional[EventBus] = None,
        logger: Optional[Logger] = None,
    ) -> None:
        super().__init__(config_manager, event_bus or default_event_bus, logger or get_logger(__name__))
        self._db = database
        self._tiles = tile_repository or TileRepository()
        self._activities = activity_repository or ActivityRepository()

    async def rollback_activity(
        self,
        activity_id: int,
        requested_by: Optional[RunnerIdentity] = None,
    ) -> RollbackResult:
        """
        Roll back and delete an activity by internal id.

        Raises
        ------
        NotFoundError
            No activity with this id.
        PermissionDeniedError
            ``requested_by`` neither owns the activity nor is an admin.
        """
        self.check_id(activity_id, "activity_id")

        async def load(session: AsyncSession) -> Optional[Activity]:
            return await self._activities.get_for_update(session, activity_id)

        return await self._rollback(load, activity_id, requested_by)

    async def rollback_external_activity(
        self,
        external_id: str,
        requested_by: Optional[RunnerIdentity] = None,
    ) -> RollbackResult:
        """Same as :meth:`rollback_activity`, looked up by upstream id."""

        async def load(session: AsyncSession) -> Optional[Activity]:
            return await self._activities.get_by_external_id(session, external_id, for_update=True)

        return await self._rollback(load, external_id, requested_by)

    async def _rollback(
        self,
        load: Any,
        identifier: Any,
        requested_by: Optional[RunnerIdentity],
    ) -> RollbackResult:
        async with LogContext(
            user_id=requested_by.user_id if requested_by else None,
            operation="rollback_activity",
        ):
            self.log_operation("rollback_activity", activity=str(identifier))

            async with self._db.get_transaction() as session:
                activity = await load(session)
                if activity is None:
                    raise NotFoundError("Activity", identifier)

                self._check_permission(activity, requested_by)

                tiles = await self._tiles.lock_by_current_activity(session, activity.id)
                restored: List[Tile] = []
                vacated: List[str] = []
                for tile in tiles:
                    if tile.revert() is RevertOutcome.RESTORED:
                        restored.append(tile)
                    else:
                        vacated.append(tile.tile_id)

                await self._tiles.update_many(session, restored)
                await self._tiles.delete_many(session, vacated)
                await self._activities.delete_activity(session, activity.id)

            result = RollbackResult(
                activity_id=activity.id,
                activity_external_id=activity.external_id,
                restored_ids=[tile.tile_id for tile in restored],
                deleted_ids=vacated,
            )

            self.log.info(
                "Rollback committed",
                extra={
                    "activity_external_id": activity.external_id,
                    "restored": result.restored,
                    "deleted": result.deleted,
                },
            )

        await self.emit_event(ROLLED_BACK_EVENT, result.to_dict(), {"user_id": activity.user_id})
        return result

    @staticmethod
    def _check_permission(activity: Activity, requested_by: Optional[RunnerIdentity]) -> None:
        if requested_by is None or requested_by.is_admin:
            return
        if activity.user_id != requested_by.user_id:
            raise PermissionDeniedError("delete_activity", requested_by.user_id, activity.external_id)
