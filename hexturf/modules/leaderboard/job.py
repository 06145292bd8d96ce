from __future__ import annotations

from datetime import timedelta
from typing import TYPE_CHECKING, Any, List

from hexturf.core.config.manager import ConfigManager
from hexturf.core.logging.logger import get_logger
from hexturf.modules.leaderboard.service import DEFAULT_INTERVAL_MINUTES, coerce_leaderboard_type

if TYPE_CHECKING:
    from hexturf.core.scheduler.scheduler import JobScheduler
    from hexturf.modules.leaderboard.service import LeaderboardService

logger = get_logger(__name__)


def register_leaderboard_jobs(
    scheduler: JobScheduler,
    service: LeaderboardService,
    config_manager: Any = ConfigManager,
) -> List[str]:
    """
    Register one refresh job per ``leaderboard.types`` entry.

    Each job runs on the first tick and then every
    ``leaderboard.interval_minutes``. Returns the job names.
    """
    types = config_manager.get("leaderboard.types", ["global", "weekly", "monthly"])
    minutes = float(config_manager.get("leaderboard.interval_minutes", DEFAULT_INTERVAL_MINUTES))
    interval = timedelta(minutes=minutes)

    names: List[str] = []
    for raw in types:
        board = coerce_leaderboard_type(raw)

        async def refresh(board=board) -> None:
            await service.refresh_leaderboard(board)

        name = f"leaderboard:{board.value}"
        scheduler.register(name, refresh, interval, run_on_start=True)
        names.append(name)

    logger.info(
        "Leaderboard jobs registered",
        extra={"jobs": names, "interval_minutes": minutes},
    )
    return names
