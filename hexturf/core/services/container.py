"""
Service Container
=================

Purpose
-------
Build the engine's services once, wire their shared collaborators, and own
the scheduler that drives periodic leaderboard refreshes.

Responsibilities
----------------
- Construct tiler, classifier and domain services with shared dependencies
- Register leaderboard refresh jobs on the ``JobScheduler``
- Start and stop the scheduler with the container
- Expose services as properties that fail fast before ``initialize()``

Non-Responsibilities
--------------------
- Infrastructure start-up order (DatabaseService, RedisService; see ``main``)
- Business logic
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Any, Callable, Dict, Optional, TypeVar

from hexturf.core.config.config import Config
from hexturf.core.config.manager import ConfigManager
from hexturf.core.database.service import DatabaseService
from hexturf.core.event import event_bus as default_event_bus
from hexturf.core.logging.logger import get_logger, is_logging_initialized
from hexturf.core.redis.service import RedisService
from hexturf.core.scheduler.scheduler import JobScheduler
from hexturf.modules.activity import ActivityService
from hexturf.modules.capture import CaptureService
from hexturf.modules.leaderboard import LeaderboardService, build_aggregation_lock, register_leaderboard_jobs
from hexturf.modules.rollback import RollbackService
from hexturf.modules.territory import TerritoryQueryService
from hexturf.modules.tiling import HexGridTiler, RouteClassifier

if TYPE_CHECKING:
    from logging import Logger

    from hexturf.core.event.bus import EventBus

T = TypeVar("T")


class ServiceContainer:
    """
    Usage:
        container = ServiceContainer(ConfigManager, event_bus, logger)
        await container.initialize()
        await container.activity.process_activity(runner, activity, points)
    """

    def __init__(
        self,
        config_manager: Any,
        event_bus: EventBus,
        logger: Logger,
        *,
        start_scheduler: bool = True,
    ) -> None:
        self._config_manager = config_manager
        self._event_bus = event_bus
        self._logger = logger
        self._start_scheduler = start_scheduler

        self._tiler: Optional[HexGridTiler] = None
        self._classifier: Optional[RouteClassifier] = None
        self._capture: Optional[CaptureService] = None
        self._rollback: Optional[RollbackService] = None
        self._activity: Optional[ActivityService] = None
        self._leaderboard: Optional[LeaderboardService] = None
        self._territory: Optional[TerritoryQueryService] = None
        self._scheduler: Optional[JobScheduler] = None

        self._initialized = False
        self._service_init_times: Dict[str, float] = {}
        self._init_start: Optional[float] = None
        self._init_end: Optional[float] = None

    # ========================================================================
    # Lifecycle
    # ========================================================================

    async def initialize(self) -> None:
        if self._initialized:
            self._logger.warning("ServiceContainer already initialized")
            return

        self._init_start = time.perf_counter()
        self._logger.info("Service container initialization starting...")

        try:
            self._tiler = self._timed("tiler", HexGridTiler)
            self._classifier = self._timed("classifier", lambda: RouteClassifier(tiler=self._tiler))

            self._capture = self._timed(
                "capture",
                lambda: CaptureService(tiler=self._tiler, **self._shared("capture.service")),
            )
            self._rollback = self._timed(
                "rollback",
                lambda: RollbackService(**self._shared("rollback.service")),
            )
            self._activity = self._timed(
                "activity",
                lambda: ActivityService(
                    capture_service=self._capture,
                    rollback_service=self._rollback,
                    classifier=self._classifier,
                    **self._shared("activity.service"),
                ),
            )
            self._leaderboard = self._timed(
                "leaderboard",
                lambda: LeaderboardService(
                    lock=build_aggregation_lock(self._config_manager.get("leaderboard.lock_backend", "local")),
                    **self._shared("leaderboard.service"),
                ),
            )
            self._territory = self._timed(
                "territory",
                lambda: TerritoryQueryService(tiler=self._tiler, **self._shared("territory.service")),
            )

            self._scheduler = JobScheduler()
            register_leaderboard_jobs(self._scheduler, self._leaderboard, self._config_manager)
            if self._start_scheduler:
                await self._scheduler.start()

            self._init_end = time.perf_counter()
            self._initialized = True

            extra_data: Dict[str, Any] = {
                "total_time_seconds": round(self._init_end - self._init_start, 3),
                "service_count": len(self._service_init_times),
                "scheduled_jobs": len(self._scheduler.jobs),
            }
            if self._service_init_times:
                slowest = max(self._service_init_times, key=self._service_init_times.__getitem__)
                extra_data["slowest_service"] = slowest
                extra_data["slowest_duration"] = round(self._service_init_times[slowest], 3)

            self._logger.info("Service container initialized successfully", extra=extra_data)

        except Exception as e:
            self._logger.critical(
                "Service container initialization failed - engine cannot start",
                exc_info=True,
                extra={"error": str(e)},
            )
            raise

    def _shared(self, module: str) -> Dict[str, Any]:
        return {
            "config_manager": self._config_manager,
            "event_bus": self._event_bus,
            "logger": get_logger(f"hexturf.modules.{module}"),
        }

    def _timed(self, name: str, factory: Callable[[], T]) -> T:
        start = time.perf_counter()
        try:
            instance = factory()
        except Exception:
            self._logger.error(f"Failed to initialize {name}", exc_info=True)
            raise

        duration = time.perf_counter() - start
        self._service_init_times[name] = duration
        self._logger.debug(f"Initialized {name} in {duration:.3f}s")
        return instance

    async def shutdown(self) -> None:
        if not self._initialized:
            return

        self._logger.info("Shutting down service container...")
        if self._scheduler is not None:
            await self._scheduler.stop()

        self._initialized = False
        self._logger.info("Service container shut down")

    async def health_check(self) -> Dict[str, Any]:
        return {
            "initialized": self._initialized,
            "database": await DatabaseService.health_check(),
            "redis": RedisService.is_healthy(),
            "logging": is_logging_initialized(),
            "config": Config.get_config_summary(),
            "service_count": len(self._service_init_times),
            "total_init_time_seconds": (
                round(self._init_end - self._init_start, 3)
                if self._init_start and self._init_end
                else None
            ),
            "scheduler_running": bool(self._scheduler and self._scheduler.is_running),
            "jobs": [job.to_dict() for job in self._scheduler.jobs] if self._scheduler else [],
        }

    # ========================================================================
    # Services
    # ========================================================================

    def _require(self, service: Optional[T]) -> T:
        if not self._initialized or service is None:
            raise RuntimeError("ServiceContainer not initialized. Call initialize() first.")
        return service

    @property
    def tiler(self) -> HexGridTiler:
        return self._require(self._tiler)

    @property
    def classifier(self) -> RouteClassifier:
        return self._require(self._classifier)

    @property
    def capture(self) -> CaptureService:
        return self._require(self._capture)

    @property
    def rollback(self) -> RollbackService:
        return self._require(self._rollback)

    @property
    def activity(self) -> ActivityService:
        return self._require(self._activity)

    @property
    def leaderboard(self) -> LeaderboardService:
        return self._require(self._leaderboard)

    @property
    def territory(self) -> TerritoryQueryService:
        return self._require(self._territory)

    @property
    def scheduler(self) -> JobScheduler:
        return self._require(self._scheduler)

    @property
    def is_initialized(self) -> bool:
        return self._initialized


_container: Optional[ServiceContainer] = None


def initialize_service_container(
    config_manager: Any = ConfigManager,
    event_bus: Optional[EventBus] = None,
    logger: Optional[Logger] = None,
    **kwargs: Any,
) -> ServiceContainer:
    """Create the process-wide container; call ``initialize()`` on the result."""
    global _container
    _container = ServiceContainer(
        config_manager,
        event_bus or default_event_bus,
        logger or get_logger("hexturf.core.services.container"),
        **kwargs,
    )
    return _container


def get_service_container() -> ServiceContainer:
    if _container is None:
        raise RuntimeError("Service container has not been created")
    return _container


async def shutdown_service_container() -> None:
    global _container
    if _container is not None:
        await _container.shutdown()
        _container = None
