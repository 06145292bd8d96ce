"""
hexturf - engine process entry point.

Bootstrap
---------
- Logging
- Config validation
- ConfigManager (YAML tunables)
- Database (engine, schema)
- Redis, when the leaderboard lock backend is ``redis``
- Service container and the leaderboard scheduler
- Graceful shutdown on SIGINT / SIGTERM
"""

import asyncio
import signal
import sys

import hexturf.database.models  # noqa: F401  (registers tables on Base.metadata)
from hexturf.core.config.config import Config
from hexturf.core.config.manager import ConfigManager
from hexturf.core.database.service import DatabaseService
from hexturf.core.event import event_bus
from hexturf.core.logging.logger import get_logger, setup_logging, shutdown_logging
from hexturf.core.redis.service import RedisService
from hexturf.core.services.container import (
    ServiceContainer,
    initialize_service_container,
    shutdown_service_container,
)

logger = get_logger(__name__)


def _uses_redis() -> bool:
    return str(ConfigManager.get("leaderboard.lock_backend", "local")).lower() == "redis"


# ============================================================================
# Application Bootstrap
# ============================================================================

async def _startup() -> ServiceContainer:
    logger.info("========== HEXTURF INITIALIZATION START ==========")

    try:
        Config.validate()
        logger.info("✓ Configuration validated")
    except Exception as exc:
        logger.critical(f"Configuration validation failed: {exc}")
        raise

    try:
        await ConfigManager.initialize()
        logger.info("✓ Config manager initialized")
    except Exception as exc:
        logger.critical(f"Config manager initialization failed: {exc}", exc_info=True)
        raise

    try:
        await DatabaseService.initialize()
        await DatabaseService.create_schema()
        logger.info("✓ Database service initialized")
    except Exception as exc:
        logger.critical(f"Database initialization failed: {exc}", exc_info=True)
        raise

    if _uses_redis():
        try:
            await RedisService.initialize()
            logger.info("✓ Redis service initialized")
        except Exception as exc:
            logger.critical(f"Redis initialization failed: {exc}", exc_info=True)
            raise

    try:
        container = initialize_service_container(
            config_manager=ConfigManager,
            event_bus=event_bus,
            logger=get_logger("hexturf.core.services.container"),
        )
        await container.initialize()
        logger.info("✓ Service container initialized")
    except Exception as exc:
        logger.critical(f"Service container initialization failed: {exc}", exc_info=True)
        raise

    logger.info("========== ENGINE INITIALIZED SUCCESSFULLY ==========")
    return container


# ============================================================================
# Application Shutdown
# ============================================================================

async def _shutdown() -> None:
    logger.info("========== HEXTURF SHUTDOWN START ==========")

    try:
        await shutdown_service_container()
        logger.info("✓ Service container shut down")
    except Exception as exc:
        logger.error(f"Service container shutdown error: {exc}", exc_info=True)

    if _uses_redis():
        try:
            await RedisService.shutdown()
            logger.info("✓ Redis service shut down")
        except Exception as exc:
            logger.error(f"Redis service shutdown error: {exc}", exc_info=True)

    try:
        await DatabaseService.shutdown()
        logger.info("✓ Database service shut down")
    except Exception as exc:
        logger.error(f"Database service shutdown error: {exc}", exc_info=True)

    logger.info("========== SHUTDOWN COMPLETE ==========")


# ============================================================================
# Application Entrypoint
# ============================================================================

def _install_signal_handlers(stop: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
            logger.debug(f"{sig.name} handler installed")
        except NotImplementedError:
            logger.debug(f"{sig.name} not supported on this platform")


async def main() -> None:
    """
    Lifecycle:
        1. Validate configuration
        2. Initialize infrastructure and services
        3. Run the scheduler until a stop signal arrives
        4. Shut down in reverse order
    """
    stop = asyncio.Event()
    _install_signal_handlers(stop)

    try:
        await _startup()
        logger.info("hexturf engine running; waiting for stop signal")
        await stop.wait()

    except asyncio.CancelledError:
        logger.warning("Asyncio task cancellation received; shutting down gracefully.")
        raise

    except Exception as exc:
        logger.critical(f"Fatal startup error: {exc}", exc_info=True)
        sys.exit(1)

    finally:
        await _shutdown()


def run() -> None:
    setup_logging()
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Engine manually stopped via keyboard interrupt.")
    finally:
        shutdown_logging()


if __name__ == "__main__":
    run()
