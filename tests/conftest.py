"""
Pytest configuration and shared fixtures for the hexturf test suite.

Architecture Notes
------------------
- Unit tests run against in-memory repositories behind ``FakeDatabase``
  (see ``tests/fakes.py``); no containers are started.
- Integration tests start PostgreSQL (and Redis where needed) with
  testcontainers and are skipped when Docker is not reachable.
- ConfigManager overrides are reset after every test.
"""

from __future__ import annotations

import os

os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("LOG_LEVEL", "DEBUG")

from typing import AsyncGenerator, Generator

import docker
import pytest
import pytest_asyncio
from testcontainers.postgres import PostgresContainer
from testcontainers.redis import RedisContainer

import hexturf.database.models  # noqa: F401
from hexturf.core.config.manager import ConfigManager
from hexturf.core.database.service import DatabaseService
from hexturf.core.event.bus import EventBus
from hexturf.core.logging.logger import clear_log_context, get_logger
from hexturf.domain.models.route import RunnerIdentity
from hexturf.modules.capture.service import CaptureService
from hexturf.modules.rollback.service import RollbackService
from tests.fakes import (
    FakeDatabase,
    FakeTiler,
    InMemoryActivityRepository,
    InMemoryTileRepository,
)

logger = get_logger(__name__)


# ============================================================================
# GLOBAL HOOKS
# ============================================================================


@pytest.fixture(autouse=True)
def _reset_state() -> Generator[None, None, None]:
    yield
    ConfigManager.reset()
    clear_log_context()


# ============================================================================
# RUNNERS
# ============================================================================


@pytest.fixture
def runner_a() -> RunnerIdentity:
    return RunnerIdentity(user_id=1, external_id="athlete-1")


@pytest.fixture
def runner_b() -> RunnerIdentity:
    return RunnerIdentity(user_id=2, external_id="athlete-2")


@pytest.fixture
def admin() -> RunnerIdentity:
    return RunnerIdentity(user_id=99, external_id="athlete-99", is_admin=True)


# ============================================================================
# UNIT FIXTURES (in-memory ledger)
# ============================================================================


@pytest.fixture
def event_bus() -> EventBus:
    return EventBus(listener_timeout_seconds=1.0)


@pytest.fixture
def tile_repository() -> InMemoryTileRepository:
    return InMemoryTileRepository()


@pytest.fixture
def activity_repository() -> InMemoryActivityRepository:
    return InMemoryActivityRepository()


@pytest.fixture
def fake_database(tile_repository, activity_repository) -> FakeDatabase:
    return FakeDatabase(tile_repository, activity_repository)


@pytest.fixture
def capture_service(fake_database, tile_repository, activity_repository, event_bus) -> CaptureService:
    return CaptureService(
        database=fake_database,
        tile_repository=tile_repository,
        activity_repository=activity_repository,
        tiler=FakeTiler(),
        event_bus=event_bus,
    )


@pytest.fixture
def rollback_service(fake_database, tile_repository, activity_repository, event_bus) -> RollbackService:
    return RollbackService(
        database=fake_database,
        tile_repository=tile_repository,
        activity_repository=activity_repository,
        event_bus=event_bus,
    )


@pytest.fixture
def mock_event_bus(mocker):
    mock_bus = mocker.MagicMock()
    mock_bus.publish = mocker.AsyncMock()
    return mock_bus


# ============================================================================
# TESTCONTAINERS FIXTURES (integration tests)
# ============================================================================


def _docker_available() -> bool:
    try:
        docker.from_env().ping()
    except Exception:
        return False
    return True


@pytest.fixture(scope="session")
def postgres_url() -> Generator[str, None, None]:
    if not _docker_available():
        pytest.skip("Docker is not available for testcontainers")

    logger.info("Starting PostgreSQL testcontainer...")
    container = PostgresContainer(image="postgres:16-alpine", driver="asyncpg")
    container.start()
    try:
        yield container.get_connection_url()
    finally:
        logger.info("Stopping PostgreSQL testcontainer...")
        container.stop()


@pytest.fixture(scope="session")
def redis_url() -> Generator[str, None, None]:
    if not _docker_available():
        pytest.skip("Docker is not available for testcontainers")

    container = RedisContainer(image="redis:7-alpine")
    container.start()
    try:
        host = container.get_container_host_ip()
        port = container.get_exposed_port(6379)
        yield f"redis://{host}:{port}/0"
    finally:
        container.stop()


@pytest_asyncio.fixture
async def database(postgres_url: str) -> AsyncGenerator[type[DatabaseService], None]:
    """
    DatabaseService bound to the container with a fresh schema per test.
    """
    await DatabaseService.initialize(postgres_url)
    await DatabaseService.drop_schema()
    await DatabaseService.create_schema()
    try:
        yield DatabaseService
    finally:
        await DatabaseService.shutdown()
