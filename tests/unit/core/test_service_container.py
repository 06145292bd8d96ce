"""
Unit Tests for ServiceContainer
===============================

Test Coverage
-------------
- Services fail fast before initialize()
- Wiring of shared collaborators and leaderboard jobs
- Scheduler lifecycle owned by the container
- Process-wide container helpers
"""

import pytest

from hexturf.core.config.manager import ConfigManager
from hexturf.core.logging.logger import get_logger
from hexturf.core.services import container as container_module
from hexturf.core.services.container import (
    ServiceContainer,
    get_service_container,
    initialize_service_container,
    shutdown_service_container,
)
from hexturf.modules.leaderboard.locks import ProcessLocalLock
from hexturf.modules.leaderboard.service import LeaderboardService


@pytest.fixture
def service_container(event_bus):
    return ServiceContainer(ConfigManager, event_bus, get_logger("tests.container"), start_scheduler=False)


@pytest.mark.unit
class TestServiceContainer:
    def test_services_require_initialize(self, service_container):
        with pytest.raises(RuntimeError, match="not initialized"):
            service_container.capture

    async def test_initialize_wires_services(self, service_container, event_bus):
        # Act
        await service_container.initialize()

        # Assert
        assert service_container.is_initialized
        assert service_container.classifier.tiler is service_container.tiler
        assert service_container.activity._capture is service_container.capture
        assert service_container.capture._events is event_bus
        assert isinstance(service_container.leaderboard._lock, ProcessLocalLock)
        assert {job.name for job in service_container.scheduler.jobs} == {
            "leaderboard:global",
            "leaderboard:weekly",
            "leaderboard:monthly",
        }
        assert service_container.territory._tiler is service_container.tiler
        assert service_container.scheduler.is_running is False

    async def test_health_check(self, service_container):
        await service_container.initialize()

        health = await service_container.health_check()

        assert health["initialized"] is True
        assert health["service_count"] == 7
        assert len(health["jobs"]) == 3
        assert health["database"] is False
        assert health["config"]["environment"] == "testing"
        assert health["logging"] is True

    async def test_scheduler_started_and_stopped(self, event_bus, mocker):
        # Arrange
        mocker.patch.object(LeaderboardService, "refresh_leaderboard", mocker.AsyncMock())
        service_container = ServiceContainer(ConfigManager, event_bus, get_logger("tests.container"))

        # Act
        await service_container.initialize()
        running = service_container.scheduler.is_running
        await service_container.shutdown()

        # Assert
        assert running is True
        assert service_container.is_initialized is False
        assert service_container._scheduler.is_running is False


@pytest.mark.unit
class TestGlobalContainer:
    async def test_create_get_and_shutdown(self, event_bus):
        created = initialize_service_container(event_bus=event_bus, start_scheduler=False)

        assert get_service_container() is created

        await shutdown_service_container()
        assert container_module._container is None
        with pytest.raises(RuntimeError):
            get_service_container()
