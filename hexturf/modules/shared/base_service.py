"""
Common base for the capture, rollback, activity, leaderboard and territory
services.

Each service gets the YAML tunables, the post-commit event hook and a
module logger through its constructor, so tests can hand in fakes. Services
own their transactions through ``DatabaseService``; this class never
touches a session.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, Optional

from hexturf.modules.shared.exceptions import ValidationError

if TYPE_CHECKING:
    from logging import Logger

    from hexturf.core.config.manager import ConfigManager
    from hexturf.core.event.bus import EventBus


class BaseService:
    def __init__(
        self,
        config_manager: type[ConfigManager] | ConfigManager,
        event_bus: EventBus,
        logger: Logger,
    ) -> None:
        self._config = config_manager
        self._events = event_bus
        self.log = logger

    def get_config(self, key: str, default: Optional[Any] = None) -> Any:
        return self._config.get(key, default)

    async def emit_event(
        self,
        event_type: str,
        data: Dict[str, Any],
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Publish after commit; ``context`` keys win over ``data``."""
        await self._events.publish(event_type, {**data, **(context or {})})

    def log_operation(self, operation: str, **fields: Any) -> None:
        self.log.info(f"{operation} started", extra={"operation": operation, **fields})

    def log_error(self, operation: str, error: Exception, **fields: Any) -> None:
        self.log.error(
            f"{operation} failed: {error}",
            extra={"operation": operation, "error_type": type(error).__name__, **fields},
        )

    @staticmethod
    def check_id(value: Any, name: str) -> None:
        """
        Raises
        ------
        ValidationError
            ``value`` is not a positive ``int`` (``bool`` is rejected).
        """
        if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
            raise ValidationError(name, f"{name} must be a positive integer, got {value!r}")

    @staticmethod
    def check_bounds(value: int, name: str, low: int, high: int) -> None:
        if not low <= value <= high:
            raise ValidationError(name, f"{name} must be between {low} and {high}, got {value}")
