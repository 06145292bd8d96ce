"""
Post-commit notification hook.

Services publish ``territory.captured``, ``territory.rolled_back`` and
``leaderboard.refreshed`` after their transaction commits. Whatever reacts
to ownership changes (notifications, caches) subscribes here; listeners run
outside the ledger transaction and cannot undo it.

Listeners are awaited one at a time in subscription order. A listener that
raises or exceeds the timeout is logged and skipped; the publisher never
sees its failure.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Dict, List, Optional

from hexturf.core.config.manager import ConfigManager
from hexturf.core.logging.logger import LogContext, get_logger

logger = get_logger(__name__)

EventPayload = Dict[str, Any]
Listener = Callable[[EventPayload], Awaitable[Any]]


class EventBus:
    """
    >>> bus = EventBus()
    >>> bus.subscribe("territory.captured", notify_victims)
    >>> await bus.publish("territory.captured", {"user_id": 7, "created": 12})
    """

    def __init__(self, *, listener_timeout_seconds: Optional[float] = None) -> None:
        self._listeners: Dict[str, List[Listener]] = {}
        self._listener_timeout = listener_timeout_seconds

    def _timeout(self) -> float:
        if self._listener_timeout is not None:
            return float(self._listener_timeout)
        return float(ConfigManager.get("event.listener_timeout_seconds", 5.0))

    def subscribe(self, event_name: str, listener: Listener) -> None:
        """
        Register an async ``listener`` for ``event_name``; ``"*"`` receives
        every event. Subscribing the same listener twice is a no-op.
        """
        bucket = self._listeners.setdefault(event_name, [])
        if listener not in bucket:
            bucket.append(listener)

    def unsubscribe(self, event_name: str, listener: Listener) -> bool:
        bucket = self._listeners.get(event_name, [])
        if listener not in bucket:
            return False
        bucket.remove(listener)
        if not bucket:
            del self._listeners[event_name]
        return True

    def listener_count(self, event_name: str) -> int:
        return len(self._listeners.get(event_name, [])) + len(self._listeners.get("*", []))

    async def publish(self, event_name: str, payload: EventPayload) -> int:
        """
        Deliver ``payload`` to every listener of ``event_name``.

        Returns the number of listeners that completed.
        """
        listeners = list(self._listeners.get(event_name, [])) + list(self._listeners.get("*", []))
        if not listeners:
            return 0

        timeout = self._timeout()
        completed = 0
        async with LogContext(event_name=event_name):
            for listener in listeners:
                name = getattr(listener, "__qualname__", repr(listener))
                try:
                    await asyncio.wait_for(listener(payload), timeout=timeout)
                except asyncio.TimeoutError:
                    logger.error(
                        "Event listener timed out",
                        extra={"listener": name, "timeout_seconds": timeout},
                    )
                except Exception as exc:
                    logger.error(
                        "Event listener raised",
                        exc_info=True,
                        extra={"listener": name, "error_type": type(exc).__name__},
                    )
                else:
                    completed += 1

        logger.debug(
            "Event published",
            extra={"event_name": event_name, "listeners": len(listeners), "completed": completed},
        )
        return completed
