"""
Post-commit event hook with a process-wide ``event_bus``.
"""

from .bus import EventBus, EventPayload, Listener

event_bus = EventBus()

__all__ = ["event_bus", "EventBus", "EventPayload", "Listener"]
