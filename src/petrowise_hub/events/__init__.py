"""Hub event system."""

from __future__ import annotations

from petrowise_hub.events.emitter import EventEmitter, EventListener, EventType, HubEvent
from petrowise_hub.events.log import EventLog

__all__ = [
    "EventEmitter",
    "EventListener",
    "EventLog",
    "EventType",
    "HubEvent",
]
