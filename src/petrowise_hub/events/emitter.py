"""Event emitter, listener protocol, and hub event dataclass."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Optional, Protocol

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    FUEL_TRANSACTION = "fuel_transaction"
    AUTO_WORK_ORDER = "auto_work_order"
    ENDPOINT_STATUS = "endpoint_status"
    METRICS_UPDATE = "metrics_update"
    ALERT = "alert"


@dataclass
class HubEvent:
    """A typed event raised by polling or metrics and fanned out to listeners."""

    type: EventType
    data: dict[str, Any] = field(default_factory=dict)
    site_id: Optional[str] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "timestamp": self.timestamp.isoformat(),
            "site_id": self.site_id,
            "data": self.data,
        }


class EventListener(Protocol):
    """Protocol for consuming hub events."""

    async def on_event(self, event: HubEvent) -> None: ...


class EventEmitter:
    """Dispatches events to registered listeners in registration order."""

    def __init__(self) -> None:
        self._listeners: list[EventListener] = []

    def add_listener(self, listener: EventListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: EventListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    async def emit(self, event: HubEvent) -> None:
        for listener in self._listeners:
            try:
                await listener.on_event(event)
            except Exception:
                logger.exception("Event listener error")
