"""In-memory ring buffer for recent hub events."""

from __future__ import annotations

import asyncio
from collections import deque

from petrowise_hub.events.emitter import EventType, HubEvent


class EventLog:
    """Bounded in-memory event log. Implements EventListener protocol."""

    def __init__(self, max_size: int = 100) -> None:
        self._events: deque[HubEvent] = deque(maxlen=max_size)
        self._lock = asyncio.Lock()

    async def on_event(self, event: HubEvent) -> None:
        async with self._lock:
            self._events.append(event)

    async def get_recent(
        self,
        limit: int = 20,
        event_type: EventType | None = None,
        site_id: str | None = None,
    ) -> list[HubEvent]:
        async with self._lock:
            events = [
                e
                for e in self._events
                if (event_type is None or e.type == event_type)
                and (site_id is None or e.site_id == site_id)
            ]
        # Most recent first
        events.reverse()
        return events[:limit]
