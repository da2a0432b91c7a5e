"""Recent hub events."""

from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Query, Request

from petrowise_hub.events.emitter import EventType

router = APIRouter(tags=["events"])


@router.get("/events")
async def recent_events(
    request: Request,
    limit: int = Query(default=20, ge=1, le=500),
    event_type: Optional[EventType] = None,
    site_id: Optional[str] = None,
) -> list[dict[str, Any]]:
    event_log = request.app.state.hub.event_log
    events = await event_log.get_recent(limit=limit, event_type=event_type, site_id=site_id)
    return [e.to_dict() for e in events]
