"""WebSocket stream of hub events."""

from __future__ import annotations

import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from petrowise_hub.realtime.broadcaster import Broadcaster

logger = logging.getLogger(__name__)

router = APIRouter(tags=["realtime"])


class WebSocketTransport:
    """Adapts a FastAPI WebSocket to the SubscriberTransport protocol."""

    def __init__(self, websocket: WebSocket) -> None:
        self._websocket = websocket

    async def send_text(self, data: str) -> None:
        await self._websocket.send_text(data)

    async def ping(self) -> None:
        # ASGI has no protocol-level ping; clients answer with {"action": "pong"}
        await self._websocket.send_text('{"type": "ping"}')

    async def close(self, code: int = 1000, reason: str = "") -> None:
        await self._websocket.close(code=code, reason=reason)


@router.websocket("/ws/stream")
async def event_stream(websocket: WebSocket) -> None:
    broadcaster: Broadcaster = websocket.app.state.hub.broadcaster
    await websocket.accept()
    subscriber = await broadcaster.connect(WebSocketTransport(websocket))
    try:
        while True:
            raw = await websocket.receive_text()
            await broadcaster.handle_message(subscriber.client_id, raw)
    except WebSocketDisconnect:
        pass
    finally:
        broadcaster.disconnect(subscriber.client_id)
