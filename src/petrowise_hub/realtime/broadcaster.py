"""Realtime fan-out of hub events to connected subscribers."""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any, Literal, Optional, Protocol

from pydantic import AliasChoices, BaseModel, Field, ValidationError

from petrowise_hub.aggregation.metrics import Period
from petrowise_hub.aggregation.models import EnterpriseMetrics
from petrowise_hub.config.models import RealtimeSettings
from petrowise_hub.events.emitter import EventType, HubEvent

logger = logging.getLogger(__name__)

ALL_CHANNELS = "all"
SHUTDOWN_CODE = 1001
STALE_CODE = 1000

MetricsProvider = Callable[[Period], Awaitable[EnterpriseMetrics]]


class SubscriberTransport(Protocol):
    """The connection a subscriber is reached through."""

    async def send_text(self, data: str) -> None: ...
    async def ping(self) -> None: ...
    async def close(self, code: int = 1000, reason: str = "") -> None: ...


@dataclass
class Subscriber:
    client_id: str
    transport: SubscriberTransport
    channels: set[str] = field(default_factory=lambda: {ALL_CHANNELS})
    site_ids: set[str] = field(default_factory=set)
    last_seen: datetime = field(default_factory=lambda: datetime.now(UTC))


def should_deliver(event: HubEvent, subscriber: Subscriber) -> bool:
    """Channel match (or "all") and, when the subscriber filters by site, a site match.

    Events without a site id pass any site filter.
    """
    if ALL_CHANNELS not in subscriber.channels and event.type.value not in subscriber.channels:
        return False
    if subscriber.site_ids and event.site_id is not None and event.site_id not in subscriber.site_ids:
        return False
    return True


class ControlMessage(BaseModel):
    """A subscriber's request to adjust its filters, fetch metrics, or acknowledge a ping."""

    action: Literal["subscribe", "unsubscribe", "request_metrics", "pong"]
    channels: list[str] = Field(default_factory=list)
    site_ids: list[str] = Field(default_factory=list, validation_alias=AliasChoices("site_ids", "siteIds"))
    period: Period = Period.DAILY


def _dump(message: dict[str, Any]) -> str:
    return json.dumps(message, default=str)


class Broadcaster:
    """Registry of subscribers. Implements the EventListener protocol."""

    def __init__(
        self,
        settings: RealtimeSettings,
        metrics_provider: Optional[MetricsProvider] = None,
    ) -> None:
        self._settings = settings
        self._metrics_provider = metrics_provider
        self._subscribers: dict[str, Subscriber] = {}
        self._heartbeat: Optional[asyncio.Task[None]] = None

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def get_subscriber(self, client_id: str) -> Optional[Subscriber]:
        return self._subscribers.get(client_id)

    # ─── connection lifecycle ───

    async def connect(self, transport: SubscriberTransport, client_id: Optional[str] = None) -> Subscriber:
        subscriber = Subscriber(client_id=client_id or f"client_{uuid.uuid4().hex[:12]}", transport=transport)
        self._subscribers[subscriber.client_id] = subscriber
        logger.info("Subscriber connected: %s", subscriber.client_id)
        await self._send(
            subscriber,
            {"type": "connected", "client_id": subscriber.client_id, "timestamp": datetime.now(UTC).isoformat()},
        )
        return subscriber

    def disconnect(self, client_id: str) -> None:
        if self._subscribers.pop(client_id, None) is not None:
            logger.info("Subscriber disconnected: %s", client_id)

    def touch(self, client_id: str, now: Optional[datetime] = None) -> None:
        subscriber = self._subscribers.get(client_id)
        if subscriber is not None:
            subscriber.last_seen = now or datetime.now(UTC)

    async def _send(self, subscriber: Subscriber, message: dict[str, Any]) -> bool:
        try:
            await subscriber.transport.send_text(_dump(message))
        except Exception as exc:
            logger.warning("Dropping subscriber %s after send failure: %s", subscriber.client_id, exc)
            self.disconnect(subscriber.client_id)
            return False
        return True

    # ─── control messages ───

    async def handle_message(self, client_id: str, raw: str) -> None:
        """Apply one control message. Malformed messages are logged and ignored."""
        subscriber = self._subscribers.get(client_id)
        if subscriber is None:
            return
        self.touch(client_id)
        try:
            message = ControlMessage.model_validate_json(raw)
        except ValidationError as exc:
            logger.warning("Ignoring malformed control message from %s: %s", client_id, exc.errors()[:1])
            return

        if message.action == "subscribe":
            subscriber.channels.update(message.channels)
            subscriber.site_ids.update(message.site_ids)
        elif message.action == "unsubscribe":
            subscriber.channels.difference_update(message.channels)
            subscriber.site_ids.difference_update(message.site_ids)
        elif message.action == "request_metrics":
            await self._send_metrics(subscriber, message.period)

    async def _send_metrics(self, subscriber: Subscriber, period: Period) -> None:
        if self._metrics_provider is None:
            logger.debug("Metrics requested by %s but no provider is configured", subscriber.client_id)
            return
        try:
            metrics = await self._metrics_provider(period)
        except Exception:
            logger.exception("Metrics for %s (%s) could not be computed", subscriber.client_id, period.value)
            return
        event = HubEvent(type=EventType.METRICS_UPDATE, data=metrics.to_dict())
        await self._send(subscriber, event.to_dict())

    # ─── fan-out ───

    async def broadcast(self, event: HubEvent) -> int:
        """Deliver *event* to every matching subscriber. Returns the number reached."""
        payload = event.to_dict()
        delivered = 0
        for subscriber in list(self._subscribers.values()):
            if should_deliver(event, subscriber) and await self._send(subscriber, payload):
                delivered += 1
        return delivered

    async def on_event(self, event: HubEvent) -> None:
        await self.broadcast(event)

    # ─── heartbeat ───

    async def heartbeat_sweep(self, now: Optional[datetime] = None) -> list[str]:
        """Drop subscribers silent for longer than ``stale_after``; ping the rest.

        Returns the ids that were dropped.
        """
        now = now or datetime.now(UTC)
        stale_after = timedelta(seconds=self._settings.stale_after)
        dropped: list[str] = []
        for subscriber in list(self._subscribers.values()):
            if now - subscriber.last_seen > stale_after:
                dropped.append(subscriber.client_id)
                self.disconnect(subscriber.client_id)
                try:
                    await subscriber.transport.close(STALE_CODE, "Heartbeat timeout")
                except Exception as exc:
                    logger.debug("Close of stale subscriber %s failed: %s", subscriber.client_id, exc)
                continue
            try:
                await subscriber.transport.ping()
            except Exception as exc:
                logger.warning("Ping to %s failed: %s", subscriber.client_id, exc)
                dropped.append(subscriber.client_id)
                self.disconnect(subscriber.client_id)
        return dropped

    async def _heartbeat_loop(self) -> None:
        while True:
            await asyncio.sleep(self._settings.heartbeat_interval)
            await self.heartbeat_sweep()

    def start(self) -> None:
        if self._heartbeat is None:
            self._heartbeat = asyncio.create_task(self._heartbeat_loop(), name="broadcaster-heartbeat")

    async def stop(self) -> None:
        """Stop the heartbeat and close every subscriber with a shutdown code."""
        if self._heartbeat is not None:
            self._heartbeat.cancel()
            await asyncio.gather(self._heartbeat, return_exceptions=True)
            self._heartbeat = None
        subscribers = list(self._subscribers.values())
        self._subscribers.clear()
        for subscriber in subscribers:
            try:
                await subscriber.transport.close(SHUTDOWN_CODE, "Server shutting down")
            except Exception as exc:
                logger.debug("Close of %s failed: %s", subscriber.client_id, exc)
