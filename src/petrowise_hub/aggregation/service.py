"""Aggregation service: the polling catalog, its health, and metrics access."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Optional

from petrowise_hub.aggregation.metrics import MetricsAggregator
from petrowise_hub.aggregation.models import (
    EndpointHealth,
    EndpointSummary,
    FuelInventorySnapshot,
    PollOutcome,
)
from petrowise_hub.aggregation.poller import Poller
from petrowise_hub.store.base import RecordStore
from petrowise_hub.store.models import DiscoveredEndpoint, EndpointStatus

logger = logging.getLogger(__name__)

POLLABLE_STATUSES = (EndpointStatus.ACTIVE, EndpointStatus.VALIDATED)

_EPOCH = datetime.min.replace(tzinfo=UTC)


class AggregationService:
    """Ties the record store, poller and metrics aggregator together."""

    def __init__(self, store: RecordStore, poller: Poller, metrics: MetricsAggregator) -> None:
        self._store = store
        self.poller = poller
        self.metrics = metrics
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    async def initialize(self) -> int:
        """Schedule every active or validated endpoint. Returns how many were scheduled."""
        endpoints = await self._store.list_endpoints(POLLABLE_STATUSES)
        logger.info("Found %d active endpoints", len(endpoints))
        scheduled = self.poller.start(endpoints)
        self._running = True
        return scheduled

    async def shutdown(self) -> None:
        self._running = False
        await self.poller.stop()

    async def register_endpoint(self, endpoint: DiscoveredEndpoint) -> DiscoveredEndpoint:
        await self._store.save_endpoint(endpoint)
        self.poller.schedule(endpoint)
        logger.info("Registered endpoint %s (%s)", endpoint.name, endpoint.id)
        return endpoint

    async def unregister_endpoint(self, endpoint_id: str) -> Optional[DiscoveredEndpoint]:
        """Stop polling and retire the endpoint. Records are never hard-deleted."""
        self.poller.unschedule(endpoint_id)
        endpoint = await self._store.get_endpoint(endpoint_id)
        if endpoint is None:
            return None
        endpoint.status = EndpointStatus.DEPRECATED
        await self._store.save_endpoint(endpoint)
        return endpoint

    async def refresh_endpoint(self, endpoint_id: str) -> Optional[PollOutcome]:
        endpoint = await self._store.get_endpoint(endpoint_id)
        if endpoint is None:
            return None
        return await self.poller.poll(endpoint)

    async def get_endpoint(self, endpoint_id: str) -> Optional[DiscoveredEndpoint]:
        return await self._store.get_endpoint(endpoint_id)

    async def list_endpoints(self) -> list[DiscoveredEndpoint]:
        return await self._store.list_endpoints()

    async def get_endpoint_health(self) -> list[EndpointHealth]:
        endpoints = await self._store.list_endpoints()
        endpoints.sort(key=lambda ep: ep.last_health_check or _EPOCH, reverse=True)
        return [
            EndpointHealth(
                endpoint_id=ep.id,
                name=ep.name,
                status=ep.status.value,
                last_check=ep.last_health_check,
                response_time_ms=ep.last_response_time_ms,
                uptime=ep.uptime_percentage or 0.0,
                consecutive_failures=ep.consecutive_failures,
                last_error=ep.last_error_message,
            )
            for ep in endpoints
        ]

    async def get_endpoint_summary(self) -> EndpointSummary:
        endpoints = await self._store.list_endpoints()
        summary = EndpointSummary(total=len(endpoints))
        healthy = 0
        response_times: list[float] = []
        for ep in endpoints:
            summary.by_status[ep.status.value] = summary.by_status.get(ep.status.value, 0) + 1
            summary.by_type[ep.endpoint_type.value] = summary.by_type.get(ep.endpoint_type.value, 0) + 1
            summary.by_category[ep.data_category.value] = summary.by_category.get(ep.data_category.value, 0) + 1
            if ep.status == EndpointStatus.ACTIVE:
                healthy += 1
            if ep.last_response_time_ms:
                response_times.append(ep.last_response_time_ms)
        if endpoints:
            summary.healthy_percentage = healthy / len(endpoints) * 100
        if response_times:
            summary.average_response_time_ms = sum(response_times) / len(response_times)
        return summary

    def get_fuel_inventory(self, site_id: str) -> Optional[FuelInventorySnapshot]:
        return self.poller.get_inventory(site_id)
