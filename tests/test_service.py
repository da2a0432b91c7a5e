"""Tests for the aggregation service facade."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import httpx
import pytest

from petrowise_hub.aggregation.metrics import MetricsAggregator
from petrowise_hub.aggregation.poller import Poller
from petrowise_hub.aggregation.service import AggregationService
from petrowise_hub.config.models import MetricsSettings, PollingSettings
from petrowise_hub.events.emitter import EventEmitter
from petrowise_hub.store.models import DataCategory, EndpointStatus, EndpointType


@pytest.fixture()
def service(memory_store, mock_client_factory) -> AggregationService:
    factory = mock_client_factory(lambda request: httpx.Response(200, json=[]))
    poller = Poller(memory_store, EventEmitter(), PollingSettings(), client_factory=factory)
    return AggregationService(memory_store, poller, MetricsAggregator(memory_store, MetricsSettings()))


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_initialize_schedules_active_and_validated(self, service, memory_store, make_endpoint):
        active = make_endpoint(poll_interval_seconds=3600)
        validated = make_endpoint(status=EndpointStatus.VALIDATED, poll_interval_seconds=3600)
        errored = make_endpoint(status=EndpointStatus.ERROR, poll_interval_seconds=3600)
        for ep in (active, validated, errored):
            await memory_store.save_endpoint(ep)

        assert await service.initialize() == 2
        assert service.running
        assert set(service.poller.scheduled_ids) == {active.id, validated.id}

        await service.shutdown()
        assert not service.running
        assert service.poller.scheduled_ids == []


class TestRegistration:
    @pytest.mark.asyncio
    async def test_register_persists_and_schedules(self, service, memory_store, make_endpoint):
        endpoint = make_endpoint(poll_interval_seconds=3600)
        await service.register_endpoint(endpoint)
        assert await memory_store.get_endpoint(endpoint.id) is not None
        assert service.poller.is_scheduled(endpoint.id)
        await service.shutdown()

    @pytest.mark.asyncio
    async def test_unregister_retires_endpoint(self, service, make_endpoint):
        endpoint = make_endpoint(poll_interval_seconds=3600)
        await service.register_endpoint(endpoint)

        retired = await service.unregister_endpoint(endpoint.id)
        assert retired.status == EndpointStatus.DEPRECATED
        assert not service.poller.is_scheduled(endpoint.id)
        assert (await service.get_endpoint(endpoint.id)).status == EndpointStatus.DEPRECATED

    @pytest.mark.asyncio
    async def test_unknown_ids(self, service):
        assert await service.unregister_endpoint("missing") is None
        assert await service.refresh_endpoint("missing") is None

    @pytest.mark.asyncio
    async def test_refresh_polls_once(self, service, memory_store, make_endpoint):
        endpoint = make_endpoint()
        await memory_store.save_endpoint(endpoint)
        outcome = await service.refresh_endpoint(endpoint.id)
        assert outcome.success
        assert (await memory_store.get_endpoint(endpoint.id)).total_requests == 1


class TestReporting:
    @pytest.mark.asyncio
    async def test_health_sorted_by_last_check(self, service, memory_store, make_endpoint):
        now = datetime.now(UTC)
        await memory_store.save_endpoint(make_endpoint(name="never"))
        await memory_store.save_endpoint(make_endpoint(name="old", last_health_check=now - timedelta(hours=1)))
        await memory_store.save_endpoint(make_endpoint(name="new", last_health_check=now, uptime_percentage=99.0))

        health = await service.get_endpoint_health()
        assert [h.name for h in health] == ["new", "old", "never"]
        assert health[0].uptime == 99.0
        assert health[2].uptime == 0.0
        assert health[2].to_dict()["last_check"] is None

    @pytest.mark.asyncio
    async def test_summary(self, service, memory_store, make_endpoint):
        await memory_store.save_endpoint(make_endpoint(last_response_time_ms=100.0))
        await memory_store.save_endpoint(make_endpoint(last_response_time_ms=300.0))
        await memory_store.save_endpoint(
            make_endpoint(
                status=EndpointStatus.ERROR,
                endpoint_type=EndpointType.GRAPHQL,
                data_category=DataCategory.AUTO_WORK_ORDERS,
            )
        )
        await memory_store.save_endpoint(make_endpoint(status=EndpointStatus.DEGRADED))

        summary = await service.get_endpoint_summary()
        assert summary.total == 4
        assert summary.by_status == {"active": 2, "error": 1, "degraded": 1}
        assert summary.by_type == {"rest_api": 3, "graphql": 1}
        assert summary.by_category["auto_work_orders"] == 1
        assert summary.healthy_percentage == 50.0
        assert summary.average_response_time_ms == 200.0

    @pytest.mark.asyncio
    async def test_empty_summary(self, service):
        summary = await service.get_endpoint_summary()
        assert summary.total == 0
        assert summary.healthy_percentage == 0.0

    def test_inventory_unknown_site(self, service):
        assert service.get_fuel_inventory("site-1") is None
