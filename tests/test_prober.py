"""Tests for the service prober."""

from __future__ import annotations

import httpx
import pytest

from petrowise_hub.config.models import CandidateService, DiscoverySettings, HubConfig
from petrowise_hub.discovery.models import ServiceStatus
from petrowise_hub.discovery.prober import probe_service


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.fixture()
def candidate(sample_config: HubConfig) -> CandidateService:
    return sample_config.services[0]


@pytest.fixture()
def settings(sample_config: HubConfig) -> DiscoverySettings:
    return sample_config.discovery


class TestProbeService:
    @pytest.mark.asyncio
    async def test_first_healthy_path_wins(self, candidate, settings):
        seen: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request.url.path)
            return httpx.Response(200, json={"status": "ok", "version": "2.4.1"})

        async with _client(handler) as client:
            svc = await probe_service(candidate, settings, client)

        assert svc.status == ServiceStatus.ONLINE
        assert svc.id == "jrd-fuel"
        assert svc.health_endpoint == "/health"
        assert svc.version == "2.4.1"
        assert svc.base_url == "http://localhost:8001"
        assert seen == ["/health"]

    @pytest.mark.asyncio
    async def test_falls_through_to_second_health_path(self, candidate, settings):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/health":
                return httpx.Response(500)
            return httpx.Response(200, json={"appVersion": "7"})

        async with _client(handler) as client:
            svc = await probe_service(candidate, settings, client)

        assert svc.status == ServiceStatus.ONLINE
        assert svc.health_endpoint == "/api/health"
        assert svc.version == "7"

    @pytest.mark.asyncio
    async def test_non_json_health_body_has_no_version(self, candidate, settings):
        async with _client(lambda request: httpx.Response(200, text="OK")) as client:
            svc = await probe_service(candidate, settings, client)
        assert svc.status == ServiceStatus.ONLINE
        assert svc.version is None

    @pytest.mark.asyncio
    async def test_root_4xx_still_counts_as_online(self, candidate, settings):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path in ("", "/"):
                return httpx.Response(401)
            return httpx.Response(404)

        async with _client(handler) as client:
            svc = await probe_service(candidate, settings, client)

        assert svc.status == ServiceStatus.ONLINE
        assert svc.health_endpoint is None
        assert svc.error_message is None

    @pytest.mark.asyncio
    async def test_root_5xx_is_offline(self, candidate, settings):
        async with _client(lambda request: httpx.Response(503)) as client:
            svc = await probe_service(candidate, settings, client)
        assert svc.status == ServiceStatus.OFFLINE
        assert "503" in svc.error_message

    @pytest.mark.asyncio
    async def test_connection_refused_is_offline_not_raised(self, candidate, settings):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("Connection refused", request=request)

        async with _client(handler) as client:
            svc = await probe_service(candidate, settings, client)

        assert svc.status == ServiceStatus.OFFLINE
        assert "ConnectError" in svc.error_message

    @pytest.mark.asyncio
    async def test_health_checks_use_short_timeout(self, candidate):
        settings = DiscoverySettings(request_timeout=5.0, health_timeout=2.0)
        timeouts: list[float] = []

        def handler(request: httpx.Request) -> httpx.Response:
            timeouts.append(request.extensions["timeout"]["read"])
            return httpx.Response(200)

        async with _client(handler) as client:
            await probe_service(candidate, settings, client)
        assert timeouts == [2.0]

    @pytest.mark.asyncio
    async def test_slug_collapses_punctuation(self, settings):
        candidate = CandidateService(name="Price-O-Tron", port=8003, type="pricing")
        async with _client(lambda request: httpx.Response(200)) as client:
            svc = await probe_service(candidate, settings, client)
        assert svc.id == "price-o-tron"
