"""Async reachability probe for candidate services."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Optional

import httpx

from petrowise_hub.config.models import CandidateService, DiscoverySettings
from petrowise_hub.discovery.client import build_client
from petrowise_hub.discovery.models import DiscoveredService, ServiceStatus, service_slug

logger = logging.getLogger(__name__)


def _extract_version(response: httpx.Response) -> Optional[str]:
    try:
        body = response.json()
    except ValueError:
        return None
    if not isinstance(body, dict):
        return None
    version = body.get("version") or body.get("appVersion")
    return str(version) if version is not None else None


async def probe_service(
    candidate: CandidateService,
    settings: DiscoverySettings,
    client: httpx.AsyncClient | None = None,
) -> DiscoveredService:
    """Check whether a candidate service is up.

    Health paths are tried in order with the short health timeout; the first
    2xx wins. If none answer, a bare GET on the base URL counts any status
    below 500 as alive. Network failures never raise, they produce an
    offline service.
    """
    if client is None:
        async with build_client(settings) as owned:
            return await probe_service(candidate, settings, owned)

    now = datetime.now(UTC)
    service = DiscoveredService(
        id=service_slug(candidate.name),
        name=candidate.name,
        port=candidate.port,
        type=candidate.type,
        base_url=candidate.base_url,
        discovered_at=now,
        last_checked=now,
    )
    last_error: Optional[str] = None

    for health_path in candidate.health_paths:
        try:
            resp = await client.get(f"{service.base_url}{health_path}", timeout=settings.health_timeout)
        except httpx.HTTPError as exc:
            last_error = f"{type(exc).__name__}: {exc}"
            logger.debug("Health probe %s%s failed: %s", service.base_url, health_path, last_error)
            continue
        if resp.is_success:
            service.status = ServiceStatus.ONLINE
            service.health_endpoint = health_path
            service.version = _extract_version(resp)
            return service
        last_error = f"HTTP {resp.status_code} on {health_path}"

    # No health path answered; any non-5xx response from the root still proves liveness
    try:
        resp = await client.get(service.base_url, timeout=settings.health_timeout)
    except httpx.HTTPError as exc:
        last_error = f"{type(exc).__name__}: {exc}"
    else:
        if resp.status_code < 500:
            service.status = ServiceStatus.ONLINE
            return service
        last_error = f"HTTP {resp.status_code} on /"

    service.error_message = last_error
    return service
