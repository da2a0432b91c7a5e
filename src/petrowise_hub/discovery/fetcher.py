"""Interface description (OpenAPI/Swagger) retrieval with bounded retries."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

import httpx

from petrowise_hub.config.models import CandidateService, DiscoverySettings
from petrowise_hub.discovery.client import build_client
from petrowise_hub.discovery.models import DiscoveredService, FetchErrorKind, FetchResult

logger = logging.getLogger(__name__)

DEFINITIVE_STATUSES = frozenset({403, 404})


async def fetch_with_retry(
    client: httpx.AsyncClient,
    url: str,
    settings: DiscoverySettings,
) -> FetchResult:
    """GET *url*, retrying transient failures with a linearly growing delay.

    Attempt N waits ``N * retry_delay`` before attempt N+1. A 404 or 403 is
    final and returns immediately without retrying.
    """
    max_attempts = max(settings.max_retries, 1)
    last_error: Optional[str] = None
    last_status: Optional[int] = None

    for attempt in range(1, max_attempts + 1):
        try:
            resp = await client.get(url)
        except httpx.HTTPError as exc:
            last_error = f"{type(exc).__name__}: {exc}"
            last_status = None
        else:
            last_status = resp.status_code
            if resp.status_code in DEFINITIVE_STATUSES:
                return FetchResult(
                    status_code=resp.status_code,
                    attempts=attempt,
                    kind=FetchErrorKind.NOT_FOUND,
                    error=f"HTTP {resp.status_code}",
                )
            if resp.is_success:
                try:
                    data = resp.json()
                except ValueError as exc:
                    return FetchResult(
                        status_code=resp.status_code,
                        attempts=attempt,
                        kind=FetchErrorKind.INVALID,
                        error=f"Response is not JSON: {exc}",
                    )
                return FetchResult(data=data, status_code=resp.status_code, attempts=attempt)
            last_error = f"HTTP {resp.status_code}"

        if attempt < max_attempts:
            delay = settings.retry_delay * attempt
            logger.debug("Retry %d/%d for %s in %.1fs (%s)", attempt, max_attempts, url, delay, last_error)
            await asyncio.sleep(delay)

    logger.debug("All retries exhausted for %s: %s", url, last_error)
    return FetchResult(
        status_code=last_status,
        attempts=max_attempts,
        kind=FetchErrorKind.TRANSIENT,
        error=last_error,
    )


def is_valid_spec(data: Any) -> bool:
    """A spec needs an openapi/swagger marker, an info object and a paths object."""
    return (
        isinstance(data, dict)
        and bool(data.get("openapi") or data.get("swagger"))
        and isinstance(data.get("info"), dict)
        and isinstance(data.get("paths"), dict)
    )


async def fetch_spec(
    service: DiscoveredService,
    candidate: CandidateService,
    settings: DiscoverySettings,
    client: httpx.AsyncClient | None = None,
) -> Optional[dict[str, Any]]:
    """Return the first valid interface description from the candidate paths, or None.

    Sets ``service.openapi_url`` to the path that produced it.
    """
    if client is None:
        async with build_client(settings) as owned:
            return await fetch_spec(service, candidate, settings, owned)

    for openapi_path in candidate.openapi_paths:
        url = f"{service.base_url}{openapi_path}"
        result = await fetch_with_retry(client, url, settings)
        if not result.ok:
            logger.debug("No spec at %s (%s: %s)", url, result.kind.value if result.kind else "?", result.error)
            continue
        if not is_valid_spec(result.data):
            logger.info("Ignoring invalid interface description at %s", url)
            continue
        service.openapi_url = openapi_path
        return result.data

    logger.warning("No valid OpenAPI spec found for %s", service.name)
    return None
