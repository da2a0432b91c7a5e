"""Shared HTTP client construction for discovery."""

from __future__ import annotations

import httpx

from petrowise_hub.config.models import DiscoverySettings


def build_client(settings: DiscoverySettings) -> httpx.AsyncClient:
    """Create the AsyncClient used for one scan or discovery pass."""
    return httpx.AsyncClient(
        timeout=settings.request_timeout,
        follow_redirects=True,
        headers={
            "Accept": "application/json",
            "User-Agent": settings.user_agent,
        },
    )
