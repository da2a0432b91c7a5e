"""Shared fixtures for PetroWise Hub tests."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from typing import Any, Dict

import httpx
import pytest
import yaml

from petrowise_hub.config.models import HubConfig
from petrowise_hub.store.base import InMemoryStore
from petrowise_hub.store.models import DataCategory, DiscoveredEndpoint, EndpointStatus

SAMPLE_CONFIG: Dict[str, Any] = {
    "hub": {"name": "PetroWise Hub", "version": "0.1.0"},
    "discovery": {
        "request_timeout": 1.0,
        "health_timeout": 0.5,
        "max_retries": 3,
        "retry_delay": 0.0,
    },
    "services": [
        {
            "name": "JRD Fuel",
            "port": 8001,
            "type": "fuel",
            "openapi_paths": ["/openapi.json", "/api/openapi.json"],
            "health_paths": ["/health", "/api/health"],
        },
        {
            "name": "JRD Auto",
            "port": 8002,
            "type": "auto",
            "openapi_paths": ["/openapi.json"],
            "health_paths": ["/health"],
        },
    ],
    "polling": {"default_interval_seconds": 60, "error_threshold": 3},
    "storage": {"backend": "memory"},
    "alerts": [
        {
            "id": "low-volume",
            "name": "Fuel volume drop",
            "condition": "change",
            "metric": "fuel.total_gallons",
            "change_percent": -20,
        },
    ],
}

WIDGET_SPEC: Dict[str, Any] = {
    "openapi": "3.0.0",
    "info": {"title": "Widgets", "version": "1.0.0"},
    "paths": {
        "/widgets": {
            "get": {"operationId": "listWidgets", "summary": "List widgets"},
            "post": {
                "requestBody": {
                    "required": True,
                    "content": {
                        "application/json": {
                            "schema": {
                                "type": "object",
                                "required": ["name"],
                                "properties": {"name": {"type": "string"}, "size": {"type": "integer"}},
                            }
                        }
                    },
                },
                "responses": {"201": {"description": "Created"}},
            },
        },
    },
}


@pytest.fixture()
def sample_config() -> HubConfig:
    """Return a parsed HubConfig from sample data."""
    return HubConfig(**SAMPLE_CONFIG)


@pytest.fixture()
def sample_config_dict() -> Dict[str, Any]:
    """Return raw sample config dict."""
    return dict(SAMPLE_CONFIG)


@pytest.fixture()
def config_file(tmp_path: Path) -> Path:
    """Write sample config to a temp .petrowise.yaml and return the path."""
    path = tmp_path / ".petrowise.yaml"
    with path.open("w") as fh:
        yaml.dump(SAMPLE_CONFIG, fh)
    return path


@pytest.fixture()
def widget_spec() -> Dict[str, Any]:
    return WIDGET_SPEC


@pytest.fixture()
def memory_store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture()
def mock_client_factory() -> Callable[[Callable[[httpx.Request], httpx.Response]], Callable[[], httpx.AsyncClient]]:
    """Build a client factory whose clients answer through *handler*."""

    def _factory(handler: Callable[[httpx.Request], httpx.Response]) -> Callable[[], httpx.AsyncClient]:
        return lambda: httpx.AsyncClient(transport=httpx.MockTransport(handler))

    return _factory


@pytest.fixture()
def make_endpoint() -> Callable[..., DiscoveredEndpoint]:
    def _make(**overrides: Any) -> DiscoveredEndpoint:
        fields: Dict[str, Any] = {
            "name": "Fuel sales",
            "source_system": "JRD Fuel",
            "base_url": "http://fuel.test",
            "path": "/transactions",
            "site_id": "site-1",
            "status": EndpointStatus.ACTIVE,
            "data_category": DataCategory.FUEL_TRANSACTIONS,
            "poll_interval_seconds": 60,
        }
        fields.update(overrides)
        return DiscoveredEndpoint(**fields)

    return _make
