"""Tests for interface description to endpoint mapping."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest

from petrowise_hub.config.models import ServiceType
from petrowise_hub.discovery.mapper import default_operation_id, map_spec
from petrowise_hub.discovery.models import DiscoveredService, HttpMethod, ServiceStatus

STAMP = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


@pytest.fixture()
def service() -> DiscoveredService:
    return DiscoveredService(
        id="jrd-fuel",
        name="JRD Fuel",
        port=8001,
        type=ServiceType.FUEL,
        base_url="http://localhost:8001",
        status=ServiceStatus.ONLINE,
    )


def _by_method(endpoints, method: HttpMethod):
    return next(ep for ep in endpoints if ep.method == method)


class TestDefaultOperationId:
    def test_replaces_every_non_alphanumeric(self):
        assert default_operation_id(HttpMethod.GET, "/widgets/{id}") == "get__widgets__id_"

    def test_lowercases_method(self):
        assert default_operation_id(HttpMethod.DELETE, "/a-b") == "delete__a_b"


class TestMapSpec:
    def test_one_endpoint_per_operation(self, service, widget_spec):
        endpoints = map_spec(service, widget_spec, STAMP)
        assert len(endpoints) == 2

        listing = _by_method(endpoints, HttpMethod.GET)
        assert listing.id == "jrd-fuel_listWidgets"
        assert listing.summary == "List widgets"
        assert listing.full_url == "http://localhost:8001/widgets"
        assert listing.registered_at == STAMP

        create = _by_method(endpoints, HttpMethod.POST)
        assert create.operation_id == "post__widgets"
        assert create.id == "jrd-fuel_post__widgets"
        assert create.summary == "/widgets"
        assert create.tags == ["fuel"]

    def test_body_properties_become_parameters(self, service, widget_spec):
        create = _by_method(map_spec(service, widget_spec, STAMP), HttpMethod.POST)
        body_params = {p.name: p for p in create.parameters if p.location == "body"}
        assert set(body_params) == {"name", "size"}
        assert body_params["name"].required is True
        assert body_params["size"].required is False
        assert create.request_body.content_type == "application/json"
        assert create.request_body.required is True

    def test_body_without_properties_is_single_parameter(self, service):
        spec = {
            "openapi": "3.0.0",
            "info": {},
            "paths": {
                "/upload": {
                    "put": {
                        "requestBody": {
                            "content": {
                                "application/octet-stream": {"schema": {"type": "string"}},
                                "application/json": {"schema": {"type": "object"}},
                            }
                        }
                    }
                }
            },
        }
        (endpoint,) = map_spec(service, spec, STAMP)
        assert endpoint.request_body.content_type == "application/octet-stream"
        assert [(p.name, p.location) for p in endpoint.parameters] == [("body", "body")]

    def test_operation_parameters_override_path_parameters(self, service):
        spec = {
            "openapi": "3.0.0",
            "info": {},
            "paths": {
                "/sites/{siteId}": {
                    "parameters": [
                        {"name": "siteId", "in": "path", "required": True, "description": "path level"},
                        {"name": "verbose", "in": "query"},
                    ],
                    "get": {
                        "parameters": [
                            {"name": "siteId", "in": "path", "required": True, "description": "op level"},
                        ]
                    },
                }
            },
        }
        (endpoint,) = map_spec(service, spec, STAMP)
        params = {p.name: p for p in endpoint.parameters}
        assert set(params) == {"siteId", "verbose"}
        assert params["siteId"].description == "op level"
        assert endpoint.full_url == "http://localhost:8001/sites/{siteId}"

    def test_responses_flattened_with_json_schema(self, service):
        spec = {
            "openapi": "3.0.0",
            "info": {},
            "paths": {
                "/x": {
                    "get": {
                        "responses": {
                            "200": {
                                "description": "OK",
                                "content": {"application/json": {"schema": {"type": "array"}}},
                            },
                            "404": {"description": "Missing"},
                        }
                    }
                }
            },
        }
        (endpoint,) = map_spec(service, spec, STAMP)
        responses = {r.status_code: r for r in endpoint.responses}
        assert responses["200"].schema == {"type": "array"}
        assert responses["404"].schema is None
        assert responses["404"].description == "Missing"

    def test_ignores_unsupported_methods(self, service):
        spec = {"openapi": "3.0.0", "info": {}, "paths": {"/x": {"head": {}, "options": {}, "patch": {}}}}
        endpoints = map_spec(service, spec, STAMP)
        assert [ep.method for ep in endpoints] == [HttpMethod.PATCH]

    def test_deterministic(self, service, widget_spec):
        first = [ep.to_dict() for ep in map_spec(service, widget_spec, STAMP)]
        second = [ep.to_dict() for ep in map_spec(service, widget_spec, STAMP)]
        assert first == second

    def test_search_matches_tags_and_paths(self, service, widget_spec):
        listing = _by_method(map_spec(service, widget_spec, STAMP), HttpMethod.GET)
        assert listing.matches("WIDGET")
        assert listing.matches("fuel")
        assert not listing.matches("tanks")
