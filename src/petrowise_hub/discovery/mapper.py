"""Convert an interface description into IntegrationEndpoint records."""

from __future__ import annotations

import re
from datetime import UTC, datetime
from typing import Any, Optional

from petrowise_hub.discovery.models import (
    DiscoveredService,
    EndpointParameter,
    HttpMethod,
    IntegrationEndpoint,
    RequestBodyInfo,
    ResponseInfo,
)

_NON_ALNUM = re.compile(r"[^a-zA-Z0-9]")
_PARAM_LOCATIONS = frozenset({"path", "query", "header", "cookie", "body"})
DEFAULT_CONTENT_TYPE = "application/json"


def default_operation_id(method: HttpMethod, path: str) -> str:
    """``GET /widgets/{id}`` -> ``get__widgets__id_``."""
    return f"{method.value.lower()}_{_NON_ALNUM.sub('_', path)}"


def _merge_parameters(path_params: Any, op_params: Any) -> list[EndpointParameter]:
    """Path-level first, then operation-level; a later parameter with the same name replaces the earlier one."""
    merged: dict[str, dict[str, Any]] = {}
    for source in (path_params, op_params):
        for raw in source or []:
            if isinstance(raw, dict) and raw.get("name"):
                merged[raw["name"]] = raw
    params: list[EndpointParameter] = []
    for raw in merged.values():
        location = raw.get("in", "query")
        params.append(
            EndpointParameter(
                name=raw["name"],
                location=location if location in _PARAM_LOCATIONS else "query",
                required=bool(raw.get("required", False)),
                schema=raw.get("schema") or {},
                description=raw.get("description"),
            )
        )
    return params


def _request_body(operation: dict[str, Any]) -> Optional[RequestBodyInfo]:
    body = operation.get("requestBody")
    if not isinstance(body, dict):
        return None
    content = body.get("content") or {}
    content_type = next(iter(content), DEFAULT_CONTENT_TYPE)
    media = content.get(content_type) or {}
    return RequestBodyInfo(
        required=bool(body.get("required", False)),
        content_type=content_type,
        schema=media.get("schema") or {},
    )


def _body_parameters(body: RequestBodyInfo) -> list[EndpointParameter]:
    properties = body.schema.get("properties")
    if not isinstance(properties, dict) or not properties:
        return [EndpointParameter(name="body", location="body", required=body.required, schema=body.schema)]
    required = set(body.schema.get("required") or [])
    return [
        EndpointParameter(
            name=name,
            location="body",
            required=name in required,
            schema=prop if isinstance(prop, dict) else {},
            description=prop.get("description") if isinstance(prop, dict) else None,
        )
        for name, prop in properties.items()
    ]


def _responses(operation: dict[str, Any]) -> list[ResponseInfo]:
    out: list[ResponseInfo] = []
    for status_code, response in (operation.get("responses") or {}).items():
        response = response if isinstance(response, dict) else {}
        json_media = (response.get("content") or {}).get(DEFAULT_CONTENT_TYPE) or {}
        # Swagger 2 keeps the schema directly on the response object
        schema = json_media.get("schema", response.get("schema"))
        out.append(
            ResponseInfo(
                status_code=str(status_code),
                description=response.get("description", ""),
                schema=schema,
            )
        )
    return out


def build_endpoint(
    service: DiscoveredService,
    path: str,
    method: HttpMethod,
    operation: dict[str, Any],
    path_params: Any,
    registered_at: datetime,
) -> IntegrationEndpoint:
    parameters = _merge_parameters(path_params, operation.get("parameters"))
    request_body = _request_body(operation)
    if request_body is not None:
        parameters.extend(_body_parameters(request_body))

    operation_id = operation.get("operationId") or default_operation_id(method, path)
    return IntegrationEndpoint(
        id=f"{service.id}_{operation_id}",
        service_id=service.id,
        service_name=service.name,
        service_type=service.type.value,
        path=path,
        method=method,
        operation_id=operation_id,
        summary=operation.get("summary") or path,
        description=operation.get("description") or "",
        tags=list(operation.get("tags") or [service.type.value]),
        parameters=parameters,
        request_body=request_body,
        responses=_responses(operation),
        full_url=f"{service.base_url}{path}",
        registered_at=registered_at,
    )


def map_spec(
    service: DiscoveredService,
    spec: dict[str, Any],
    registered_at: datetime | None = None,
) -> list[IntegrationEndpoint]:
    """Produce one IntegrationEndpoint per (path, method) in *spec*.

    Pure: no I/O, and the same spec and service always yield the same ids.
    """
    stamp = registered_at or datetime.now(UTC)
    endpoints: list[IntegrationEndpoint] = []
    for path, path_item in (spec.get("paths") or {}).items():
        if not isinstance(path_item, dict):
            continue
        for method in HttpMethod:
            operation = path_item.get(method.value.lower())
            if not isinstance(operation, dict):
                continue
            endpoints.append(
                build_endpoint(service, path, method, operation, path_item.get("parameters"), stamp)
            )
    return endpoints
