"""Discovery endpoints: scans, interface descriptions and the endpoint catalog."""

from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, Field

from petrowise_hub.aggregation.mapping import FieldMapping
from petrowise_hub.api.auth import require_api_key
from petrowise_hub.discovery.orchestrator import DiscoveryOrchestrator
from petrowise_hub.store.models import AuthenticationConfig, AuthenticationType, DataCategory

router = APIRouter(prefix="/discovery", tags=["discovery"])


class PromoteRequest(BaseModel):
    data_category: DataCategory
    poll_interval_seconds: Optional[int] = Field(default=None, gt=0)
    site_id: Optional[str] = None
    authentication_type: AuthenticationType = AuthenticationType.NONE
    authentication_config: Optional[AuthenticationConfig] = None
    field_mappings: list[FieldMapping] = Field(default_factory=list)


def _orchestrator(request: Request) -> DiscoveryOrchestrator:
    return request.app.state.hub.orchestrator


@router.post("/scan", dependencies=[Depends(require_api_key)])
async def scan(request: Request) -> dict[str, Any]:
    result = await _orchestrator(request).scan_environment()
    return result.to_dict()


@router.post("/discover", dependencies=[Depends(require_api_key)])
async def discover(request: Request) -> dict[str, Any]:
    specs = await _orchestrator(request).discover_apis()
    return {service_id: spec.get("info", {}) for service_id, spec in specs.items()}


@router.post("/map", dependencies=[Depends(require_api_key)])
async def map_endpoints(request: Request) -> dict[str, int]:
    mapped = _orchestrator(request).map_endpoints()
    return {service_id: len(endpoints) for service_id, endpoints in mapped.items()}


@router.post("/full", dependencies=[Depends(require_api_key)])
async def full_discovery(request: Request) -> dict[str, Any]:
    run = await _orchestrator(request).full_discovery()
    return run.to_dict()


@router.get("/status")
async def status(request: Request) -> dict[str, Any]:
    return _orchestrator(request).status_summary()


@router.get("/services")
async def list_services(request: Request) -> list[dict[str, Any]]:
    return [s.to_dict() for s in _orchestrator(request).list_services()]


@router.get("/services/{service_id}")
async def get_service(request: Request, service_id: str) -> dict[str, Any]:
    service = _orchestrator(request).get_service(service_id)
    if service is None:
        raise HTTPException(status_code=404, detail=f"Unknown service: {service_id}")
    return service.to_dict()


@router.get("/services/{service_id}/spec")
async def get_spec(request: Request, service_id: str) -> dict[str, Any]:
    spec = _orchestrator(request).get_spec(service_id)
    if spec is None:
        raise HTTPException(status_code=404, detail=f"No interface description for: {service_id}")
    return spec


@router.get("/services/{service_id}/endpoints")
async def service_endpoints(request: Request, service_id: str) -> list[dict[str, Any]]:
    endpoints = _orchestrator(request).endpoints_for_service(service_id)
    if endpoints is None:
        raise HTTPException(status_code=404, detail=f"Unknown service: {service_id}")
    return [ep.to_dict() for ep in endpoints]


@router.get("/endpoints")
async def list_endpoints(request: Request, q: Optional[str] = None) -> list[dict[str, Any]]:
    orchestrator = _orchestrator(request)
    endpoints = orchestrator.search_endpoints(q) if q else orchestrator.list_endpoints()
    return [ep.to_dict() for ep in endpoints]


@router.get("/endpoints/{endpoint_id}")
async def get_endpoint(request: Request, endpoint_id: str) -> dict[str, Any]:
    endpoint = _orchestrator(request).get_endpoint(endpoint_id)
    if endpoint is None:
        raise HTTPException(status_code=404, detail=f"Unknown endpoint: {endpoint_id}")
    return endpoint.to_dict()


@router.post("/endpoints/{endpoint_id}/promote", status_code=201, dependencies=[Depends(require_api_key)])
async def promote_endpoint(request: Request, endpoint_id: str, body: PromoteRequest) -> dict[str, Any]:
    hub = request.app.state.hub
    record = hub.orchestrator.promote_endpoint(
        endpoint_id,
        data_category=body.data_category,
        poll_interval_seconds=body.poll_interval_seconds,
        site_id=body.site_id,
        authentication_type=body.authentication_type,
        authentication_config=body.authentication_config,
        field_mappings=body.field_mappings,
    )
    if record is None:
        raise HTTPException(status_code=404, detail=f"Unknown endpoint: {endpoint_id}")
    await hub.aggregation.register_endpoint(record)
    return record.model_dump(mode="json")
