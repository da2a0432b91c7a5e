"""Aggregation endpoints: metrics, trends and the polling catalog."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from petrowise_hub.aggregation.metrics import Period
from petrowise_hub.aggregation.service import AggregationService
from petrowise_hub.api.auth import require_api_key
from petrowise_hub.store.models import DiscoveredEndpoint

router = APIRouter(prefix="/aggregation", tags=["aggregation"])


def _service(request: Request) -> AggregationService:
    return request.app.state.hub.aggregation


@router.get("/metrics")
async def enterprise_metrics(request: Request, period: Period = Period.DAILY) -> dict[str, Any]:
    metrics = await _service(request).metrics.get_enterprise_metrics(period)
    return metrics.to_dict()


@router.get("/trends/fuel/{site_id}")
async def fuel_trends(
    request: Request, site_id: str, days: int = Query(default=30, ge=1, le=366)
) -> list[dict[str, Any]]:
    points = await _service(request).metrics.get_fuel_trends(site_id, days)
    return [p.to_dict() for p in points]


@router.get("/trends/auto/{shop_id}")
async def auto_trends(
    request: Request, shop_id: str, days: int = Query(default=30, ge=1, le=366)
) -> list[dict[str, Any]]:
    points = await _service(request).metrics.get_auto_trends(shop_id, days)
    return [p.to_dict() for p in points]


@router.get("/endpoints/health")
async def endpoint_health(request: Request) -> list[dict[str, Any]]:
    return [h.to_dict() for h in await _service(request).get_endpoint_health()]


@router.get("/endpoints/summary")
async def endpoint_summary(request: Request) -> dict[str, Any]:
    summary = await _service(request).get_endpoint_summary()
    return summary.to_dict()


@router.get("/endpoints")
async def list_endpoints(request: Request) -> list[dict[str, Any]]:
    return [ep.model_dump(mode="json") for ep in await _service(request).list_endpoints()]


@router.post("/endpoints", status_code=201, dependencies=[Depends(require_api_key)])
async def register_endpoint(request: Request, endpoint: DiscoveredEndpoint) -> dict[str, Any]:
    registered = await _service(request).register_endpoint(endpoint)
    return registered.model_dump(mode="json")


@router.get("/endpoints/{endpoint_id}")
async def get_endpoint(request: Request, endpoint_id: str) -> dict[str, Any]:
    endpoint = await _service(request).get_endpoint(endpoint_id)
    if endpoint is None:
        raise HTTPException(status_code=404, detail=f"Unknown endpoint: {endpoint_id}")
    return endpoint.model_dump(mode="json")


@router.delete("/endpoints/{endpoint_id}", dependencies=[Depends(require_api_key)])
async def unregister_endpoint(request: Request, endpoint_id: str) -> dict[str, Any]:
    endpoint = await _service(request).unregister_endpoint(endpoint_id)
    if endpoint is None:
        raise HTTPException(status_code=404, detail=f"Unknown endpoint: {endpoint_id}")
    return {"id": endpoint.id, "status": endpoint.status.value}


@router.post("/endpoints/{endpoint_id}/refresh", dependencies=[Depends(require_api_key)])
async def refresh_endpoint(request: Request, endpoint_id: str) -> dict[str, Any]:
    outcome = await _service(request).refresh_endpoint(endpoint_id)
    if outcome is None:
        raise HTTPException(status_code=404, detail=f"Unknown endpoint: {endpoint_id}")
    return outcome.to_dict()


@router.get("/inventory/{site_id}")
async def fuel_inventory(request: Request, site_id: str) -> dict[str, Any]:
    snapshot = _service(request).get_fuel_inventory(site_id)
    if snapshot is None:
        raise HTTPException(status_code=404, detail=f"No inventory reported for site: {site_id}")
    return snapshot.to_dict()
