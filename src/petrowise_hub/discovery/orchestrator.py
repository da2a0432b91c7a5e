"""Discovery orchestrator: probe, fetch and map every configured service."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Optional

import httpx

from petrowise_hub.aggregation.mapping import FieldMapping
from petrowise_hub.config.models import CandidateService, HubConfig
from petrowise_hub.discovery.client import build_client
from petrowise_hub.discovery.fetcher import fetch_spec
from petrowise_hub.discovery.mapper import map_spec
from petrowise_hub.discovery.models import (
    DiscoveredService,
    IntegrationEndpoint,
    ScanError,
    ScanResult,
    ServiceStatus,
    service_slug,
)
from petrowise_hub.discovery.prober import probe_service
from petrowise_hub.store.models import (
    AuthenticationConfig,
    AuthenticationType,
    DataCategory,
    DiscoveredEndpoint,
    EndpointStatus,
)

logger = logging.getLogger(__name__)


@dataclass
class DiscoveryRun:
    """Everything one full discovery pass produced."""

    scan: ScanResult
    specs: dict[str, dict[str, Any]] = field(default_factory=dict)
    endpoints: dict[str, list[IntegrationEndpoint]] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "scan": self.scan.to_dict(),
            "specs": {sid: spec.get("info", {}) for sid, spec in self.specs.items()},
            "endpoints": {sid: [ep.to_dict() for ep in eps] for sid, eps in self.endpoints.items()},
        }


class DiscoveryOrchestrator:
    """Coordinates prober, fetcher and mapper across the configured candidates.

    Holds the live catalog: online services, their interface descriptions and
    the endpoints mapped from them. Each scan re-verifies reachability from
    scratch; an offline probe does not erase a service's last-known-good record.
    """

    def __init__(
        self,
        config: HubConfig,
        client_factory: Optional[Callable[[], httpx.AsyncClient]] = None,
    ) -> None:
        self._config = config
        self._settings = config.discovery
        self._client_factory = client_factory or (lambda: build_client(self._settings))
        self._candidates: dict[str, CandidateService] = {
            service_slug(c.name): c for c in config.services
        }
        self._services: dict[str, DiscoveredService] = {}
        self._online_ids: list[str] = []
        self._specs: dict[str, dict[str, Any]] = {}
        self._endpoints: dict[str, list[IntegrationEndpoint]] = {}
        self._last_scan: Optional[ScanResult] = None

    # ─── pipeline stages ───

    async def scan_environment(self) -> ScanResult:
        """Probe every candidate concurrently and record which are online."""
        started = datetime.now(UTC)
        candidates = list(self._config.services)
        logger.info("Scanning %d candidate services", len(candidates))

        async with self._client_factory() as client:
            outcomes = await asyncio.gather(
                *(probe_service(c, self._settings, client) for c in candidates),
                return_exceptions=True,
            )

        result = ScanResult(
            scan_started=started,
            scan_completed=started,
            services_scanned=len(candidates),
        )
        online_ids: list[str] = []
        for candidate, outcome in zip(candidates, outcomes):
            if isinstance(outcome, BaseException):
                logger.error("Probe of %s crashed", candidate.name, exc_info=outcome)
                result.errors.append(
                    ScanError(service=candidate.name, port=candidate.port, error=str(outcome) or type(outcome).__name__)
                )
                result.services_offline += 1
                continue
            result.services.append(outcome)
            if outcome.status == ServiceStatus.ONLINE:
                result.services_online += 1
                self._services[outcome.id] = outcome
                online_ids.append(outcome.id)
            else:
                result.services_offline += 1
                logger.info("%s offline on port %d", candidate.name, candidate.port)

        self._online_ids = online_ids
        result.total_endpoints = self.total_endpoint_count()
        result.scan_completed = datetime.now(UTC)
        self._last_scan = result
        logger.info(
            "Scan complete: %d online, %d offline, %d errors (%.0f ms)",
            result.services_online,
            result.services_offline,
            len(result.errors),
            result.duration_ms,
        )
        return result

    async def discover_apis(self) -> dict[str, dict[str, Any]]:
        """Fetch an interface description for every service online in the latest scan."""
        targets = [self._services[sid] for sid in self._online_ids if sid in self._services]
        if not targets:
            logger.info("No online services to fetch specs from")
            self._specs = {}
            return {}

        async with self._client_factory() as client:
            outcomes = await asyncio.gather(
                *(
                    fetch_spec(service, self._candidates[service.id], self._settings, client)
                    for service in targets
                ),
                return_exceptions=True,
            )

        specs: dict[str, dict[str, Any]] = {}
        for service, outcome in zip(targets, outcomes):
            if isinstance(outcome, BaseException):
                logger.error("Spec fetch for %s crashed", service.name, exc_info=outcome)
            elif outcome is not None:
                specs[service.id] = outcome
        self._specs = specs
        logger.info("Fetched %d of %d interface descriptions", len(specs), len(targets))
        return dict(specs)

    def map_endpoints(self) -> dict[str, list[IntegrationEndpoint]]:
        """Rebuild the endpoint catalog from the stored specs, dropping everything else."""
        mapped: dict[str, list[IntegrationEndpoint]] = {}
        for service_id, spec in self._specs.items():
            service = self._services.get(service_id)
            if service is None:
                continue
            endpoints = map_spec(service, spec)
            mapped[service_id] = endpoints
            logger.info("Mapped %d endpoints for %s", len(endpoints), service.name)
        self._endpoints = mapped
        return dict(mapped)

    async def full_discovery(self) -> DiscoveryRun:
        scan = await self.scan_environment()
        specs = await self.discover_apis()
        endpoints = self.map_endpoints()
        scan.total_endpoints = self.total_endpoint_count()
        return DiscoveryRun(scan=scan, specs=specs, endpoints=endpoints)

    # ─── accessors ───

    @property
    def last_scan(self) -> Optional[ScanResult]:
        return self._last_scan

    def list_services(self) -> list[DiscoveredService]:
        return list(self._services.values())

    def get_service(self, service_id: str) -> Optional[DiscoveredService]:
        return self._services.get(service_id)

    def get_spec(self, service_id: str) -> Optional[dict[str, Any]]:
        return self._specs.get(service_id)

    def list_endpoints(self) -> list[IntegrationEndpoint]:
        return [ep for eps in self._endpoints.values() for ep in eps]

    def endpoints_for_service(self, service_id: str) -> Optional[list[IntegrationEndpoint]]:
        if service_id not in self._services:
            return None
        return list(self._endpoints.get(service_id, []))

    def get_endpoint(self, endpoint_id: str) -> Optional[IntegrationEndpoint]:
        for ep in self.list_endpoints():
            if ep.id == endpoint_id:
                return ep
        return None

    def search_endpoints(self, query: str) -> list[IntegrationEndpoint]:
        return [ep for ep in self.list_endpoints() if ep.matches(query)]

    def total_endpoint_count(self) -> int:
        return sum(len(eps) for eps in self._endpoints.values())

    def status_summary(self) -> dict[str, Any]:
        return {
            "total_services": len(self._services),
            "online_services": sum(1 for s in self._services.values() if s.status == ServiceStatus.ONLINE),
            "total_endpoints": self.total_endpoint_count(),
            "last_scan": self._last_scan.scan_completed.isoformat() if self._last_scan else None,
            "services": [
                {
                    "id": s.id,
                    "name": s.name,
                    "status": s.status.value,
                    "endpoints": len(self._endpoints.get(s.id, [])),
                    "has_spec": s.id in self._specs,
                }
                for s in self._services.values()
            ],
        }

    # ─── promotion to the polling catalog ───

    def promote_endpoint(
        self,
        endpoint_id: str,
        data_category: DataCategory,
        poll_interval_seconds: Optional[int] = None,
        site_id: Optional[str] = None,
        authentication_type: AuthenticationType = AuthenticationType.NONE,
        authentication_config: Optional[AuthenticationConfig] = None,
        field_mappings: Optional[list[FieldMapping]] = None,
    ) -> Optional[DiscoveredEndpoint]:
        """Build a polling record from a mapped endpoint; None when the id is unknown.

        The record is not persisted here; hand it to the aggregation service.
        """
        source = self.get_endpoint(endpoint_id)
        if source is None:
            return None
        service = self._services.get(source.service_id)
        return DiscoveredEndpoint(
            name=source.summary,
            description=source.description,
            source_system=source.service_name,
            site_id=site_id,
            base_url=service.base_url if service else source.full_url[: -len(source.path) or None],
            path=source.path,
            http_method=source.method.value,
            port=service.port if service else None,
            status=EndpointStatus.VALIDATED,
            data_category=data_category,
            authentication_type=authentication_type,
            authentication_config=authentication_config,
            poll_interval_seconds=(
                poll_interval_seconds
                if poll_interval_seconds is not None
                else self._config.polling.default_interval_seconds
            ),
            field_mappings=list(field_mappings or []),
            tags=list(source.tags),
            metadata={"integration_endpoint_id": source.id, "operation_id": source.operation_id},
        )
