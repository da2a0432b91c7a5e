"""Data models for discovered services, interface descriptions and endpoints."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Optional

from petrowise_hub.config.models import ServiceType

_SLUG_PATTERN = re.compile(r"[^a-z0-9]+")


def service_slug(name: str) -> str:
    """Derive a service id from its display name ("JRD Fuel" -> "jrd-fuel")."""
    return _SLUG_PATTERN.sub("-", name.lower())


class ServiceStatus(str, Enum):
    ONLINE = "online"
    OFFLINE = "offline"
    ERROR = "error"


class HttpMethod(str, Enum):
    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    DELETE = "DELETE"
    PATCH = "PATCH"


class FetchErrorKind(str, Enum):
    """Why a spec fetch produced no payload."""

    NOT_FOUND = "not_found"  # 404/403, definitive
    TRANSIENT = "transient"  # network error or non-definitive status, retries exhausted
    INVALID = "invalid"  # body was not JSON


@dataclass
class FetchResult:
    """Outcome of a GET with bounded retries."""

    data: Any = None
    status_code: Optional[int] = None
    attempts: int = 0
    kind: Optional[FetchErrorKind] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.kind is None


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


@dataclass
class DiscoveredService:
    """A candidate service as seen by the most recent probe."""

    id: str
    name: str
    port: int
    type: ServiceType
    base_url: str
    status: ServiceStatus = ServiceStatus.OFFLINE
    version: Optional[str] = None
    health_endpoint: Optional[str] = None
    openapi_url: Optional[str] = None
    discovered_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    last_checked: datetime = field(default_factory=lambda: datetime.now(UTC))
    error_message: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "port": self.port,
            "type": self.type.value,
            "base_url": self.base_url,
            "status": self.status.value,
            "version": self.version,
            "health_endpoint": self.health_endpoint,
            "openapi_url": self.openapi_url,
            "discovered_at": _iso(self.discovered_at),
            "last_checked": _iso(self.last_checked),
            "error_message": self.error_message,
        }


@dataclass
class EndpointParameter:
    name: str
    location: str  # path, query, header, cookie or body
    required: bool = False
    schema: dict[str, Any] = field(default_factory=dict)
    description: Optional[str] = None


@dataclass
class RequestBodyInfo:
    required: bool
    content_type: str
    schema: dict[str, Any] = field(default_factory=dict)


@dataclass
class ResponseInfo:
    status_code: str
    description: str
    schema: Optional[dict[str, Any]] = None


@dataclass
class IntegrationEndpoint:
    """One operation from a discovered interface description, ready to invoke."""

    id: str
    service_id: str
    service_name: str
    service_type: str
    path: str
    method: HttpMethod
    operation_id: str
    summary: str
    description: str
    full_url: str
    tags: list[str] = field(default_factory=list)
    parameters: list[EndpointParameter] = field(default_factory=list)
    request_body: Optional[RequestBodyInfo] = None
    responses: list[ResponseInfo] = field(default_factory=list)
    registered_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def matches(self, query: str) -> bool:
        """Case-insensitive substring match over path, operation id, summary, service name and tags."""
        needle = query.lower()
        haystacks = [self.path, self.operation_id, self.summary, self.service_name, *self.tags]
        return any(needle in h.lower() for h in haystacks)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "service_id": self.service_id,
            "service_name": self.service_name,
            "service_type": self.service_type,
            "path": self.path,
            "method": self.method.value,
            "operation_id": self.operation_id,
            "summary": self.summary,
            "description": self.description,
            "tags": list(self.tags),
            "parameters": [
                {
                    "name": p.name,
                    "location": p.location,
                    "required": p.required,
                    "schema": p.schema,
                    "description": p.description,
                }
                for p in self.parameters
            ],
            "request_body": (
                {
                    "required": self.request_body.required,
                    "content_type": self.request_body.content_type,
                    "schema": self.request_body.schema,
                }
                if self.request_body
                else None
            ),
            "responses": [
                {"status_code": r.status_code, "description": r.description, "schema": r.schema}
                for r in self.responses
            ],
            "full_url": self.full_url,
            "registered_at": _iso(self.registered_at),
        }


@dataclass
class ScanError:
    service: str
    port: int
    error: str


@dataclass
class ScanResult:
    """Point-in-time result of probing every candidate service."""

    scan_started: datetime
    scan_completed: datetime
    services_scanned: int
    services_online: int = 0
    services_offline: int = 0
    total_endpoints: int = 0
    services: list[DiscoveredService] = field(default_factory=list)
    errors: list[ScanError] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.errors

    @property
    def duration_ms(self) -> float:
        return (self.scan_completed - self.scan_started).total_seconds() * 1000

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "scan_started": self.scan_started.isoformat(),
            "scan_completed": self.scan_completed.isoformat(),
            "duration_ms": self.duration_ms,
            "services_scanned": self.services_scanned,
            "services_online": self.services_online,
            "services_offline": self.services_offline,
            "total_endpoints": self.total_endpoints,
            "services": [s.to_dict() for s in self.services],
            "errors": [{"service": e.service, "port": e.port, "error": e.error} for e in self.errors],
        }
