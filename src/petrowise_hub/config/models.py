"""Pydantic models for PetroWise Hub configuration."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class ServiceType(str, Enum):
    """Business domain served by a candidate service."""

    FUEL = "fuel"
    AUTO = "auto"
    PRICING = "pricing"
    ANALYTICS = "analytics"
    SCANNING = "scanning"


DEFAULT_HEALTH_PATHS = ["/health", "/api/health", "/healthz", "/"]


def _openapi_paths(extra: str) -> list[str]:
    return ["/swagger.json", "/api/openapi.json", "/openapi.json", extra]


class CandidateService(BaseModel):
    """A statically configured service the discovery scan looks for."""

    model_config = ConfigDict(frozen=True)

    name: str
    port: int
    type: ServiceType
    host: str = "localhost"
    openapi_paths: list[str] = Field(default_factory=lambda: _openapi_paths("/.well-known/openapi.json"))
    health_paths: list[str] = Field(default_factory=lambda: list(DEFAULT_HEALTH_PATHS))

    @property
    def base_url(self) -> str:
        return f"http://{self.host}:{self.port}"


def default_services() -> list[CandidateService]:
    return [
        CandidateService(name="JRD Fuel", port=8001, type=ServiceType.FUEL),
        CandidateService(name="JRD Auto", port=8002, type=ServiceType.AUTO),
        CandidateService(
            name="Price-O-Tron",
            port=8003,
            type=ServiceType.PRICING,
            openapi_paths=_openapi_paths("/pricing/openapi.json"),
        ),
        CandidateService(
            name="Jumbotron",
            port=8004,
            type=ServiceType.ANALYTICS,
            openapi_paths=_openapi_paths("/analytics/openapi.json"),
        ),
        CandidateService(
            name="Scanotron",
            port=8005,
            type=ServiceType.SCANNING,
            openapi_paths=_openapi_paths("/scan/openapi.json"),
        ),
    ]


class HubIdentity(BaseModel):
    """Top-level hub identity metadata."""

    name: str = "PetroWise Hub"
    version: str = "0.1.0"


class DiscoverySettings(BaseModel):
    """Timeouts and retry policy for probing and spec fetching."""

    request_timeout: float = 5.0
    health_timeout: float = 2.0
    max_retries: int = 3
    retry_delay: float = 1.0
    user_agent: str = "PetroWise-Discovery/1.0"


class PollingSettings(BaseModel):
    default_interval_seconds: int = 60
    request_timeout: float = 5.0
    error_threshold: int = 3


class MetricsSettings(BaseModel):
    daily_cache_seconds: int = 300
    cache_seconds: int = 900


class RealtimeSettings(BaseModel):
    heartbeat_interval: float = 30.0
    stale_after: float = 60.0


class StorageSettings(BaseModel):
    backend: str = "sqlite"  # "sqlite" or "memory"
    db_path: str = "petrowise_hub.db"


class AuthConfig(BaseModel):
    """Authentication configuration."""

    api_key: str = ""  # empty = auth disabled


class AlertCondition(str, Enum):
    THRESHOLD = "threshold"
    CHANGE = "change"
    ABSENCE = "absence"


class AlertSeverity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


class AlertConfig(BaseModel):
    """Alert rule carried alongside the realtime feed."""

    id: str
    name: str
    condition: AlertCondition
    metric: str
    threshold: float | None = None
    change_percent: float | None = None
    absence_minutes: int | None = None
    severity: AlertSeverity = AlertSeverity.WARNING
    enabled: bool = True


class HubConfig(BaseModel):
    """Root configuration model for .petrowise.yaml."""

    hub: HubIdentity = Field(default_factory=HubIdentity)
    discovery: DiscoverySettings = Field(default_factory=DiscoverySettings)
    services: list[CandidateService] = Field(default_factory=default_services)
    polling: PollingSettings = Field(default_factory=PollingSettings)
    metrics: MetricsSettings = Field(default_factory=MetricsSettings)
    realtime: RealtimeSettings = Field(default_factory=RealtimeSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    auth: AuthConfig = Field(default_factory=AuthConfig)
    alerts: list[AlertConfig] = Field(default_factory=list)
    event_log_size: int = 100
    log_level: str = "INFO"
