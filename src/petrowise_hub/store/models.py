"""Persisted shapes: polling endpoints and canonical operational records."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field

from petrowise_hub.aggregation.mapping import FieldMapping


def _now() -> datetime:
    return datetime.now(UTC)


def _new_id() -> str:
    return str(uuid.uuid4())


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def to_millis(value: datetime) -> datetime:
    """Drop sub-millisecond precision so period windows tile without gaps."""
    return value.replace(microsecond=value.microsecond - value.microsecond % 1000)


# ─── Discovered endpoint (polling catalog) ───


class EndpointType(str, Enum):
    REST_API = "rest_api"
    GRAPHQL = "graphql"
    WEBSOCKET = "websocket"
    GRPC = "grpc"
    SOAP = "soap"
    DATABASE = "database"
    FILE_SYSTEM = "file_system"
    MESSAGE_QUEUE = "message_queue"
    FTP = "ftp"
    SFTP = "sftp"


class EndpointStatus(str, Enum):
    DISCOVERED = "discovered"
    VALIDATED = "validated"
    ACTIVE = "active"
    DEGRADED = "degraded"
    OFFLINE = "offline"
    ERROR = "error"
    DEPRECATED = "deprecated"


class AuthenticationType(str, Enum):
    NONE = "none"
    API_KEY = "api_key"
    BEARER_TOKEN = "bearer_token"
    BASIC_AUTH = "basic_auth"
    OAUTH2 = "oauth2"
    CUSTOM = "custom"


class DataCategory(str, Enum):
    FUEL_TRANSACTIONS = "fuel_transactions"
    FUEL_INVENTORY = "fuel_inventory"
    FUEL_DELIVERY = "fuel_delivery"
    FUEL_PRICING = "fuel_pricing"
    AUTO_WORK_ORDERS = "auto_work_orders"
    AUTO_INVENTORY = "auto_inventory"
    AUTO_SCHEDULING = "auto_scheduling"
    CUSTOMER_DATA = "customer_data"
    PAYMENT_DATA = "payment_data"
    EMPLOYEE_DATA = "employee_data"
    REPORTING = "reporting"
    CONFIGURATION = "configuration"
    OTHER = "other"


class AuthenticationConfig(BaseModel):
    api_key_header: str | None = None
    api_key_value: str | None = None
    access_token: str | None = None
    custom_headers: dict[str, str] = Field(default_factory=dict)


class DiscoveredEndpoint(BaseModel):
    """A polling-configured endpoint with rolling health and lifetime counters."""

    id: str = Field(default_factory=_new_id)
    name: str
    description: str = ""
    source_system: str
    site_id: str | None = None
    endpoint_type: EndpointType = EndpointType.REST_API
    base_url: str
    path: str = ""
    http_method: str = "GET"
    port: int | None = None
    status: EndpointStatus = EndpointStatus.DISCOVERED
    data_category: DataCategory = DataCategory.OTHER

    # Health
    last_health_check: datetime | None = None
    last_response_time_ms: float | None = None
    uptime_percentage: float | None = None
    consecutive_failures: int = 0
    last_error_message: str | None = None
    last_successful_call: datetime | None = None

    # Authentication
    authentication_type: AuthenticationType = AuthenticationType.NONE
    authentication_config: AuthenticationConfig | None = None

    # Polling
    poll_interval_seconds: int | None = None
    polling_enabled: bool = True
    last_polled_at: datetime | None = None
    next_poll_at: datetime | None = None

    # Transformation
    field_mappings: list[FieldMapping] = Field(default_factory=list)

    # Lifetime counters
    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    total_records_processed: int = 0
    average_response_time_ms: float | None = None

    tags: list[str] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)
    discovered_at: datetime = Field(default_factory=_now)

    @property
    def full_url(self) -> str:
        base = self.base_url.rstrip("/")
        path = self.path if self.path.startswith("/") else f"/{self.path}"
        return f"{base}{path}"

    @property
    def success_rate(self) -> float:
        if self.total_requests == 0:
            return 0.0
        return self.successful_requests / self.total_requests * 100

    @property
    def is_healthy(self) -> bool:
        return self.status == EndpointStatus.ACTIVE and self.consecutive_failures < 3


# ─── Fuel transactions ───


class FuelType(str, Enum):
    REGULAR = "regular"
    MIDGRADE = "midgrade"
    PREMIUM = "premium"
    DIESEL = "diesel"
    E85 = "e85"


class TransactionType(str, Enum):
    SALE = "sale"
    DELIVERY = "delivery"
    ADJUSTMENT = "adjustment"
    RETURN = "return"


class TransactionStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"
    FAILED = "failed"


@dataclass
class FuelTransaction:
    """A point-in-time fuel sale or movement. Unique by ``transaction_id``."""

    site_id: str
    transaction_id: str
    transaction_date: datetime
    source_system: str
    transaction_type: TransactionType = TransactionType.SALE
    status: TransactionStatus = TransactionStatus.COMPLETED
    fuel_type: FuelType = FuelType.REGULAR
    gallons: float = 0.0
    price_per_gallon: float = 0.0
    cost_per_gallon: Optional[float] = None
    total_amount: float = 0.0
    total_cost: Optional[float] = None
    gross_margin: Optional[float] = None
    pump_number: Optional[int] = None
    payment_method: Optional[str] = None
    source_endpoint_id: Optional[str] = None
    raw_data: dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=_new_id)
    created_at: datetime = field(default_factory=_now)

    def __post_init__(self) -> None:
        self.transaction_date = to_millis(self.transaction_date)

    @property
    def margin_per_gallon(self) -> Optional[float]:
        if self.price_per_gallon and self.cost_per_gallon:
            return self.price_per_gallon - self.cost_per_gallon
        return None

    @property
    def margin_percentage(self) -> Optional[float]:
        if self.total_amount and self.total_cost:
            return (self.total_amount - self.total_cost) / self.total_amount * 100
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "site_id": self.site_id,
            "transaction_id": self.transaction_id,
            "transaction_type": self.transaction_type.value,
            "status": self.status.value,
            "transaction_date": _iso(self.transaction_date),
            "fuel_type": self.fuel_type.value,
            "gallons": self.gallons,
            "price_per_gallon": self.price_per_gallon,
            "cost_per_gallon": self.cost_per_gallon,
            "total_amount": self.total_amount,
            "total_cost": self.total_cost,
            "gross_margin": self.gross_margin,
            "pump_number": self.pump_number,
            "payment_method": self.payment_method,
            "source_system": self.source_system,
            "source_endpoint_id": self.source_endpoint_id,
            "raw_data": self.raw_data,
            "created_at": _iso(self.created_at),
        }


# ─── Service-shop work orders ───


class WorkOrderStatus(str, Enum):
    ESTIMATE = "estimate"
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    WAITING_PARTS = "waiting_parts"
    WAITING_APPROVAL = "waiting_approval"
    COMPLETED = "completed"
    INVOICED = "invoiced"
    PAID = "paid"
    CANCELLED = "cancelled"


class ServiceCategory(str, Enum):
    OIL_CHANGE = "oil_change"
    BRAKE_SERVICE = "brake_service"
    TIRE_SERVICE = "tire_service"
    ALIGNMENT = "alignment"
    INSPECTION = "inspection"
    DIAGNOSTIC = "diagnostic"
    ENGINE_REPAIR = "engine_repair"
    TRANSMISSION = "transmission"
    ELECTRICAL = "electrical"
    AC_SERVICE = "ac_service"
    SUSPENSION = "suspension"
    EXHAUST = "exhaust"
    GENERAL_MAINTENANCE = "general_maintenance"
    BODY_WORK = "body_work"
    OTHER = "other"


REVENUE_STATUSES = frozenset({WorkOrderStatus.COMPLETED, WorkOrderStatus.INVOICED, WorkOrderStatus.PAID})


@dataclass
class WorkOrder:
    """A service-shop work order. Unique by ``work_order_number``; status and totals change over time."""

    shop_id: str
    work_order_number: str
    service_date: datetime
    source_system: str
    status: WorkOrderStatus = WorkOrderStatus.PENDING
    customer_name: str = "Unknown"
    primary_service_type: ServiceCategory = ServiceCategory.OTHER
    labor_hours: float = 0.0
    labor_total: float = 0.0
    parts_cost: float = 0.0
    parts_retail: float = 0.0
    sublet_cost: float = 0.0
    total_amount: float = 0.0
    gross_profit: float = 0.0
    completed_date: Optional[datetime] = None
    technician_id: Optional[str] = None
    vehicle_vin: Optional[str] = None
    source_endpoint_id: Optional[str] = None
    raw_data: dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=_new_id)
    created_at: datetime = field(default_factory=_now)
    updated_at: datetime = field(default_factory=_now)

    def __post_init__(self) -> None:
        self.service_date = to_millis(self.service_date)

    @property
    def effective_labor_rate(self) -> Optional[float]:
        if self.labor_hours and self.labor_total:
            return self.labor_total / self.labor_hours
        return None

    @property
    def profit_margin_percentage(self) -> Optional[float]:
        if self.total_amount and self.gross_profit:
            return self.gross_profit / self.total_amount * 100
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "shop_id": self.shop_id,
            "work_order_number": self.work_order_number,
            "status": self.status.value,
            "service_date": _iso(self.service_date),
            "completed_date": _iso(self.completed_date),
            "customer_name": self.customer_name,
            "primary_service_type": self.primary_service_type.value,
            "labor_hours": self.labor_hours,
            "labor_total": self.labor_total,
            "parts_cost": self.parts_cost,
            "parts_retail": self.parts_retail,
            "sublet_cost": self.sublet_cost,
            "total_amount": self.total_amount,
            "gross_profit": self.gross_profit,
            "technician_id": self.technician_id,
            "vehicle_vin": self.vehicle_vin,
            "source_system": self.source_system,
            "source_endpoint_id": self.source_endpoint_id,
            "raw_data": self.raw_data,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


# ─── Daily rollups returned by the store ───


@dataclass
class FuelDailyTotals:
    date: datetime
    gallons: float
    revenue: float
    margin: float
    average_price: float
    transaction_count: int


@dataclass
class AutoDailyTotals:
    date: datetime
    work_orders: int
    revenue: float
    labor_revenue: float
    parts_revenue: float
    profit: float
    labor_hours: float
