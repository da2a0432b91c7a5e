"""Derived shapes produced by polling and metrics aggregation."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from typing import Any, Optional

from petrowise_hub.store.models import FuelType


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


# ─── Fuel inventory ───


@dataclass
class TankReading:
    tank_number: int
    fuel_type: FuelType
    current_level: float
    capacity: float
    percent_full: float
    average_daily_usage: float = 0.0
    last_delivery: Optional[datetime] = None
    projected_empty_date: Optional[datetime] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "tank_number": self.tank_number,
            "fuel_type": self.fuel_type.value,
            "current_level": self.current_level,
            "capacity": self.capacity,
            "percent_full": self.percent_full,
            "average_daily_usage": self.average_daily_usage,
            "last_delivery": _iso(self.last_delivery),
            "projected_empty_date": _iso(self.projected_empty_date),
        }


@dataclass
class FuelInventorySnapshot:
    """Latest tank levels reported for one site."""

    site_id: str
    timestamp: datetime
    tanks: list[TankReading] = field(default_factory=list)
    total_inventory_value: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "site_id": self.site_id,
            "timestamp": self.timestamp.isoformat(),
            "tanks": [t.to_dict() for t in self.tanks],
            "total_inventory_value": self.total_inventory_value,
        }


# ─── Enterprise metrics ───


@dataclass
class FuelTypeBreakdown:
    gallons: float = 0.0
    revenue: float = 0.0
    margin: float = 0.0


@dataclass
class ServiceTypeBreakdown:
    count: int = 0
    revenue: float = 0.0


@dataclass
class FuelRollup:
    total_gallons: float = 0.0
    total_revenue: float = 0.0
    total_cost: float = 0.0
    gross_margin: float = 0.0
    average_margin_per_gallon: float = 0.0
    transaction_count: int = 0
    by_fuel_type: dict[str, FuelTypeBreakdown] = field(default_factory=dict)


@dataclass
class AutoRollup:
    work_order_count: int = 0
    total_revenue: float = 0.0
    labor_revenue: float = 0.0
    parts_revenue: float = 0.0
    gross_profit: float = 0.0
    profit_margin: float = 0.0
    average_ticket: float = 0.0
    labor_hours: float = 0.0
    by_service_type: dict[str, ServiceTypeBreakdown] = field(default_factory=dict)


@dataclass
class CombinedRollup:
    total_revenue: float = 0.0
    total_cost: float = 0.0
    gross_profit: float = 0.0
    profit_margin: float = 0.0


@dataclass
class TrendDeltas:
    """Percentage change versus the preceding period; 0 when there is no baseline."""

    revenue_change: float = 0.0
    margin_change: float = 0.0
    volume_change: float = 0.0


@dataclass
class EnterpriseMetrics:
    period: str
    fuel: FuelRollup
    auto: AutoRollup
    combined: CombinedRollup
    trends: TrendDeltas
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "period": self.period,
            "fuel": asdict(self.fuel),
            "auto": asdict(self.auto),
            "combined": asdict(self.combined),
            "trends": asdict(self.trends),
        }


@dataclass
class FuelTrendPoint:
    date: datetime
    gallons: float
    revenue: float
    margin: float
    average_price: float
    transaction_count: int

    def to_dict(self) -> dict[str, Any]:
        out = asdict(self)
        out["date"] = self.date.date().isoformat()
        return out


@dataclass
class AutoTrendPoint:
    date: datetime
    work_orders: int
    revenue: float
    labor_revenue: float
    parts_revenue: float
    profit: float
    labor_hours: float
    average_ticket: float

    def to_dict(self) -> dict[str, Any]:
        out = asdict(self)
        out["date"] = self.date.date().isoformat()
        return out


# ─── Endpoint health ───


@dataclass
class EndpointHealth:
    endpoint_id: str
    name: str
    status: str
    last_check: Optional[datetime]
    response_time_ms: Optional[float]
    uptime: float
    consecutive_failures: int
    last_error: Optional[str]

    def to_dict(self) -> dict[str, Any]:
        out = asdict(self)
        out["last_check"] = _iso(self.last_check)
        return out


@dataclass
class EndpointSummary:
    total: int = 0
    by_status: dict[str, int] = field(default_factory=dict)
    by_type: dict[str, int] = field(default_factory=dict)
    by_category: dict[str, int] = field(default_factory=dict)
    healthy_percentage: float = 0.0
    average_response_time_ms: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class PollOutcome:
    """Result of one poll tick. ``error`` is set when the fetch failed."""

    endpoint_id: str
    success: bool
    status_code: Optional[int] = None
    response_time_ms: Optional[float] = None
    records_processed: int = 0
    records_created: int = 0
    records_updated: int = 0
    error: Optional[str] = None
    skipped: bool = False

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
