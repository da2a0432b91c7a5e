"""Converters from raw endpoint payloads to canonical records.

Each record is reshaped by the endpoint's field mappings first, then
canonical keys are read from the result. Keys are accepted in snake_case or
camelCase so upstream systems need mappings only for genuinely different
names.
"""

from __future__ import annotations

import logging
import uuid
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Optional, TypeVar

from petrowise_hub.aggregation.mapping import apply_field_mappings, parse_date, parse_number
from petrowise_hub.aggregation.models import FuelInventorySnapshot, TankReading
from petrowise_hub.store.models import (
    DiscoveredEndpoint,
    FuelTransaction,
    FuelType,
    ServiceCategory,
    TransactionStatus,
    TransactionType,
    WorkOrder,
    WorkOrderStatus,
)

logger = logging.getLogger(__name__)

E = TypeVar("E", bound=Enum)

UNKNOWN_SITE = "unknown"


def _camel(key: str) -> str:
    head, *rest = key.split("_")
    return head + "".join(part.title() for part in rest)


def _pick(record: dict[str, Any], key: str) -> Any:
    """Value under *key* or its camelCase spelling; empty strings count as missing."""
    for candidate in (key, _camel(key)):
        value = record.get(candidate)
        if value is not None and value != "":
            return value
    return None


def _number(record: dict[str, Any], key: str) -> float:
    parsed = parse_number(_pick(record, key))
    return float(parsed) if parsed is not None else 0.0


def _optional_number(record: dict[str, Any], key: str) -> Optional[float]:
    parsed = parse_number(_pick(record, key))
    return float(parsed) if parsed is not None else None


def _record_id(record: dict[str, Any], key: str, fallback: str) -> str:
    value = _pick(record, key)
    return str(value) if value is not None else fallback


def _enum(cls: type[E], value: Any, default: E) -> E:
    if value is None:
        return default
    try:
        return cls(str(value).strip().lower())
    except ValueError:
        logger.debug("Unrecognised %s value %r, using %s", cls.__name__, value, default.value)
        return default


def _timestamp(value: Any, now: datetime) -> datetime:
    return parse_date(value) or now


def _text(value: Any) -> Optional[str]:
    return str(value) if value is not None else None


def normalize_records(payload: Any) -> list[dict[str, Any]]:
    """A payload may be one object or a list of them; anything else is dropped."""
    items = payload if isinstance(payload, list) else [payload]
    records = [item for item in items if isinstance(item, dict)]
    if len(records) != len(items):
        logger.warning("Dropped %d non-object records from payload", len(items) - len(records))
    return records


def _site(mapped: dict[str, Any], key: str, endpoint: DiscoveredEndpoint) -> str:
    return str(_pick(mapped, key) or endpoint.site_id or UNKNOWN_SITE)


# ─── Fuel transactions ───


def to_fuel_transaction(
    endpoint: DiscoveredEndpoint, record: dict[str, Any], now: Optional[datetime] = None
) -> FuelTransaction:
    now = now or datetime.now(UTC)
    mapped = apply_field_mappings(endpoint.field_mappings, record)

    gallons = _number(mapped, "gallons")
    total_amount = _number(mapped, "total_amount")
    cost_per_gallon = _optional_number(mapped, "cost_per_gallon")
    total_cost = _optional_number(mapped, "total_cost")
    if total_cost is None and cost_per_gallon is not None:
        total_cost = cost_per_gallon * gallons
    gross_margin = total_amount - total_cost if total_cost is not None else None

    pump = parse_number(_pick(mapped, "pump_number"))
    return FuelTransaction(
        site_id=_site(mapped, "site_id", endpoint),
        transaction_id=_record_id(mapped, "transaction_id", f"{endpoint.id}-{uuid.uuid4().hex}"),
        transaction_type=_enum(TransactionType, _pick(mapped, "transaction_type"), TransactionType.SALE),
        status=_enum(TransactionStatus, _pick(mapped, "status"), TransactionStatus.COMPLETED),
        transaction_date=_timestamp(_pick(mapped, "transaction_date"), now),
        fuel_type=_enum(FuelType, _pick(mapped, "fuel_type"), FuelType.REGULAR),
        gallons=gallons,
        price_per_gallon=_number(mapped, "price_per_gallon"),
        cost_per_gallon=cost_per_gallon,
        total_amount=total_amount,
        total_cost=total_cost,
        gross_margin=gross_margin,
        pump_number=int(pump) if pump is not None else None,
        payment_method=_text(_pick(mapped, "payment_method")),
        source_system=endpoint.source_system,
        source_endpoint_id=endpoint.id,
        raw_data=record,
        created_at=now,
    )


def to_fuel_transactions(endpoint: DiscoveredEndpoint, payload: Any) -> list[FuelTransaction]:
    now = datetime.now(UTC)
    return [to_fuel_transaction(endpoint, record, now) for record in normalize_records(payload)]


# ─── Work orders ───


def to_work_order(
    endpoint: DiscoveredEndpoint, record: dict[str, Any], now: Optional[datetime] = None
) -> WorkOrder:
    now = now or datetime.now(UTC)
    mapped = apply_field_mappings(endpoint.field_mappings, record)

    total_amount = _number(mapped, "total_amount")
    parts_cost = _number(mapped, "parts_cost")
    sublet_cost = _number(mapped, "sublet_cost")
    gross_profit = _optional_number(mapped, "gross_profit")
    if gross_profit is None:
        gross_profit = total_amount - parts_cost - sublet_cost

    completed = _pick(mapped, "completed_date")
    return WorkOrder(
        shop_id=_site(mapped, "shop_id", endpoint),
        work_order_number=_record_id(mapped, "work_order_number", f"WO-{uuid.uuid4().hex[:12]}"),
        status=_enum(WorkOrderStatus, _pick(mapped, "status"), WorkOrderStatus.PENDING),
        service_date=_timestamp(_pick(mapped, "service_date"), now),
        completed_date=parse_date(completed) if completed is not None else None,
        customer_name=str(_pick(mapped, "customer_name") or "Unknown"),
        primary_service_type=_enum(
            ServiceCategory, _pick(mapped, "primary_service_type"), ServiceCategory.OTHER
        ),
        labor_hours=_number(mapped, "labor_hours"),
        labor_total=_number(mapped, "labor_total"),
        parts_cost=parts_cost,
        parts_retail=_number(mapped, "parts_retail"),
        sublet_cost=sublet_cost,
        total_amount=total_amount,
        gross_profit=gross_profit,
        technician_id=_text(_pick(mapped, "technician_id")),
        vehicle_vin=_text(_pick(mapped, "vehicle_vin")),
        source_system=endpoint.source_system,
        source_endpoint_id=endpoint.id,
        raw_data=record,
        created_at=now,
        updated_at=now,
    )


def to_work_orders(endpoint: DiscoveredEndpoint, payload: Any) -> list[WorkOrder]:
    now = datetime.now(UTC)
    return [to_work_order(endpoint, record, now) for record in normalize_records(payload)]


# ─── Fuel inventory ───


def _tank(mapped: dict[str, Any], index: int) -> TankReading:
    capacity = _number(mapped, "capacity")
    current = _number(mapped, "current_level")
    percent = _optional_number(mapped, "percent_full")
    if percent is None:
        percent = current / capacity * 100 if capacity else 0.0
    tank_number = parse_number(_pick(mapped, "tank_number"))
    last_delivery = _pick(mapped, "last_delivery")
    projected = _pick(mapped, "projected_empty_date")
    return TankReading(
        tank_number=int(tank_number) if tank_number is not None else index,
        fuel_type=_enum(FuelType, _pick(mapped, "fuel_type"), FuelType.REGULAR),
        current_level=current,
        capacity=capacity,
        percent_full=percent,
        average_daily_usage=_number(mapped, "average_daily_usage"),
        last_delivery=parse_date(last_delivery) if last_delivery is not None else None,
        projected_empty_date=parse_date(projected) if projected is not None else None,
    )


def to_inventory_snapshots(endpoint: DiscoveredEndpoint, payload: Any) -> list[FuelInventorySnapshot]:
    """Build one snapshot per site.

    A record either carries a ``tanks`` list (a whole snapshot) or is itself
    a single tank reading; bare readings are grouped by site.
    """
    now = datetime.now(UTC)
    snapshots: dict[str, FuelInventorySnapshot] = {}
    for record in normalize_records(payload):
        mapped = apply_field_mappings(endpoint.field_mappings, record)
        site_id = _site(mapped, "site_id", endpoint)
        snapshot = snapshots.setdefault(
            site_id,
            FuelInventorySnapshot(site_id=site_id, timestamp=_timestamp(_pick(mapped, "timestamp"), now)),
        )
        tanks = mapped.get("tanks")
        if isinstance(tanks, list):
            for raw_tank in tanks:
                if isinstance(raw_tank, dict):
                    snapshot.tanks.append(_tank(raw_tank, len(snapshot.tanks) + 1))
            snapshot.total_inventory_value += _number(mapped, "total_inventory_value")
        else:
            snapshot.tanks.append(_tank(mapped, len(snapshot.tanks) + 1))
    return list(snapshots.values())
