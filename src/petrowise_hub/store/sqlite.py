"""SQLite-backed record store."""

from __future__ import annotations

import json
from collections.abc import Iterable
from datetime import UTC, datetime
from typing import Any, Optional

import aiosqlite

from petrowise_hub.store.models import (
    AutoDailyTotals,
    DiscoveredEndpoint,
    EndpointStatus,
    FuelDailyTotals,
    FuelTransaction,
    FuelType,
    ServiceCategory,
    TransactionStatus,
    TransactionType,
    WorkOrder,
    WorkOrderStatus,
)

_CREATE_TABLES = """
CREATE TABLE IF NOT EXISTS discovered_endpoints (
    id TEXT PRIMARY KEY,
    status TEXT NOT NULL,
    data TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS fuel_transactions (
    id TEXT PRIMARY KEY,
    transaction_id TEXT NOT NULL UNIQUE,
    site_id TEXT NOT NULL,
    transaction_type TEXT NOT NULL,
    status TEXT NOT NULL,
    transaction_date TEXT NOT NULL,
    fuel_type TEXT NOT NULL,
    gallons REAL NOT NULL DEFAULT 0,
    price_per_gallon REAL NOT NULL DEFAULT 0,
    cost_per_gallon REAL,
    total_amount REAL NOT NULL DEFAULT 0,
    total_cost REAL,
    gross_margin REAL,
    pump_number INTEGER,
    payment_method TEXT,
    source_system TEXT NOT NULL,
    source_endpoint_id TEXT,
    raw_data TEXT,
    created_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_fuel_site_date ON fuel_transactions (site_id, transaction_date);

CREATE TABLE IF NOT EXISTS work_orders (
    id TEXT PRIMARY KEY,
    work_order_number TEXT NOT NULL UNIQUE,
    shop_id TEXT NOT NULL,
    status TEXT NOT NULL,
    service_date TEXT NOT NULL,
    completed_date TEXT,
    customer_name TEXT NOT NULL,
    primary_service_type TEXT NOT NULL,
    labor_hours REAL NOT NULL DEFAULT 0,
    labor_total REAL NOT NULL DEFAULT 0,
    parts_cost REAL NOT NULL DEFAULT 0,
    parts_retail REAL NOT NULL DEFAULT 0,
    sublet_cost REAL NOT NULL DEFAULT 0,
    total_amount REAL NOT NULL DEFAULT 0,
    gross_profit REAL NOT NULL DEFAULT 0,
    technician_id TEXT,
    vehicle_vin TEXT,
    source_system TEXT NOT NULL,
    source_endpoint_id TEXT,
    raw_data TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_work_orders_shop_date ON work_orders (shop_id, service_date);
"""

_FUEL_COLUMNS = (
    "id, transaction_id, site_id, transaction_type, status, transaction_date, fuel_type, gallons,"
    " price_per_gallon, cost_per_gallon, total_amount, total_cost, gross_margin, pump_number,"
    " payment_method, source_system, source_endpoint_id, raw_data, created_at"
)

_WORK_ORDER_COLUMNS = (
    "id, work_order_number, shop_id, status, service_date, completed_date, customer_name,"
    " primary_service_type, labor_hours, labor_total, parts_cost, parts_retail, sublet_cost,"
    " total_amount, gross_profit, technician_id, vehicle_vin, source_system, source_endpoint_id,"
    " raw_data, created_at, updated_at"
)


def _ts(value: Optional[datetime]) -> Optional[str]:
    """Fixed-width UTC timestamp so string comparison orders correctly."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).strftime("%Y-%m-%dT%H:%M:%S.%f+00:00")


def _parse_ts(value: Optional[str]) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromisoformat(value)


def _placeholders(values: list[Any]) -> str:
    return ", ".join("?" for _ in values)


def _json(data: Any) -> str:
    return json.dumps(data, default=str)


class SqliteStore:
    """SQLite record store. Survives process restarts."""

    def __init__(self, db_path: str = "petrowise_hub.db") -> None:
        self._db_path = db_path
        self._initialized = False

    async def _connect(self) -> aiosqlite.Connection:
        db = await aiosqlite.connect(self._db_path)
        db.row_factory = aiosqlite.Row
        if not self._initialized:
            await db.executescript(_CREATE_TABLES)
            await db.commit()
            self._initialized = True
        return db

    # ─── endpoints ───

    async def save_endpoint(self, endpoint: DiscoveredEndpoint) -> None:
        db = await self._connect()
        try:
            await db.execute(
                "INSERT INTO discovered_endpoints (id, status, data) VALUES (?, ?, ?)"
                " ON CONFLICT(id) DO UPDATE SET status = excluded.status, data = excluded.data",
                (endpoint.id, endpoint.status.value, endpoint.model_dump_json()),
            )
            await db.commit()
        finally:
            await db.close()

    async def get_endpoint(self, endpoint_id: str) -> Optional[DiscoveredEndpoint]:
        db = await self._connect()
        try:
            rows = list(await db.execute_fetchall(
                "SELECT data FROM discovered_endpoints WHERE id = ?", (endpoint_id,)
            ))
        finally:
            await db.close()
        return DiscoveredEndpoint.model_validate_json(rows[0]["data"]) if rows else None

    async def list_endpoints(
        self, statuses: Optional[Iterable[EndpointStatus]] = None
    ) -> list[DiscoveredEndpoint]:
        db = await self._connect()
        try:
            if statuses is None:
                rows = list(await db.execute_fetchall("SELECT data FROM discovered_endpoints"))
            else:
                values = [s.value for s in statuses]
                if not values:
                    return []
                rows = list(await db.execute_fetchall(
                    f"SELECT data FROM discovered_endpoints WHERE status IN ({_placeholders(values)})",
                    values,
                ))
        finally:
            await db.close()
        return [DiscoveredEndpoint.model_validate_json(r["data"]) for r in rows]

    # ─── fuel transactions ───

    def _row_to_fuel(self, r: aiosqlite.Row) -> FuelTransaction:
        return FuelTransaction(
            id=r["id"],
            transaction_id=r["transaction_id"],
            site_id=r["site_id"],
            transaction_type=TransactionType(r["transaction_type"]),
            status=TransactionStatus(r["status"]),
            transaction_date=_parse_ts(r["transaction_date"]),  # type: ignore[arg-type]
            fuel_type=FuelType(r["fuel_type"]),
            gallons=float(r["gallons"]),
            price_per_gallon=float(r["price_per_gallon"]),
            cost_per_gallon=r["cost_per_gallon"],
            total_amount=float(r["total_amount"]),
            total_cost=r["total_cost"],
            gross_margin=r["gross_margin"],
            pump_number=r["pump_number"],
            payment_method=r["payment_method"],
            source_system=r["source_system"],
            source_endpoint_id=r["source_endpoint_id"],
            raw_data=json.loads(r["raw_data"]) if r["raw_data"] else {},
            created_at=_parse_ts(r["created_at"]),  # type: ignore[arg-type]
        )

    async def find_fuel_transaction(self, transaction_id: str) -> Optional[FuelTransaction]:
        db = await self._connect()
        try:
            rows = list(await db.execute_fetchall(
                f"SELECT {_FUEL_COLUMNS} FROM fuel_transactions WHERE transaction_id = ?",
                (transaction_id,),
            ))
        finally:
            await db.close()
        return self._row_to_fuel(rows[0]) if rows else None

    async def insert_fuel_transaction(self, tx: FuelTransaction) -> None:
        values = [
            tx.id,
            tx.transaction_id,
            tx.site_id,
            tx.transaction_type.value,
            tx.status.value,
            _ts(tx.transaction_date),
            tx.fuel_type.value,
            tx.gallons,
            tx.price_per_gallon,
            tx.cost_per_gallon,
            tx.total_amount,
            tx.total_cost,
            tx.gross_margin,
            tx.pump_number,
            tx.payment_method,
            tx.source_system,
            tx.source_endpoint_id,
            _json(tx.raw_data),
            _ts(tx.created_at),
        ]
        db = await self._connect()
        try:
            await db.execute(
                f"INSERT INTO fuel_transactions ({_FUEL_COLUMNS}) VALUES ({_placeholders(values)})",
                values,
            )
            await db.commit()
        except aiosqlite.IntegrityError as exc:
            raise ValueError(f"Duplicate transaction id: {tx.transaction_id}") from exc
        finally:
            await db.close()

    async def list_fuel_transactions(
        self, start: datetime, end: datetime, types: Iterable[TransactionType]
    ) -> list[FuelTransaction]:
        type_values = [t.value for t in types]
        if not type_values:
            return []
        db = await self._connect()
        try:
            rows = list(await db.execute_fetchall(
                f"SELECT {_FUEL_COLUMNS} FROM fuel_transactions"
                " WHERE transaction_date >= ? AND transaction_date <= ?"
                f" AND transaction_type IN ({_placeholders(type_values)})",
                [_ts(start), _ts(end), *type_values],
            ))
        finally:
            await db.close()
        return [self._row_to_fuel(r) for r in rows]

    async def fuel_daily_totals(self, site_id: str, since: datetime) -> list[FuelDailyTotals]:
        db = await self._connect()
        try:
            rows = list(await db.execute_fetchall(
                "SELECT substr(transaction_date, 1, 10) AS day, SUM(gallons) AS gallons,"
                " SUM(total_amount) AS revenue, SUM(COALESCE(gross_margin, 0)) AS margin,"
                " AVG(price_per_gallon) AS average_price, COUNT(*) AS transaction_count"
                " FROM fuel_transactions"
                " WHERE site_id = ? AND transaction_date >= ? AND transaction_type = ?"
                " GROUP BY day ORDER BY day ASC",
                (site_id, _ts(since), TransactionType.SALE.value),
            ))
        finally:
            await db.close()
        return [
            FuelDailyTotals(
                date=datetime.fromisoformat(r["day"]).replace(tzinfo=UTC),
                gallons=float(r["gallons"] or 0),
                revenue=float(r["revenue"] or 0),
                margin=float(r["margin"] or 0),
                average_price=float(r["average_price"] or 0),
                transaction_count=int(r["transaction_count"]),
            )
            for r in rows
        ]

    # ─── work orders ───

    def _row_to_work_order(self, r: aiosqlite.Row) -> WorkOrder:
        return WorkOrder(
            id=r["id"],
            work_order_number=r["work_order_number"],
            shop_id=r["shop_id"],
            status=WorkOrderStatus(r["status"]),
            service_date=_parse_ts(r["service_date"]),  # type: ignore[arg-type]
            completed_date=_parse_ts(r["completed_date"]),
            customer_name=r["customer_name"],
            primary_service_type=ServiceCategory(r["primary_service_type"]),
            labor_hours=float(r["labor_hours"]),
            labor_total=float(r["labor_total"]),
            parts_cost=float(r["parts_cost"]),
            parts_retail=float(r["parts_retail"]),
            sublet_cost=float(r["sublet_cost"]),
            total_amount=float(r["total_amount"]),
            gross_profit=float(r["gross_profit"]),
            technician_id=r["technician_id"],
            vehicle_vin=r["vehicle_vin"],
            source_system=r["source_system"],
            source_endpoint_id=r["source_endpoint_id"],
            raw_data=json.loads(r["raw_data"]) if r["raw_data"] else {},
            created_at=_parse_ts(r["created_at"]),  # type: ignore[arg-type]
            updated_at=_parse_ts(r["updated_at"]),  # type: ignore[arg-type]
        )

    def _work_order_values(self, wo: WorkOrder) -> list[Any]:
        return [
            wo.id,
            wo.work_order_number,
            wo.shop_id,
            wo.status.value,
            _ts(wo.service_date),
            _ts(wo.completed_date),
            wo.customer_name,
            wo.primary_service_type.value,
            wo.labor_hours,
            wo.labor_total,
            wo.parts_cost,
            wo.parts_retail,
            wo.sublet_cost,
            wo.total_amount,
            wo.gross_profit,
            wo.technician_id,
            wo.vehicle_vin,
            wo.source_system,
            wo.source_endpoint_id,
            _json(wo.raw_data),
            _ts(wo.created_at),
            _ts(wo.updated_at),
        ]

    async def find_work_order(self, work_order_number: str) -> Optional[WorkOrder]:
        db = await self._connect()
        try:
            rows = list(await db.execute_fetchall(
                f"SELECT {_WORK_ORDER_COLUMNS} FROM work_orders WHERE work_order_number = ?",
                (work_order_number,),
            ))
        finally:
            await db.close()
        return self._row_to_work_order(rows[0]) if rows else None

    async def insert_work_order(self, wo: WorkOrder) -> None:
        values = self._work_order_values(wo)
        db = await self._connect()
        try:
            await db.execute(
                f"INSERT INTO work_orders ({_WORK_ORDER_COLUMNS}) VALUES ({_placeholders(values)})",
                values,
            )
            await db.commit()
        except aiosqlite.IntegrityError as exc:
            raise ValueError(f"Duplicate work order number: {wo.work_order_number}") from exc
        finally:
            await db.close()

    async def update_work_order(self, record_id: str, wo: WorkOrder) -> None:
        # id and created_at are identity; every other column is replaced
        values = self._work_order_values(wo)[1:-2] + [_ts(wo.updated_at), record_id]
        assignments = ", ".join(f"{col.strip()} = ?" for col in _WORK_ORDER_COLUMNS.split(",")[1:-2])
        db = await self._connect()
        try:
            cursor = await db.execute(
                f"UPDATE work_orders SET {assignments}, updated_at = ? WHERE id = ?",
                values,
            )
            await db.commit()
            if cursor.rowcount == 0:
                raise KeyError(record_id)
        finally:
            await db.close()

    async def list_work_orders(
        self, start: datetime, end: datetime, statuses: Iterable[WorkOrderStatus]
    ) -> list[WorkOrder]:
        status_values = [s.value for s in statuses]
        if not status_values:
            return []
        db = await self._connect()
        try:
            rows = list(await db.execute_fetchall(
                f"SELECT {_WORK_ORDER_COLUMNS} FROM work_orders"
                " WHERE service_date >= ? AND service_date <= ?"
                f" AND status IN ({_placeholders(status_values)})",
                [_ts(start), _ts(end), *status_values],
            ))
        finally:
            await db.close()
        return [self._row_to_work_order(r) for r in rows]

    async def auto_daily_totals(self, shop_id: str, since: datetime) -> list[AutoDailyTotals]:
        db = await self._connect()
        try:
            rows = list(await db.execute_fetchall(
                "SELECT substr(service_date, 1, 10) AS day, COUNT(*) AS work_orders,"
                " SUM(total_amount) AS revenue, SUM(labor_total) AS labor_revenue,"
                " SUM(parts_retail) AS parts_revenue, SUM(gross_profit) AS profit,"
                " SUM(labor_hours) AS labor_hours"
                " FROM work_orders WHERE shop_id = ? AND service_date >= ?"
                " GROUP BY day ORDER BY day ASC",
                (shop_id, _ts(since)),
            ))
        finally:
            await db.close()
        return [
            AutoDailyTotals(
                date=datetime.fromisoformat(r["day"]).replace(tzinfo=UTC),
                work_orders=int(r["work_orders"]),
                revenue=float(r["revenue"] or 0),
                labor_revenue=float(r["labor_revenue"] or 0),
                parts_revenue=float(r["parts_revenue"] or 0),
                profit=float(r["profit"] or 0),
                labor_hours=float(r["labor_hours"] or 0),
            )
            for r in rows
        ]

    async def close(self) -> None:
        return None
