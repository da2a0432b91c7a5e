"""Record store protocol and in-memory implementation."""

from __future__ import annotations

import asyncio
import copy
from collections import defaultdict
from collections.abc import Iterable
from datetime import datetime
from typing import Optional, Protocol, runtime_checkable

from petrowise_hub.store.models import (
    AutoDailyTotals,
    DiscoveredEndpoint,
    EndpointStatus,
    FuelDailyTotals,
    FuelTransaction,
    TransactionType,
    WorkOrder,
    WorkOrderStatus,
)


@runtime_checkable
class RecordStore(Protocol):
    """Repository over the endpoint catalog and canonical records."""

    async def save_endpoint(self, endpoint: DiscoveredEndpoint) -> None: ...
    async def get_endpoint(self, endpoint_id: str) -> Optional[DiscoveredEndpoint]: ...
    async def list_endpoints(
        self, statuses: Optional[Iterable[EndpointStatus]] = None
    ) -> list[DiscoveredEndpoint]: ...

    async def find_fuel_transaction(self, transaction_id: str) -> Optional[FuelTransaction]: ...
    async def insert_fuel_transaction(self, tx: FuelTransaction) -> None: ...
    async def list_fuel_transactions(
        self, start: datetime, end: datetime, types: Iterable[TransactionType]
    ) -> list[FuelTransaction]: ...
    async def fuel_daily_totals(self, site_id: str, since: datetime) -> list[FuelDailyTotals]: ...

    async def find_work_order(self, work_order_number: str) -> Optional[WorkOrder]: ...
    async def insert_work_order(self, wo: WorkOrder) -> None: ...
    async def update_work_order(self, record_id: str, wo: WorkOrder) -> None: ...
    async def list_work_orders(
        self, start: datetime, end: datetime, statuses: Iterable[WorkOrderStatus]
    ) -> list[WorkOrder]: ...
    async def auto_daily_totals(self, shop_id: str, since: datetime) -> list[AutoDailyTotals]: ...

    async def close(self) -> None: ...


def _day(ts: datetime) -> datetime:
    return ts.replace(hour=0, minute=0, second=0, microsecond=0)


def summarize_fuel_days(transactions: Iterable[FuelTransaction]) -> list[FuelDailyTotals]:
    buckets: dict[datetime, list[FuelTransaction]] = defaultdict(list)
    for tx in transactions:
        buckets[_day(tx.transaction_date)].append(tx)
    out: list[FuelDailyTotals] = []
    for day in sorted(buckets):
        txs = buckets[day]
        out.append(
            FuelDailyTotals(
                date=day,
                gallons=sum(t.gallons for t in txs),
                revenue=sum(t.total_amount for t in txs),
                margin=sum(t.gross_margin or 0.0 for t in txs),
                average_price=sum(t.price_per_gallon for t in txs) / len(txs),
                transaction_count=len(txs),
            )
        )
    return out


def summarize_auto_days(work_orders: Iterable[WorkOrder]) -> list[AutoDailyTotals]:
    buckets: dict[datetime, list[WorkOrder]] = defaultdict(list)
    for wo in work_orders:
        buckets[_day(wo.service_date)].append(wo)
    return [
        AutoDailyTotals(
            date=day,
            work_orders=len(buckets[day]),
            revenue=sum(w.total_amount for w in buckets[day]),
            labor_revenue=sum(w.labor_total for w in buckets[day]),
            parts_revenue=sum(w.parts_retail for w in buckets[day]),
            profit=sum(w.gross_profit for w in buckets[day]),
            labor_hours=sum(w.labor_hours for w in buckets[day]),
        )
        for day in sorted(buckets)
    ]


class InMemoryStore:
    """Process-local store. Thread-safe via asyncio lock; contents vanish on exit."""

    def __init__(self) -> None:
        self._endpoints: dict[str, DiscoveredEndpoint] = {}
        self._fuel: dict[str, FuelTransaction] = {}
        self._work_orders: dict[str, WorkOrder] = {}
        self._lock = asyncio.Lock()
        self.query_count = 0

    async def save_endpoint(self, endpoint: DiscoveredEndpoint) -> None:
        async with self._lock:
            self._endpoints[endpoint.id] = endpoint.model_copy(deep=True)

    async def get_endpoint(self, endpoint_id: str) -> Optional[DiscoveredEndpoint]:
        async with self._lock:
            found = self._endpoints.get(endpoint_id)
            return found.model_copy(deep=True) if found else None

    async def list_endpoints(
        self, statuses: Optional[Iterable[EndpointStatus]] = None
    ) -> list[DiscoveredEndpoint]:
        wanted = set(statuses) if statuses is not None else None
        async with self._lock:
            return [
                ep.model_copy(deep=True)
                for ep in self._endpoints.values()
                if wanted is None or ep.status in wanted
            ]

    async def find_fuel_transaction(self, transaction_id: str) -> Optional[FuelTransaction]:
        async with self._lock:
            found = self._fuel.get(transaction_id)
            return copy.deepcopy(found) if found else None

    async def insert_fuel_transaction(self, tx: FuelTransaction) -> None:
        async with self._lock:
            if tx.transaction_id in self._fuel:
                raise ValueError(f"Duplicate transaction id: {tx.transaction_id}")
            self._fuel[tx.transaction_id] = copy.deepcopy(tx)

    async def list_fuel_transactions(
        self, start: datetime, end: datetime, types: Iterable[TransactionType]
    ) -> list[FuelTransaction]:
        wanted = set(types)
        async with self._lock:
            self.query_count += 1
            return [
                copy.deepcopy(tx)
                for tx in self._fuel.values()
                if start <= tx.transaction_date <= end and tx.transaction_type in wanted
            ]

    async def fuel_daily_totals(self, site_id: str, since: datetime) -> list[FuelDailyTotals]:
        async with self._lock:
            self.query_count += 1
            matching = [
                tx
                for tx in self._fuel.values()
                if tx.site_id == site_id
                and tx.transaction_date >= since
                and tx.transaction_type == TransactionType.SALE
            ]
            return summarize_fuel_days(matching)

    async def find_work_order(self, work_order_number: str) -> Optional[WorkOrder]:
        async with self._lock:
            found = self._work_orders.get(work_order_number)
            return copy.deepcopy(found) if found else None

    async def insert_work_order(self, wo: WorkOrder) -> None:
        async with self._lock:
            if wo.work_order_number in self._work_orders:
                raise ValueError(f"Duplicate work order number: {wo.work_order_number}")
            self._work_orders[wo.work_order_number] = copy.deepcopy(wo)

    async def update_work_order(self, record_id: str, wo: WorkOrder) -> None:
        async with self._lock:
            for number, existing in self._work_orders.items():
                if existing.id == record_id:
                    updated = copy.deepcopy(wo)
                    updated.id = record_id
                    updated.created_at = existing.created_at
                    del self._work_orders[number]
                    self._work_orders[updated.work_order_number] = updated
                    return
            raise KeyError(record_id)

    async def list_work_orders(
        self, start: datetime, end: datetime, statuses: Iterable[WorkOrderStatus]
    ) -> list[WorkOrder]:
        wanted = set(statuses)
        async with self._lock:
            self.query_count += 1
            return [
                copy.deepcopy(wo)
                for wo in self._work_orders.values()
                if start <= wo.service_date <= end and wo.status in wanted
            ]

    async def auto_daily_totals(self, shop_id: str, since: datetime) -> list[AutoDailyTotals]:
        async with self._lock:
            self.query_count += 1
            matching = [
                wo for wo in self._work_orders.values() if wo.shop_id == shop_id and wo.service_date >= since
            ]
            return summarize_auto_days(matching)

    async def close(self) -> None:
        return None
