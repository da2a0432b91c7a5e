"""Period-bucketed business metrics with trend comparison and a short-lived cache."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional

from petrowise_hub.aggregation.models import (
    AutoRollup,
    AutoTrendPoint,
    CombinedRollup,
    EnterpriseMetrics,
    FuelRollup,
    FuelTrendPoint,
    FuelTypeBreakdown,
    ServiceTypeBreakdown,
    TrendDeltas,
)
from petrowise_hub.config.models import MetricsSettings
from petrowise_hub.store.base import RecordStore
from petrowise_hub.store.models import REVENUE_STATUSES, FuelTransaction, TransactionType, WorkOrder

logger = logging.getLogger(__name__)

_ONE_MS = timedelta(milliseconds=1)


class Period(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


@dataclass(frozen=True)
class PeriodWindow:
    """Current window [start, end] and the preceding window of the same granularity."""

    start: datetime
    end: datetime
    previous_start: datetime
    previous_end: datetime


def _midnight(value: datetime) -> datetime:
    return value.replace(hour=0, minute=0, second=0, microsecond=0)


def period_window(period: Period, now: datetime) -> PeriodWindow:
    """Calendar-aligned windows in *now*'s timezone. Weeks start on Sunday."""
    today = _midnight(now)
    if period == Period.DAILY:
        start = today
    elif period == Period.WEEKLY:
        start = today - timedelta(days=(now.weekday() + 1) % 7)
    elif period == Period.MONTHLY:
        start = today.replace(day=1)
    else:
        start = today.replace(month=1, day=1)

    previous_end = start - _ONE_MS
    if period == Period.DAILY:
        previous_start = _midnight(previous_end)
    elif period == Period.WEEKLY:
        previous_start = _midnight(previous_end) - timedelta(days=6)
    elif period == Period.MONTHLY:
        previous_start = _midnight(previous_end).replace(day=1)
    else:
        previous_start = _midnight(previous_end).replace(month=1, day=1)

    return PeriodWindow(start=start, end=now, previous_start=previous_start, previous_end=previous_end)


def percent_change(current: float, previous: float) -> float:
    """Relative change in percent; 0 unless the previous value is positive."""
    if previous <= 0:
        return 0.0
    return (current - previous) / previous * 100


def fuel_rollup(transactions: Iterable[FuelTransaction]) -> FuelRollup:
    rollup = FuelRollup()
    for tx in transactions:
        cost = tx.total_cost or 0.0
        rollup.total_gallons += tx.gallons
        rollup.total_revenue += tx.total_amount
        rollup.total_cost += cost
        rollup.transaction_count += 1
        bucket = rollup.by_fuel_type.setdefault(tx.fuel_type.value, FuelTypeBreakdown())
        bucket.gallons += tx.gallons
        bucket.revenue += tx.total_amount
        bucket.margin += tx.total_amount - cost
    rollup.gross_margin = rollup.total_revenue - rollup.total_cost
    if rollup.total_gallons > 0:
        rollup.average_margin_per_gallon = rollup.gross_margin / rollup.total_gallons
    return rollup


def auto_rollup(work_orders: Iterable[WorkOrder]) -> AutoRollup:
    rollup = AutoRollup()
    for wo in work_orders:
        rollup.work_order_count += 1
        rollup.total_revenue += wo.total_amount
        rollup.labor_revenue += wo.labor_total
        rollup.parts_revenue += wo.parts_retail
        rollup.gross_profit += wo.gross_profit
        rollup.labor_hours += wo.labor_hours
        bucket = rollup.by_service_type.setdefault(wo.primary_service_type.value, ServiceTypeBreakdown())
        bucket.count += 1
        bucket.revenue += wo.total_amount
    if rollup.total_revenue > 0:
        rollup.profit_margin = rollup.gross_profit / rollup.total_revenue * 100
    if rollup.work_order_count > 0:
        rollup.average_ticket = rollup.total_revenue / rollup.work_order_count
    return rollup


def combine(fuel: FuelRollup, auto: AutoRollup) -> CombinedRollup:
    revenue = fuel.total_revenue + auto.total_revenue
    profit = fuel.gross_margin + auto.gross_profit
    return CombinedRollup(
        total_revenue=revenue,
        total_cost=fuel.total_cost + (auto.total_revenue - auto.gross_profit),
        gross_profit=profit,
        profit_margin=profit / revenue * 100 if revenue > 0 else 0.0,
    )


def _local_now() -> datetime:
    return datetime.now().astimezone()


class MetricsAggregator:
    """Computes enterprise metrics from the record store on demand.

    Results are cached per period: a hit returns the same object and touches
    neither the store nor any computation.
    """

    def __init__(
        self,
        store: RecordStore,
        settings: MetricsSettings,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._store = store
        self._settings = settings
        self._clock = clock or _local_now
        self._cache: dict[Period, tuple[datetime, EnterpriseMetrics]] = {}

    def _ttl(self, period: Period) -> timedelta:
        seconds = self._settings.daily_cache_seconds if period == Period.DAILY else self._settings.cache_seconds
        return timedelta(seconds=seconds)

    def invalidate(self, period: Optional[Period] = None) -> None:
        if period is None:
            self._cache.clear()
        else:
            self._cache.pop(period, None)

    async def get_enterprise_metrics(self, period: Period = Period.DAILY) -> EnterpriseMetrics:
        now = self._clock()
        cached = self._cache.get(period)
        if cached is not None and cached[0] > now:
            return cached[1]

        window = period_window(period, now)
        sale_only = [TransactionType.SALE]
        fuel_now, auto_now, fuel_prev, auto_prev = await asyncio.gather(
            self._store.list_fuel_transactions(window.start, window.end, sale_only),
            self._store.list_work_orders(window.start, window.end, REVENUE_STATUSES),
            self._store.list_fuel_transactions(window.previous_start, window.previous_end, sale_only),
            self._store.list_work_orders(window.previous_start, window.previous_end, REVENUE_STATUSES),
        )

        fuel, auto = fuel_rollup(fuel_now), auto_rollup(auto_now)
        prev_fuel, prev_auto = fuel_rollup(fuel_prev), auto_rollup(auto_prev)
        combined, prev_combined = combine(fuel, auto), combine(prev_fuel, prev_auto)

        metrics = EnterpriseMetrics(
            period=period.value,
            fuel=fuel,
            auto=auto,
            combined=combined,
            trends=TrendDeltas(
                revenue_change=percent_change(combined.total_revenue, prev_combined.total_revenue),
                margin_change=percent_change(combined.gross_profit, prev_combined.gross_profit),
                volume_change=percent_change(fuel.total_gallons, prev_fuel.total_gallons),
            ),
            timestamp=now,
        )
        self._cache[period] = (now + self._ttl(period), metrics)
        logger.debug("Computed %s metrics: revenue %.2f", period.value, combined.total_revenue)
        return metrics

    async def get_fuel_trends(self, site_id: str, days: int = 30) -> list[FuelTrendPoint]:
        since = self._clock() - timedelta(days=days)
        totals = await self._store.fuel_daily_totals(site_id, since)
        return [
            FuelTrendPoint(
                date=t.date,
                gallons=t.gallons,
                revenue=t.revenue,
                margin=t.margin,
                average_price=t.average_price,
                transaction_count=t.transaction_count,
            )
            for t in totals
        ]

    async def get_auto_trends(self, shop_id: str, days: int = 30) -> list[AutoTrendPoint]:
        since = self._clock() - timedelta(days=days)
        totals = await self._store.auto_daily_totals(shop_id, since)
        return [
            AutoTrendPoint(
                date=t.date,
                work_orders=t.work_orders,
                revenue=t.revenue,
                labor_revenue=t.labor_revenue,
                parts_revenue=t.parts_revenue,
                profit=t.profit,
                labor_hours=t.labor_hours,
                average_ticket=t.revenue / t.work_orders if t.work_orders else 0.0,
            )
            for t in totals
        ]
