"""Tests for period windows, rollups, trends and the metrics cache."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from petrowise_hub.aggregation.metrics import (
    MetricsAggregator,
    Period,
    auto_rollup,
    combine,
    fuel_rollup,
    percent_change,
    period_window,
)
from petrowise_hub.config.models import MetricsSettings
from petrowise_hub.store.models import (
    FuelTransaction,
    FuelType,
    TransactionType,
    WorkOrder,
    WorkOrderStatus,
)

# Wednesday
NOW = datetime(2026, 3, 4, 15, 30, tzinfo=UTC)


def _fuel(tx_id: str, when: datetime, **overrides) -> FuelTransaction:
    fields = {
        "site_id": "site-1",
        "transaction_id": tx_id,
        "transaction_date": when,
        "source_system": "JRD Fuel",
        "gallons": 100.0,
        "price_per_gallon": 3.0,
        "total_amount": 300.0,
        "total_cost": 200.0,
        "gross_margin": 100.0,
    }
    fields.update(overrides)
    return FuelTransaction(**fields)


def _work_order(number: str, when: datetime, **overrides) -> WorkOrder:
    fields = {
        "shop_id": "shop-1",
        "work_order_number": number,
        "service_date": when,
        "source_system": "JRD Auto",
        "status": WorkOrderStatus.PAID,
        "labor_hours": 2.0,
        "labor_total": 120.0,
        "parts_retail": 80.0,
        "total_amount": 200.0,
        "gross_profit": 80.0,
    }
    fields.update(overrides)
    return WorkOrder(**fields)


class _Clock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


# ─── Windows ───


class TestPeriodWindow:
    def test_daily(self):
        w = period_window(Period.DAILY, NOW)
        assert w.start == datetime(2026, 3, 4, tzinfo=UTC)
        assert w.end == NOW
        assert w.previous_start == datetime(2026, 3, 3, tzinfo=UTC)
        assert w.previous_end == w.start - timedelta(milliseconds=1)

    def test_weekly_starts_sunday(self):
        w = period_window(Period.WEEKLY, NOW)
        assert w.start == datetime(2026, 3, 1, tzinfo=UTC)
        assert w.start.weekday() == 6
        assert w.previous_start == datetime(2026, 2, 22, tzinfo=UTC)

    def test_weekly_on_a_sunday(self):
        sunday = datetime(2026, 3, 1, 9, 0, tzinfo=UTC)
        assert period_window(Period.WEEKLY, sunday).start == datetime(2026, 3, 1, tzinfo=UTC)

    def test_monthly(self):
        w = period_window(Period.MONTHLY, NOW)
        assert w.start == datetime(2026, 3, 1, tzinfo=UTC)
        assert w.previous_start == datetime(2026, 2, 1, tzinfo=UTC)
        assert w.previous_end == datetime(2026, 2, 28, 23, 59, 59, 999000, tzinfo=UTC)

    def test_yearly(self):
        w = period_window(Period.YEARLY, NOW)
        assert w.start == datetime(2026, 1, 1, tzinfo=UTC)
        assert w.previous_start == datetime(2025, 1, 1, tzinfo=UTC)


class TestPercentChange:
    def test_zero_baseline(self):
        assert percent_change(50, 0) == 0.0

    def test_growth_and_decline(self):
        assert percent_change(150, 100) == 50.0
        assert percent_change(75, 100) == -25.0

    def test_negative_baseline(self):
        assert percent_change(10, -20) == 0.0


# ─── Rollups ───


class TestRollups:
    def test_fuel_rollup(self):
        rollup = fuel_rollup(
            [
                _fuel("T1", NOW),
                _fuel("T2", NOW, fuel_type=FuelType.DIESEL, gallons=10, total_amount=40, total_cost=None),
            ]
        )
        assert rollup.total_gallons == 110
        assert rollup.total_revenue == 340
        assert rollup.total_cost == 200
        assert rollup.gross_margin == 140
        assert rollup.transaction_count == 2
        assert rollup.by_fuel_type["diesel"].margin == 40
        assert rollup.by_fuel_type["regular"].gallons == 100

    def test_empty_rollups_have_no_division_errors(self):
        fuel, auto = fuel_rollup([]), auto_rollup([])
        assert fuel.average_margin_per_gallon == 0
        assert auto.profit_margin == 0
        assert auto.average_ticket == 0
        assert combine(fuel, auto).profit_margin == 0

    def test_auto_rollup(self):
        rollup = auto_rollup([_work_order("WO-1", NOW), _work_order("WO-2", NOW, total_amount=100, gross_profit=20)])
        assert rollup.work_order_count == 2
        assert rollup.total_revenue == 300
        assert rollup.gross_profit == 100
        assert rollup.average_ticket == 150
        assert rollup.labor_hours == 4
        assert rollup.by_service_type["other"].count == 2


# ─── Aggregator ───


class TestEnterpriseMetrics:
    @pytest.mark.asyncio
    async def test_daily_metrics_with_trends(self, memory_store):
        await memory_store.insert_fuel_transaction(_fuel("T1", NOW - timedelta(hours=1)))
        await memory_store.insert_fuel_transaction(
            _fuel("D1", NOW - timedelta(hours=2), transaction_type=TransactionType.DELIVERY, gallons=5000)
        )
        await memory_store.insert_fuel_transaction(
            _fuel("Y1", NOW - timedelta(days=1), gallons=50, total_amount=150, total_cost=100)
        )
        await memory_store.insert_work_order(_work_order("WO-1", NOW - timedelta(hours=3)))
        await memory_store.insert_work_order(
            _work_order("WO-2", NOW - timedelta(hours=3), status=WorkOrderStatus.IN_PROGRESS)
        )

        metrics = await MetricsAggregator(memory_store, MetricsSettings(), clock=lambda: NOW).get_enterprise_metrics()

        assert metrics.period == "daily"
        assert metrics.fuel.total_gallons == 100
        assert metrics.fuel.gross_margin == 100
        assert metrics.fuel.average_margin_per_gallon == 1.0
        assert metrics.auto.work_order_count == 1
        assert metrics.auto.profit_margin == 40.0
        assert metrics.combined.total_revenue == 500
        assert metrics.combined.gross_profit == 180
        assert metrics.combined.total_cost == 320
        assert metrics.combined.profit_margin == 36.0
        assert metrics.trends.volume_change == 100.0
        assert metrics.trends.revenue_change == pytest.approx(233.333, rel=1e-3)
        assert metrics.trends.margin_change == 260.0

    @pytest.mark.asyncio
    async def test_last_millisecond_of_previous_day_counts_as_previous(self, memory_store):
        boundary = datetime(2026, 3, 3, 23, 59, 59, 999500, tzinfo=UTC)
        await memory_store.insert_fuel_transaction(_fuel("T1", NOW))
        await memory_store.insert_fuel_transaction(_fuel("Y1", boundary, gallons=50))

        metrics = await MetricsAggregator(memory_store, MetricsSettings(), clock=lambda: NOW).get_enterprise_metrics()

        assert metrics.fuel.total_gallons == 100
        assert metrics.trends.volume_change == 100.0

    @pytest.mark.asyncio
    async def test_zero_baseline_trends(self, memory_store):
        await memory_store.insert_fuel_transaction(_fuel("T1", NOW))
        metrics = await MetricsAggregator(memory_store, MetricsSettings(), clock=lambda: NOW).get_enterprise_metrics()
        assert metrics.trends.revenue_change == 0.0
        assert metrics.trends.volume_change == 0.0

    @pytest.mark.asyncio
    async def test_serializes(self, memory_store):
        metrics = await MetricsAggregator(memory_store, MetricsSettings(), clock=lambda: NOW).get_enterprise_metrics(
            Period.WEEKLY
        )
        data = metrics.to_dict()
        assert data["period"] == "weekly"
        assert set(data) == {"timestamp", "period", "fuel", "auto", "combined", "trends"}


class TestMetricsCache:
    @pytest.mark.asyncio
    async def test_hit_returns_same_object_without_queries(self, memory_store):
        aggregator = MetricsAggregator(memory_store, MetricsSettings(), clock=lambda: NOW)
        first = await aggregator.get_enterprise_metrics()
        queries = memory_store.query_count
        second = await aggregator.get_enterprise_metrics()
        assert second is first
        assert memory_store.query_count == queries

    @pytest.mark.asyncio
    async def test_daily_entry_expires_before_others(self, memory_store):
        clock = _Clock(NOW)
        aggregator = MetricsAggregator(memory_store, MetricsSettings(), clock=clock)
        daily = await aggregator.get_enterprise_metrics(Period.DAILY)
        weekly = await aggregator.get_enterprise_metrics(Period.WEEKLY)

        clock.now = NOW + timedelta(seconds=301)
        assert await aggregator.get_enterprise_metrics(Period.DAILY) is not daily
        assert await aggregator.get_enterprise_metrics(Period.WEEKLY) is weekly

        clock.now = NOW + timedelta(seconds=901)
        assert await aggregator.get_enterprise_metrics(Period.WEEKLY) is not weekly

    @pytest.mark.asyncio
    async def test_invalidate(self, memory_store):
        aggregator = MetricsAggregator(memory_store, MetricsSettings(), clock=lambda: NOW)
        first = await aggregator.get_enterprise_metrics()
        aggregator.invalidate(Period.DAILY)
        assert await aggregator.get_enterprise_metrics() is not first


class TestTrends:
    @pytest.mark.asyncio
    async def test_fuel_trends_by_day(self, memory_store):
        day1 = datetime(2026, 3, 2, 10, tzinfo=UTC)
        day2 = datetime(2026, 3, 3, 10, tzinfo=UTC)
        await memory_store.insert_fuel_transaction(_fuel("A", day1, price_per_gallon=3.0))
        await memory_store.insert_fuel_transaction(_fuel("B", day1, price_per_gallon=4.0))
        await memory_store.insert_fuel_transaction(_fuel("C", day2))
        await memory_store.insert_fuel_transaction(_fuel("D", day2, site_id="site-2"))
        await memory_store.insert_fuel_transaction(_fuel("E", NOW - timedelta(days=60)))

        points = await MetricsAggregator(memory_store, MetricsSettings(), clock=lambda: NOW).get_fuel_trends(
            "site-1", days=30
        )

        assert [p.to_dict()["date"] for p in points] == ["2026-03-02", "2026-03-03"]
        assert points[0].transaction_count == 2
        assert points[0].average_price == 3.5
        assert points[0].gallons == 200
        assert points[1].margin == 100

    @pytest.mark.asyncio
    async def test_auto_trends_average_ticket(self, memory_store):
        day = datetime(2026, 3, 2, 10, tzinfo=UTC)
        await memory_store.insert_work_order(_work_order("WO-1", day))
        await memory_store.insert_work_order(_work_order("WO-2", day, total_amount=100))

        (point,) = await MetricsAggregator(memory_store, MetricsSettings(), clock=lambda: NOW).get_auto_trends("shop-1")
        assert point.work_orders == 2
        assert point.revenue == 300
        assert point.average_ticket == 150
