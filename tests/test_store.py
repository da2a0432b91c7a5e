"""Tests for the in-memory and SQLite record stores."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from petrowise_hub.config.models import StorageSettings
from petrowise_hub.store import InMemoryStore, SqliteStore, create_store
from petrowise_hub.store.models import (
    AuthenticationConfig,
    EndpointStatus,
    FuelTransaction,
    TransactionType,
    WorkOrder,
    WorkOrderStatus,
)

DAY = datetime(2026, 3, 2, 10, 0, tzinfo=UTC)


@pytest.fixture(params=["memory", "sqlite"])
def store(request, tmp_path: Path):
    if request.param == "memory":
        return InMemoryStore()
    return SqliteStore(str(tmp_path / "hub.db"))


def _fuel(tx_id: str, when: datetime = DAY, **overrides) -> FuelTransaction:
    fields = {
        "site_id": "site-1",
        "transaction_id": tx_id,
        "transaction_date": when,
        "source_system": "JRD Fuel",
        "gallons": 10.0,
        "price_per_gallon": 3.0,
        "total_amount": 30.0,
        "total_cost": 25.0,
        "gross_margin": 5.0,
        "raw_data": {"transactionId": tx_id},
    }
    fields.update(overrides)
    return FuelTransaction(**fields)


def _work_order(number: str, when: datetime = DAY, **overrides) -> WorkOrder:
    fields = {
        "shop_id": "shop-1",
        "work_order_number": number,
        "service_date": when,
        "source_system": "JRD Auto",
        "status": WorkOrderStatus.COMPLETED,
        "total_amount": 200.0,
        "gross_profit": 60.0,
    }
    fields.update(overrides)
    return WorkOrder(**fields)


class TestCreateStore:
    def test_backends(self, tmp_path: Path):
        assert isinstance(create_store(StorageSettings(backend="memory")), InMemoryStore)
        sqlite = create_store(StorageSettings(backend="sqlite", db_path=str(tmp_path / "x.db")))
        assert isinstance(sqlite, SqliteStore)

    def test_unknown_backend(self):
        with pytest.raises(ValueError, match="Unknown storage backend"):
            create_store(StorageSettings(backend="postgres"))


# ─── Endpoints ───


class TestEndpoints:
    @pytest.mark.asyncio
    async def test_round_trip(self, store, make_endpoint):
        endpoint = make_endpoint(authentication_config=AuthenticationConfig(access_token="tok"))
        await store.save_endpoint(endpoint)
        loaded = await store.get_endpoint(endpoint.id)
        assert loaded.model_dump() == endpoint.model_dump()
        assert await store.get_endpoint("missing") is None

    @pytest.mark.asyncio
    async def test_save_overwrites(self, store, make_endpoint):
        endpoint = make_endpoint()
        await store.save_endpoint(endpoint)
        endpoint.status = EndpointStatus.ERROR
        endpoint.consecutive_failures = 3
        await store.save_endpoint(endpoint)
        loaded = await store.get_endpoint(endpoint.id)
        assert loaded.status == EndpointStatus.ERROR
        assert loaded.consecutive_failures == 3
        assert len(await store.list_endpoints()) == 1

    @pytest.mark.asyncio
    async def test_list_by_status(self, store, make_endpoint):
        await store.save_endpoint(make_endpoint(name="a", status=EndpointStatus.ACTIVE))
        await store.save_endpoint(make_endpoint(name="b", status=EndpointStatus.VALIDATED))
        await store.save_endpoint(make_endpoint(name="c", status=EndpointStatus.DEPRECATED))

        names = {ep.name for ep in await store.list_endpoints([EndpointStatus.ACTIVE, EndpointStatus.VALIDATED])}
        assert names == {"a", "b"}
        assert await store.list_endpoints([]) == []


# ─── Fuel transactions ───


class TestFuelTransactions:
    @pytest.mark.asyncio
    async def test_insert_and_find(self, store):
        await store.insert_fuel_transaction(_fuel("T1"))
        found = await store.find_fuel_transaction("T1")
        assert found.gallons == 10.0
        assert found.transaction_date == DAY
        assert found.raw_data == {"transactionId": "T1"}
        assert await store.find_fuel_transaction("T2") is None

    @pytest.mark.asyncio
    async def test_duplicate_id_rejected(self, store):
        await store.insert_fuel_transaction(_fuel("T1"))
        with pytest.raises(ValueError, match="Duplicate"):
            await store.insert_fuel_transaction(_fuel("T1"))

    @pytest.mark.asyncio
    async def test_list_filters_range_and_type(self, store):
        await store.insert_fuel_transaction(_fuel("IN", DAY))
        await store.insert_fuel_transaction(_fuel("EDGE", DAY + timedelta(hours=2)))
        await store.insert_fuel_transaction(_fuel("OUT", DAY + timedelta(days=1)))
        await store.insert_fuel_transaction(_fuel("DEL", DAY, transaction_type=TransactionType.DELIVERY))

        found = await store.list_fuel_transactions(DAY, DAY + timedelta(hours=2), [TransactionType.SALE])
        assert {tx.transaction_id for tx in found} == {"IN", "EDGE"}

    @pytest.mark.asyncio
    async def test_daily_totals(self, store):
        await store.insert_fuel_transaction(_fuel("A", DAY, price_per_gallon=3.0))
        await store.insert_fuel_transaction(_fuel("B", DAY + timedelta(hours=1), price_per_gallon=4.0))
        await store.insert_fuel_transaction(_fuel("C", DAY + timedelta(days=1)))
        await store.insert_fuel_transaction(_fuel("D", DAY, site_id="site-2"))
        await store.insert_fuel_transaction(_fuel("E", DAY, transaction_type=TransactionType.DELIVERY))

        totals = await store.fuel_daily_totals("site-1", DAY - timedelta(days=1))
        assert [t.date for t in totals] == [datetime(2026, 3, 2, tzinfo=UTC), datetime(2026, 3, 3, tzinfo=UTC)]
        assert totals[0].transaction_count == 2
        assert totals[0].gallons == 20.0
        assert totals[0].margin == 10.0
        assert totals[0].average_price == 3.5


# ─── Work orders ───


class TestWorkOrders:
    @pytest.mark.asyncio
    async def test_update_keeps_identity(self, store):
        original = _work_order("WO-1")
        await store.insert_work_order(original)

        changed = _work_order("WO-1", status=WorkOrderStatus.PAID, total_amount=250.0)
        await store.update_work_order(original.id, changed)

        loaded = await store.find_work_order("WO-1")
        assert loaded.id == original.id
        assert loaded.status == WorkOrderStatus.PAID
        assert loaded.total_amount == 250.0

    @pytest.mark.asyncio
    async def test_update_unknown_raises(self, store):
        with pytest.raises(KeyError):
            await store.update_work_order("nope", _work_order("WO-9"))

    @pytest.mark.asyncio
    async def test_duplicate_number_rejected(self, store):
        await store.insert_work_order(_work_order("WO-1"))
        with pytest.raises(ValueError, match="Duplicate"):
            await store.insert_work_order(_work_order("WO-1"))

    @pytest.mark.asyncio
    async def test_list_by_status(self, store):
        await store.insert_work_order(_work_order("WO-1"))
        await store.insert_work_order(_work_order("WO-2", status=WorkOrderStatus.ESTIMATE))
        found = await store.list_work_orders(DAY, DAY, [WorkOrderStatus.COMPLETED])
        assert [wo.work_order_number for wo in found] == ["WO-1"]

    @pytest.mark.asyncio
    async def test_daily_totals(self, store):
        await store.insert_work_order(_work_order("WO-1", labor_hours=1.5, labor_total=90.0))
        await store.insert_work_order(_work_order("WO-2", labor_hours=0.5, labor_total=30.0))
        await store.insert_work_order(_work_order("WO-3", shop_id="shop-2"))

        (day,) = await store.auto_daily_totals("shop-1", DAY - timedelta(days=1))
        assert day.work_orders == 2
        assert day.revenue == 400.0
        assert day.labor_revenue == 120.0
        assert day.labor_hours == 2.0
        assert day.profit == 120.0


class TestSqlitePersistence:
    @pytest.mark.asyncio
    async def test_survives_new_instance(self, tmp_path: Path, make_endpoint):
        db_path = str(tmp_path / "hub.db")
        endpoint = make_endpoint()
        await SqliteStore(db_path).save_endpoint(endpoint)
        await SqliteStore(db_path).insert_fuel_transaction(_fuel("T1"))

        reopened = SqliteStore(db_path)
        assert (await reopened.get_endpoint(endpoint.id)).name == endpoint.name
        assert await reopened.find_fuel_transaction("T1") is not None
