"""Periodic polling of registered endpoints into canonical storage."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Iterable
from datetime import UTC, datetime, timedelta
from typing import Any, Optional

import httpx

from petrowise_hub.aggregation.converters import to_fuel_transactions, to_inventory_snapshots, to_work_orders
from petrowise_hub.aggregation.models import FuelInventorySnapshot, PollOutcome
from petrowise_hub.config.models import PollingSettings
from petrowise_hub.events.emitter import EventEmitter, EventType, HubEvent
from petrowise_hub.store.base import RecordStore
from petrowise_hub.store.models import DataCategory, DiscoveredEndpoint, EndpointStatus

logger = logging.getLogger(__name__)


class EndpointHTTPError(Exception):
    """An endpoint answered with a non-2xx status."""

    def __init__(self, status_code: int, reason: str = "") -> None:
        self.status_code = status_code
        self.reason = reason
        super().__init__(f"HTTP {status_code}: {reason}" if reason else f"HTTP {status_code}")


def build_headers(endpoint: DiscoveredEndpoint) -> dict[str, str]:
    """Request headers for *endpoint*: API key, then bearer token, then custom headers."""
    headers = {"Accept": "application/json", "Content-Type": "application/json"}
    auth = endpoint.authentication_config
    if auth is None:
        return headers
    if auth.api_key_header and auth.api_key_value:
        headers[auth.api_key_header] = auth.api_key_value
    if auth.access_token:
        headers["Authorization"] = f"Bearer {auth.access_token}"
    headers.update(auth.custom_headers)
    return headers


class Poller:
    """Schedules one recurring tick per endpoint and records health after each.

    Every tick reloads the endpoint from the store so failure streaks and
    configuration changes are always current. A tick that finds the previous
    one for the same endpoint still running is skipped.
    """

    def __init__(
        self,
        store: RecordStore,
        emitter: EventEmitter,
        settings: PollingSettings,
        client_factory: Optional[Callable[[], httpx.AsyncClient]] = None,
    ) -> None:
        self._store = store
        self._emitter = emitter
        self._settings = settings
        self._client_factory = client_factory or (
            lambda: httpx.AsyncClient(timeout=settings.request_timeout, follow_redirects=True)
        )
        self._tasks: dict[str, asyncio.Task[None]] = {}
        self._in_flight: set[str] = set()
        self._inventory: dict[str, FuelInventorySnapshot] = {}

    # ─── scheduling ───

    def is_scheduled(self, endpoint_id: str) -> bool:
        return endpoint_id in self._tasks

    @property
    def scheduled_ids(self) -> list[str]:
        return list(self._tasks)

    def schedule(self, endpoint: DiscoveredEndpoint) -> bool:
        """Start polling *endpoint*. Returns False when it is ineligible or already polled."""
        interval = endpoint.poll_interval_seconds
        if not endpoint.polling_enabled or not interval or interval <= 0:
            return False
        if endpoint.id in self._tasks:
            return False
        self._tasks[endpoint.id] = asyncio.create_task(
            self._run(endpoint.id, interval), name=f"poll-{endpoint.id}"
        )
        logger.info("Started polling %s every %ds", endpoint.name, interval)
        return True

    def unschedule(self, endpoint_id: str) -> bool:
        task = self._tasks.pop(endpoint_id, None)
        if task is None:
            return False
        task.cancel()
        return True

    def start(self, endpoints: Iterable[DiscoveredEndpoint]) -> int:
        return sum(1 for ep in endpoints if self.schedule(ep))

    async def stop(self) -> None:
        """Cancel every timer; results of ticks still in flight are discarded."""
        tasks = list(self._tasks.values())
        self._tasks.clear()
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    async def _run(self, endpoint_id: str, interval: int) -> None:
        while True:
            await asyncio.sleep(interval)
            try:
                endpoint = await self._store.get_endpoint(endpoint_id)
            except Exception:
                logger.exception("Could not reload endpoint %s; retrying next tick", endpoint_id)
                continue
            if endpoint is None or endpoint.status == EndpointStatus.DEPRECATED:
                logger.info("Endpoint %s no longer pollable; stopping", endpoint_id)
                self._tasks.pop(endpoint_id, None)
                return
            try:
                await self.poll(endpoint)
            except Exception:
                logger.exception("Poll tick for %s failed", endpoint_id)

    # ─── inventory ───

    def get_inventory(self, site_id: str) -> Optional[FuelInventorySnapshot]:
        return self._inventory.get(site_id)

    # ─── one tick ───

    async def poll(self, endpoint: DiscoveredEndpoint) -> PollOutcome:
        """Run a single tick for *endpoint*: fetch, record health, process data."""
        if endpoint.id in self._in_flight:
            logger.warning("Poll overrun for %s; skipping tick", endpoint.name)
            return PollOutcome(endpoint_id=endpoint.id, success=False, skipped=True)

        self._in_flight.add(endpoint.id)
        try:
            return await self._poll(endpoint)
        finally:
            self._in_flight.discard(endpoint.id)

    async def _poll(self, endpoint: DiscoveredEndpoint) -> PollOutcome:
        started = time.perf_counter()
        try:
            payload, status_code = await self._fetch(endpoint)
        except Exception as exc:
            error = str(exc) or type(exc).__name__
            await self._record_failure(endpoint, error)
            return PollOutcome(
                endpoint_id=endpoint.id,
                success=False,
                status_code=exc.status_code if isinstance(exc, EndpointHTTPError) else None,
                error=error,
            )

        elapsed_ms = (time.perf_counter() - started) * 1000
        endpoint = await self._record_success(endpoint, elapsed_ms)
        outcome = PollOutcome(
            endpoint_id=endpoint.id,
            success=True,
            status_code=status_code,
            response_time_ms=elapsed_ms,
        )
        try:
            await self._process(endpoint, payload, outcome)
        except Exception as exc:
            logger.exception("Processing data from %s failed", endpoint.name)
            outcome.error = str(exc) or type(exc).__name__
        if outcome.records_processed:
            endpoint.total_records_processed += outcome.records_processed
            await self._store.save_endpoint(endpoint)
        return outcome

    async def _fetch(self, endpoint: DiscoveredEndpoint) -> tuple[Any, int]:
        async with self._client_factory() as client:
            resp = await client.request(
                endpoint.http_method or "GET",
                endpoint.full_url,
                headers=build_headers(endpoint),
            )
            if not resp.is_success:
                raise EndpointHTTPError(resp.status_code, resp.reason_phrase)
            return resp.json(), resp.status_code

    # ─── health bookkeeping ───

    async def _current(self, endpoint: DiscoveredEndpoint) -> DiscoveredEndpoint:
        return await self._store.get_endpoint(endpoint.id) or endpoint

    async def _record_success(self, endpoint: DiscoveredEndpoint, elapsed_ms: float) -> DiscoveredEndpoint:
        endpoint = await self._current(endpoint)
        now = datetime.now(UTC)
        previous = endpoint.status

        endpoint.status = EndpointStatus.ACTIVE
        endpoint.consecutive_failures = 0
        endpoint.last_error_message = None
        endpoint.last_health_check = now
        endpoint.last_successful_call = now
        endpoint.last_polled_at = now
        endpoint.last_response_time_ms = elapsed_ms
        endpoint.total_requests += 1
        endpoint.successful_requests += 1
        prior_avg = endpoint.average_response_time_ms or 0.0
        endpoint.average_response_time_ms = (
            prior_avg + (elapsed_ms - prior_avg) / endpoint.successful_requests
        )
        self._touch_schedule(endpoint, now)
        await self._store.save_endpoint(endpoint)

        if previous != EndpointStatus.ACTIVE:
            await self._emit_status(endpoint, previous)
        return endpoint

    async def _record_failure(self, endpoint: DiscoveredEndpoint, error: str) -> DiscoveredEndpoint:
        endpoint = await self._current(endpoint)
        now = datetime.now(UTC)
        previous = endpoint.status

        endpoint.consecutive_failures += 1
        endpoint.status = (
            EndpointStatus.ERROR
            if endpoint.consecutive_failures >= self._settings.error_threshold
            else EndpointStatus.DEGRADED
        )
        endpoint.last_error_message = error
        endpoint.last_health_check = now
        endpoint.last_polled_at = now
        endpoint.total_requests += 1
        endpoint.failed_requests += 1
        self._touch_schedule(endpoint, now)
        await self._store.save_endpoint(endpoint)

        logger.warning(
            "Poll of %s failed (%d in a row): %s", endpoint.name, endpoint.consecutive_failures, error
        )
        await self._emit_status(endpoint, previous, error=error)
        return endpoint

    def _touch_schedule(self, endpoint: DiscoveredEndpoint, now: datetime) -> None:
        endpoint.uptime_percentage = endpoint.successful_requests / endpoint.total_requests * 100
        if endpoint.poll_interval_seconds:
            endpoint.next_poll_at = now + timedelta(seconds=endpoint.poll_interval_seconds)

    async def _emit_status(
        self, endpoint: DiscoveredEndpoint, previous: EndpointStatus, error: Optional[str] = None
    ) -> None:
        data: dict[str, Any] = {
            "endpoint_id": endpoint.id,
            "name": endpoint.name,
            "status": endpoint.status.value,
            "previous_status": previous.value,
            "consecutive_failures": endpoint.consecutive_failures,
        }
        if error is not None:
            data["error"] = error
        await self._emitter.emit(HubEvent(type=EventType.ENDPOINT_STATUS, site_id=endpoint.site_id, data=data))

    # ─── data processing ───

    async def _process(self, endpoint: DiscoveredEndpoint, payload: Any, outcome: PollOutcome) -> None:
        if endpoint.data_category == DataCategory.FUEL_TRANSACTIONS:
            await self._process_fuel(endpoint, payload, outcome)
        elif endpoint.data_category == DataCategory.AUTO_WORK_ORDERS:
            await self._process_work_orders(endpoint, payload, outcome)
        elif endpoint.data_category == DataCategory.FUEL_INVENTORY:
            for snapshot in to_inventory_snapshots(endpoint, payload):
                self._inventory[snapshot.site_id] = snapshot
                outcome.records_processed += 1
        else:
            logger.info("Unhandled data category %s from %s", endpoint.data_category.value, endpoint.name)

    async def _process_fuel(self, endpoint: DiscoveredEndpoint, payload: Any, outcome: PollOutcome) -> None:
        for tx in to_fuel_transactions(endpoint, payload):
            outcome.records_processed += 1
            if await self._store.find_fuel_transaction(tx.transaction_id) is not None:
                continue
            try:
                await self._store.insert_fuel_transaction(tx)
            except ValueError:
                # Lost a race with a concurrent insert of the same id
                continue
            outcome.records_created += 1
            await self._emitter.emit(
                HubEvent(type=EventType.FUEL_TRANSACTION, site_id=tx.site_id, data=tx.to_dict())
            )

    async def _process_work_orders(
        self, endpoint: DiscoveredEndpoint, payload: Any, outcome: PollOutcome
    ) -> None:
        for wo in to_work_orders(endpoint, payload):
            outcome.records_processed += 1
            existing = await self._store.find_work_order(wo.work_order_number)
            if existing is not None:
                wo.id = existing.id
                wo.created_at = existing.created_at
                await self._store.update_work_order(existing.id, wo)
                outcome.records_updated += 1
            else:
                await self._store.insert_work_order(wo)
                outcome.records_created += 1
            await self._emitter.emit(
                HubEvent(type=EventType.AUTO_WORK_ORDER, site_id=wo.shop_id, data=wo.to_dict())
            )
