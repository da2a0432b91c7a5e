"""Wiring of the hub's long-lived components."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Optional

import httpx

from petrowise_hub.aggregation.metrics import MetricsAggregator
from petrowise_hub.aggregation.poller import Poller
from petrowise_hub.aggregation.service import AggregationService
from petrowise_hub.config.models import HubConfig
from petrowise_hub.discovery.orchestrator import DiscoveryOrchestrator
from petrowise_hub.events.emitter import EventEmitter
from petrowise_hub.events.log import EventLog
from petrowise_hub.realtime.broadcaster import Broadcaster
from petrowise_hub.store import RecordStore, create_store

logger = logging.getLogger(__name__)


@dataclass
class HubContext:
    """Every component built once per process and shared by the API and CLI."""

    config: HubConfig
    store: RecordStore
    emitter: EventEmitter
    event_log: EventLog
    orchestrator: DiscoveryOrchestrator
    aggregation: AggregationService
    broadcaster: Broadcaster

    @classmethod
    def from_config(
        cls,
        config: HubConfig,
        store: Optional[RecordStore] = None,
        client_factory: Optional[Callable[[], httpx.AsyncClient]] = None,
    ) -> HubContext:
        store = store if store is not None else create_store(config.storage)
        emitter = EventEmitter()
        event_log = EventLog(config.event_log_size)
        metrics = MetricsAggregator(store, config.metrics)
        poller = Poller(store, emitter, config.polling, client_factory=client_factory)
        broadcaster = Broadcaster(config.realtime, metrics_provider=metrics.get_enterprise_metrics)
        emitter.add_listener(event_log)
        emitter.add_listener(broadcaster)
        return cls(
            config=config,
            store=store,
            emitter=emitter,
            event_log=event_log,
            orchestrator=DiscoveryOrchestrator(config, client_factory=client_factory),
            aggregation=AggregationService(store, poller, metrics),
            broadcaster=broadcaster,
        )

    async def start(self) -> None:
        scheduled = await self.aggregation.initialize()
        self.broadcaster.start()
        logger.info("%s started; polling %d endpoints", self.config.hub.name, scheduled)

    async def stop(self) -> None:
        await self.aggregation.shutdown()
        await self.broadcaster.stop()
        await self.store.close()
        logger.info("%s stopped", self.config.hub.name)
