"""FastAPI application factory for PetroWise Hub."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from petrowise_hub.api.routes import aggregation, discovery, events, stream
from petrowise_hub.config.loader import load_config_or_default
from petrowise_hub.config.models import HubConfig
from petrowise_hub.context import HubContext

logger = logging.getLogger(__name__)


def create_app(config: Optional[HubConfig] = None, context: Optional[HubContext] = None) -> FastAPI:
    if context is None:
        context = HubContext.from_config(config or load_config_or_default())

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        await context.start()
        try:
            yield
        finally:
            await context.stop()

    app = FastAPI(
        title=context.config.hub.name,
        version=context.config.hub.version,
        description="API discovery and operational data aggregation",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.hub = context

    @app.get("/health", tags=["meta"])
    async def healthcheck() -> dict[str, str]:
        return {"status": "ok"}

    app.include_router(discovery.router, prefix="/api")
    app.include_router(aggregation.router, prefix="/api")
    app.include_router(events.router, prefix="/api")
    app.include_router(stream.router)

    return app


app = create_app()
