"""API key authentication dependency for FastAPI."""

from __future__ import annotations

from fastapi import HTTPException, Request


async def require_api_key(request: Request) -> None:
    """FastAPI dependency that checks the X-API-Key header on mutating routes.

    Auth is disabled when no key is configured.
    """
    config = request.app.state.hub.config
    if not config.auth.api_key:
        return
    key = request.headers.get("X-API-Key", "")
    if key != config.auth.api_key:
        raise HTTPException(status_code=401, detail="Invalid or missing API key")
