"""Persistence for the endpoint catalog and canonical records."""

from petrowise_hub.config.models import StorageSettings
from petrowise_hub.store.base import InMemoryStore, RecordStore
from petrowise_hub.store.sqlite import SqliteStore


def create_store(settings: StorageSettings) -> RecordStore:
    """Build the backend named by ``storage.backend``."""
    if settings.backend == "memory":
        return InMemoryStore()
    if settings.backend == "sqlite":
        return SqliteStore(settings.db_path)
    raise ValueError(f"Unknown storage backend: {settings.backend!r}")


__all__ = ["InMemoryStore", "RecordStore", "SqliteStore", "create_store"]
