"""Storage layer - Entity types, keys and store backends."""

from protocol_metrics.storage.database import (
    DatabaseManager,
    create_sync_engine,
    create_sync_session_factory,
    init_db,
)
from protocol_metrics.storage.models import Base, EntityRecordModel
from protocol_metrics.storage.repos import SqlEntityStore
from protocol_metrics.storage.store import (
    EntityStore,
    EntityStoreError,
    InMemoryEntityStore,
    UnitOfWorkStore,
)

__all__ = [
    "Base",
    "DatabaseManager",
    "EntityRecordModel",
    "EntityStore",
    "EntityStoreError",
    "InMemoryEntityStore",
    "SqlEntityStore",
    "UnitOfWorkStore",
    "create_sync_engine",
    "create_sync_session_factory",
    "init_db",
]
