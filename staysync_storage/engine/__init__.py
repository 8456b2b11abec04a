"""
Sync engine.

Routes collection loads and saves between the local and remote stores and
keeps failed remote writes in a durable outbox until they succeed.
"""

from .outbox import OutboxConfig, RemoteOutbox
from .routing import (
    CLOUD_SYNC_WARNING,
    CloudRouting,
    LoadResult,
    LocalRouting,
    RoutingStrategy,
    SaveResult,
)
from .sync_engine import SyncEngine, validate_records

__all__ = [
    "CLOUD_SYNC_WARNING",
    "CloudRouting",
    "LoadResult",
    "LocalRouting",
    "OutboxConfig",
    "RemoteOutbox",
    "RoutingStrategy",
    "SaveResult",
    "SyncEngine",
    "validate_records",
]
