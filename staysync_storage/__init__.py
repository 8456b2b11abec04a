"""
StaySync Storage

Dual-mode persistence and sync engine for hotel operations data.

Provides:
- Offline-first local store (SQLite) for every domain collection
- Shared multi-tenant remote store (Azure Cosmos DB)
- Per-call routing between Local and Cloud data sources
- Durable outbox that retries failed remote writes
- Collection subscriptions with stale-result suppression
- Snapshot export/import for backups

Usage:

    >>> from staysync_storage import StorageContext
    >>> ctx = await StorageContext.initialize()
    >>> rooms = await ctx.engine.get_rooms()
    >>> result = await ctx.engine.save_rooms(rooms)
    >>> if result.warning:
    ...     print(result.warning)  # saved locally, cloud sync failed

Switching to Cloud:

    from staysync_storage import DataSource, RemoteConfig

    settings = await ctx.settings.get_settings()
    await ctx.settings.save_settings(
        settings.with_changes(
            data_source=DataSource.CLOUD,
            remote=RemoteConfig(endpoint=..., key=..., tenant_id="hotel-42"),
        )
    )
    await ctx.engine.sync_all_to_remote()

Subscriptions:

    unsubscribe = ctx.hub.subscribe("rooms", lambda coll, rooms: render(rooms))
"""

from .context import StorageContext
from .engine import (
    CLOUD_SYNC_WARNING,
    OutboxConfig,
    RemoteOutbox,
    SaveResult,
    SyncEngine,
)
from .exceptions import (
    DeliveryQueueError,
    InvalidFormatError,
    NotConnectedError,
    PermissionDeniedError,
    StorageConnectionError,
    StorageIOError,
    SyncStorageError,
    ValidationError,
)
from .local import LocalStore, LocalStoreConfig
from .logging_utils import (
    StorageLoggerAdapter,
    StructuredJsonFormatter,
    configure_structured_logging,
)
from .notifications import (
    EmailSender,
    HttpRelayEmailSender,
    LoggingEmailSender,
    MaintenanceNotifier,
)
from .remote import CosmosRemoteStore, RemoteConfig, RemoteStore
from .schema import ALL_COLLECTIONS, Collection, Record
from .settings import AppSettings, DataSource, SettingsRegistry, default_settings
from .snapshot import SNAPSHOT_VERSION, Snapshot
from .subscriptions import SubscriptionHub

__version__ = "0.1.0"

__all__ = [
    # Context
    "StorageContext",
    # Engine
    "SyncEngine",
    "SaveResult",
    "RemoteOutbox",
    "OutboxConfig",
    "CLOUD_SYNC_WARNING",
    # Collections
    "ALL_COLLECTIONS",
    "Collection",
    "Record",
    # Stores
    "LocalStore",
    "LocalStoreConfig",
    "RemoteStore",
    "RemoteConfig",
    "CosmosRemoteStore",
    # Settings
    "AppSettings",
    "DataSource",
    "SettingsRegistry",
    "default_settings",
    # Snapshots
    "Snapshot",
    "SNAPSHOT_VERSION",
    # Subscriptions
    "SubscriptionHub",
    # Email
    "EmailSender",
    "HttpRelayEmailSender",
    "LoggingEmailSender",
    "MaintenanceNotifier",
    # Logging
    "configure_structured_logging",
    "StorageLoggerAdapter",
    "StructuredJsonFormatter",
    # Exceptions
    "SyncStorageError",
    "NotConnectedError",
    "StorageConnectionError",
    "PermissionDeniedError",
    "InvalidFormatError",
    "DeliveryQueueError",
    "StorageIOError",
    "ValidationError",
]
