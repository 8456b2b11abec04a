"""
Storage context singleton.

Provides a process-wide access point for the local store, settings
registry, subscription hub and sync engine, with explicit initialize and
reset entry points.
"""

from __future__ import annotations

import logging

from .engine.outbox import OutboxConfig, RemoteOutbox
from .engine.sync_engine import SyncEngine
from .local.store import LocalStore, LocalStoreConfig
from .logging_utils import configure_structured_logging
from .settings import RemoteFactory, SettingsRegistry
from .subscriptions import SubscriptionHub

logger = logging.getLogger(__name__)

_NOT_INITIALIZED = (
    "StorageContext not initialized. Call 'await StorageContext.initialize()' first."
)


class StorageContext:
    """Owns one of each storage component for the running process.

    Usage:
        # Initialize once at startup
        ctx = await StorageContext.initialize()

        # Anywhere in the app
        engine = StorageContext.get().engine
        rooms = await engine.get_rooms()

        # Shutdown, or between tests
        await StorageContext.reset()
    """

    _instance: StorageContext | None = None

    def __init__(
        self,
        local: LocalStore,
        settings: SettingsRegistry,
        hub: SubscriptionHub,
        engine: SyncEngine,
    ) -> None:
        """Private constructor. Use initialize() instead."""
        self.local = local
        self.settings = settings
        self.hub = hub
        self.engine = engine

    @classmethod
    async def initialize(
        cls,
        local_config: LocalStoreConfig | None = None,
        remote_factory: RemoteFactory | None = None,
        outbox_config: OutboxConfig | None = None,
        structured_logging: bool = False,
    ) -> StorageContext:
        """Open the local store, resolve settings and start the sync engine.

        Calling it again returns the existing context.

        Args:
            local_config: Local database location. Defaults to environment config.
            remote_factory: Builds remote stores (for testing). Defaults to Cosmos DB.
            outbox_config: Retry settings. Defaults to environment config.
            structured_logging: Emit package logs as JSON lines on stdout.
        """
        if cls._instance is not None:
            return cls._instance

        if structured_logging:
            configure_structured_logging()

        local = await LocalStore.create(local_config)
        settings = SettingsRegistry(local, remote_factory)
        hub = SubscriptionHub()
        outbox = RemoteOutbox(
            local,
            lambda: settings.remote,
            outbox_config or OutboxConfig.from_env(),
            cloud_mode=lambda: settings.get_cached_settings().is_cloud,
        )
        engine = SyncEngine(local, settings, hub=hub, outbox=outbox)

        try:
            await engine.bootstrap()
        except BaseException:
            await engine.close()
            await local.close()
            raise

        cls._instance = cls(local, settings, hub, engine)
        logger.info("Storage context initialized")
        return cls._instance

    @classmethod
    def get(cls) -> StorageContext:
        """Get the current context.

        Raises:
            RuntimeError: If context not initialized
        """
        if cls._instance is None:
            raise RuntimeError(_NOT_INITIALIZED)
        return cls._instance

    @classmethod
    def is_initialized(cls) -> bool:
        return cls._instance is not None

    @classmethod
    async def reset(cls) -> None:
        """Stop the engine, close every store and forget the context."""
        instance = cls._instance
        cls._instance = None
        if instance is None:
            return

        await instance.engine.close()
        await instance.local.close()
        logger.info("Storage context reset")
