"""
Settings registry.

Holds the singleton application settings record (hotel identity, active
data source, demo flag, remote connection parameters, contact routing) and
the process-wide remote store handle derived from it.
"""

from __future__ import annotations

import asyncio
import logging
import os
import time
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any

from .exceptions import SyncStorageError
from .local.store import LocalStore
from .remote.base import RemoteConfig, RemoteStore
from .remote.cosmos import CosmosRemoteStore

logger = logging.getLogger(__name__)

RemoteFactory = Callable[[RemoteConfig], RemoteStore]

# Seconds between connection attempts for an unreachable remote
RECONNECT_INTERVAL = 30.0


class DataSource(Enum):
    """Where collection reads and writes are routed."""

    LOCAL = "Local"
    CLOUD = "Cloud"


@dataclass
class AppSettings:
    """The singleton settings record.

    Serialized with camelCase keys, matching the snapshot format.
    """

    hotel_name: str = "StaySync Hotel"
    data_source: DataSource = DataSource.LOCAL
    demo_mode: bool = True
    maintenance_email: str | None = None
    manager_email: str | None = None
    recaptcha_site_key: str | None = None
    api_base_url: str | None = None
    api_key: str | None = None
    remote: RemoteConfig | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def is_cloud(self) -> bool:
        return self.data_source == DataSource.CLOUD

    @property
    def remote_ready(self) -> bool:
        """Cloud mode with connection parameters that can be tried."""
        return self.is_cloud and self.remote is not None and self.remote.is_valid

    def with_changes(self, **changes: Any) -> AppSettings:
        return replace(self, **changes)

    def to_dict(self, redact: bool = False) -> dict[str, Any]:
        """Convert to a JSON-compatible dict.

        Args:
            redact: Drop secrets (remote key, relay API key), for exports.
        """
        return {
            **self.extra,
            "hotelName": self.hotel_name,
            "dataSource": self.data_source.value,
            "demoMode": self.demo_mode,
            "maintenanceEmail": self.maintenance_email,
            "managerEmail": self.manager_email,
            "recaptchaSiteKey": self.recaptcha_site_key,
            "apiBaseUrl": self.api_base_url,
            "apiKey": None if redact else self.api_key,
            "remote": self.remote.to_dict(redact=redact) if self.remote else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AppSettings:
        known = {
            "hotelName", "dataSource", "demoMode", "maintenanceEmail", "managerEmail",
            "recaptchaSiteKey", "apiBaseUrl", "apiKey", "remote",
        }
        remote = data.get("remote")
        return cls(
            hotel_name=data.get("hotelName", "StaySync Hotel"),
            data_source=DataSource(data.get("dataSource", DataSource.LOCAL.value)),
            demo_mode=bool(data.get("demoMode", True)),
            maintenance_email=data.get("maintenanceEmail"),
            manager_email=data.get("managerEmail"),
            recaptcha_site_key=data.get("recaptchaSiteKey"),
            api_base_url=data.get("apiBaseUrl"),
            api_key=data.get("apiKey"),
            remote=RemoteConfig.from_dict(remote) if remote else None,
            extra={k: v for k, v in data.items() if k not in known},
        )


def default_settings() -> AppSettings:
    """Compute the settings used before any have been saved.

    Reads process configuration once per call. Remote parameters switch the
    default to Cloud with demo mode off; without them the default is Local
    with demo mode on.
    """
    remote = RemoteConfig.from_env()
    has_remote = remote is not None
    return AppSettings(
        hotel_name=os.environ.get("STAYSYNC_HOTEL_NAME", "StaySync Hotel"),
        data_source=DataSource.CLOUD if has_remote else DataSource.LOCAL,
        demo_mode=not has_remote,
        maintenance_email=os.environ.get("STAYSYNC_MAINTENANCE_EMAIL"),
        manager_email=os.environ.get("STAYSYNC_MANAGER_EMAIL"),
        recaptcha_site_key=os.environ.get("STAYSYNC_RECAPTCHA_SITE_KEY"),
        api_base_url=os.environ.get("STAYSYNC_API_BASE_URL"),
        api_key=os.environ.get("STAYSYNC_API_KEY"),
        remote=remote,
    )


class SettingsRegistry:
    """Authoritative access to the settings record and the remote handle.

    The remote handle is created at most once per ``RemoteConfig`` value:
    calling ``ensure_remote`` again with equal parameters reuses the
    existing handle instead of reconnecting.
    """

    def __init__(
        self,
        local: LocalStore,
        remote_factory: RemoteFactory | None = None,
    ) -> None:
        self.local = local
        self._remote_factory: RemoteFactory = remote_factory or CosmosRemoteStore
        self._cached: AppSettings | None = None
        self._remote: RemoteStore | None = None
        self._remote_lock = asyncio.Lock()
        self._last_connect_attempt = 0.0

    @property
    def remote(self) -> RemoteStore | None:
        """The current remote handle, if one has been created."""
        return self._remote

    def get_cached_settings(self) -> AppSettings:
        """Best-effort synchronous access; never touches storage."""
        if self._cached is None:
            return default_settings()
        return self._cached

    async def get_settings(self) -> AppSettings:
        """Read the persisted settings, falling back to the computed default.

        Never raises. In Cloud mode the remote handle is (re)initialized.
        """
        settings: AppSettings | None = None
        try:
            record = await self.local.get_settings_record()
            if record is not None:
                settings = AppSettings.from_dict(record)
        except (SyncStorageError, ValueError, TypeError, KeyError) as e:
            logger.warning(f"Failed to read settings, using defaults: {e}")

        if settings is None:
            settings = default_settings()

        self._cached = settings
        if settings.remote_ready:
            await self._ensure_remote_quietly(settings.remote)  # type: ignore[arg-type]
        return settings

    async def save_settings(self, settings: AppSettings) -> None:
        """Persist the full settings record, replacing the previous one.

        Persistence failures propagate. In Cloud mode the remote handle is
        (re)initialized; connection failures are logged, not raised.
        """
        await self.local.put_settings_record(settings.to_dict())
        self._cached = settings
        logger.info(
            f"Settings saved: data_source={settings.data_source.value}, "
            f"demo_mode={settings.demo_mode}"
        )

        if settings.remote_ready:
            # New parameters deserve an immediate attempt
            self._last_connect_attempt = 0.0
            await self._ensure_remote_quietly(settings.remote)  # type: ignore[arg-type]

    async def reset_settings(self) -> AppSettings:
        """Replace the persisted record with the computed default."""
        settings = default_settings()
        await self.save_settings(settings)
        return settings

    async def ensure_remote(self, config: RemoteConfig) -> RemoteStore:
        """Return a connected remote handle for ``config``.

        Equal parameters reuse the existing handle. Different parameters
        close the old handle and create a new one.

        Raises:
            PermissionDeniedError: If the credentials are rejected
            StorageConnectionError: If the store cannot be reached
        """
        async with self._remote_lock:
            if self._remote is not None and self._remote.config != config:
                logger.info("Remote parameters changed, replacing remote client")
                await self._remote.close()
                self._remote = None

            if self._remote is None:
                self._remote = self._remote_factory(config)

            if not self._remote.is_connected:
                self._last_connect_attempt = time.monotonic()
                await self._remote.connect()

            return self._remote

    async def test_connection(self, config: RemoteConfig) -> bool:
        """Connect a throwaway client with ``config``. Never raises.

        The live remote handle is left untouched.
        """
        if not config.is_valid:
            return False

        candidate = self._remote_factory(config)
        try:
            await candidate.connect()
            return True
        except SyncStorageError as e:
            logger.info(f"Connection test failed for {config.endpoint}: {e}")
            return False
        finally:
            await candidate.close()

    async def close(self) -> None:
        """Close the remote handle."""
        async with self._remote_lock:
            if self._remote is not None:
                await self._remote.close()
                self._remote = None

    async def _ensure_remote_quietly(self, config: RemoteConfig) -> None:
        remote = self._remote
        if remote is not None and remote.config == config and remote.is_connected:
            return
        if (
            remote is not None
            and remote.config == config
            and time.monotonic() - self._last_connect_attempt < RECONNECT_INTERVAL
        ):
            return

        try:
            await self.ensure_remote(config)
        except SyncStorageError as e:
            logger.warning(f"Remote store unavailable, cloud operations will fail: {e}")
