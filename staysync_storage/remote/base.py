"""
Abstract remote store interface.

Defines the contract every remote (cloud) backend implements, and the
connection parameters used to build one.
"""

from __future__ import annotations

import os
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass
from typing import Any

from ..schema import Collection, Record

AUTH_KEY = "key"
AUTH_DEFAULT_CREDENTIAL = "default_credential"

DEFAULT_TIMEOUT_SECONDS = 15.0


@dataclass(frozen=True)
class RemoteConfig:
    """Connection parameters for the remote document store.

    Frozen so that two configs with the same values compare equal; the
    settings registry relies on this to avoid reconnecting when nothing
    changed.

    Environment Variables:
        STAYSYNC_COSMOS_ENDPOINT: Cosmos DB endpoint URL
        STAYSYNC_COSMOS_KEY: Cosmos DB key (if using key auth)
        STAYSYNC_COSMOS_DATABASE: Database name (default: staysync-db)
        STAYSYNC_COSMOS_CONTAINER: Container name (default: hotel_data)
        STAYSYNC_COSMOS_AUTH_METHOD: key | default_credential (default: key
            when a key is set, otherwise default_credential)
        STAYSYNC_TENANT_ID: Hotel tenant ID (default: default)
        STAYSYNC_REMOTE_TIMEOUT: Per-call timeout in seconds (default: 15)
    """

    endpoint: str
    database: str = "staysync-db"
    container: str = "hotel_data"
    tenant_id: str = "default"
    auth_method: str = AUTH_KEY
    key: str | None = None
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS

    @property
    def is_valid(self) -> bool:
        """True when the parameters are complete enough to attempt a connection."""
        if not self.endpoint.strip():
            return False
        if self.auth_method == AUTH_KEY and not self.key:
            return False
        return self.auth_method in (AUTH_KEY, AUTH_DEFAULT_CREDENTIAL)

    @classmethod
    def from_env(cls) -> RemoteConfig | None:
        """Create config from environment variables.

        Returns None when no endpoint is configured.
        """
        endpoint = os.environ.get("STAYSYNC_COSMOS_ENDPOINT", "").strip()
        if not endpoint:
            return None

        key = os.environ.get("STAYSYNC_COSMOS_KEY") or None
        default_auth = AUTH_KEY if key else AUTH_DEFAULT_CREDENTIAL
        return cls(
            endpoint=endpoint,
            database=os.environ.get("STAYSYNC_COSMOS_DATABASE", "staysync-db"),
            container=os.environ.get("STAYSYNC_COSMOS_CONTAINER", "hotel_data"),
            tenant_id=os.environ.get("STAYSYNC_TENANT_ID", "default"),
            auth_method=os.environ.get("STAYSYNC_COSMOS_AUTH_METHOD", default_auth).lower(),
            key=key,
            timeout_seconds=float(
                os.environ.get("STAYSYNC_REMOTE_TIMEOUT", str(DEFAULT_TIMEOUT_SECONDS))
            ),
        )

    def to_dict(self, redact: bool = False) -> dict[str, Any]:
        data = asdict(self)
        if redact and data.get("key"):
            data["key"] = None
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RemoteConfig:
        return cls(
            endpoint=data.get("endpoint", ""),
            database=data.get("database", "staysync-db"),
            container=data.get("container", "hotel_data"),
            tenant_id=data.get("tenant_id", "default"),
            auth_method=data.get("auth_method", AUTH_KEY),
            key=data.get("key"),
            timeout_seconds=float(data.get("timeout_seconds", DEFAULT_TIMEOUT_SECONDS)),
        )


class RemoteStore(ABC):
    """Abstract interface for a multi-tenant remote collection store.

    Implementations never decide routing; they read and write whole
    collections for one tenant.
    """

    config: RemoteConfig

    @property
    @abstractmethod
    def is_connected(self) -> bool:
        """True once ``connect`` has succeeded and until ``close``."""
        ...

    @abstractmethod
    async def connect(self) -> None:
        """Establish the client connection.

        Raises:
            PermissionDeniedError: If the credentials are rejected
            StorageConnectionError: On any other failure or timeout
        """
        ...

    @abstractmethod
    async def fetch_collection(self, collection: Collection) -> list[Record]:
        """Read the full contents of a collection.

        Raises:
            NotConnectedError: If ``connect`` has not succeeded
            PermissionDeniedError: If read rights are absent
            StorageConnectionError: On transport failure or timeout
        """
        ...

    @abstractmethod
    async def bulk_write(self, collection: Collection, items: list[Record]) -> None:
        """Replace the full contents of a collection, all or nothing.

        Raises:
            NotConnectedError: If ``connect`` has not succeeded
            PermissionDeniedError: If write rights are absent
            StorageConnectionError: On transport failure or timeout
        """
        ...

    @abstractmethod
    async def close(self) -> None:
        """Close the connection and release resources."""
        ...
