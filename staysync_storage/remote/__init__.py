"""
Remote store backends.

The remote store holds each hotel's collections in a shared, multi-tenant
document database. Only Azure Cosmos DB is implemented.

Example:
    >>> from staysync_storage.remote import CosmosRemoteStore, RemoteConfig
    >>> config = RemoteConfig(
    ...     endpoint="https://example.documents.azure.com:443/",
    ...     key="...",
    ...     tenant_id="hotel-42",
    ... )
    >>> store = CosmosRemoteStore(config)
    >>> await store.connect()
"""

from .base import AUTH_DEFAULT_CREDENTIAL, AUTH_KEY, RemoteConfig, RemoteStore
from .cosmos import CosmosRemoteStore

__all__ = [
    "AUTH_DEFAULT_CREDENTIAL",
    "AUTH_KEY",
    "RemoteConfig",
    "RemoteStore",
    "CosmosRemoteStore",
]
