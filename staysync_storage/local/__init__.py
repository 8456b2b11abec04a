"""
Local store.

SQLite-backed, per-collection keyed storage that works without network
connectivity. It mirrors the last known good state of every collection
regardless of the active data source.
"""

from .store import LocalStore, LocalStoreConfig, LocalTransaction

__all__ = [
    "LocalStore",
    "LocalStoreConfig",
    "LocalTransaction",
]
