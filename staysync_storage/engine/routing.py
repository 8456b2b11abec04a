"""
Routing strategies.

The engine picks one strategy per call from the active data source. Each
strategy implements the same load/save capability set, so no operation
branches on the mode inline.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass

from ..exceptions import (
    NotConnectedError,
    PermissionDeniedError,
    StorageConnectionError,
    SyncStorageError,
)
from ..local.store import LocalStore
from ..logging_utils import StorageLoggerAdapter
from ..remote.base import RemoteStore
from ..schema import Collection, Record
from ..settings import DataSource
from .outbox import RemoteOutbox

logger = logging.getLogger(__name__)

CLOUD_SYNC_WARNING = "saved locally, cloud sync failed"


@dataclass
class LoadResult:
    """Outcome of a single load."""

    collection: Collection
    items: list[Record]
    source: DataSource
    seeded: bool = False
    error: SyncStorageError | None = None


@dataclass
class SaveResult:
    """Outcome of a single save.

    ``remote_synced`` is None when the save never targeted the remote store.
    """

    collection: Collection
    count: int
    source: DataSource
    remote_synced: bool | None = None
    warning: str | None = None
    error: SyncStorageError | None = None

    @property
    def ok(self) -> bool:
        return self.warning is None


async def replace_local(local: LocalStore, collection: Collection, items: list[Record]) -> None:
    """Full local replace in a single-collection transaction."""
    async with local.transaction([collection]) as tx:
        await tx.replace(collection, items)


class RoutingStrategy(ABC):
    """Where reads and writes for every collection go under one mode."""

    source: DataSource

    def __init__(self, local: LocalStore) -> None:
        self.local = local
        self._log = StorageLoggerAdapter(logger, {"data_source": self.source.value})

    @abstractmethod
    async def load(self, collection: Collection, seed_data: list[Record] | None) -> LoadResult:
        ...

    @abstractmethod
    async def save(self, collection: Collection, items: list[Record]) -> SaveResult:
        ...


class LocalRouting(RoutingStrategy):
    """Reads and writes hit the local store only.

    An empty collection is seeded once with demo records while demo mode
    is on.
    """

    source = DataSource.LOCAL

    def __init__(self, local: LocalStore, demo_mode: bool) -> None:
        super().__init__(local)
        self.demo_mode = demo_mode

    async def load(self, collection: Collection, seed_data: list[Record] | None) -> LoadResult:
        if self.demo_mode and seed_data:
            # Count and seed under one lock so concurrent loads seed once
            async with self.local.transaction([collection]) as tx:
                if await tx.count(collection) == 0:
                    await tx.bulk_add(collection, seed_data)
                    self._log.info(
                        f"Seeded {collection.key} with {len(seed_data)} demo records",
                        extra={"collection": collection.key},
                    )
                    return LoadResult(collection, list(seed_data), self.source, seeded=True)
                items = await tx.to_array(collection)
            return LoadResult(collection, items, self.source)

        return LoadResult(collection, await self.local.to_array(collection), self.source)

    async def save(self, collection: Collection, items: list[Record]) -> SaveResult:
        await replace_local(self.local, collection, items)
        return SaveResult(collection, len(items), self.source)


class CloudRouting(RoutingStrategy):
    """The remote store is authoritative for reads; writes go local first.

    Remote read failures degrade to an empty collection. Remote write
    failures never roll back the local replace; the collection is handed
    to the outbox for retry.
    """

    source = DataSource.CLOUD

    def __init__(
        self,
        local: LocalStore,
        remote: RemoteStore | None,
        outbox: RemoteOutbox,
    ) -> None:
        super().__init__(local)
        self.remote = remote
        self.outbox = outbox
        if remote is not None:
            self._log = self._log.bind(tenant=remote.config.tenant_id)

    async def load(self, collection: Collection, seed_data: list[Record] | None) -> LoadResult:
        try:
            if self.remote is None or not self.remote.is_connected:
                raise NotConnectedError("fetch_collection", collection.key)
            items = await self.remote.fetch_collection(collection)
        except (PermissionDeniedError, StorageConnectionError, NotConnectedError) as e:
            self._log.warning(
                f"Cloud read of {collection.key} failed, returning empty collection: {e}",
                extra={"collection": collection.key},
            )
            return LoadResult(collection, [], self.source, error=e)

        return LoadResult(collection, items, self.source)

    async def save(self, collection: Collection, items: list[Record]) -> SaveResult:
        await replace_local(self.local, collection, items)

        try:
            await self.outbox.push(collection, items)
        except (PermissionDeniedError, StorageConnectionError, NotConnectedError) as e:
            self._log.warning(
                f"Cloud write of {collection.key} failed, kept local copy: {e}",
                extra={"collection": collection.key},
            )
            await self.outbox.enqueue(collection, e)
            return SaveResult(
                collection,
                len(items),
                self.source,
                remote_synced=False,
                warning=CLOUD_SYNC_WARNING,
                error=e,
            )

        return SaveResult(collection, len(items), self.source, remote_synced=True)
