"""
Dual-mode sync engine.

Routes every collection read and write to the local store, the remote
store, or both, according to the active settings:

- Local: reads and writes hit the local store; empty collections are
  seeded once with demo records while demo mode is on.
- Cloud: reads come from the remote store only; writes replace the local
  copy first, then push to the remote store. Failed pushes are retried by
  the outbox and never undo the local write.

Every result is published to the subscription hub, tagged with a ticket
taken when the call started so late results are dropped.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import aiofiles.os

from ..exceptions import (
    NotConnectedError,
    PermissionDeniedError,
    StorageConnectionError,
    SyncStorageError,
    ValidationError,
)
from ..local.store import LocalStore
from ..logging_utils import StorageLoggerAdapter
from ..remote.base import RemoteConfig
from ..schema import ALL_COLLECTIONS, Collection, Record, has_record_id
from ..seed import demo_records
from ..settings import AppSettings, DataSource, SettingsRegistry
from ..snapshot import (
    Snapshot,
    default_backup_name,
    export_snapshot,
    import_snapshot,
    read_snapshot_file,
    write_snapshot_file,
)
from ..subscriptions import SubscriptionHub
from .accessors import CollectionAccessors
from .outbox import RemoteOutbox
from .routing import (
    CLOUD_SYNC_WARNING,
    CloudRouting,
    LocalRouting,
    RoutingStrategy,
    SaveResult,
)

logger = logging.getLogger(__name__)


def validate_records(collection: Collection, items: list[Record]) -> None:
    """Reject records without an id or with an id used twice.

    Raises:
        ValidationError: On the first offending record
    """
    seen: set[str] = set()
    for index, item in enumerate(items):
        if not has_record_id(item):
            raise ValidationError(f"{collection.key}[{index}].id", "record id is required")
        record_id = str(item["id"])
        if record_id in seen:
            raise ValidationError(f"{collection.key}.id", "duplicate record id", record_id)
        seen.add(record_id)


class SyncEngine(CollectionAccessors):
    """Load/save contract for every domain collection.

    Usage:
        engine = SyncEngine(local, SettingsRegistry(local))
        await engine.bootstrap()
        rooms = await engine.get_rooms()
        result = await engine.save_rooms(rooms)
        if result.warning:
            show_banner(result.warning)
    """

    def __init__(
        self,
        local: LocalStore,
        settings: SettingsRegistry,
        hub: SubscriptionHub | None = None,
        outbox: RemoteOutbox | None = None,
    ) -> None:
        self.local = local
        self.settings = settings
        self.hub = hub or SubscriptionHub()
        self.outbox = outbox or RemoteOutbox(
            local,
            lambda: settings.remote,
            cloud_mode=lambda: settings.get_cached_settings().is_cloud,
        )
        self._load_errors: dict[Collection, SyncStorageError] = {}
        self._log = StorageLoggerAdapter(logger, {"component": "engine"})

    def _routing(self, settings: AppSettings) -> RoutingStrategy:
        if settings.is_cloud:
            return CloudRouting(self.local, self.settings.remote, self.outbox)
        return LocalRouting(self.local, settings.demo_mode)

    async def bootstrap(self) -> AppSettings:
        """Resolve settings, connect the remote store if needed, resume retries."""
        settings = await self.settings.get_settings()
        await self.outbox.start()
        self._log.info(
            f"Sync engine ready: data_source={settings.data_source.value}, "
            f"demo_mode={settings.demo_mode}"
        )
        return settings

    async def close(self) -> None:
        await self.outbox.stop()
        await self.settings.close()

    async def load(
        self, collection: Collection | str, seed_data: list[Record] | None = None
    ) -> list[Record]:
        """Return the current contents of a collection.

        Cloud read failures return an empty list; the error is available
        from ``last_load_error``. Local store failures propagate.
        """
        coll = Collection.parse(collection)
        ticket = self.hub.issue_ticket(coll)
        settings = await self.settings.get_settings()

        result = await self._routing(settings).load(coll, seed_data)

        if result.error is not None:
            self._load_errors[coll] = result.error
        else:
            self._load_errors.pop(coll, None)

        await self.hub.publish(coll, result.items, ticket)
        return result.items

    async def save(self, collection: Collection | str, items: list[Record]) -> SaveResult:
        """Replace a collection's contents.

        The local replace always happens and is never rolled back. In Cloud
        mode a failed remote push is reported through ``SaveResult.warning``
        instead of raising.

        Raises:
            ValidationError: If a record lacks an id or ids repeat
            StorageIOError: If the local store fails
        """
        coll = Collection.parse(collection)
        items = list(items)
        validate_records(coll, items)

        ticket = self.hub.issue_ticket(coll)
        settings = await self.settings.get_settings()

        result = await self._routing(settings).save(coll, items)
        await self.hub.publish(coll, items, ticket)
        return result

    def last_load_error(self, collection: Collection | str) -> SyncStorageError | None:
        """Error from the most recent load of a collection, if it degraded."""
        return self._load_errors.get(Collection.parse(collection))

    async def refresh_all(self) -> dict[Collection, list[Record]]:
        """Load every collection, publishing each to subscribers."""
        return {coll: await self.load(coll, demo_records(coll)) for coll in ALL_COLLECTIONS}

    # Demo lifecycle

    async def reset_to_demo(self) -> None:
        """Replace every local collection with demo records and turn demo mode on."""
        tickets = {coll: self.hub.issue_ticket(coll) for coll in ALL_COLLECTIONS}
        async with self.local.transaction(ALL_COLLECTIONS) as tx:
            for coll in ALL_COLLECTIONS:
                await tx.replace(coll, demo_records(coll))

        settings = await self.settings.get_settings()
        await self.settings.save_settings(settings.with_changes(demo_mode=True))

        for coll, ticket in tickets.items():
            await self.hub.publish(coll, demo_records(coll), ticket)
        self._log.info("Local data reset to demo records")

    async def clear_all_data(self) -> None:
        """Erase every local collection and turn demo mode off."""
        tickets = {coll: self.hub.issue_ticket(coll) for coll in ALL_COLLECTIONS}
        async with self.local.transaction(ALL_COLLECTIONS) as tx:
            for coll in ALL_COLLECTIONS:
                await tx.clear(coll)

        settings = await self.settings.get_settings()
        await self.settings.save_settings(settings.with_changes(demo_mode=False))

        for coll, ticket in tickets.items():
            await self.hub.publish(coll, [], ticket)
        self._log.info("All local data cleared")

    # Remote utilities

    async def test_connection(self, config: RemoteConfig) -> bool:
        """Try connecting with the given parameters without touching the live handle."""
        return await self.settings.test_connection(config)

    async def sync_all_to_remote(self) -> dict[Collection, SaveResult]:
        """Push every collection's local contents to the remote store.

        Used after an import or when moving a hotel from Local to Cloud.
        Failed collections are queued in the outbox.
        """
        settings = await self.settings.get_settings()
        if settings.remote is not None and settings.remote.is_valid:
            try:
                await self.settings.ensure_remote(settings.remote)
            except SyncStorageError as e:
                self._log.warning(f"Remote store unavailable for full sync: {e}")

        results: dict[Collection, SaveResult] = {}
        for coll in ALL_COLLECTIONS:
            items = await self.local.to_array(coll)
            try:
                await self.outbox.push(coll, items)
            except (PermissionDeniedError, StorageConnectionError, NotConnectedError) as e:
                self._log.warning(
                    f"Full sync of {coll.key} failed, queued for retry: {e}",
                    extra={"collection": coll.key},
                )
                await self.outbox.enqueue(coll, e)
                results[coll] = SaveResult(
                    coll,
                    len(items),
                    DataSource.CLOUD,
                    remote_synced=False,
                    warning=CLOUD_SYNC_WARNING,
                    error=e,
                )
                continue
            results[coll] = SaveResult(coll, len(items), DataSource.CLOUD, remote_synced=True)

        failed = [c.key for c, r in results.items() if not r.remote_synced]
        if failed:
            self._log.warning(f"Remote sync incomplete for: {', '.join(failed)}")
        else:
            self._log.info(f"Pushed all {len(results)} collections to the remote store")
        return results

    # Snapshots

    async def export_snapshot(self) -> Snapshot:
        """Bundle every collection from the local store (never the remote)."""
        settings = await self.settings.get_settings()
        return await export_snapshot(self.local, settings)

    async def import_snapshot(self, bundle: Snapshot | Mapping[str, Any]) -> None:
        """Replace every local collection from a bundle, all or nothing.

        The remote store is not touched; call ``sync_all_to_remote`` to
        propagate imported data.

        Raises:
            InvalidFormatError: If the bundle is malformed
        """
        tickets = {coll: self.hub.issue_ticket(coll) for coll in ALL_COLLECTIONS}
        await import_snapshot(self.local, bundle)
        for coll, ticket in tickets.items():
            await self.hub.publish(coll, await self.local.to_array(coll), ticket)

    async def export_snapshot_to_file(self, path: str | Path) -> Path:
        """Write a backup file. A directory path gets the default file name."""
        target = Path(path)
        if await aiofiles.os.path.isdir(target):
            target = target / default_backup_name()
        return await write_snapshot_file(await self.export_snapshot(), target)

    async def import_snapshot_from_file(self, path: str | Path) -> None:
        await self.import_snapshot(await read_snapshot_file(path))
