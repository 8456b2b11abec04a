"""
Remote sync outbox.

When a remote write fails during ``save``, the collection is recorded in the
local ``sync_outbox`` table and retried in the background with exponential
backoff until it succeeds. A retry always pushes the collection's current
local contents, so it is an idempotent full replace and a stale payload is
never sent.

Remote writes for one collection are serialized by a per-collection lock,
which keeps a retry from overwriting a newer direct push.

Retries only run while the active data source is Cloud. After a switch to
Local, pending rows stay on disk untouched, so edits made in Local mode are
never pushed to the shared remote container.
"""

from __future__ import annotations

import asyncio
import logging
import os
import time
from collections.abc import Callable
from dataclasses import dataclass

from ..exceptions import NotConnectedError, SyncStorageError
from ..local.store import LocalStore
from ..logging_utils import StorageLoggerAdapter
from ..remote.base import RemoteStore
from ..schema import Collection, Record

logger = logging.getLogger(__name__)


@dataclass
class OutboxConfig:
    """Retry settings for the outbox worker."""

    initial_backoff: float = 1.0  # seconds
    max_backoff: float = 300.0  # cap
    backoff_multiplier: float = 2.0
    idle_interval: float = 30.0  # longest sleep between checks

    @classmethod
    def from_env(cls) -> OutboxConfig:
        """Create config from environment variables."""
        return cls(
            initial_backoff=float(os.environ.get("STAYSYNC_OUTBOX_INITIAL_BACKOFF", "1.0")),
            max_backoff=float(os.environ.get("STAYSYNC_OUTBOX_MAX_BACKOFF", "300.0")),
        )

    def backoff(self, attempts: int) -> float:
        delay = self.initial_backoff * (self.backoff_multiplier ** max(attempts - 1, 0))
        return min(delay, self.max_backoff)


class RemoteOutbox:
    """Durable at-least-once delivery of collections to the remote store.

    Usage:
        outbox = RemoteOutbox(
            local,
            lambda: registry.remote,
            cloud_mode=lambda: registry.get_cached_settings().is_cloud,
        )
        await outbox.start()          # resumes pending rows from disk
        await outbox.push(Collection.ROOMS, rooms)   # direct write
        await outbox.enqueue(Collection.ROOMS, "timeout")  # retry later
        await outbox.stop()

    ``cloud_mode`` gates retries; when omitted, retries always run.
    """

    def __init__(
        self,
        local: LocalStore,
        remote_provider: Callable[[], RemoteStore | None],
        config: OutboxConfig | None = None,
        on_sync_error: Callable[[Collection, Exception], None] | None = None,
        cloud_mode: Callable[[], bool] | None = None,
    ) -> None:
        self.local = local
        self.config = config or OutboxConfig()
        self.on_sync_error = on_sync_error
        self.cloud_mode = cloud_mode
        self._remote_provider = remote_provider
        self._log = StorageLoggerAdapter(logger, {"component": "outbox"})

        self._locks: dict[Collection, asyncio.Lock] = {}
        self._attempts: dict[Collection, int] = {}
        self._due: dict[Collection, float] = {}
        self._wakeup = asyncio.Event()
        self._task: asyncio.Task[None] | None = None
        self._running = False

    @property
    def pending(self) -> set[Collection]:
        """Collections waiting for a retry in this process."""
        return set(self._due)

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def is_paused(self) -> bool:
        """True while the active data source is not Cloud."""
        return self.cloud_mode is not None and not self.cloud_mode()

    def _lock(self, collection: Collection) -> asyncio.Lock:
        return self._locks.setdefault(collection, asyncio.Lock())

    def _remote(self, collection: Collection) -> RemoteStore:
        remote = self._remote_provider()
        if remote is None or not remote.is_connected:
            raise NotConnectedError("bulk_write", collection.key)
        return remote

    async def start(self) -> None:
        """Load pending collections from disk and start the retry worker."""
        if self._running:
            return

        for row in await self.local.outbox_list():
            try:
                coll = Collection.parse(row["collection"])
            except ValueError:
                self._log.warning(f"Ignoring unknown collection in outbox: {row['collection']}")
                continue
            self._attempts[coll] = row["attempts"]
            self._due[coll] = time.monotonic()

        if self._due:
            self._log.info(f"Resuming remote sync for {len(self._due)} pending collections")

        self._running = True
        self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        """Stop the retry worker. Pending rows stay on disk."""
        self._running = False
        self._wakeup.set()

        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    async def push(self, collection: Collection, items: list[Record]) -> None:
        """Write a collection to the remote store now.

        On success any pending retry for the collection is cleared.

        Raises:
            NotConnectedError, PermissionDeniedError, StorageConnectionError
        """
        async with self._lock(collection):
            await self._remote(collection).bulk_write(collection, items)
            await self._mark_synced(collection)

    async def enqueue(self, collection: Collection, error: Exception | None = None) -> None:
        """Record a collection as pending and schedule a retry."""
        await self.local.outbox_put(collection, str(error) if error else None)
        attempts = self._attempts.get(collection, 0) + 1
        self._attempts[collection] = attempts
        self._due[collection] = time.monotonic() + self.config.backoff(attempts)
        self._wakeup.set()
        self._log.info(
            f"Queued {collection.key} for remote retry (attempt {attempts})",
            extra={"collection": collection.key},
        )

    async def flush(self) -> dict[Collection, bool]:
        """Retry every pending collection immediately.

        Nothing is attempted while paused; pending rows stay on disk.

        Returns:
            Success flag per attempted collection.
        """
        if self.is_paused:
            self._log.info("Remote retries paused outside Cloud mode")
            return {}

        pending = {Collection.parse(r["collection"]) for r in await self.local.outbox_list()}
        pending |= set(self._due)
        results: dict[Collection, bool] = {}
        for collection in sorted(pending, key=lambda c: c.key):
            results[collection] = await self._attempt(collection)
        return results

    async def _retry(self, collection: Collection) -> None:
        async with self._lock(collection):
            items = await self.local.to_array(collection)
            await self._remote(collection).bulk_write(collection, items)
            await self._mark_synced(collection)

    async def _attempt(self, collection: Collection) -> bool:
        log = self._log.bind(collection=collection.key)
        try:
            await self._retry(collection)
        except SyncStorageError as e:
            attempts = self._attempts.get(collection, 0) + 1
            self._attempts[collection] = attempts
            self._due[collection] = time.monotonic() + self.config.backoff(attempts)
            log.warning(f"Remote retry failed for {collection.key} (attempt {attempts}): {e}")
            await self.local.outbox_put(collection, str(e))
            if self.on_sync_error:
                self.on_sync_error(collection, e)
            return False

        log.info(f"Remote retry succeeded for {collection.key}")
        return True

    async def _mark_synced(self, collection: Collection) -> None:
        self._due.pop(collection, None)
        self._attempts.pop(collection, None)
        await self.local.outbox_remove(collection)

    async def _run(self) -> None:
        """Background retry loop."""
        while self._running:
            try:
                timeout = self.config.idle_interval
                # While paused, due rows wait for the next idle check
                if not self.is_paused:
                    now = time.monotonic()
                    for collection in [c for c, due in self._due.items() if due <= now]:
                        await self._attempt(collection)

                    now = time.monotonic()
                    if self._due:
                        timeout = max(0.0, min(min(self._due.values()) - now, timeout))

                self._wakeup.clear()
                try:
                    await asyncio.wait_for(self._wakeup.wait(), timeout=timeout)
                except TimeoutError:
                    pass

            except asyncio.CancelledError:
                break
            except Exception as e:
                self._log.error(f"Outbox loop error: {e}")
                await asyncio.sleep(self.config.idle_interval)
