"""
Shared test configuration and fixtures.

Provides a temporary on-disk local store and an in-memory remote store so
engine behavior can be tested without a Cosmos DB account. Live Cosmos
tests are skipped unless STAYSYNC_COSMOS_ENDPOINT is set.
"""

from __future__ import annotations

import asyncio
import copy
import logging
import os

import pytest

from staysync_storage.engine import OutboxConfig, RemoteOutbox, SyncEngine
from staysync_storage.exceptions import NotConnectedError
from staysync_storage.local import LocalStore, LocalStoreConfig
from staysync_storage.remote import RemoteConfig, RemoteStore
from staysync_storage.schema import Collection, Record
from staysync_storage.settings import DataSource, SettingsRegistry

logger = logging.getLogger(__name__)

TEST_ENDPOINT = "https://test.documents.azure.com:443/"


class InMemoryRemoteStore(RemoteStore):
    """
    Remote store backed by a dict, with failure injection.

    Set ``fail_fetch[collection]`` / ``fail_write[collection]`` to an
    exception to make the next calls for that collection raise it.
    """

    def __init__(
        self,
        config: RemoteConfig,
        data: dict[Collection, list[Record]] | None = None,
    ) -> None:
        self.config = config
        self.data: dict[Collection, list[Record]] = data if data is not None else {}
        self.fail_connect: Exception | None = None
        self.fail_fetch: dict[Collection, Exception] = {}
        self.fail_write: dict[Collection, Exception] = {}
        self.writes: list[tuple[Collection, list[Record]]] = []
        self.closed = False
        self._connected = False

    @property
    def is_connected(self) -> bool:
        return self._connected

    async def connect(self) -> None:
        if self.fail_connect is not None:
            raise self.fail_connect
        self._connected = True
        self.closed = False

    async def fetch_collection(self, collection: Collection) -> list[Record]:
        if not self._connected:
            raise NotConnectedError("fetch_collection", collection.key)
        if collection in self.fail_fetch:
            raise self.fail_fetch[collection]
        return copy.deepcopy(self.data.get(collection, []))

    async def bulk_write(self, collection: Collection, items: list[Record]) -> None:
        if not self._connected:
            raise NotConnectedError("bulk_write", collection.key)
        if collection in self.fail_write:
            raise self.fail_write[collection]
        self.writes.append((collection, copy.deepcopy(items)))
        self.data[collection] = copy.deepcopy(items)

    async def close(self) -> None:
        self._connected = False
        self.closed = True


class InMemoryRemoteFactory:
    """Builds in-memory remote stores that share one backing dict."""

    def __init__(self) -> None:
        self.data: dict[Collection, list[Record]] = {}
        self.created: list[InMemoryRemoteStore] = []
        self.fail_connect: Exception | None = None

    def __call__(self, config: RemoteConfig) -> InMemoryRemoteStore:
        store = InMemoryRemoteStore(config, self.data)
        store.fail_connect = self.fail_connect
        self.created.append(store)
        return store

    @property
    def latest(self) -> InMemoryRemoteStore:
        return self.created[-1]


async def wait_for_condition(predicate, timeout: float = 2.0, interval: float = 0.02) -> bool:
    """Poll ``predicate`` until it returns True or the timeout expires."""
    elapsed = 0.0
    while elapsed < timeout:
        if predicate():
            return True
        await asyncio.sleep(interval)
        elapsed += interval
    return predicate()


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Hide any STAYSYNC_* variables from the developer's shell."""
    for name in list(os.environ):
        if name.startswith("STAYSYNC_"):
            monkeypatch.delenv(name, raising=False)


@pytest.fixture
async def local_store(tmp_path):
    """Local store backed by a temporary SQLite file."""
    store = await LocalStore.create(LocalStoreConfig(db_path=tmp_path / "staysync.db"))
    yield store
    await store.close()


@pytest.fixture
def remote_factory():
    return InMemoryRemoteFactory()


@pytest.fixture
def remote_config():
    return RemoteConfig(endpoint=TEST_ENDPOINT, key="test-key", tenant_id="hotel-1")


@pytest.fixture
def fast_outbox_config():
    """Retry settings short enough for tests."""
    return OutboxConfig(initial_backoff=0.01, max_backoff=0.05, idle_interval=0.05)


@pytest.fixture
async def registry(local_store, remote_factory):
    registry = SettingsRegistry(local_store, remote_factory)
    yield registry
    await registry.close()


@pytest.fixture
async def engine(local_store, registry, fast_outbox_config):
    """Sync engine in the default (Local, demo) mode."""
    outbox = RemoteOutbox(
        local_store,
        lambda: registry.remote,
        fast_outbox_config,
        cloud_mode=lambda: registry.get_cached_settings().is_cloud,
    )
    engine = SyncEngine(local_store, registry, outbox=outbox)
    yield engine
    await engine.close()


@pytest.fixture
async def cloud_engine(engine, registry, remote_config):
    """Sync engine switched to Cloud with a connected in-memory remote."""
    settings = await registry.get_settings()
    await registry.save_settings(
        settings.with_changes(
            data_source=DataSource.CLOUD,
            demo_mode=False,
            remote=remote_config,
        )
    )
    assert registry.remote is not None and registry.remote.is_connected
    return engine
