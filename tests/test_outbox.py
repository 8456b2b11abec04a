"""Tests for the remote sync outbox and its retry worker."""

from __future__ import annotations

import asyncio

import pytest

from staysync_storage.engine import OutboxConfig, RemoteOutbox
from staysync_storage.exceptions import NotConnectedError, StorageConnectionError
from staysync_storage.schema import Collection

from conftest import TEST_ENDPOINT, wait_for_condition


@pytest.fixture
async def remote(remote_factory, remote_config):
    store = remote_factory(remote_config)
    await store.connect()
    return store


@pytest.fixture
async def outbox(local_store, remote, fast_outbox_config):
    outbox = RemoteOutbox(local_store, lambda: remote, fast_outbox_config)
    yield outbox
    await outbox.stop()


class TestOutboxConfig:
    def test_backoff_grows_and_caps(self):
        config = OutboxConfig(initial_backoff=1.0, max_backoff=5.0, backoff_multiplier=2.0)
        assert [config.backoff(n) for n in range(1, 6)] == [1.0, 2.0, 4.0, 5.0, 5.0]

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("STAYSYNC_OUTBOX_INITIAL_BACKOFF", "0.5")
        monkeypatch.setenv("STAYSYNC_OUTBOX_MAX_BACKOFF", "60")
        config = OutboxConfig.from_env()
        assert config.initial_backoff == 0.5
        assert config.max_backoff == 60.0


class TestPush:
    async def test_push_writes_remote(self, outbox, remote):
        await outbox.push(Collection.ROOMS, [{"id": "101"}])
        assert remote.data[Collection.ROOMS] == [{"id": "101"}]

    async def test_push_without_remote(self, local_store, fast_outbox_config):
        outbox = RemoteOutbox(local_store, lambda: None, fast_outbox_config)
        with pytest.raises(NotConnectedError):
            await outbox.push(Collection.ROOMS, [])

    async def test_push_propagates_remote_errors(self, outbox, remote):
        remote.fail_write[Collection.ROOMS] = StorageConnectionError(TEST_ENDPOINT)
        with pytest.raises(StorageConnectionError):
            await outbox.push(Collection.ROOMS, [{"id": "101"}])


class TestRetries:
    async def test_enqueue_persists(self, outbox, local_store):
        await outbox.enqueue(Collection.GUESTS, StorageConnectionError(TEST_ENDPOINT))

        rows = await local_store.outbox_list()
        assert rows[0]["collection"] == "guests"
        assert "Connection failed" in rows[0]["last_error"]
        assert outbox.pending == {Collection.GUESTS}

    async def test_flush_success_removes_row(self, outbox, local_store, remote):
        await local_store.bulk_add(Collection.GUESTS, [{"id": "g1"}])
        await outbox.enqueue(Collection.GUESTS)

        assert await outbox.flush() == {Collection.GUESTS: True}
        assert remote.data[Collection.GUESTS] == [{"id": "g1"}]
        assert await local_store.outbox_list() == []

    async def test_flush_failure_keeps_row(self, outbox, local_store, remote):
        errors = []
        outbox.on_sync_error = lambda coll, e: errors.append(coll)
        remote.fail_write[Collection.GUESTS] = StorageConnectionError(TEST_ENDPOINT)
        await outbox.enqueue(Collection.GUESTS)

        assert await outbox.flush() == {Collection.GUESTS: False}
        assert [r["collection"] for r in await local_store.outbox_list()] == ["guests"]
        assert errors == [Collection.GUESTS]

    async def test_flush_picks_up_rows_from_disk(self, local_store, remote, fast_outbox_config):
        await local_store.bulk_add(Collection.STAFF, [{"id": "s1"}])
        await local_store.outbox_put(Collection.STAFF, "left over from last run")

        outbox = RemoteOutbox(local_store, lambda: remote, fast_outbox_config)
        assert await outbox.flush() == {Collection.STAFF: True}
        assert remote.data[Collection.STAFF] == [{"id": "s1"}]

    async def test_worker_retries_until_success(self, outbox, local_store, remote):
        await local_store.bulk_add(Collection.MAINTENANCE, [{"id": "m1"}])
        remote.fail_write[Collection.MAINTENANCE] = StorageConnectionError(TEST_ENDPOINT)

        await outbox.start()
        await outbox.enqueue(Collection.MAINTENANCE)
        assert outbox.is_running

        # Let a few attempts fail, then recover
        assert await wait_for_condition(
            lambda: outbox._attempts.get(Collection.MAINTENANCE, 0) >= 2
        )
        del remote.fail_write[Collection.MAINTENANCE]

        assert await wait_for_condition(lambda: Collection.MAINTENANCE in remote.data)
        assert remote.data[Collection.MAINTENANCE] == [{"id": "m1"}]
        assert await wait_for_condition(lambda: not outbox.pending)

    async def test_start_resumes_persisted_rows(self, local_store, remote, fast_outbox_config):
        await local_store.bulk_add(Collection.ATTENDANCE, [{"id": "a1"}])
        await local_store.outbox_put(Collection.ATTENDANCE)

        outbox = RemoteOutbox(local_store, lambda: remote, fast_outbox_config)
        try:
            await outbox.start()
            assert await wait_for_condition(lambda: Collection.ATTENDANCE in remote.data)
        finally:
            await outbox.stop()
        assert not outbox.is_running

    async def test_stop_keeps_rows_on_disk(self, outbox, local_store, remote):
        remote.fail_write[Collection.DNR] = StorageConnectionError(TEST_ENDPOINT)
        await outbox.start()
        await outbox.enqueue(Collection.DNR)
        await outbox.stop()

        assert [r["collection"] for r in await local_store.outbox_list()] == ["dnr"]


class TestCloudModeGate:
    """Retries wait while the active data source is not Cloud."""

    async def test_flush_waits_for_cloud_mode(self, local_store, remote, fast_outbox_config):
        mode = {"cloud": False}
        outbox = RemoteOutbox(
            local_store, lambda: remote, fast_outbox_config, cloud_mode=lambda: mode["cloud"]
        )
        await local_store.bulk_add(Collection.GUESTS, [{"id": "g1"}])
        await outbox.enqueue(Collection.GUESTS)

        assert outbox.is_paused
        assert await outbox.flush() == {}
        assert Collection.GUESTS not in remote.data
        assert [r["collection"] for r in await local_store.outbox_list()] == ["guests"]

        mode["cloud"] = True
        assert await outbox.flush() == {Collection.GUESTS: True}
        assert remote.data[Collection.GUESTS] == [{"id": "g1"}]

    async def test_worker_idles_while_paused(self, local_store, remote, fast_outbox_config):
        mode = {"cloud": False}
        outbox = RemoteOutbox(
            local_store, lambda: remote, fast_outbox_config, cloud_mode=lambda: mode["cloud"]
        )
        await local_store.bulk_add(Collection.DNR, [{"id": "n1"}])
        await local_store.outbox_put(Collection.DNR)

        try:
            await outbox.start()
            await asyncio.sleep(0.1)
            assert Collection.DNR not in remote.data

            mode["cloud"] = True
            assert await wait_for_condition(lambda: Collection.DNR in remote.data)
        finally:
            await outbox.stop()
