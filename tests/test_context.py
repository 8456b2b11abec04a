"""Tests for the storage context singleton."""

from __future__ import annotations

import logging

import pytest

from staysync_storage import StorageContext
from staysync_storage.engine import OutboxConfig
from staysync_storage.local import LocalStoreConfig
from staysync_storage.logging_utils import StructuredJsonFormatter
from staysync_storage.settings import DataSource


@pytest.fixture
async def context_args(tmp_path, remote_factory):
    yield {
        "local_config": LocalStoreConfig(db_path=tmp_path / "ctx.db"),
        "remote_factory": remote_factory,
        "outbox_config": OutboxConfig(initial_backoff=0.01, idle_interval=0.05),
    }
    await StorageContext.reset()


class TestStorageContext:
    async def test_get_before_initialize(self):
        assert not StorageContext.is_initialized()
        with pytest.raises(RuntimeError, match="not initialized"):
            StorageContext.get()

    async def test_initialize(self, context_args):
        ctx = await StorageContext.initialize(**context_args)

        assert StorageContext.is_initialized()
        assert StorageContext.get() is ctx
        assert ctx.engine.local is ctx.local
        assert ctx.engine.hub is ctx.hub
        assert ctx.engine.outbox.is_running

    async def test_initialize_twice_returns_same(self, context_args):
        first = await StorageContext.initialize(**context_args)
        second = await StorageContext.initialize(**context_args)
        assert first is second

    async def test_engine_works_end_to_end(self, context_args):
        ctx = await StorageContext.initialize(**context_args)
        settings = await ctx.settings.get_settings()
        assert settings.data_source == DataSource.LOCAL

        rooms = await ctx.engine.get_rooms()
        assert len(rooms) == 8

    async def test_reset(self, context_args):
        ctx = await StorageContext.initialize(**context_args)
        outbox = ctx.engine.outbox

        await StorageContext.reset()

        assert not StorageContext.is_initialized()
        assert not outbox.is_running
        assert ctx.local.conn is None

    async def test_structured_logging_option(self, context_args):
        package_logger = logging.getLogger("staysync_storage")
        try:
            await StorageContext.initialize(**context_args, structured_logging=True)
            assert any(
                isinstance(h.formatter, StructuredJsonFormatter) for h in package_logger.handlers
            )
        finally:
            for handler in list(package_logger.handlers):
                package_logger.removeHandler(handler)
            package_logger.setLevel(logging.NOTSET)

    async def test_outbox_paused_in_local_mode(self, context_args):
        ctx = await StorageContext.initialize(**context_args)
        assert ctx.engine.outbox.is_paused

    async def test_reset_without_initialize(self):
        await StorageContext.reset()
        assert not StorageContext.is_initialized()
