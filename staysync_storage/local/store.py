"""
SQLite local store.

Each collection lives in its own table keyed by record id, with the record
body stored as JSON and expression indexes on the fields the UI filters by.
A singleton settings row and the remote sync outbox share the same file.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
from collections.abc import AsyncIterator, Iterable
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import aiosqlite

from ..exceptions import StorageIOError
from ..schema import ALL_COLLECTIONS, Collection, Record

logger = logging.getLogger(__name__)

SETTINGS_KEY = "app"

DEFAULT_DB_PATH = Path.home() / ".staysync" / "staysync.db"


@dataclass
class LocalStoreConfig:
    """Configuration for the local store."""

    db_path: str | Path = DEFAULT_DB_PATH

    @classmethod
    def from_env(cls) -> LocalStoreConfig:
        """Create config from environment variables."""
        return cls(db_path=os.environ.get("STAYSYNC_DB_PATH", str(DEFAULT_DB_PATH)))


def _encode(record: Record) -> str:
    return json.dumps(record, ensure_ascii=False)


def _index_expr(field: str) -> str:
    return f"json_extract(body, '$.{field}')"


class _CollectionOps:
    """Collection operations bound to an open connection.

    Callers are responsible for holding the store lock.
    """

    def __init__(self, conn: aiosqlite.Connection, path: str) -> None:
        self._conn = conn
        self._path = path

    async def count(self, collection: Collection | str) -> int:
        table = Collection.parse(collection).table
        try:
            async with self._conn.execute(f"SELECT COUNT(*) FROM {table}") as cursor:
                row = await cursor.fetchone()
        except aiosqlite.Error as e:
            raise StorageIOError("count", self._path, e) from e
        return int(row[0]) if row else 0

    async def to_array(self, collection: Collection | str) -> list[Record]:
        table = Collection.parse(collection).table
        try:
            async with self._conn.execute(f"SELECT body FROM {table} ORDER BY rowid") as cursor:
                rows = await cursor.fetchall()
        except aiosqlite.Error as e:
            raise StorageIOError("to_array", self._path, e) from e
        return [json.loads(row[0]) for row in rows]

    async def find_by(self, collection: Collection | str, field: str, value: Any) -> list[Record]:
        coll = Collection.parse(collection)
        if field not in coll.indexed_fields:
            raise ValueError(f"{field} is not an indexed field of {coll.key}")
        query = f"SELECT body FROM {coll.table} WHERE {_index_expr(field)} = ? ORDER BY rowid"
        try:
            async with self._conn.execute(query, (value,)) as cursor:
                rows = await cursor.fetchall()
        except aiosqlite.Error as e:
            raise StorageIOError("find_by", self._path, e) from e
        return [json.loads(row[0]) for row in rows]

    async def bulk_add(self, collection: Collection | str, items: Iterable[Record]) -> None:
        table = Collection.parse(collection).table
        rows = [(str(item["id"]), _encode(item)) for item in items]
        if not rows:
            return
        try:
            await self._conn.executemany(f"INSERT INTO {table} (id, body) VALUES (?, ?)", rows)
        except aiosqlite.Error as e:
            raise StorageIOError("bulk_add", self._path, e) from e

    async def clear(self, collection: Collection | str) -> None:
        table = Collection.parse(collection).table
        try:
            await self._conn.execute(f"DELETE FROM {table}")
        except aiosqlite.Error as e:
            raise StorageIOError("clear", self._path, e) from e


class LocalTransaction(_CollectionOps):
    """Handle yielded by ``LocalStore.transaction``.

    Only the collections named when the transaction was opened may be
    touched through it.
    """

    def __init__(self, conn: aiosqlite.Connection, path: str, scope: frozenset[Collection]):
        super().__init__(conn, path)
        self.scope = scope

    def _check(self, collection: Collection | str) -> Collection:
        coll = Collection.parse(collection)
        if coll not in self.scope:
            raise StorageIOError(
                "transaction",
                self._path,
                RuntimeError(f"{coll.key} is outside the transaction scope"),
            )
        return coll

    async def count(self, collection: Collection | str) -> int:
        return await super().count(self._check(collection))

    async def to_array(self, collection: Collection | str) -> list[Record]:
        return await super().to_array(self._check(collection))

    async def bulk_add(self, collection: Collection | str, items: Iterable[Record]) -> None:
        await super().bulk_add(self._check(collection), items)

    async def clear(self, collection: Collection | str) -> None:
        await super().clear(self._check(collection))

    async def replace(self, collection: Collection | str, items: Iterable[Record]) -> None:
        """Clear a collection and repopulate it."""
        await self.clear(collection)
        await self.bulk_add(collection, items)


class LocalStore:
    """
    Durable per-collection storage on the device.

    Features:
    - One table per collection, primary key = record id
    - Expression indexes on filter fields (status, category, dates)
    - Scoped write transactions with rollback on error or cancellation
    - Settings singleton and sync outbox tables

    Writers are serialized on the connection; a read never observes a
    transaction that has not committed.

    Usage:
        store = await LocalStore.create(LocalStoreConfig(db_path=":memory:"))
        async with store.transaction([Collection.ROOMS]) as tx:
            await tx.replace(Collection.ROOMS, rooms)
        await store.close()
    """

    def __init__(self, config: LocalStoreConfig) -> None:
        self.config = config
        self.conn: aiosqlite.Connection | None = None
        self._lock = asyncio.Lock()
        self._initialized = False

    @classmethod
    async def create(cls, config: LocalStoreConfig | None = None) -> LocalStore:
        """Create and initialize a local store."""
        if config is None:
            config = LocalStoreConfig.from_env()

        store = cls(config)
        await store.initialize()
        return store

    @property
    def path(self) -> str:
        return str(self.config.db_path)

    async def initialize(self) -> None:
        """Open the database and create tables and indexes."""
        if self._initialized:
            return

        if self.path != ":memory:":
            Path(self.path).parent.mkdir(parents=True, exist_ok=True)

        try:
            # Autocommit; transactions are opened explicitly
            self.conn = await aiosqlite.connect(self.path, isolation_level=None)
            await self.conn.execute("PRAGMA journal_mode = WAL")

            for coll in ALL_COLLECTIONS:
                await self.conn.execute(f"""
                    CREATE TABLE IF NOT EXISTS {coll.table} (
                        id TEXT NOT NULL PRIMARY KEY,
                        body TEXT NOT NULL
                    )
                """)
                for field in coll.indexed_fields:
                    await self.conn.execute(
                        f"CREATE INDEX IF NOT EXISTS idx_{coll.table}_{field.lower()} "
                        f"ON {coll.table}({_index_expr(field)})"
                    )

            await self.conn.execute("""
                CREATE TABLE IF NOT EXISTS settings (
                    id TEXT NOT NULL PRIMARY KEY,
                    body TEXT NOT NULL,
                    updated TEXT
                )
            """)

            await self.conn.execute("""
                CREATE TABLE IF NOT EXISTS sync_outbox (
                    collection TEXT NOT NULL PRIMARY KEY,
                    queued_at TEXT NOT NULL,
                    attempts INTEGER NOT NULL DEFAULT 0,
                    last_error TEXT
                )
            """)
        except aiosqlite.Error as e:
            raise StorageIOError("initialize", self.path, e) from e

        self._initialized = True
        logger.info(f"Local store initialized: {self.path}")

    async def close(self) -> None:
        """Close the database connection."""
        if self.conn:
            await self.conn.close()
            self.conn = None
        self._initialized = False

    def _require_conn(self) -> aiosqlite.Connection:
        if self.conn is None:
            raise StorageIOError("access", self.path, RuntimeError("Local store not initialized"))
        return self.conn

    def _ops(self) -> _CollectionOps:
        return _CollectionOps(self._require_conn(), self.path)

    @asynccontextmanager
    async def transaction(
        self, collections: Iterable[Collection | str]
    ) -> AsyncIterator[LocalTransaction]:
        """Open a write transaction over the named collections.

        Commits when the block exits normally and rolls back on any
        exception, including cancellation. The store lock is released on
        every path.

        Do not call ``LocalStore`` methods from inside the block; use the
        yielded handle instead.
        """
        scope = frozenset(Collection.parse(c) for c in collections)
        async with self._lock:
            conn = self._require_conn()
            try:
                await conn.execute("BEGIN IMMEDIATE")
            except aiosqlite.Error as e:
                raise StorageIOError("begin", self.path, e) from e

            try:
                yield LocalTransaction(conn, self.path, scope)
            except BaseException:
                try:
                    await conn.execute("ROLLBACK")
                except aiosqlite.Error as e:
                    logger.error(f"Rollback failed on {self.path}: {e}")
                raise

            try:
                await conn.execute("COMMIT")
            except aiosqlite.Error as e:
                try:
                    await conn.execute("ROLLBACK")
                except aiosqlite.Error as rollback_error:
                    logger.error(f"Rollback after failed commit on {self.path}: {rollback_error}")
                raise StorageIOError("commit", self.path, e) from e

    # Collection operations

    async def count(self, collection: Collection | str) -> int:
        async with self._lock:
            return await self._ops().count(collection)

    async def to_array(self, collection: Collection | str) -> list[Record]:
        async with self._lock:
            return await self._ops().to_array(collection)

    async def find_by(self, collection: Collection | str, field: str, value: Any) -> list[Record]:
        """Equality lookup on one of the collection's indexed fields."""
        async with self._lock:
            return await self._ops().find_by(collection, field, value)

    async def bulk_add(self, collection: Collection | str, items: Iterable[Record]) -> None:
        """Append records. Existing ids are rejected; clear first to replace."""
        async with self.transaction([collection]) as tx:
            await tx.bulk_add(collection, items)

    async def clear(self, collection: Collection | str) -> None:
        async with self.transaction([collection]) as tx:
            await tx.clear(collection)

    # Settings singleton

    async def get_settings_record(self) -> dict[str, Any] | None:
        async with self._lock:
            conn = self._require_conn()
            try:
                async with conn.execute(
                    "SELECT body FROM settings WHERE id = ?", (SETTINGS_KEY,)
                ) as cursor:
                    row = await cursor.fetchone()
            except aiosqlite.Error as e:
                raise StorageIOError("get_settings", self.path, e) from e
        return json.loads(row[0]) if row else None

    async def put_settings_record(self, record: dict[str, Any]) -> None:
        async with self._lock:
            conn = self._require_conn()
            try:
                await conn.execute(
                    "INSERT OR REPLACE INTO settings (id, body, updated) VALUES (?, ?, ?)",
                    (SETTINGS_KEY, json.dumps(record), datetime.now(UTC).isoformat()),
                )
            except aiosqlite.Error as e:
                raise StorageIOError("put_settings", self.path, e) from e

    # Sync outbox

    async def outbox_put(self, collection: Collection | str, error: str | None = None) -> None:
        """Mark a collection as pending remote sync, bumping its attempt count."""
        key = Collection.parse(collection).key
        async with self._lock:
            conn = self._require_conn()
            try:
                await conn.execute(
                    """
                    INSERT INTO sync_outbox (collection, queued_at, attempts, last_error)
                    VALUES (?, ?, 0, ?)
                    ON CONFLICT(collection) DO UPDATE SET
                        attempts = attempts + 1,
                        last_error = excluded.last_error
                    """,
                    (key, datetime.now(UTC).isoformat(), error),
                )
            except aiosqlite.Error as e:
                raise StorageIOError("outbox_put", self.path, e) from e

    async def outbox_remove(self, collection: Collection | str) -> None:
        key = Collection.parse(collection).key
        async with self._lock:
            conn = self._require_conn()
            try:
                await conn.execute("DELETE FROM sync_outbox WHERE collection = ?", (key,))
            except aiosqlite.Error as e:
                raise StorageIOError("outbox_remove", self.path, e) from e

    async def outbox_list(self) -> list[dict[str, Any]]:
        """List pending collections, oldest first."""
        async with self._lock:
            conn = self._require_conn()
            try:
                async with conn.execute(
                    "SELECT collection, queued_at, attempts, last_error "
                    "FROM sync_outbox ORDER BY queued_at"
                ) as cursor:
                    rows = await cursor.fetchall()
            except aiosqlite.Error as e:
                raise StorageIOError("outbox_list", self.path, e) from e
        return [
            {"collection": r[0], "queued_at": r[1], "attempts": r[2], "last_error": r[3]}
            for r in rows
        ]
