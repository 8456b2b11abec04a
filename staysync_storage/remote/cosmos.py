"""
Cosmos DB remote store.

Stores every hotel's collections in a single container. Documents are
partitioned by ``{tenant_id}|{collection}`` so a whole collection is read
and replaced inside one partition.

Full-collection replace is made atomic with generations: a write upserts a
fresh generation of record documents, then flips the partition's manifest
to point at it. Readers only follow the manifest, so a write that fails
halfway leaves the previous generation visible. Superseded generations are
deleted after the flip.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Awaitable
from datetime import UTC, datetime
from typing import Any, TypeVar

from azure.core.exceptions import AzureError
from azure.cosmos import PartitionKey
from azure.cosmos.aio import ContainerProxy, CosmosClient
from azure.cosmos.exceptions import CosmosHttpResponseError, CosmosResourceNotFoundError
from azure.identity.aio import DefaultAzureCredential

from ..exceptions import NotConnectedError, PermissionDeniedError, StorageConnectionError
from ..logging_utils import StorageLoggerAdapter
from ..schema import Collection, Record
from .base import AUTH_KEY, RemoteConfig, RemoteStore

logger = logging.getLogger(__name__)

T = TypeVar("T")

DOC_TYPE_RECORD = "record"
DOC_TYPE_MANIFEST = "manifest"
MANIFEST_ID = "manifest"

# Upserts in flight at once during a bulk write
WRITE_CONCURRENCY = 25


class CosmosRemoteStore(RemoteStore):
    """
    Azure Cosmos DB implementation of the remote store.

    Container schema:
    {
        "id": "{uuid}" | "manifest",
        "partition_key": "{tenant_id}|{collection}",
        "type": "record" | "manifest",
        "tenant_id": "{tenant_id}",
        "collection": "{collection}",
        "generation": "{generation}",
        // record documents
        "record_id": "{record id}",
        "position": {int},
        "record": {...},
        // manifest document
        "count": {int},
        "updated": "{iso_timestamp}"
    }
    """

    def __init__(self, config: RemoteConfig) -> None:
        self.config = config
        self._client: CosmosClient | None = None
        self._credential: DefaultAzureCredential | None = None
        self._container: ContainerProxy | None = None
        self._log = StorageLoggerAdapter(logger, {"tenant": config.tenant_id})

    @property
    def is_connected(self) -> bool:
        return self._container is not None

    def partition_key(self, collection: Collection) -> str:
        return f"{self.config.tenant_id}|{collection.key}"

    async def connect(self) -> None:
        """Create the client and ensure the database and container exist."""
        if self.is_connected:
            return

        try:
            if self.config.auth_method == AUTH_KEY:
                client = CosmosClient(self.config.endpoint, credential=self.config.key)
            else:
                self._credential = DefaultAzureCredential()
                client = CosmosClient(self.config.endpoint, credential=self._credential)
        except (ValueError, TypeError, AzureError) as e:
            await self._close_credential()
            raise StorageConnectionError(self.config.endpoint, e) from e

        async def _open() -> ContainerProxy:
            database = await client.create_database_if_not_exists(id=self.config.database)
            return await database.create_container_if_not_exists(
                id=self.config.container,
                partition_key=PartitionKey(path="/partition_key"),
                indexing_policy={
                    "indexingMode": "consistent",
                    "automatic": True,
                    "includedPaths": [{"path": "/*"}],
                    "excludedPaths": [
                        {"path": "/record/*"},  # payload is never queried
                        {"path": '/"_etag"/?'},
                    ],
                },
            )

        try:
            self._container = await self._guard("connect", "*", _open())
        except Exception:
            await client.close()
            await self._close_credential()
            raise

        self._client = client
        self._log.info(
            f"Connected to Cosmos DB: {self.config.endpoint} "
            f"(database={self.config.database}, container={self.config.container})"
        )

    async def fetch_collection(self, collection: Collection) -> list[Record]:
        container = self._require_container("fetch_collection", collection)
        partition_key = self.partition_key(collection)

        async def _fetch() -> list[Record]:
            try:
                manifest = await container.read_item(
                    item=MANIFEST_ID, partition_key=partition_key
                )
            except CosmosResourceNotFoundError:
                return []

            docs: list[dict[str, Any]] = []
            async for doc in container.query_items(
                query=(
                    "SELECT c.position, c.record FROM c "
                    "WHERE c.type = @type AND c.generation = @generation"
                ),
                parameters=[
                    {"name": "@type", "value": DOC_TYPE_RECORD},
                    {"name": "@generation", "value": manifest["generation"]},
                ],
                partition_key=partition_key,
            ):
                docs.append(doc)

            docs.sort(key=lambda d: d.get("position", 0))
            return [d["record"] for d in docs]

        return await self._guard("fetch_collection", collection.key, _fetch())

    async def bulk_write(self, collection: Collection, items: list[Record]) -> None:
        container = self._require_container("bulk_write", collection)
        partition_key = self.partition_key(collection)
        generation = uuid.uuid4().hex

        docs = [
            {
                "id": uuid.uuid4().hex,
                "partition_key": partition_key,
                "type": DOC_TYPE_RECORD,
                "tenant_id": self.config.tenant_id,
                "collection": collection.key,
                "generation": generation,
                "record_id": str(item["id"]),
                "position": position,
                "record": item,
            }
            for position, item in enumerate(items)
        ]

        async def _write() -> None:
            for start in range(0, len(docs), WRITE_CONCURRENCY):
                batch = docs[start : start + WRITE_CONCURRENCY]
                await asyncio.gather(*(container.upsert_item(body=doc) for doc in batch))

            # The manifest flip is the commit point
            await container.upsert_item(
                body={
                    "id": MANIFEST_ID,
                    "partition_key": partition_key,
                    "type": DOC_TYPE_MANIFEST,
                    "tenant_id": self.config.tenant_id,
                    "collection": collection.key,
                    "generation": generation,
                    "count": len(docs),
                    "updated": datetime.now(UTC).isoformat(),
                }
            )

        await self._guard("bulk_write", collection.key, _write())
        self._log.debug(
            f"Wrote {len(docs)} records to {collection.key}",
            extra={"collection": collection.key, "generation": generation},
        )

        try:
            await self._guard(
                "prune", collection.key, self._prune(container, partition_key, generation)
            )
        except (PermissionDeniedError, StorageConnectionError) as e:
            # Stale generations are invisible to readers and pruned on the next write
            self._log.warning(f"Failed to prune old generations of {collection.key}: {e}")

    async def close(self) -> None:
        """Close the Cosmos client."""
        if self._client:
            await self._client.close()
            self._client = None
        self._container = None
        await self._close_credential()

    async def _prune(self, container: ContainerProxy, partition_key: str, keep: str) -> None:
        stale: list[str] = []
        async for doc in container.query_items(
            query="SELECT c.id FROM c WHERE c.type = @type AND c.generation != @generation",
            parameters=[
                {"name": "@type", "value": DOC_TYPE_RECORD},
                {"name": "@generation", "value": keep},
            ],
            partition_key=partition_key,
        ):
            stale.append(doc["id"])

        for doc_id in stale:
            try:
                await container.delete_item(item=doc_id, partition_key=partition_key)
            except CosmosResourceNotFoundError:
                pass  # Already deleted

    async def _close_credential(self) -> None:
        if self._credential:
            await self._credential.close()
            self._credential = None

    def _require_container(self, operation: str, collection: Collection) -> ContainerProxy:
        if self._container is None:
            raise NotConnectedError(operation, collection.key)
        return self._container

    async def _guard(self, operation: str, collection: str, call: Awaitable[T]) -> T:
        """Apply the call timeout and map SDK errors to storage errors."""
        try:
            return await asyncio.wait_for(call, timeout=self.config.timeout_seconds)
        except CosmosHttpResponseError as e:
            if e.status_code in (401, 403):
                raise PermissionDeniedError(collection, operation, str(e)) from e
            raise StorageConnectionError(self.config.endpoint, e, collection) from e
        except (TimeoutError, AzureError, OSError) as e:
            raise StorageConnectionError(self.config.endpoint, e, collection) from e
