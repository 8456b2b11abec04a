"""
Snapshot export and import.

A snapshot bundles the full local contents of every collection plus the
(redacted) settings record:

    {
        "version": "2.0",
        "timestamp": "2024-01-01T00:00:00+00:00",
        "data": {"rooms": [...], "guests": [...], ...},
        "settings": {...}
    }

Export reads the local store only. Import validates the whole bundle before
touching anything, then replaces every collection in one transaction. The
remote store is never involved in either direction.
"""

from __future__ import annotations

import copy
import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from pathlib import Path
from typing import Any

import aiofiles
import aiofiles.os

from .exceptions import InvalidFormatError
from .local.store import LocalStore
from .schema import ALL_COLLECTIONS, Collection, Record, has_record_id
from .settings import AppSettings

logger = logging.getLogger(__name__)

SNAPSHOT_VERSION = "2.0"


@dataclass(frozen=True)
class Snapshot:
    """A point-in-time export. Treat as immutable; ``to_dict`` copies."""

    version: str
    timestamp: str
    data: dict[str, list[Record]] = field(default_factory=dict)
    settings: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "version": self.version,
            "timestamp": self.timestamp,
            "data": copy.deepcopy(self.data),
        }
        if self.settings is not None:
            result["settings"] = copy.deepcopy(self.settings)
        return result

    def records(self, collection: Collection) -> list[Record]:
        return copy.deepcopy(self.data.get(collection.key, []))


def default_backup_name(today: date | None = None) -> str:
    """File name used for downloaded backups."""
    day = today or datetime.now(UTC).date()
    return f"staysync_backup_{day.isoformat()}.json"


async def export_snapshot(local: LocalStore, settings: AppSettings | None = None) -> Snapshot:
    """Read every collection from the local store into a snapshot."""
    data: dict[str, list[Record]] = {}
    # One transaction gives a consistent view across collections
    async with local.transaction(ALL_COLLECTIONS) as tx:
        for collection in ALL_COLLECTIONS:
            data[collection.key] = await tx.to_array(collection)

    snapshot = Snapshot(
        version=SNAPSHOT_VERSION,
        timestamp=datetime.now(UTC).isoformat(),
        data=data,
        settings=settings.to_dict(redact=True) if settings else None,
    )
    logger.info(
        f"Exported snapshot with {sum(len(v) for v in data.values())} records "
        f"across {len(data)} collections"
    )
    return snapshot


def parse_snapshot(bundle: Snapshot | Mapping[str, Any]) -> dict[Collection, list[Record]]:
    """Validate a bundle and extract the recognized collections.

    Recognized collections missing from the bundle map to an empty list.
    Unknown keys are ignored.

    Raises:
        InvalidFormatError: If the bundle does not have the expected shape
    """
    if isinstance(bundle, Snapshot):
        bundle = bundle.to_dict()

    if not isinstance(bundle, Mapping):
        raise InvalidFormatError("bundle must be a JSON object")

    for key in ("version", "timestamp"):
        if not isinstance(bundle.get(key), str):
            raise InvalidFormatError(f"missing or non-string '{key}'", key)

    try:
        datetime.fromisoformat(bundle["timestamp"])
    except ValueError as e:
        raise InvalidFormatError("timestamp is not ISO-8601", "timestamp") from e

    data = bundle.get("data")
    if not isinstance(data, Mapping):
        raise InvalidFormatError("missing or non-object 'data'", "data")

    parsed: dict[Collection, list[Record]] = {}
    for collection in ALL_COLLECTIONS:
        items = data.get(collection.key, [])
        if not isinstance(items, list):
            raise InvalidFormatError("collection must be a list", collection.key)

        seen: set[str] = set()
        for item in items:
            if not has_record_id(item):
                raise InvalidFormatError("every record needs a non-empty 'id'", collection.key)
            record_id = str(item["id"])
            if record_id in seen:
                raise InvalidFormatError(f"duplicate id {record_id}", collection.key)
            seen.add(record_id)

        parsed[collection] = [dict(item) for item in items]

    return parsed


async def import_snapshot(local: LocalStore, bundle: Snapshot | Mapping[str, Any]) -> None:
    """Replace every collection with the bundle's contents, all or nothing."""
    parsed = parse_snapshot(bundle)

    async with local.transaction(ALL_COLLECTIONS) as tx:
        for collection, items in parsed.items():
            await tx.replace(collection, items)

    logger.info(f"Imported snapshot with {sum(len(v) for v in parsed.values())} records")


async def write_snapshot_file(snapshot: Snapshot, path: str | Path) -> Path:
    """Write a snapshot as indented JSON."""
    target = Path(path)
    await aiofiles.os.makedirs(target.parent, exist_ok=True)
    async with aiofiles.open(target, "w", encoding="utf-8") as f:
        await f.write(json.dumps(snapshot.to_dict(), indent=2, ensure_ascii=False))
    return target


async def read_snapshot_file(path: str | Path) -> dict[str, Any]:
    """Read a JSON backup file.

    Raises:
        InvalidFormatError: If the file is not UTF-8 encoded JSON
    """
    async with aiofiles.open(Path(path), encoding="utf-8") as f:
        try:
            content = await f.read()
        except UnicodeDecodeError as e:
            raise InvalidFormatError(f"file is not UTF-8 text: {e.reason}") from e
    try:
        return json.loads(content)
    except json.JSONDecodeError as e:
        raise InvalidFormatError(f"file is not valid JSON: {e.msg}") from e
