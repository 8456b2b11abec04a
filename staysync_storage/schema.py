"""
Collection catalog.

Names every domain collection the sync engine manages, the key it uses in
snapshots and remote partitions, and the record fields the local store
indexes for filtered lookups.
"""

from __future__ import annotations

from collections.abc import Mapping
from enum import Enum
from typing import Any

# A record is any JSON-compatible mapping with a caller-assigned "id"
Record = dict[str, Any]


class Collection(Enum):
    """Domain collections. The value is the snapshot / remote key."""

    ROOMS = "rooms"
    GUESTS = "guests"
    STAFF = "staff"
    TRANSACTIONS = "transactions"
    MAINTENANCE = "maintenance"
    HISTORY = "history"
    DOCUMENTS = "documents"
    FEATURE_REQUESTS = "featureRequests"
    ATTENDANCE = "attendance"
    DNR = "dnr"

    @property
    def key(self) -> str:
        return self.value

    @property
    def table(self) -> str:
        """SQLite table name (snake_case form of the key)."""
        return _TABLE_NAMES[self]

    @property
    def indexed_fields(self) -> tuple[str, ...]:
        return INDEXED_FIELDS[self]

    @classmethod
    def parse(cls, value: Collection | str) -> Collection:
        """Resolve a Collection from an enum member or its key."""
        if isinstance(value, Collection):
            return value
        try:
            return cls(value)
        except ValueError:
            raise ValueError(f"Unknown collection: {value}") from None


_TABLE_NAMES: dict[Collection, str] = {
    Collection.ROOMS: "rooms",
    Collection.GUESTS: "guests",
    Collection.STAFF: "staff",
    Collection.TRANSACTIONS: "transactions",
    Collection.MAINTENANCE: "maintenance",
    Collection.HISTORY: "history",
    Collection.DOCUMENTS: "documents",
    Collection.FEATURE_REQUESTS: "feature_requests",
    Collection.ATTENDANCE: "attendance",
    Collection.DNR: "dnr",
}

# Fields used for filtering in the UI. Index choice affects speed only.
INDEXED_FIELDS: dict[Collection, tuple[str, ...]] = {
    Collection.ROOMS: ("number", "status", "type"),
    Collection.GUESTS: ("roomNumber", "status", "name"),
    Collection.STAFF: ("role", "status"),
    Collection.TRANSACTIONS: ("date", "type", "category"),
    Collection.MAINTENANCE: ("roomNumber", "status"),
    Collection.HISTORY: ("guestId", "checkIn"),
    Collection.DOCUMENTS: ("category", "date"),
    Collection.FEATURE_REQUESTS: ("status", "priority"),
    Collection.ATTENDANCE: ("staffId", "timestamp"),
    Collection.DNR: ("name", "dateAdded"),
}

ALL_COLLECTIONS: tuple[Collection, ...] = tuple(Collection)


def has_record_id(item: Any) -> bool:
    """True when ``item`` is a mapping with a non-empty ``id``."""
    return isinstance(item, Mapping) and item.get("id") not in (None, "")
