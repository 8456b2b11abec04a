"""Per-collection convenience wrappers over ``load`` and ``save``."""

from __future__ import annotations

from ..schema import Collection, Record
from ..seed import demo_records
from .routing import SaveResult


class CollectionAccessors:
    """Parameter bindings of the generic load/save pair.

    Getters pass the collection's demo records as seed data.
    """

    async def load(
        self, collection: Collection | str, seed_data: list[Record] | None = None
    ) -> list[Record]:
        raise NotImplementedError

    async def save(self, collection: Collection | str, items: list[Record]) -> SaveResult:
        raise NotImplementedError

    async def _get(self, collection: Collection) -> list[Record]:
        return await self.load(collection, demo_records(collection))

    async def get_rooms(self) -> list[Record]:
        return await self._get(Collection.ROOMS)

    async def save_rooms(self, rooms: list[Record]) -> SaveResult:
        return await self.save(Collection.ROOMS, rooms)

    async def get_guests(self) -> list[Record]:
        return await self._get(Collection.GUESTS)

    async def save_guests(self, guests: list[Record]) -> SaveResult:
        return await self.save(Collection.GUESTS, guests)

    async def get_staff(self) -> list[Record]:
        return await self._get(Collection.STAFF)

    async def save_staff(self, staff: list[Record]) -> SaveResult:
        return await self.save(Collection.STAFF, staff)

    async def get_transactions(self) -> list[Record]:
        return await self._get(Collection.TRANSACTIONS)

    async def save_transactions(self, transactions: list[Record]) -> SaveResult:
        return await self.save(Collection.TRANSACTIONS, transactions)

    async def get_maintenance(self) -> list[Record]:
        return await self._get(Collection.MAINTENANCE)

    async def save_maintenance(self, tickets: list[Record]) -> SaveResult:
        return await self.save(Collection.MAINTENANCE, tickets)

    async def get_history(self) -> list[Record]:
        return await self._get(Collection.HISTORY)

    async def save_history(self, history: list[Record]) -> SaveResult:
        return await self.save(Collection.HISTORY, history)

    async def get_documents(self) -> list[Record]:
        return await self._get(Collection.DOCUMENTS)

    async def save_documents(self, documents: list[Record]) -> SaveResult:
        return await self.save(Collection.DOCUMENTS, documents)

    async def get_feature_requests(self) -> list[Record]:
        return await self._get(Collection.FEATURE_REQUESTS)

    async def save_feature_requests(self, requests: list[Record]) -> SaveResult:
        return await self.save(Collection.FEATURE_REQUESTS, requests)

    async def get_attendance(self) -> list[Record]:
        return await self._get(Collection.ATTENDANCE)

    async def save_attendance(self, logs: list[Record]) -> SaveResult:
        return await self.save(Collection.ATTENDANCE, logs)

    async def get_dnr(self) -> list[Record]:
        return await self._get(Collection.DNR)

    async def save_dnr(self, records: list[Record]) -> SaveResult:
        return await self.save(Collection.DNR, records)
