"""
Collection subscriptions.

Observers register per collection and receive the full collection snapshot
after every load or save. Each engine call takes a ticket when it starts;
a result whose ticket is older than the last delivered one is dropped, so
a slow response can never overwrite a newer one.
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Awaitable, Callable

from .schema import Collection, Record

logger = logging.getLogger(__name__)

Listener = Callable[[Collection, list[Record]], Awaitable[None] | None]


class SubscriptionHub:
    """Per-collection pub/sub with stale-result suppression.

    Usage:
        hub = SubscriptionHub()
        unsubscribe = hub.subscribe(Collection.ROOMS, on_rooms)
        ticket = hub.issue_ticket(Collection.ROOMS)
        ...
        await hub.publish(Collection.ROOMS, rooms, ticket)
        unsubscribe()
    """

    def __init__(self) -> None:
        self._listeners: dict[Collection, list[Listener]] = {}
        self._issued: dict[Collection, int] = {}
        self._delivered: dict[Collection, int] = {}
        self._latest: dict[Collection, list[Record]] = {}

    def subscribe(self, collection: Collection | str, listener: Listener) -> Callable[[], None]:
        """Register a listener. Returns a callable that removes it."""
        coll = Collection.parse(collection)
        self._listeners.setdefault(coll, []).append(listener)

        def unsubscribe() -> None:
            listeners = self._listeners.get(coll, [])
            if listener in listeners:
                listeners.remove(listener)

        return unsubscribe

    def listener_count(self, collection: Collection | str) -> int:
        return len(self._listeners.get(Collection.parse(collection), []))

    def issue_ticket(self, collection: Collection | str) -> int:
        """Reserve the next ordering ticket for a collection."""
        coll = Collection.parse(collection)
        ticket = self._issued.get(coll, 0) + 1
        self._issued[coll] = ticket
        return ticket

    def latest(self, collection: Collection | str) -> list[Record] | None:
        """Last snapshot delivered for a collection, if any."""
        snapshot = self._latest.get(Collection.parse(collection))
        return list(snapshot) if snapshot is not None else None

    async def publish(
        self,
        collection: Collection | str,
        items: list[Record],
        ticket: int,
    ) -> bool:
        """Deliver a snapshot to every listener of the collection.

        Returns:
            False if the snapshot was stale and dropped, True otherwise.
        """
        coll = Collection.parse(collection)
        if ticket <= self._delivered.get(coll, 0):
            logger.debug(f"Dropping stale {coll.key} snapshot (ticket {ticket})")
            return False

        self._delivered[coll] = ticket
        self._latest[coll] = list(items)

        for listener in list(self._listeners.get(coll, [])):
            try:
                result = listener(coll, list(items))
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(f"Subscriber for {coll.key} raised: {e}")

        return True
