"""Tests for collection subscriptions."""

from staysync_storage.schema import Collection
from staysync_storage.subscriptions import SubscriptionHub


class TestSubscriptionHub:
    async def test_publish_delivers_snapshot(self):
        hub = SubscriptionHub()
        seen = []
        hub.subscribe(Collection.ROOMS, lambda coll, items: seen.append((coll, items)))

        delivered = await hub.publish(Collection.ROOMS, [{"id": "101"}], hub.issue_ticket("rooms"))

        assert delivered is True
        assert seen == [(Collection.ROOMS, [{"id": "101"}])]
        assert hub.latest(Collection.ROOMS) == [{"id": "101"}]

    async def test_only_matching_collection_notified(self):
        hub = SubscriptionHub()
        seen = []
        hub.subscribe(Collection.GUESTS, lambda coll, items: seen.append(items))
        await hub.publish(Collection.ROOMS, [{"id": "101"}], hub.issue_ticket(Collection.ROOMS))
        assert seen == []

    async def test_stale_result_dropped(self):
        hub = SubscriptionHub()
        seen = []
        hub.subscribe(Collection.ROOMS, lambda coll, items: seen.append(items))

        slow = hub.issue_ticket(Collection.ROOMS)
        fast = hub.issue_ticket(Collection.ROOMS)

        assert await hub.publish(Collection.ROOMS, [{"id": "new"}], fast) is True
        assert await hub.publish(Collection.ROOMS, [{"id": "old"}], slow) is False
        assert seen == [[{"id": "new"}]]
        assert hub.latest(Collection.ROOMS) == [{"id": "new"}]

    async def test_tickets_are_per_collection(self):
        hub = SubscriptionHub()
        rooms = hub.issue_ticket(Collection.ROOMS)
        hub.issue_ticket(Collection.GUESTS)
        hub.issue_ticket(Collection.GUESTS)
        assert await hub.publish(Collection.ROOMS, [], rooms) is True

    async def test_async_listener(self):
        hub = SubscriptionHub()
        seen = []

        async def listener(coll, items):
            seen.append(len(items))

        hub.subscribe(Collection.STAFF, listener)
        await hub.publish(Collection.STAFF, [{"id": "s1"}], hub.issue_ticket(Collection.STAFF))
        assert seen == [1]

    async def test_failing_listener_does_not_block_others(self, caplog):
        hub = SubscriptionHub()
        seen = []

        def broken(coll, items):
            raise RuntimeError("render failed")

        hub.subscribe(Collection.ROOMS, broken)
        hub.subscribe(Collection.ROOMS, lambda coll, items: seen.append(items))

        await hub.publish(Collection.ROOMS, [], hub.issue_ticket(Collection.ROOMS))

        assert seen == [[]]
        assert "render failed" in caplog.text

    async def test_unsubscribe(self):
        hub = SubscriptionHub()
        seen = []
        unsubscribe = hub.subscribe(Collection.ROOMS, lambda coll, items: seen.append(items))
        assert hub.listener_count("rooms") == 1

        unsubscribe()
        unsubscribe()

        await hub.publish(Collection.ROOMS, [], hub.issue_ticket(Collection.ROOMS))
        assert seen == []
        assert hub.listener_count(Collection.ROOMS) == 0

    async def test_listeners_get_copies(self):
        hub = SubscriptionHub()
        received = []
        hub.subscribe(Collection.ROOMS, lambda coll, items: received.append(items))
        items = [{"id": "101"}]
        await hub.publish(Collection.ROOMS, items, hub.issue_ticket(Collection.ROOMS))

        received[0].clear()
        assert hub.latest(Collection.ROOMS) == [{"id": "101"}]

    def test_latest_before_publish(self):
        assert SubscriptionHub().latest(Collection.ROOMS) is None
