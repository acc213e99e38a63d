"""Tests for ChangeFeed and Subscription."""

import asyncio
import pytest

from chatrelay.models.event import ChangeEvent, EventKind
from chatrelay.services.change_feed import ChangeFeed, CONVERSATIONS_TOPIC, messages_topic


def _event(entity_id: str, topic: str = CONVERSATIONS_TOPIC, kind: EventKind = EventKind.UPDATE) -> ChangeEvent:
    return ChangeEvent(topic=topic, kind=kind, entity_type="conversation", entity_id=entity_id)


class TestTopics:
    """SUT: messages_topic"""

    def test_distinct_from_conversations(self):
        assert messages_topic("c1") != CONVERSATIONS_TOPIC
        assert messages_topic("c1") != messages_topic("c2")


class TestChangeFeed:
    """Tests for ChangeFeed."""

    async def test_delivers_to_subscriber(self):
        """A subscriber should receive a published event."""
        feed = ChangeFeed()
        subscription = feed.subscribe(CONVERSATIONS_TOPIC)
        assert feed.publish(CONVERSATIONS_TOPIC, _event("c1")) == 1
        event = await subscription.get(timeout=1)
        assert event.entity_id == "c1"

    async def test_fan_out(self):
        """Every subscriber on the topic should get its own copy."""
        feed = ChangeFeed()
        a = feed.subscribe(CONVERSATIONS_TOPIC)
        b = feed.subscribe(CONVERSATIONS_TOPIC)
        assert feed.publish(CONVERSATIONS_TOPIC, _event("c1")) == 2
        assert (await a.get(timeout=1)).entity_id == "c1"
        assert (await b.get(timeout=1)).entity_id == "c1"

    async def test_publish_order_preserved(self):
        """Events on one topic arrive in publish order."""
        feed = ChangeFeed()
        subscription = feed.subscribe(CONVERSATIONS_TOPIC)
        for i in range(10):
            feed.publish(CONVERSATIONS_TOPIC, _event(f"c{i}"))
        received = [(await subscription.get(timeout=1)).entity_id for _ in range(10)]
        assert received == [f"c{i}" for i in range(10)]

    async def test_topic_isolation(self):
        """A subscriber only sees its own topic."""
        feed = ChangeFeed()
        subscription = feed.subscribe(messages_topic("c1"))
        assert feed.publish(messages_topic("c2"), _event("m1", topic=messages_topic("c2"))) == 0
        assert subscription.pending() == 0

    async def test_no_backfill(self):
        """Events published before subscribing are not replayed."""
        feed = ChangeFeed()
        feed.publish(CONVERSATIONS_TOPIC, _event("early"))
        subscription = feed.subscribe(CONVERSATIONS_TOPIC)
        assert subscription.pending() == 0
        with pytest.raises(asyncio.TimeoutError):
            await subscription.get(timeout=0.05)

    async def test_no_delivery_after_unsubscribe(self):
        """After unsubscribe nothing more is delivered."""
        feed = ChangeFeed()
        subscription = feed.subscribe(CONVERSATIONS_TOPIC)
        feed.unsubscribe(subscription)
        assert feed.publish(CONVERSATIONS_TOPIC, _event("c1")) == 0
        assert await subscription.get() is None

    def test_unsubscribe_idempotent(self):
        """unsubscribe() can be called repeatedly."""
        feed = ChangeFeed()
        subscription = feed.subscribe(CONVERSATIONS_TOPIC)
        feed.unsubscribe(subscription)
        feed.unsubscribe(subscription)
        subscription.close()
        assert subscription.closed is True
        assert feed.subscriber_count(CONVERSATIONS_TOPIC) == 0

    async def test_close_wakes_iterator(self):
        """Closing should end a pending async-for."""
        feed = ChangeFeed()
        subscription = feed.subscribe(CONVERSATIONS_TOPIC)
        received = []

        async def consume():
            async for event in subscription:
                received.append(event.entity_id)

        consumer = asyncio.create_task(consume())
        feed.publish(CONVERSATIONS_TOPIC, _event("c1"))
        await asyncio.sleep(0.01)
        subscription.close()
        await asyncio.wait_for(consumer, timeout=1)
        assert received == ["c1"]

    async def test_iteration_resumable(self):
        """Breaking out of iteration keeps later events queued."""
        feed = ChangeFeed()
        subscription = feed.subscribe(CONVERSATIONS_TOPIC)
        feed.publish(CONVERSATIONS_TOPIC, _event("c1"))
        feed.publish(CONVERSATIONS_TOPIC, _event("c2"))

        async for event in subscription:
            assert event.entity_id == "c1"
            break
        async for event in subscription:
            assert event.entity_id == "c2"
            break

    async def test_context_manager_closes(self):
        feed = ChangeFeed()
        async with feed.subscribe(CONVERSATIONS_TOPIC) as subscription:
            assert feed.subscriber_count(CONVERSATIONS_TOPIC) == 1
        assert subscription.closed is True
        assert feed.subscriber_count(CONVERSATIONS_TOPIC) == 0

    async def test_feed_close(self):
        """close() should close all subscriptions on all topics."""
        feed = ChangeFeed()
        a = feed.subscribe(CONVERSATIONS_TOPIC)
        b = feed.subscribe(messages_topic("c1"))
        feed.close()
        assert a.closed and b.closed
        assert feed.subscriber_count(messages_topic("c1")) == 0
