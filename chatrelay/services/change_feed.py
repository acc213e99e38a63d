"""In-process change feed: per-topic fan-out of "re-read this" signals."""

import asyncio
import itertools
from typing import AsyncIterator, Dict, Optional, Set

from ..models.event import ChangeEvent
from ..utils.logger import get_app_logger

CONVERSATIONS_TOPIC = "conversations"

_CLOSED = object()


def messages_topic(conversation_id: str) -> str:
    """Topic carrying message changes of one conversation."""
    return f"messages:{conversation_id}"


class Subscription:
    """
    Handle for one subscriber on one topic.

    Iterating yields events in publish order until the handle is closed.
    Iteration may be stopped and resumed; queued events are kept. Events
    published while the handle was not registered are never backfilled.
    """

    _ids = itertools.count(1)

    def __init__(self, feed: "ChangeFeed", topic: str):
        self.id = next(self._ids)
        self.topic = topic
        self._feed = feed
        self._queue: asyncio.Queue = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def pending(self) -> int:
        """Number of events queued but not yet consumed."""
        return self._queue.qsize()

    def _deliver(self, event: ChangeEvent) -> bool:
        if self._closed:
            return False
        self._queue.put_nowait(event)
        return True

    async def get(self, timeout: Optional[float] = None) -> Optional[ChangeEvent]:
        """
        Wait for the next event.

        Returns None once the subscription is closed. Raises
        asyncio.TimeoutError if timeout elapses first.
        """
        if self._closed and self._queue.empty():
            return None
        if timeout is None:
            item = await self._queue.get()
        else:
            item = await asyncio.wait_for(self._queue.get(), timeout)
        if item is _CLOSED:
            return None
        return item

    def close(self) -> None:
        """Stop delivery. Safe to call any number of times."""
        if self._closed:
            return
        self._closed = True
        self._feed._remove(self)
        # Wake a consumer blocked in get()
        self._queue.put_nowait(_CLOSED)

    def __aiter__(self) -> AsyncIterator[ChangeEvent]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[ChangeEvent]:
        while True:
            event = await self.get()
            if event is None:
                return
            yield event

    async def __aenter__(self) -> "Subscription":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        self.close()


class ChangeFeed:
    """Topic-based publish/subscribe over asyncio queues."""

    def __init__(self):
        self._subscriptions: Dict[str, Set[Subscription]] = {}
        self.logger = get_app_logger("feed")

    def subscribe(self, topic: str) -> Subscription:
        """
        Register a new subscription on a topic.

        Args:
            topic: CONVERSATIONS_TOPIC or messages_topic(conversation_id)

        Returns:
            Subscription handle
        """
        subscription = Subscription(self, topic)
        self._subscriptions.setdefault(topic, set()).add(subscription)
        self.logger.debug(f"Subscription {subscription.id} opened on {topic}")
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        """Stop delivery to a subscription. Idempotent."""
        subscription.close()

    def _remove(self, subscription: Subscription) -> None:
        subscribers = self._subscriptions.get(subscription.topic)
        if not subscribers:
            return
        subscribers.discard(subscription)
        if not subscribers:
            del self._subscriptions[subscription.topic]
        self.logger.debug(f"Subscription {subscription.id} closed on {subscription.topic}")

    def publish(self, topic: str, event: ChangeEvent) -> int:
        """
        Deliver an event to every active subscription on a topic.

        Args:
            topic: Topic name
            event: Event to deliver

        Returns:
            Number of subscriptions the event was queued for
        """
        delivered = 0
        for subscription in list(self._subscriptions.get(topic, ())):
            if subscription._deliver(event):
                delivered += 1
        self.logger.debug(
            f"Published {event.kind.value} {event.entity_type} {event.entity_id} on {topic} to {delivered} subscriber(s)"
        )
        return delivered

    def subscriber_count(self, topic: str) -> int:
        """Number of active subscriptions on a topic."""
        return len(self._subscriptions.get(topic, ()))

    def close(self) -> None:
        """Close every subscription, e.g. at shutdown."""
        for subscribers in list(self._subscriptions.values()):
            for subscription in list(subscribers):
                subscription.close()
        self._subscriptions.clear()
        self.logger.info("Change feed closed")
