"""Best-effort live-insert notifications.

The push channel is a hint layered over the pollers, never the source of
truth: publishing never raises, slow subscribers drop events, and clients
always de-duplicate by id and re-sort by time.
"""

import asyncio
import logging
from collections import defaultdict
from collections.abc import AsyncIterator

from pydantic import BaseModel

logger = logging.getLogger(__name__)

CONVERSATIONS_TOPIC = "conversations"


def conversation_topic(conversation_id: str) -> str:
    """Topic carrying new messages of one conversation."""
    return f"conversation:{conversation_id}"


class Subscription:
    """A queue of events for one subscriber on one topic."""

    def __init__(self, broker: "PushBroker", topic: str, max_queue: int):
        self.broker = broker
        self.topic = topic
        self.queue: asyncio.Queue[BaseModel] = asyncio.Queue(maxsize=max_queue)
        self.dropped = 0

    async def get(self, timeout: float | None = None) -> BaseModel | None:
        """Next event, or None if nothing arrived within timeout."""
        try:
            return await asyncio.wait_for(self.queue.get(), timeout)
        except asyncio.TimeoutError:
            return None

    def close(self) -> None:
        self.broker.unsubscribe(self)

    async def __aiter__(self) -> AsyncIterator[BaseModel]:
        while True:
            yield await self.queue.get()


class PushBroker:
    """In-process fan-out of newly inserted records."""

    def __init__(self, max_queue: int = 100):
        self.max_queue = max_queue
        self._subscribers: dict[str, set[Subscription]] = defaultdict(set)

    def subscribe(self, topic: str) -> Subscription:
        subscription = Subscription(self, topic, self.max_queue)
        self._subscribers[topic].add(subscription)
        logger.debug(f"Push subscriber added on {topic}")
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        subscribers = self._subscribers.get(subscription.topic)
        if subscribers is None:
            return
        subscribers.discard(subscription)
        if not subscribers:
            del self._subscribers[subscription.topic]

    def subscriber_count(self, topic: str) -> int:
        return len(self._subscribers.get(topic, ()))

    def publish(self, topic: str, record: BaseModel) -> int:
        """Offer a record to every subscriber of a topic.

        Returns:
            Number of subscribers that accepted it
        """
        delivered = 0
        for subscription in list(self._subscribers.get(topic, ())):
            try:
                subscription.queue.put_nowait(record)
                delivered += 1
            except asyncio.QueueFull:
                subscription.dropped += 1
                logger.info(f"Push subscriber on {topic} is full, dropped event")
        return delivered
