import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Set

from app.core.config import settings

logger = logging.getLogger(__name__)


class FeedSubscription:
    """One live session's view of an owner's feed.

    Events are queued in publish order, so events for the same bookmark are
    never reordered for a given subscriber.
    """

    def __init__(self, owner_id: str, maxsize: int):
        self.owner_id = owner_id
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self.overflowed = False
        self.closed = asyncio.Event()

    def offer(self, event: dict) -> bool:
        if self.closed.is_set():
            return False
        try:
            self.queue.put_nowait(event)
            return True
        except asyncio.QueueFull:
            self.overflowed = True
            self.closed.set()
            return False

    async def get(self) -> dict:
        return await self.queue.get()


class FeedManager:
    def __init__(self, queue_size: int = 100):
        self.queue_size = queue_size
        self.subscriptions: Dict[str, Set[FeedSubscription]] = {}

    def _register(self, owner_id: str) -> FeedSubscription:
        subscription = FeedSubscription(owner_id, self.queue_size)
        self.subscriptions.setdefault(owner_id, set()).add(subscription)
        logger.info(f"Feed subscriber added for {owner_id} ({len(self.subscriptions[owner_id])} live)")
        return subscription

    def _release(self, subscription: FeedSubscription):
        subscription.closed.set()
        live = self.subscriptions.get(subscription.owner_id)
        if live is None:
            return
        live.discard(subscription)
        if not live:
            del self.subscriptions[subscription.owner_id]
        logger.info(f"Feed subscriber released for {subscription.owner_id}")

    @asynccontextmanager
    async def subscribe(self, owner_id: str) -> AsyncIterator[FeedSubscription]:
        """Register a subscription for the block; it is always released on exit."""
        subscription = self._register(owner_id)
        try:
            yield subscription
        finally:
            self._release(subscription)

    def subscriber_count(self, owner_id: str) -> int:
        return len(self.subscriptions.get(owner_id, ()))

    def publish(self, owner_id: str, event: dict) -> int:
        """Fan ``event`` out to every live subscription of ``owner_id``.

        Does not suspend, so a caller that publishes right after its commit
        cannot be overtaken by another request's later event.
        """
        delivered = 0
        for subscription in list(self.subscriptions.get(owner_id, ())):
            if subscription.offer(event):
                delivered += 1
            elif subscription.overflowed:
                logger.warning(f"Dropping slow feed subscriber for {owner_id}")
                self._release(subscription)
        return delivered

    def publish_insert(self, owner_id: str, record: dict) -> int:
        return self.publish(owner_id, {"type": "insert", "record": record})

    def publish_delete(self, owner_id: str, bookmark_id: str) -> int:
        return self.publish(owner_id, {"type": "delete", "id": bookmark_id})


# Singleton instance
feed = FeedManager(queue_size=settings.FEED_QUEUE_SIZE)
