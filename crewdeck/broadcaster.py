import asyncio
from typing import Any, Dict, List, Union

from loguru import logger
from pydantic import BaseModel

Event = Union[BaseModel, Dict[str, Any]]

class Subscription:
    """One observer's view of the event stream: a bounded FIFO queue"""

    def __init__(self, maxsize: int = 100):
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self.dropped = False

    async def get(self) -> Dict[str, Any]:
        return await self.queue.get()

    def put_nowait(self, message: Dict[str, Any]) -> None:
        self.queue.put_nowait(message)

class EventBroadcaster:
    """Fan-out of execution events to every subscribed session.

    No filtering: every subscription receives every execution's events.
    A subscription that cannot take a message is dropped and flagged so its
    owner can close the connection; the rest still receive it.
    """

    def __init__(self, queue_size: int = 100):
        self.queue_size = queue_size
        self._subscribers: List[Subscription] = []

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self) -> Subscription:
        subscription = Subscription(maxsize=self.queue_size)
        self._subscribers.append(subscription)
        logger.debug(f"Observer subscribed ({len(self._subscribers)} connected)")
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        if subscription in self._subscribers:
            self._subscribers.remove(subscription)
            logger.debug(f"Observer unsubscribed ({len(self._subscribers)} connected)")

    def publish(self, event: Event) -> int:
        """Queue an event for every subscriber; returns how many took it"""
        message = event.model_dump(mode="json") if isinstance(event, BaseModel) else event

        delivered = 0
        failed_subscriptions = []
        for subscription in list(self._subscribers):
            try:
                subscription.put_nowait(message)
                delivered += 1
            except asyncio.QueueFull:
                logger.warning("Observer queue full, dropping subscriber")
                failed_subscriptions.append(subscription)
            except Exception as e:
                logger.warning(f"Error broadcasting execution event: {e}")
                failed_subscriptions.append(subscription)

        for subscription in failed_subscriptions:
            subscription.dropped = True
            self.unsubscribe(subscription)

        return delivered
