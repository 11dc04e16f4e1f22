"""Outbound notification channel.

Components publish status changes, log lines, message arrivals, command
output and prompt transitions as topic events. Subscribers consume them
independently; delivery is best-effort and at-most-once, it is never part
of any operation's correctness.
"""

import asyncio
import fnmatch
import logging
from datetime import datetime
from typing import Any, Callable, Dict, List

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class Event(BaseModel):
    """A published notification."""
    topic: str
    payload: Any = None
    timestamp: datetime = Field(default_factory=datetime.now)


class Subscription:
    """A queue-backed subscription to one or more topics.

    Iterate with ``async for event in subscription`` or call ``get()``.
    """

    def __init__(self, channel: 'EventChannel', pattern: str, maxsize: int):
        self._channel = channel
        self.pattern = pattern
        self.queue: "asyncio.Queue[Event]" = asyncio.Queue(maxsize=maxsize)
        self.dropped = 0

    def matches(self, topic: str) -> bool:
        return fnmatch.fnmatchcase(topic, self.pattern)

    async def get(self) -> Event:
        return await self.queue.get()

    def close(self) -> None:
        self._channel.unsubscribe(self)

    def __aiter__(self):
        return self

    async def __anext__(self) -> Event:
        return await self.queue.get()


class EventChannel:
    """Explicit publish/subscribe channel handed to each component.

    This class provides:
    1. Queue subscriptions filtered by glob topic patterns (``"command:*"``)
    2. Synchronous in-process listeners for components that react to events
    3. Non-blocking publish that drops events for full subscribers
    """

    def __init__(self, name: str = "events"):
        self.name = name
        self._subscriptions: List[Subscription] = []
        self._listeners: Dict[str, List[Callable[[Event], Any]]] = {}

    def subscribe(self, pattern: str = "*", maxsize: int = 1000) -> Subscription:
        """Create a queue subscription for topics matching ``pattern``."""
        subscription = Subscription(self, pattern, maxsize)
        self._subscriptions.append(subscription)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)

    def add_listener(self, topic: str, callback: Callable[[Event], Any]) -> None:
        """Register a callback invoked synchronously on every ``topic`` event."""
        self._listeners.setdefault(topic, []).append(callback)

    def remove_listener(self, topic: str, callback: Callable[[Event], Any]) -> None:
        callbacks = self._listeners.get(topic, [])
        if callback in callbacks:
            callbacks.remove(callback)

    def publish(self, topic: str, payload: Any = None) -> Event:
        """Publish an event to listeners and subscribers.

        Listener exceptions are logged and never reach the publisher.

        Args:
            topic: Event topic, e.g. ``"agent:status-change"``
            payload: JSON-friendly payload or pydantic model

        Returns:
            The published event
        """
        if isinstance(payload, BaseModel):
            payload = payload.model_dump(mode="json")
        event = Event(topic=topic, payload=payload)

        for callback in list(self._listeners.get(topic, [])):
            try:
                callback(event)
            except Exception as e:
                logger.error(f"Listener for '{topic}' failed: {e}", exc_info=True)

        for subscription in list(self._subscriptions):
            if not subscription.matches(topic):
                continue
            try:
                subscription.queue.put_nowait(event)
            except asyncio.QueueFull:
                subscription.dropped += 1
                logger.debug(f"Dropped '{topic}' event for slow subscriber '{subscription.pattern}'")
        return event

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

