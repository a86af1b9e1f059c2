"""
Event Bus

Topic based publish/subscribe used for dynamic subscriptions
(`Turn.subscribe_new`). Sessions subscribe handlers bound to themselves, so
a message reaches only the sessions that derived that topic.
"""

import asyncio
import inspect
import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

Handler = Callable[[Any], Any]

ALL_TOPICS = "*"


class EventBus(ABC):
    """Abstract base class for event buses."""

    @abstractmethod
    async def publish(self, event: Any, topic: str = ALL_TOPICS) -> None:
        """Publish an event to the subscribers of `topic`."""
        pass

    @abstractmethod
    def subscribe(self, handler: Handler, topic: str = ALL_TOPICS) -> None:
        """Subscribe a handler to `topic`."""
        pass

    @abstractmethod
    def unsubscribe(self, handler: Handler, topic: str = ALL_TOPICS) -> None:
        pass


class InProcessBus(EventBus):
    """
    In-process event bus for single-instance applications.

    Handlers subscribed to `"*"` receive every event. Handlers may be plain
    functions or coroutines; a failing handler is logged and does not stop
    delivery to the others.
    """

    def __init__(self):
        self._subscribers: Dict[str, List[Handler]] = {}

    def subscribe(self, handler: Handler, topic: str = ALL_TOPICS) -> None:
        handlers = self._subscribers.setdefault(topic, [])
        if handler not in handlers:
            handlers.append(handler)

    def unsubscribe(self, handler: Handler, topic: str = ALL_TOPICS) -> None:
        handlers = self._subscribers.get(topic)
        if handlers and handler in handlers:
            handlers.remove(handler)
            if not handlers:
                del self._subscribers[topic]

    def unsubscribe_all(self, handler: Handler) -> None:
        for topic in list(self._subscribers):
            self.unsubscribe(handler, topic)

    async def publish(self, event: Any, topic: str = ALL_TOPICS) -> None:
        handlers = list(self._subscribers.get(topic, []))
        if topic != ALL_TOPICS:
            handlers += self._subscribers.get(ALL_TOPICS, [])
        if not handlers:
            return

        async def deliver(handler):
            result = handler(event)
            if inspect.isawaitable(result):
                await result

        results = await asyncio.gather(*(deliver(h) for h in handlers), return_exceptions=True)
        for handler, result in zip(handlers, results):
            if isinstance(result, Exception):
                logger.error("Event handler %r failed on topic %s: %s", handler, topic, result,
                             exc_info=result)

    def topics(self) -> List[str]:
        return [t for t in self._subscribers if t != ALL_TOPICS]

    def subscriber_count(self, topic: Optional[str] = None) -> int:
        if topic is not None:
            return len(self._subscribers.get(topic, []))
        return sum(len(h) for h in self._subscribers.values())

    def clear_subscribers(self) -> None:
        self._subscribers.clear()
