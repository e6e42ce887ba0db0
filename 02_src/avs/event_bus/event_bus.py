"""EventBus carrying normalised ledger events to their single owner."""

import asyncio
import uuid
from datetime import datetime, timezone
from typing import Awaitable, Callable, Protocol

from ..logging_config import get_logger
from ..models import BusMessage, Topic
from ..storage import IStorage

logger = get_logger(__name__)


TopicHandler = Callable[[BusMessage], Awaitable[None]]


class IEventBus(Protocol):
    """Topic-keyed pub/sub for ledger events."""

    def subscribe(self, topic: Topic, handler: TopicHandler) -> None:
        ...

    def unsubscribe(self, topic: Topic, handler: TopicHandler) -> None:
        ...

    async def publish(self, message: BusMessage) -> None:
        ...


class EventBus:
    """In-process bus; every message is written to storage before delivery.

    Handlers of one topic run concurrently. A handler that raises is logged
    and does not affect the others or the publisher.
    """

    def __init__(self, storage: IStorage):
        self._storage = storage
        self._handlers: dict[Topic, list[TopicHandler]] = {topic: [] for topic in Topic}

    def subscribe(self, topic: Topic, handler: TopicHandler) -> None:
        self._handlers[topic].append(handler)

    def unsubscribe(self, topic: Topic, handler: TopicHandler) -> None:
        """Remove a handler; unknown handlers are ignored."""
        handlers = self._handlers[topic]
        if handler in handlers:
            handlers.remove(handler)

    async def emit(self, topic: Topic, payload: dict, source: str) -> BusMessage:
        """Wrap a payload in a BusMessage and publish it."""
        message = BusMessage(
            id=uuid.uuid4().hex,
            topic=topic,
            payload=payload,
            source=source,
            timestamp=datetime.now(timezone.utc),
        )
        await self.publish(message)
        return message

    async def publish(self, message: BusMessage) -> None:
        message.id = message.id or uuid.uuid4().hex
        await self._storage.save_bus_message(message)

        handlers = tuple(self._handlers[message.topic])
        outcomes = await asyncio.gather(
            *(handler(message) for handler in handlers), return_exceptions=True
        )
        for handler, outcome in zip(handlers, outcomes):
            if isinstance(outcome, Exception):
                logger.error(
                    "%s handler %s failed: %s",
                    message.topic.value,
                    getattr(handler, "__qualname__", handler),
                    outcome,
                    exc_info=outcome,
                )
