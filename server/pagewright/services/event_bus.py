"""In-process publish/subscribe router for session events."""
from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Any, Dict, NamedTuple, Optional

logger = logging.getLogger(__name__)


class TopicKind(str, Enum):
    """Families of events routed per session."""

    MESSAGE_DELTA = "MESSAGE_DELTA"
    TOOL_EVENT = "TOOL_EVENT"
    DOCUMENT_UPDATED = "DOCUMENT_UPDATED"
    MODEL_MESSAGE_COMPLETED = "MODEL_MSG_COMPLETED"
    TURN_FAILED = "TURN_FAILED"


class TopicKey(NamedTuple):
    """Routing key: one event family for one session."""

    kind: TopicKind
    session_id: str

    def __str__(self) -> str:
        return f"{self.kind.value}_{self.session_id}"

    @classmethod
    def message_delta(cls, session_id: str) -> "TopicKey":
        return cls(TopicKind.MESSAGE_DELTA, session_id)

    @classmethod
    def tool_event(cls, session_id: str) -> "TopicKey":
        return cls(TopicKind.TOOL_EVENT, session_id)

    @classmethod
    def document_updated(cls, session_id: str) -> "TopicKey":
        return cls(TopicKind.DOCUMENT_UPDATED, session_id)

    @classmethod
    def model_message_completed(cls, session_id: str) -> "TopicKey":
        return cls(TopicKind.MODEL_MESSAGE_COMPLETED, session_id)

    @classmethod
    def turn_failed(cls, session_id: str) -> "TopicKey":
        return cls(TopicKind.TURN_FAILED, session_id)

    @classmethod
    def all_for(cls, session_id: str) -> list["TopicKey"]:
        return [cls(kind, session_id) for kind in TopicKind]


_CLOSED = object()


class Subscription:
    """Independent cursor over every payload published to a set of keys after creation.

    Iterate with ``async for``; iteration ends once the subscription is closed, either
    explicitly or because the consumer fell more than ``max_pending`` events behind.
    """

    def __init__(self, bus: "EventBus", keys: tuple[TopicKey, ...], max_pending: int) -> None:
        self._bus = bus
        self.keys = keys
        self._max_pending = max_pending
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        self._closed = False
        self.overflowed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pending(self) -> int:
        """Number of payloads delivered but not consumed yet."""
        size = self._queue.qsize()
        # A closed subscription always holds the end-of-stream marker.
        return size - 1 if self._closed else size

    def _offer(self, payload: Any) -> bool:
        if self._closed:
            return False
        if self._max_pending and self._queue.qsize() >= self._max_pending:
            logger.warning(
                "Subscriber on %s fell %d events behind; disconnecting it",
                ", ".join(str(key) for key in self.keys),
                self._max_pending,
            )
            self.overflowed = True
            while not self._queue.empty():
                self._queue.get_nowait()
            self.close()
            return False
        self._queue.put_nowait(payload)
        return True

    def close(self) -> None:
        """Unsubscribe from every key and end the iterator."""
        if self._closed:
            return
        self._closed = True
        self._bus._detach(self)
        self._queue.put_nowait(_CLOSED)

    def __aiter__(self) -> "Subscription":
        return self

    async def __anext__(self) -> Any:
        item = await self._queue.get()
        if item is _CLOSED:
            # Leave the marker in place so later calls end as well.
            self._queue.put_nowait(_CLOSED)
            raise StopAsyncIteration
        return item

    async def __aenter__(self) -> "Subscription":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        self.close()


class EventBus:
    """Fan published payloads out to the current subscribers of a topic key.

    Publishing never waits on a consumer: every subscription owns its own queue, so a
    slow or vanished subscriber cannot hold up the publisher or its peers. Payloads
    published before a subscription exists are not replayed to it.
    """

    def __init__(self, max_pending: int = 1000) -> None:
        self._max_pending = max_pending
        self._subscribers: Dict[TopicKey, list[Subscription]] = {}

    @property
    def max_pending(self) -> int:
        return self._max_pending

    def subscribe(self, key: TopicKey, *more_keys: TopicKey, max_pending: Optional[int] = None) -> Subscription:
        """Register a new subscription on one or more keys, effective immediately."""
        keys = tuple(dict.fromkeys((key, *more_keys)))
        limit = self._max_pending if max_pending is None else max_pending
        subscription = Subscription(self, keys, limit)
        for topic in keys:
            self._subscribers.setdefault(topic, []).append(subscription)
        logger.debug("Subscribed to %s", ", ".join(str(topic) for topic in keys))
        return subscription

    async def publish(self, key: TopicKey, payload: Any) -> int:
        """Deliver ``payload`` to every subscriber of ``key`` and return how many got it."""
        subscribers = self._subscribers.get(key)
        if not subscribers:
            return 0
        delivered = 0
        for subscription in list(subscribers):
            if subscription._offer(payload):
                delivered += 1
        return delivered

    def subscriber_count(self, key: TopicKey) -> int:
        return len(self._subscribers.get(key, ()))

    def _detach(self, subscription: Subscription) -> None:
        for topic in subscription.keys:
            subscribers = self._subscribers.get(topic)
            if not subscribers:
                continue
            if subscription in subscribers:
                subscribers.remove(subscription)
            if not subscribers:
                del self._subscribers[topic]
