"""In-process publish/subscribe bus for listing events.

Delivery is best-effort: publish never blocks, a subscriber whose queue is full
misses the event, and nothing is replayed to subscribers that connect later.
"""

import asyncio
import logging
import threading
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any

from app.core.config import get_settings
from app.core.exceptions import DeliveryFailure

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class Subscription:
    """One connected subscriber: a bounded queue bound to the loop that drains it."""

    queue: asyncio.Queue
    loop: asyncio.AbstractEventLoop
    dropped: int = field(default=0)


class EventBus:
    """Fan-out of events to every current subscriber."""

    def __init__(self, max_pending: int = 100) -> None:
        self._max_pending = max_pending
        self._subscribers: set[Subscription] = set()
        self._lock = threading.Lock()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def subscribe(self) -> Subscription:
        """Register a subscriber for the running event loop. Must be called from a coroutine."""
        if self._closed:
            raise DeliveryFailure("Event bus is closed.")
        sub = Subscription(
            queue=asyncio.Queue(maxsize=self._max_pending),
            loop=asyncio.get_running_loop(),
        )
        with self._lock:
            self._subscribers.add(sub)
        logger.debug("Subscriber added (total=%s)", len(self._subscribers))
        return sub

    def unsubscribe(self, sub: Subscription) -> None:
        with self._lock:
            self._subscribers.discard(sub)
        logger.debug("Subscriber removed (total=%s)", len(self._subscribers))

    def publish(self, event_type: str, data: dict[str, Any]) -> int:
        """
        Queue {"type": event_type, "data": data} for every subscriber.

        Returns the number of subscribers the event was handed to. Raises
        DeliveryFailure only when the bus itself is closed.
        """
        if self._closed:
            raise DeliveryFailure("Event bus is closed.")
        event = {"type": event_type, "data": data}
        with self._lock:
            subscribers = list(self._subscribers)
        try:
            current_loop = asyncio.get_running_loop()
        except RuntimeError:
            current_loop = None

        handed_off = 0
        for sub in subscribers:
            if sub.loop is current_loop:
                if self._offer(sub, event):
                    handed_off += 1
                continue
            try:
                sub.loop.call_soon_threadsafe(self._offer, sub, event)
                handed_off += 1
            except RuntimeError:
                # Loop already closed: the connection is gone.
                logger.info("Dropping subscriber whose event loop is closed")
                self.unsubscribe(sub)
        return handed_off

    def _offer(self, sub: Subscription, event: dict[str, Any] | None) -> bool:
        try:
            sub.queue.put_nowait(event)
            return True
        except asyncio.QueueFull:
            sub.dropped += 1
            logger.warning(
                "Subscriber queue full; dropped event type=%s (dropped_total=%s)",
                event["type"] if event else None,
                sub.dropped,
            )
            return False

    def close(self) -> None:
        """Stop accepting events and wake every subscriber with a None sentinel."""
        self._closed = True
        with self._lock:
            subscribers = list(self._subscribers)
            self._subscribers.clear()
        for sub in subscribers:
            try:
                sub.loop.call_soon_threadsafe(self._offer, sub, None)
            except RuntimeError:
                logger.debug("Subscriber loop already closed during shutdown")


@lru_cache
def get_event_bus() -> EventBus:
    """Process-wide bus (FastAPI dependency; override in tests)."""
    return EventBus(max_pending=get_settings().EVENTS_MAX_PENDING)
