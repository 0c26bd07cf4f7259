import asyncio
import logging
import threading
from collections import deque
from typing import Callable, Deque, List, Optional, Set

from app.config import settings
from app.schemas.events import BookAvailabilityEvent

logger = logging.getLogger(__name__)

Sink = Callable[[BookAvailabilityEvent], None]


class Subscription:
    """One subscriber's view of the availability stream.

    Events are handed over to the subscriber's own event loop, so ``publish``
    may be called from any thread.
    """

    def __init__(self, notifier: "AvailabilityNotifier", loop: asyncio.AbstractEventLoop, maxsize: int):
        self._notifier = notifier
        self._loop = loop
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self.closed = False

    def _put(self, event: BookAvailabilityEvent):
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            logger.warning(f"Availability subscriber is lagging, dropping event for book {event.book_id}")

    def offer(self, event: BookAvailabilityEvent):
        if self.closed:
            return
        try:
            self._loop.call_soon_threadsafe(self._put, event)
        except RuntimeError:
            # Subscriber's loop is gone
            logger.info("Dropping availability subscriber whose event loop has closed")
            self.close()

    async def get(self) -> BookAvailabilityEvent:
        return await self._queue.get()

    def pending(self) -> int:
        return self._queue.qsize()

    def close(self):
        if not self.closed:
            self.closed = True
            self._notifier.unsubscribe(self)

    def __aiter__(self):
        return self

    async def __anext__(self) -> BookAvailabilityEvent:
        if self.closed:
            raise StopAsyncIteration
        return await self.get()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()


class AvailabilityNotifier:
    """In-process publish/subscribe channel for book availability events.

    Keeps the last ``history_size`` events and replays them to every new
    subscriber before live events. Publishing never raises: delivery is
    best-effort and must not affect the loan transaction that triggered it.
    """

    def __init__(self, history_size: int = 100, subscriber_buffer: int = 256):
        self.history_size = history_size
        self._history: Deque[BookAvailabilityEvent] = deque(maxlen=history_size)
        self._subscribers: Set[Subscription] = set()
        self._sinks: List[Sink] = []
        self._subscriber_buffer = subscriber_buffer
        self._lock = threading.RLock()

    def publish(self, event: BookAvailabilityEvent):
        logger.info(f"Publishing availability event: book {event.book_id} ({event.isbn}) available={event.available}")
        with self._lock:
            self._history.append(event)
            subscribers = list(self._subscribers)
            sinks = list(self._sinks)

            for subscriber in subscribers:
                subscriber.offer(event)

        for sink in sinks:
            try:
                sink(event)
            except Exception as e:
                logger.error(f"Availability sink {sink!r} failed for book {event.book_id}: {e}", exc_info=True)

    def subscribe(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> Subscription:
        """Register a subscriber; must be called from the consuming event loop."""
        loop = loop or asyncio.get_running_loop()
        subscription = Subscription(self, loop, maxsize=self.history_size + self._subscriber_buffer)
        with self._lock:
            for event in self._history:
                subscription._put(event)
            self._subscribers.add(subscription)
        logger.info(f"Availability subscriber added ({self.subscriber_count} active)")
        return subscription

    def unsubscribe(self, subscription: Subscription):
        with self._lock:
            self._subscribers.discard(subscription)
        logger.info(f"Availability subscriber removed ({self.subscriber_count} active)")

    def add_sink(self, sink: Sink):
        """Register a synchronous callback invoked for every published event."""
        with self._lock:
            self._sinks.append(sink)

    def remove_sink(self, sink: Sink):
        with self._lock:
            if sink in self._sinks:
                self._sinks.remove(sink)

    def history(self) -> List[BookAvailabilityEvent]:
        with self._lock:
            return list(self._history)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)


availability_notifier = AvailabilityNotifier(history_size=settings.availability_history_size)


def get_notifier() -> AvailabilityNotifier:
    return availability_notifier
