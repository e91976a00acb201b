from __future__ import annotations

import asyncio
import logging
import threading
from collections import deque

from photosweep.scans.types import ScanProgress

logger = logging.getLogger(__name__)


class CancellationToken:
    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


class ProgressSubscription:
    """Bounded per-subscriber buffer, consumed with ``async for``.

    When the buffer is full the oldest non-terminal event is dropped. The
    terminal event is always kept and ends the iteration.
    """

    def __init__(self, broadcaster: "ProgressBroadcaster", maxsize: int):
        self._broadcaster = broadcaster
        self._maxsize = maxsize
        self._events: deque[ScanProgress] = deque()
        self._ready = asyncio.Event()
        self._closed = False
        self.dropped = 0

    def _push(self, event: ScanProgress) -> None:
        if self._closed:
            return
        if len(self._events) >= self._maxsize:
            for index, queued in enumerate(self._events):
                if not queued.is_terminal:
                    del self._events[index]
                    self.dropped += 1
                    break
        self._events.append(event)
        if event.is_terminal:
            self._closed = True
        self._ready.set()

    def close(self) -> None:
        self._closed = True
        self._broadcaster.unsubscribe(self)
        self._ready.set()

    @property
    def closed(self) -> bool:
        return self._closed

    def __aiter__(self) -> "ProgressSubscription":
        return self

    async def __anext__(self) -> ScanProgress:
        while True:
            if self._events:
                return self._events.popleft()
            if self._closed:
                raise StopAsyncIteration
            self._ready.clear()
            await self._ready.wait()


class ProgressBroadcaster:
    """Fans progress events from the running scan out to every subscriber.

    ``publish`` must be called from the event loop that the subscribers
    iterate on.
    """

    def __init__(self, buffer_size: int = 64):
        if buffer_size < 1:
            raise ValueError("buffer_size must be >= 1")
        self._buffer_size = buffer_size
        self._subscribers: list[ProgressSubscription] = []
        self._lock = threading.Lock()
        self.latest: ScanProgress | None = None

    def subscribe(self) -> ProgressSubscription:
        subscription = ProgressSubscription(self, self._buffer_size)
        with self._lock:
            self._subscribers.append(subscription)
        return subscription

    def unsubscribe(self, subscription: ProgressSubscription) -> None:
        with self._lock:
            if subscription in self._subscribers:
                self._subscribers.remove(subscription)

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def publish(self, event: ScanProgress) -> None:
        with self._lock:
            self.latest = event
            subscribers = list(self._subscribers)
            if event.is_terminal:
                self._subscribers.clear()
        for subscription in subscribers:
            subscription._push(event)
        if event.is_terminal:
            logger.debug("Delivered terminal progress event to %d subscribers", len(subscribers))
