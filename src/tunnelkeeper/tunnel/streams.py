"""Single-subscriber async event streams used by the orchestrator.

Two flavours, differing in what a slow subscriber sees:

- :class:`LatestValueStream` keeps only the newest value. A subscriber that
  falls behind skips straight to the current value (used for connection
  state, where only the present matters).
- :class:`QueuedStream` buffers every item in order, dropping the oldest only
  beyond ``max_queue_size`` (used for reconnect attempts, each of which is
  meaningful on its own).

Each stream accepts one active subscriber at a time. Publishing never blocks.
"""

from __future__ import annotations

import asyncio
from collections import deque
from collections.abc import AsyncIterator
from typing import Generic, TypeVar

from tunnelkeeper.core.exceptions import StreamAlreadySubscribedError
from tunnelkeeper.core.logging import get_logger

_logger = get_logger("tunnel.streams")

T = TypeVar("T")


class _SingleSubscriberStream(Generic[T]):
    def __init__(self, name: str) -> None:
        self.name = name
        self._subscribed = False
        self._closed = False
        self._changed = asyncio.Event()

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def has_subscriber(self) -> bool:
        return self._subscribed

    def close(self) -> None:
        """End the stream; the subscriber drains what is pending, then stops."""
        self._closed = True
        self._changed.set()

    def subscribe(self) -> AsyncIterator[T]:
        """Attach the single subscriber.

        The subscription is released when the returned iterator finishes or
        is closed (``aclose()`` or leaving an ``async for`` via break).

        Raises:
            StreamAlreadySubscribedError: If another subscriber is attached.
        """
        if self._subscribed:
            raise StreamAlreadySubscribedError(f"{self.name} already has a subscriber")
        self._subscribed = True
        _logger.debug("stream.subscribed", stream=self.name)
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[T]:
        try:
            while True:
                while self._has_pending():
                    yield self._take()
                if self._closed:
                    return
                self._changed.clear()
                await self._changed.wait()
        finally:
            self._subscribed = False
            _logger.debug("stream.unsubscribed", stream=self.name)

    def _has_pending(self) -> bool:
        raise NotImplementedError

    def _take(self) -> T:
        raise NotImplementedError


class LatestValueStream(_SingleSubscriberStream[T]):
    """Holds the latest value; subscribers see the current value first."""

    def __init__(self, name: str, initial: T) -> None:
        super().__init__(name)
        self._value = initial
        self._version = 0
        self._seen_version = -1

    @property
    def value(self) -> T:
        return self._value

    def publish(self, value: T) -> None:
        self._value = value
        self._version += 1
        self._changed.set()

    def subscribe(self) -> AsyncIterator[T]:
        iterator = super().subscribe()
        self._seen_version = -1
        return iterator

    def _has_pending(self) -> bool:
        return self._seen_version != self._version

    def _take(self) -> T:
        self._seen_version = self._version
        return self._value


class QueuedStream(_SingleSubscriberStream[T]):
    """FIFO of published items, bounded with drop-oldest."""

    def __init__(self, name: str, max_queue_size: int = 1000) -> None:
        super().__init__(name)
        self._queue: deque[T] = deque(maxlen=max_queue_size)

    def publish(self, item: T) -> None:
        if self._queue.maxlen is not None and len(self._queue) == self._queue.maxlen:
            _logger.warning("stream.dropped_oldest", stream=self.name)
        self._queue.append(item)
        self._changed.set()

    def _has_pending(self) -> bool:
        return bool(self._queue)

    def _take(self) -> T:
        return self._queue.popleft()
