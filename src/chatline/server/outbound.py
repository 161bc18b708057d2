import asyncio
import logging
from typing import AsyncIterator

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 100

_CLOSED = object()


class SinkClosedError(Exception):
    """Raised when sending into a sink that has already been closed."""


class OutboundSink:
    """Ordered, bounded channel of text lines destined for one client.

    The broadcaster is the only producer once the client has joined and the
    client's writer task is the only consumer. Sending never waits: when the
    sink already holds ``capacity`` undelivered lines, the oldest one is
    dropped to make room for the new one. A slow reader therefore loses its
    own backlog without holding up the producer.

    Closing is one-way. Lines queued before ``close()`` are still delivered,
    after which ``lines()`` finishes.
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY, label: str = "") -> None:
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self.label = label
        self.dropped = 0
        self._pending = 0
        # Unbounded underneath so the close marker always fits.
        self._queue: asyncio.Queue[object] = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def __len__(self) -> int:
        return self._pending

    def send(self, text: str) -> None:
        """Queue a line without blocking.

        Raises:
            SinkClosedError: If the sink was already closed
        """
        if self._closed:
            raise SinkClosedError(f"Sink {self.label!r} is closed")

        if self._pending >= self.capacity:
            self._queue.get_nowait()
            self._pending -= 1
            self.dropped += 1
            logger.warning(f"Outbound sink {self.label!r} full, dropped oldest line")

        self._queue.put_nowait(text)
        self._pending += 1

    def close(self) -> bool:
        """Close the sink. Returns False if it was already closed."""
        if self._closed:
            return False
        self._closed = True
        self._queue.put_nowait(_CLOSED)
        return True

    async def lines(self) -> AsyncIterator[str]:
        """Yield queued lines in order until the sink is closed and drained."""
        while True:
            item = await self._queue.get()
            if item is _CLOSED:
                return
            self._pending -= 1
            yield item  # type: ignore[misc]
