"""
Event Queue Module

Merges chat messages and transcribed phrases into one ordered stream for
the conversation orchestrator.

Producers (chat listener, phrase pump) call enqueue(), which never waits:
when the buffer is full the new event is dropped with a warning and the
events already queued are kept. The single consumer reads with get() or
``async for``; close() ends the stream for every consumer.
"""

import asyncio
import time
from dataclasses import dataclass, field
from typing import AsyncIterator, Optional

from cohost.logger import get_logger

logger = get_logger(__name__)

EVENT_QUEUE_SIZE = 64


@dataclass(frozen=True)
class ChatEvent:
    """One message to react to: a chat line or a streamer phrase."""
    username: str
    text: str
    timestamp: float = field(default_factory=time.time, compare=False)


class EventQueue:
    """
    Bounded, non-blocking FIFO of ChatEvents.

    Usage:
        queue = EventQueue()
        queue.enqueue("viewer", "hello")
        async for event in queue:
            await orchestrator.process(event)
    """

    def __init__(self, capacity: int = EVENT_QUEUE_SIZE):
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self._capacity = capacity
        self._queue: "asyncio.Queue[ChatEvent]" = asyncio.Queue(maxsize=capacity)
        self._closed = asyncio.Event()
        self._enqueued = 0
        self._dropped = 0

    def enqueue(self, username: str, text: str) -> bool:
        """
        Offer an event without waiting.

        Returns:
            True if queued, False if dropped (queue full or closed)
        """
        if self._closed.is_set():
            logger.debug(f"Event queue closed, dropping message from {username}")
            return False

        try:
            self._queue.put_nowait(ChatEvent(username=username, text=text))
        except asyncio.QueueFull:
            self._dropped += 1
            logger.warning(f"Message queue is full, dropping message from {username}")
            return False

        self._enqueued += 1
        return True

    async def get(self) -> Optional[ChatEvent]:
        """
        Wait for the next event.

        Returns:
            The next event, or None once the queue is closed
        """
        if self._closed.is_set():
            return None

        getter = asyncio.ensure_future(self._queue.get())
        closer = asyncio.ensure_future(self._closed.wait())
        try:
            await asyncio.wait({getter, closer}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            getter.cancel()
            raise
        finally:
            closer.cancel()

        if getter.done() and not getter.cancelled():
            return getter.result()

        getter.cancel()
        return None

    def close(self) -> None:
        """End iteration for all consumers; later events are dropped."""
        self._closed.set()

    def __aiter__(self) -> AsyncIterator[ChatEvent]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[ChatEvent]:
        while True:
            event = await self.get()
            if event is None:
                return
            yield event

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def size(self) -> int:
        return self._queue.qsize()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    @property
    def dropped(self) -> int:
        """Events dropped because the queue was full."""
        return self._dropped

    @property
    def enqueued(self) -> int:
        return self._enqueued
