"""
Metrics events and per-handler event streams.
"""

import asyncio
import time
from dataclasses import dataclass, field
from typing import List, Optional


@dataclass(frozen=True)
class MetricsEvent:
    """One completed operation reported by a delegated handler."""
    source: str
    kind: Optional[str]
    outcome: str
    duration_ms: float = 0.0
    organization: Optional[str] = None
    timestamp: float = field(default_factory=time.time)


class _Failure:
    def __init__(self, error: BaseException):
        self.error = error


_CLOSED = object()


class MetricsStream:
    """Queue-backed async stream of MetricsEvent owned by a single producer."""

    def __init__(self, name: str):
        self.name = name
        self._queue: asyncio.Queue = asyncio.Queue()
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def push(self, event: MetricsEvent) -> bool:
        """Emit an event; ignored once the stream has ended."""
        if self._closed:
            return False
        self._queue.put_nowait(event)
        return True

    def fail(self, error: BaseException):
        """End the stream with an error raised to the consumer."""
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(_Failure(error))

    def close(self):
        """End the stream normally."""
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(_CLOSED)

    def drain(self) -> List[MetricsEvent]:
        """Remove and return the events already queued, without waiting."""
        events = []
        while not self._queue.empty():
            item = self._queue.get_nowait()
            if isinstance(item, MetricsEvent):
                events.append(item)
        return events

    def __aiter__(self):
        return self

    def _bind(self):
        # A queue that has waited on one loop cannot wait on another; move
        # pending items to a fresh queue when a new loop starts consuming
        loop = asyncio.get_running_loop()
        if self._loop is loop:
            return
        queue: asyncio.Queue = asyncio.Queue()
        while not self._queue.empty():
            queue.put_nowait(self._queue.get_nowait())
        self._queue = queue
        self._loop = loop

    async def __anext__(self) -> MetricsEvent:
        self._bind()
        item = await self._queue.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        if isinstance(item, _Failure):
            raise item.error
        return item

    def __repr__(self) -> str:
        return f"MetricsStream({self.name!r})"
