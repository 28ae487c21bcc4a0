"""
Fan-in of many handler metrics streams into a single stream.
"""

import asyncio
from typing import Any, Dict, List, Optional

from shared.logging import get_logger
from .events import MetricsEvent, MetricsStream

_END = object()


class MetricsMultiplexer:
    """Merges independent MetricsStream sources in arrival order.

    Every attached source counts as one producer against ``capacity``. The
    capacity grows by one on attach and shrinks by one on detach, so the
    producer count can never exceed it however many sources come and go.
    A failing source is logged and dropped; the merged stream keeps going.
    """

    DEFAULT_CAPACITY = 10

    def __init__(self, base_capacity: int = DEFAULT_CAPACITY):
        self.base_capacity = base_capacity
        self.capacity = base_capacity
        self.logger = get_logger("registry.streams.multiplexer")

        self._sources: Dict[MetricsStream, Optional[asyncio.Task]] = {}
        self._sink: asyncio.Queue = asyncio.Queue()
        self.running = False
        self.stats = {
            "relayed": 0,
            "failed_sources": 0,
            "capacity_warnings": 0,
        }

    @property
    def sources(self) -> List[MetricsStream]:
        return list(self._sources)

    def attach(self, stream: MetricsStream) -> bool:
        """Attach a source. Returns False if it was already attached."""
        if stream in self._sources:
            return False

        self.capacity += 1
        self._sources[stream] = None
        if len(self._sources) > self.capacity:
            self.stats["capacity_warnings"] += 1
            self.logger.warning(
                "listener capacity exceeded",
                attached=len(self._sources),
                capacity=self.capacity,
            )

        if self.running:
            self._sources[stream] = asyncio.get_running_loop().create_task(self._pump(stream))

        self.logger.debug("Metrics source attached", source=stream.name, attached=len(self._sources))
        return True

    def detach(self, stream: MetricsStream) -> bool:
        """Detach a source. Returns False if it was not attached."""
        if stream not in self._sources:
            return False

        task = self._sources.pop(stream)
        self.capacity -= 1
        if task is not None and task is not asyncio.current_task():
            task.cancel()

        self.logger.debug("Metrics source detached", source=stream.name, attached=len(self._sources))
        return True

    async def start(self):
        """Start relaying events from every attached source."""
        if self.running:
            return
        self.running = True
        # A previous stop() left its end marker behind, possibly on another loop
        self._sink = asyncio.Queue()
        loop = asyncio.get_running_loop()
        for stream, task in list(self._sources.items()):
            if task is None:
                self._sources[stream] = loop.create_task(self._pump(stream))
        self.logger.info("Metrics multiplexer started", sources=len(self._sources))

    async def stop(self):
        """Stop relaying and end the merged stream."""
        if not self.running:
            return
        self.running = False

        tasks = [task for task in self._sources.values() if task is not None]
        for stream in self._sources:
            self._sources[stream] = None
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass

        # Relay what the sources emitted before the pumps were cancelled
        for stream in self._sources:
            for event in stream.drain():
                self._sink.put_nowait(event)
                self.stats["relayed"] += 1

        self._sink.put_nowait(_END)
        self.logger.info("Metrics multiplexer stopped", relayed=self.stats["relayed"])

    async def _pump(self, stream: MetricsStream):
        try:
            async for event in stream:
                self._sink.put_nowait(event)
                self.stats["relayed"] += 1
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.stats["failed_sources"] += 1
            self.logger.error("Metrics source failed", source=stream.name, error=str(e))
        self.detach(stream)

    def __aiter__(self):
        return self

    async def __anext__(self) -> MetricsEvent:
        item = await self._sink.get()
        if item is _END:
            # Leave the marker for any other consumer
            self._sink.put_nowait(_END)
            raise StopAsyncIteration
        return item

    def get_stats(self) -> Dict[str, Any]:
        return {
            **self.stats,
            "attached": len(self._sources),
            "capacity": self.capacity,
            "running": self.running,
        }


def merge(*streams: MetricsStream) -> MetricsMultiplexer:
    """Build a multiplexer with every given stream attached."""
    multiplexer = MetricsMultiplexer()
    for stream in streams:
        multiplexer.attach(stream)
    return multiplexer
