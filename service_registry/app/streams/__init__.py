"""
Metrics streaming for the Registry Service.

Each delegated handler owns a MetricsStream and pushes one MetricsEvent
per completed operation. The MetricsMultiplexer relays all of them, in
arrival order, into a single stream consumed by observability sinks.
"""

from .events import MetricsEvent, MetricsStream
from .multiplexer import MetricsMultiplexer, merge

__all__ = [
    "MetricsEvent",
    "MetricsMultiplexer",
    "MetricsStream",
    "merge",
]
