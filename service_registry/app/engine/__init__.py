"""
Registry engine interface and built-in implementations.

The dispatcher treats the engine as a black box: it hands each handler
the raw request, canonical parameters, the organization mapping and, for
mutations, the verified identity, and projects the HandlerResponse.
"""

from .base import HandlerResponse, RegistryEngine, RegistryHandler
from .memory import MemorySink, create_memory_engine

__all__ = [
    "HandlerResponse",
    "MemorySink",
    "RegistryEngine",
    "RegistryHandler",
    "create_memory_engine",
]
