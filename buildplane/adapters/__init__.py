"""Adapters — bindings for processes, the filesystem, and report writers.

Public re-exports for convenient access.
"""

from buildplane.adapters.base import Adapter, ExecutionContext
from buildplane.adapters.mock import MockAdapter
from buildplane.adapters.registry import AdapterRegistry

__all__ = [
    "Adapter",
    "AdapterRegistry",
    "ExecutionContext",
    "MockAdapter",
]
