"""Adapters — tool bindings for git, node/npm and the partition store.

Public re-exports for convenient access.
"""

from nodeprep.adapters.base import Adapter, ExecutionContext
from nodeprep.adapters.mock import MockAdapter
from nodeprep.adapters.registry import AdapterRegistry

__all__ = [
    "Adapter",
    "AdapterRegistry",
    "ExecutionContext",
    "MockAdapter",
]
