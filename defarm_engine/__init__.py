"""
DeFarm Engine

Identity resolution and circuit sharing for traceable items.
"""

import importlib.metadata

__version__ = importlib.metadata.version("defarm-engine")

from .adapters import AdapterRegistry, LocalAdapter, StorageAdapter
from .domain import (
    AdapterConfig,
    AliasConfig,
    Circuit,
    Event,
    Identifier,
    Item,
    PushResult,
    StorageRecord,
)
from .engines import (
    CircuitsEngine,
    DfidEngine,
    EventsEngine,
    ItemsEngine,
    StorageHistoryManager,
)
from .errors import DeFarmError
from .storage import InMemoryStorage, SqlStorage, StorageBackend

__all__ = [
    "AdapterConfig",
    "AdapterRegistry",
    "AliasConfig",
    "Circuit",
    "CircuitsEngine",
    "DeFarmError",
    "DfidEngine",
    "Event",
    "EventsEngine",
    "Identifier",
    "InMemoryStorage",
    "Item",
    "ItemsEngine",
    "LocalAdapter",
    "PushResult",
    "SqlStorage",
    "StorageAdapter",
    "StorageBackend",
    "StorageHistoryManager",
    "StorageRecord",
]
