"""DeFarm engines."""

from .circuits_engine import CircuitsEngine
from .dfid_engine import DfidEngine, DfidSequence, parse_dfid
from .events_engine import EventsEngine
from .items_engine import ItemsEngine
from .storage_history import StorageHistoryManager

__all__ = [
    "CircuitsEngine",
    "DfidEngine",
    "DfidSequence",
    "EventsEngine",
    "ItemsEngine",
    "StorageHistoryManager",
    "parse_dfid",
]
