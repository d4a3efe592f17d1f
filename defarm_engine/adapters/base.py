"""
Storage adapter abstraction.

Adapters mirror tokenized items to external storage (a local content store,
IPFS, a Stellar contract). The engines treat them as external collaborators:
any exception or timeout is reported, never allowed to undo identity writes.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional

from ..domain import AdapterResult, AdapterType, Item, SyncStatus


class StorageAdapter(ABC):
    """Abstract base class for storage adapters."""

    adapter_type: AdapterType = AdapterType.NONE

    @abstractmethod
    def store_item(self, item: Item) -> AdapterResult:
        """Persist a snapshot of ``item`` and report where it went."""
        pass

    @abstractmethod
    def get_item(self, location_key: str) -> Optional[Item]:
        """Fetch a snapshot by the key returned in ``item_location``."""
        pass

    @abstractmethod
    def health_check(self) -> bool:
        pass

    @abstractmethod
    def sync_status(self) -> SyncStatus:
        pass
