"""
Storage backend capability interface.

The backend is the single source of truth for items, circuits, mappings,
events and storage history. Engines hold a shared reference and never cache
authoritative state between calls. Lookups return ``None`` for a missing
record; infrastructure errors raise ``StorageFailure``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Iterator, List, Optional
from uuid import UUID

from ..concurrency import ShardedLock
from ..domain import (
    AdapterType,
    Circuit,
    CircuitOperation,
    Event,
    Item,
    StorageRecord,
    TimelineEntry,
    UserAccount,
)


class StorageBackend(ABC):
    """Abstract base class for storage backends.

    Every backend instance owns its own ``ShardedLock``. Engines use
    ``locked()`` to make read-then-write sequences atomic with respect to other
    engines sharing the same backend.
    """

    def __init__(self, lock_shards: int = 64):
        self._locks = ShardedLock(lock_shards)

    @contextmanager
    def locked(self, *keys: str) -> Iterator[None]:
        """Critical section over ``keys``, scoped to this backend instance."""
        with self._locks.locked(*keys):
            yield

    # Sequences

    @abstractmethod
    def next_sequence(self, name: str) -> int:
        """Atomically increment and return the named counter (first value is 1)."""

    # Items

    @abstractmethod
    def store_item(self, item: Item) -> None:
        """Insert or replace an item keyed by its DFID."""

    @abstractmethod
    def get_item_by_dfid(self, dfid: str) -> Optional[Item]:
        pass

    @abstractmethod
    def list_items(self) -> List[Item]:
        pass

    @abstractmethod
    def remove_item(self, dfid: str) -> None:
        """Drop an item record. Only used to retire LID placeholders."""

    # LID -> DFID mappings

    @abstractmethod
    def store_lid_dfid_mapping(self, local_id: UUID, dfid: str) -> str:
        """Record ``local_id -> dfid`` unless a mapping already exists.

        Returns the DFID the local id is mapped to after the call, which is the
        pre-existing one when the mapping was already written.
        """

    @abstractmethod
    def get_dfid_by_lid(self, local_id: UUID) -> Optional[str]:
        pass

    # Canonical identities

    @abstractmethod
    def claim_canonical_identity(self, identity_hash: str, identity_key: str, dfid: str) -> str:
        """Compare-and-swap: bind ``identity_hash`` to ``dfid`` if unbound.

        Returns the DFID bound to the identity after the call.
        """

    @abstractmethod
    def get_dfid_by_canonical_identity(self, identity_hash: str) -> Optional[str]:
        pass

    # Circuits

    @abstractmethod
    def store_circuit(self, circuit: Circuit) -> None:
        pass

    @abstractmethod
    def get_circuit(self, circuit_id: UUID) -> Optional[Circuit]:
        pass

    @abstractmethod
    def list_circuits(self) -> List[Circuit]:
        pass

    @abstractmethod
    def add_circuit_item(self, circuit_id: UUID, dfid: str, added_by: str) -> bool:
        """Register a DFID in a circuit's item set. Returns False if already there."""

    @abstractmethod
    def is_item_in_circuit(self, circuit_id: UUID, dfid: str) -> bool:
        pass

    @abstractmethod
    def list_circuit_items(self, circuit_id: UUID) -> List[str]:
        pass

    @abstractmethod
    def store_circuit_operation(self, operation: CircuitOperation) -> None:
        pass

    @abstractmethod
    def list_circuit_operations(self, circuit_id: UUID) -> List[CircuitOperation]:
        pass

    # User accounts

    @abstractmethod
    def store_user_account(self, account: UserAccount) -> None:
        pass

    @abstractmethod
    def get_user_account(self, user_id: str) -> Optional[UserAccount]:
        pass

    # Events

    @abstractmethod
    def store_event(self, event: Event) -> None:
        pass

    @abstractmethod
    def get_event(self, event_id: UUID) -> Optional[Event]:
        pass

    @abstractmethod
    def get_events_for_item(self, dfid: str) -> List[Event]:
        """Events for a DFID in insertion order."""

    @abstractmethod
    def list_events(self) -> List[Event]:
        pass

    # Storage history

    @abstractmethod
    def add_storage_record(self, dfid: str, record: StorageRecord) -> None:
        """Append a record. Superseding is the caller's job."""

    @abstractmethod
    def deactivate_storage_records(self, dfid: str, adapter_type: AdapterType) -> int:
        """Mark active records for ``(dfid, adapter_type)`` inactive. Returns the count."""

    @abstractmethod
    def get_storage_history(self, dfid: str) -> Optional[List[StorageRecord]]:
        """Records in insertion order, or None when the DFID has no history."""

    # Timeline

    @abstractmethod
    def add_cid_to_timeline(self, entry: TimelineEntry) -> None:
        pass

    @abstractmethod
    def get_item_timeline(self, dfid: str) -> List[TimelineEntry]:
        """Timeline entries in insertion order."""
