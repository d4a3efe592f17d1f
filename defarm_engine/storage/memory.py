"""In-process storage backend."""

from __future__ import annotations

import threading
from collections import defaultdict
from typing import Dict, List, Optional, Set
from uuid import UUID

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
from .base import StorageBackend


class InMemoryStorage(StorageBackend):
    """Dictionary-backed storage guarded by a single re-entrant lock.

    Every read returns a deep copy, so callers can never mutate stored state
    without going back through the interface.
    """

    def __init__(self, lock_shards: int = 64):
        super().__init__(lock_shards)
        self._g = threading.RLock()
        self._sequences: Dict[str, int] = defaultdict(int)
        self._items: Dict[str, Item] = {}
        self._lid_map: Dict[UUID, str] = {}
        self._identities: Dict[str, str] = {}
        self._circuits: Dict[UUID, Circuit] = {}
        self._circuit_items: Dict[UUID, List[str]] = defaultdict(list)
        self._circuit_item_sets: Dict[UUID, Set[str]] = defaultdict(set)
        self._operations: Dict[UUID, List[CircuitOperation]] = defaultdict(list)
        self._accounts: Dict[str, UserAccount] = {}
        self._events: List[Event] = []
        self._events_by_id: Dict[UUID, Event] = {}
        self._history: Dict[str, List[StorageRecord]] = {}
        self._timeline: Dict[str, List[TimelineEntry]] = defaultdict(list)

    def next_sequence(self, name: str) -> int:
        with self._g:
            self._sequences[name] += 1
            return self._sequences[name]

    # Items

    def store_item(self, item: Item) -> None:
        with self._g:
            self._items[item.dfid] = item.model_copy(deep=True)

    def get_item_by_dfid(self, dfid: str) -> Optional[Item]:
        with self._g:
            item = self._items.get(dfid)
            return item.model_copy(deep=True) if item else None

    def list_items(self) -> List[Item]:
        with self._g:
            return [item.model_copy(deep=True) for item in self._items.values()]

    def remove_item(self, dfid: str) -> None:
        with self._g:
            self._items.pop(dfid, None)

    # LID -> DFID mappings

    def store_lid_dfid_mapping(self, local_id: UUID, dfid: str) -> str:
        with self._g:
            return self._lid_map.setdefault(local_id, dfid)

    def get_dfid_by_lid(self, local_id: UUID) -> Optional[str]:
        with self._g:
            return self._lid_map.get(local_id)

    # Canonical identities

    def claim_canonical_identity(self, identity_hash: str, identity_key: str, dfid: str) -> str:
        with self._g:
            return self._identities.setdefault(identity_hash, dfid)

    def get_dfid_by_canonical_identity(self, identity_hash: str) -> Optional[str]:
        with self._g:
            return self._identities.get(identity_hash)

    # Circuits

    def store_circuit(self, circuit: Circuit) -> None:
        with self._g:
            self._circuits[circuit.circuit_id] = circuit.model_copy(deep=True)

    def get_circuit(self, circuit_id: UUID) -> Optional[Circuit]:
        with self._g:
            circuit = self._circuits.get(circuit_id)
            return circuit.model_copy(deep=True) if circuit else None

    def list_circuits(self) -> List[Circuit]:
        with self._g:
            return [c.model_copy(deep=True) for c in self._circuits.values()]

    def add_circuit_item(self, circuit_id: UUID, dfid: str, added_by: str) -> bool:
        with self._g:
            if dfid in self._circuit_item_sets[circuit_id]:
                return False
            self._circuit_item_sets[circuit_id].add(dfid)
            self._circuit_items[circuit_id].append(dfid)
            return True

    def is_item_in_circuit(self, circuit_id: UUID, dfid: str) -> bool:
        with self._g:
            return dfid in self._circuit_item_sets.get(circuit_id, set())

    def list_circuit_items(self, circuit_id: UUID) -> List[str]:
        with self._g:
            return list(self._circuit_items.get(circuit_id, []))

    def store_circuit_operation(self, operation: CircuitOperation) -> None:
        with self._g:
            self._operations[operation.circuit_id].append(operation)

    def list_circuit_operations(self, circuit_id: UUID) -> List[CircuitOperation]:
        with self._g:
            return list(self._operations.get(circuit_id, []))

    # User accounts

    def store_user_account(self, account: UserAccount) -> None:
        with self._g:
            self._accounts[account.user_id] = account.model_copy(deep=True)

    def get_user_account(self, user_id: str) -> Optional[UserAccount]:
        with self._g:
            account = self._accounts.get(user_id)
            return account.model_copy(deep=True) if account else None

    # Events (frozen models, safe to share)

    def store_event(self, event: Event) -> None:
        with self._g:
            self._events.append(event)
            self._events_by_id[event.event_id] = event

    def get_event(self, event_id: UUID) -> Optional[Event]:
        with self._g:
            return self._events_by_id.get(event_id)

    def get_events_for_item(self, dfid: str) -> List[Event]:
        with self._g:
            return [e for e in self._events if e.dfid == dfid]

    def list_events(self) -> List[Event]:
        with self._g:
            return list(self._events)

    # Storage history

    def add_storage_record(self, dfid: str, record: StorageRecord) -> None:
        with self._g:
            self._history.setdefault(dfid, []).append(record.model_copy(deep=True))

    def deactivate_storage_records(self, dfid: str, adapter_type: AdapterType) -> int:
        flipped = 0
        with self._g:
            for record in self._history.get(dfid, []):
                if record.adapter_type == adapter_type and record.is_active:
                    record.is_active = False
                    flipped += 1
        return flipped

    def get_storage_history(self, dfid: str) -> Optional[List[StorageRecord]]:
        with self._g:
            records = self._history.get(dfid)
            if records is None:
                return None
            return [r.model_copy(deep=True) for r in records]

    # Timeline

    def add_cid_to_timeline(self, entry: TimelineEntry) -> None:
        with self._g:
            self._timeline[entry.dfid].append(entry)

    def get_item_timeline(self, dfid: str) -> List[TimelineEntry]:
        with self._g:
            return list(self._timeline.get(dfid, []))
