"""
Storage history manager.

Keeps the append-only ledger of external storage operations per DFID and
the on-chain CID timeline.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

import structlog

from ..domain import AdapterType, StorageLocation, StorageRecord, TimelineEntry
from ..storage.base import StorageBackend

logger = structlog.get_logger(__name__)


class StorageHistoryManager:
    """Record and query where each DFID has been stored."""

    def __init__(self, storage: StorageBackend):
        self.storage = storage
        self.logger = logger.bind(engine="storage_history")

    def add_storage_record(self, dfid: str, record: StorageRecord) -> None:
        """Append ``record``, first retiring any active record for the same adapter.

        The retire-then-append pair runs under the DFID's history lock.
        """
        with self.storage.locked(f"storage_history:{dfid}"):
            superseded = 0
            if record.is_active:
                superseded = self.storage.deactivate_storage_records(dfid, record.adapter_type)
            self.storage.add_storage_record(dfid, record)
        self.logger.info(
            "storage_record_added",
            dfid=dfid,
            adapter_type=record.adapter_type.value,
            triggered_by=record.triggered_by,
            superseded=superseded,
        )

    def record_item_storage(
        self,
        dfid: str,
        adapter_type: AdapterType,
        location: StorageLocation,
        triggered_by: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> StorageRecord:
        record = StorageRecord(
            adapter_type=adapter_type,
            storage_location=location,
            triggered_by=triggered_by,
            metadata=metadata or {},
        )
        self.add_storage_record(dfid, record)
        return record

    def get_storage_history(self, dfid: str) -> Optional[List[StorageRecord]]:
        return self.storage.get_storage_history(dfid)

    def get_active_records(self, dfid: str) -> Dict[AdapterType, StorageRecord]:
        return {r.adapter_type: r for r in self.get_storage_history(dfid) or [] if r.is_active}

    def get_current_location(
        self, dfid: str, adapter_type: AdapterType
    ) -> Optional[StorageLocation]:
        record = self.get_active_records(dfid).get(adapter_type)
        return record.storage_location if record else None

    def get_all_storage_locations(self, dfid: str) -> List[StorageLocation]:
        """Every distinct location the DFID was ever stored at, oldest first."""
        locations: List[StorageLocation] = []
        for record in self.get_storage_history(dfid) or []:
            if record.storage_location not in locations:
                locations.append(record.storage_location)
        return locations

    def add_cid_to_timeline(
        self, dfid: str, cid: str, tx_hash: str, ledger_ts: int, network: str
    ) -> TimelineEntry:
        entry = TimelineEntry(
            dfid=dfid,
            cid=cid,
            transaction_hash=tx_hash,
            ledger_timestamp=ledger_ts,
            network=network,
        )
        self.storage.add_cid_to_timeline(entry)
        self.logger.info("timeline_entry_added", dfid=dfid, cid=cid, network=network)
        return entry

    def get_item_timeline(self, dfid: str) -> List[TimelineEntry]:
        """Timeline entries sorted by ledger timestamp (stable for ties)."""
        return sorted(self.storage.get_item_timeline(dfid), key=lambda e: e.ledger_timestamp)
