"""In-process content-addressed adapter."""

from __future__ import annotations

import hashlib
import json
import threading
from datetime import datetime
from typing import Dict, Optional

from ..domain import (
    AdapterResult,
    AdapterType,
    Item,
    LocalLocation,
    StorageMetadata,
    SyncStatus,
    utc_now,
)
from .base import StorageAdapter


class LocalAdapter(StorageAdapter):
    """Keeps item snapshots in memory, keyed by the SHA-256 of their JSON.

    Storing the same snapshot twice yields the same location key.
    """

    adapter_type = AdapterType.LOCAL_LOCAL

    def __init__(self) -> None:
        self._snapshots: Dict[str, str] = {}
        self._lock = threading.Lock()
        self._last_sync: Optional[datetime] = None

    @staticmethod
    def content_key(item: Item) -> str:
        payload = json.dumps(item.model_dump(mode="json"), sort_keys=True)
        return hashlib.sha256(payload.encode("utf-8")).hexdigest()

    def store_item(self, item: Item) -> AdapterResult:
        key = self.content_key(item)
        now = utc_now()
        snapshot = item.model_dump_json()
        with self._lock:
            self._snapshots[key] = snapshot
            self._last_sync = now
        return AdapterResult(
            metadata=StorageMetadata(
                adapter_type=self.adapter_type,
                item_location=LocalLocation(id=key),
                created_at=now,
                updated_at=now,
            ),
            details={"bytes": len(snapshot)},
        )

    def get_item(self, location_key: str) -> Optional[Item]:
        with self._lock:
            raw = self._snapshots.get(location_key)
        return Item.model_validate_json(raw) if raw is not None else None

    def health_check(self) -> bool:
        return True

    def sync_status(self) -> SyncStatus:
        with self._lock:
            return SyncStatus(
                adapter_type=self.adapter_type,
                is_synced=True,
                last_sync=self._last_sync,
                details={"snapshots": len(self._snapshots)},
            )
