"""
Storage locations, storage history records and adapter metadata.
"""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from .enums import AdapterType
from .primitives import utc_now


class LocalLocation(BaseModel):
    model_config = ConfigDict(extra="forbid")

    kind: Literal["local"] = "local"
    id: str = Field(..., min_length=1)


class IpfsLocation(BaseModel):
    model_config = ConfigDict(extra="forbid")

    kind: Literal["ipfs"] = "ipfs"
    cid: str = Field(..., min_length=1)
    pinned: bool = True


class StellarLocation(BaseModel):
    model_config = ConfigDict(extra="forbid")

    kind: Literal["stellar"] = "stellar"
    transaction_id: str = Field(..., min_length=1)
    contract_address: str = Field(..., min_length=1)
    asset_id: Optional[str] = Field(None, description="Asset or CID anchored on-chain")


StorageLocation = Annotated[
    Union[LocalLocation, IpfsLocation, StellarLocation], Field(discriminator="kind")
]


class StorageRecord(BaseModel):
    """One external storage operation for a DFID.

    Invariants:
    - At most one active record per (dfid, adapter_type)
    - Superseded records are marked inactive, never deleted
    """

    model_config = ConfigDict(extra="forbid")

    adapter_type: AdapterType
    storage_location: StorageLocation
    stored_at: datetime = Field(default_factory=utc_now)
    triggered_by: str = Field(..., min_length=1, description="e.g., 'circuit_push'")
    is_active: bool = True
    metadata: Dict[str, Any] = Field(default_factory=dict)


class TimelineEntry(BaseModel):
    """On-chain evidence that a CID was anchored for a DFID."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    dfid: str
    cid: str = Field(..., min_length=1)
    transaction_hash: str = Field(..., min_length=1)
    ledger_timestamp: int = Field(..., ge=0, description="Ledger close time, epoch seconds")
    network: str = Field(..., min_length=1)


class StorageMetadata(BaseModel):
    """Where an adapter placed an item and its events."""

    model_config = ConfigDict(extra="forbid")

    adapter_type: AdapterType
    item_location: StorageLocation
    event_locations: List[StorageLocation] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class AdapterResult(BaseModel):
    model_config = ConfigDict(extra="forbid")

    metadata: StorageMetadata
    details: Dict[str, Any] = Field(default_factory=dict)


class SyncStatus(BaseModel):
    model_config = ConfigDict(extra="forbid")

    adapter_type: AdapterType
    is_synced: bool
    pending_operations: int = 0
    last_sync: Optional[datetime] = None
    error_count: int = 0
    details: Dict[str, Any] = Field(default_factory=dict)
