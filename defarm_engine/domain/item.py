"""
Item - one real-world entity tracked by DFID.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from .enums import ItemStatus
from .identifiers import Identifier, LegacyIdentifier
from .primitives import is_lid_placeholder, utc_now


class Item(BaseModel):
    """A traceable item.

    Invariants:
    - ``dfid`` never changes once assigned by tokenization
    - ``status`` only moves Active -> Merged or Active -> Deprecated
    - ``source_entries`` is append-only and holds no duplicates
    """

    model_config = ConfigDict(extra="forbid")

    dfid: str = Field(..., min_length=1, description="DFID, or LID- placeholder while local")
    local_id: Optional[UUID] = Field(
        None, description="Present while the item lives only in local state"
    )
    identifiers: List[LegacyIdentifier] = Field(default_factory=list)
    enhanced_identifiers: List[Identifier] = Field(default_factory=list)
    enriched_data: Dict[str, Any] = Field(default_factory=dict)
    source_entries: List[UUID] = Field(default_factory=list)
    confidence_score: float = Field(1.0, ge=0.0, le=1.0)
    status: ItemStatus = Field(ItemStatus.ACTIVE)
    merged_into: Optional[str] = Field(None, description="Primary DFID after a merge")
    creation_timestamp: datetime = Field(default_factory=utc_now)
    last_modified: datetime = Field(default_factory=utc_now)

    @property
    def is_local(self) -> bool:
        return is_lid_placeholder(self.dfid)

    def canonical_identifiers(self) -> List[Identifier]:
        return [i for i in self.enhanced_identifiers if i.is_canonical]

    def add_source_entry(self, source_entry: Optional[UUID]) -> None:
        if source_entry is not None and source_entry not in self.source_entries:
            self.source_entries.append(source_entry)

    def touch(self) -> None:
        self.last_modified = utc_now()


class ItemStatistics(BaseModel):
    """Aggregate counts computed by a full scan."""

    model_config = ConfigDict(extra="forbid")

    total: int = 0
    active: int = 0
    deprecated: int = 0
    merged: int = 0
    local: int = 0
    total_identifiers: int = 0
    average_confidence: float = 0.0
