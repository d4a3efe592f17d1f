"""
Event - immutable item lifecycle record.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .enums import EventType, EventVisibility
from .primitives import new_uuid, utc_now


class Event(BaseModel):
    """An append-only lifecycle event for a DFID.

    ``is_encrypted`` is always derived from ``visibility``; a value passed in
    by the caller is ignored.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    event_id: UUID = Field(default_factory=new_uuid)
    dfid: str = Field(..., min_length=1)
    event_type: EventType
    source: str = Field(..., min_length=1, description="Actor or subsystem that emitted it")
    visibility: EventVisibility = EventVisibility.PUBLIC
    is_encrypted: bool = False
    timestamp: datetime = Field(default_factory=utc_now)
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _derive_encryption(cls, data: Any) -> Any:
        if isinstance(data, dict):
            data = dict(data)
            visibility = EventVisibility(data.get("visibility", EventVisibility.PUBLIC))
            data["is_encrypted"] = visibility == EventVisibility.PRIVATE
        return data
