"""
Common primitives shared by the DeFarm domain objects.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone


def utc_now() -> datetime:
    """Return current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


def new_uuid() -> uuid.UUID:
    """Generate a random UUID for local ids, events and operations."""
    return uuid.uuid4()


LID_PREFIX = "LID-"


def lid_placeholder(local_id: uuid.UUID) -> str:
    """Placeholder DFID carried by an item that has not been tokenized."""
    return f"{LID_PREFIX}{local_id}"


def is_lid_placeholder(dfid: str) -> bool:
    return dfid.startswith(LID_PREFIX)
