"""
Events engine.

Appends immutable lifecycle events per DFID. There is no update
or delete operation; queries return events ordered by timestamp, with ties
kept in insertion order.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional
from uuid import UUID

import structlog

from ..config import get_settings
from ..domain import Event, EventType, EventVisibility, OperationType
from ..storage.base import StorageBackend

logger = structlog.get_logger(__name__)


def _ordered(events: Iterable[Event]) -> List[Event]:
    return sorted(events, key=lambda e: e.timestamp)


class EventsEngine:
    """Create and query item lifecycle events."""

    def __init__(
        self,
        storage: StorageBackend,
        default_visibility: Optional[EventVisibility] = None,
    ):
        self.storage = storage
        self.default_visibility = default_visibility or EventVisibility(
            get_settings().default_event_visibility
        )
        self.logger = logger.bind(engine="events")

    def create_event(
        self,
        dfid: str,
        event_type: EventType,
        source: str,
        visibility: Optional[EventVisibility] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Event:
        """Append a new event.

        Args:
            dfid: Item the event belongs to
            event_type: Lifecycle event type
            source: Actor or subsystem emitting the event
            visibility: Defaults to the engine's default visibility
            metadata: Free-form context

        Returns:
            The stored event; ``is_encrypted`` is True iff visibility is Private
        """
        event = Event(
            dfid=dfid,
            event_type=event_type,
            source=source,
            visibility=visibility or self.default_visibility,
            metadata=metadata or {},
        )
        self.storage.store_event(event)
        self.logger.debug(
            "event_created",
            dfid=dfid,
            event_id=str(event.event_id),
            event_type=event.event_type.value,
            visibility=event.visibility.value,
        )
        return event

    def get_event(self, event_id: UUID) -> Optional[Event]:
        return self.storage.get_event(event_id)

    def get_events_for_item(self, dfid: str) -> List[Event]:
        return _ordered(self.storage.get_events_for_item(dfid))

    def get_events_by_type(self, event_type: EventType, dfid: Optional[str] = None) -> List[Event]:
        return [e for e in self._scope(dfid) if e.event_type == event_type]

    def get_events_by_visibility(
        self, visibility: EventVisibility, dfid: Optional[str] = None
    ) -> List[Event]:
        return [e for e in self._scope(dfid) if e.visibility == visibility]

    def get_events_in_time_range(
        self, dfid: str, start: datetime, end: datetime
    ) -> List[Event]:
        """Events for ``dfid`` with ``start <= timestamp <= end``."""
        return [e for e in self.get_events_for_item(dfid) if start <= e.timestamp <= end]

    def get_public_events(self, dfid: Optional[str] = None) -> List[Event]:
        return self.get_events_by_visibility(EventVisibility.PUBLIC, dfid)

    def get_private_events(self, dfid: Optional[str] = None) -> List[Event]:
        return self.get_events_by_visibility(EventVisibility.PRIVATE, dfid)

    def list_all_events(self) -> List[Event]:
        """Administrative scan of every event."""
        return _ordered(self.storage.list_events())

    def _scope(self, dfid: Optional[str]) -> List[Event]:
        if dfid is None:
            return self.list_all_events()
        return self.get_events_for_item(dfid)

    # Convenience constructors

    def create_item_created_event(
        self, dfid: str, source: str, metadata: Optional[Dict[str, Any]] = None
    ) -> Event:
        return self.create_event(dfid, EventType.CREATED, source, metadata=metadata)

    def create_item_enriched_event(
        self, dfid: str, source: str, enriched_keys: Iterable[str]
    ) -> Event:
        return self.create_event(
            dfid,
            EventType.ENRICHED,
            source,
            metadata={"enriched_keys": sorted(enriched_keys)},
        )

    def create_item_merged_event(self, primary_dfid: str, secondary_dfid: str, source: str) -> Event:
        return self.create_event(
            primary_dfid,
            EventType.MERGED,
            source,
            metadata={"merged_dfid": secondary_dfid},
        )

    def create_circuit_operation_event(
        self,
        dfid: str,
        circuit_id: UUID,
        operation_type: OperationType,
        requester_id: str,
        visibility: Optional[EventVisibility] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Event:
        """Record a push or pull as PushedToCircuit / PulledFromCircuit."""
        event_type = (
            EventType.PUSHED_TO_CIRCUIT
            if operation_type == OperationType.PUSH
            else EventType.PULLED_FROM_CIRCUIT
        )
        payload = {"circuit_id": str(circuit_id)}
        payload.update(metadata or {})
        return self.create_event(dfid, event_type, requester_id, visibility, payload)
