"""
Items engine.

Creates, enriches, merges and deprecates items. Read-modify-write sequences
on one item run under that item's lock on the shared storage backend.
"""

from __future__ import annotations

from collections import defaultdict
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union
from uuid import UUID

import structlog

from ..domain import (
    EventType,
    Identifier,
    Item,
    ItemStatistics,
    ItemStatus,
    LegacyIdentifier,
    canonical_identity_keys,
    lid_placeholder,
    new_uuid,
)
from ..domain.identifiers import merge_identifiers, merge_legacy_identifiers
from ..errors import DuplicateDfid, InvalidStateTransition, NotFound
from ..storage.base import StorageBackend
from .events_engine import EventsEngine

logger = structlog.get_logger(__name__)

AnyIdentifier = Union[LegacyIdentifier, Identifier]


def item_lock_key(dfid: str) -> str:
    return f"item:{dfid}"


def split_identifiers(
    identifiers: Iterable[AnyIdentifier],
) -> Tuple[List[LegacyIdentifier], List[Identifier]]:
    """Separate flat legacy identifiers from namespaced ones."""
    legacy: List[LegacyIdentifier] = []
    enhanced: List[Identifier] = []
    for identifier in identifiers:
        if isinstance(identifier, Identifier):
            enhanced.append(identifier)
        else:
            legacy.append(identifier)
    return legacy, enhanced


class ItemsEngine:
    """Item lifecycle operations.

    When an ``EventsEngine`` is supplied, every state change on a tokenized
    item is also appended to its event history. Local items carry no events.
    """

    def __init__(self, storage: StorageBackend, events: Optional[EventsEngine] = None):
        self.storage = storage
        self.events = events
        self.logger = logger.bind(engine="items")

    def _record(
        self,
        dfid: str,
        event_type: EventType,
        source_entry: Optional[UUID],
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        if self.events is not None:
            source = str(source_entry) if source_entry else "items_engine"
            self.events.create_event(dfid, event_type, source, metadata=metadata)

    def _load(self, dfid: str) -> Item:
        item = self.storage.get_item_by_dfid(dfid)
        if item is None:
            raise NotFound(f"Item {dfid} not found", details={"dfid": dfid})
        return item

    @staticmethod
    def _require_active(item: Item, action: str) -> None:
        if item.status.is_terminal:
            raise InvalidStateTransition(
                f"Cannot {action} item {item.dfid} with status {item.status.value}",
                details={"dfid": item.dfid, "status": item.status.value},
            )

    def create_item(
        self,
        dfid: str,
        identifiers: Sequence[AnyIdentifier],
        source_entry: Optional[UUID],
        enriched_data: Optional[Dict[str, Any]] = None,
    ) -> Item:
        """Create an item under a caller-supplied DFID (pre-tokenized or migrated)."""
        legacy, enhanced = split_identifiers(identifiers)
        with self.storage.locked(item_lock_key(dfid)):
            if self.storage.get_item_by_dfid(dfid) is not None:
                raise DuplicateDfid(f"Item {dfid} already exists", details={"dfid": dfid})
            item = Item(
                dfid=dfid,
                identifiers=legacy,
                enhanced_identifiers=enhanced,
                enriched_data=dict(enriched_data or {}),
            )
            item.add_source_entry(source_entry)
            self.storage.store_item(item)
        self.logger.info("item_created", dfid=dfid, identifiers=len(legacy) + len(enhanced))
        self._record(dfid, EventType.CREATED, source_entry)
        return item

    def create_local_item(
        self,
        identifiers: Sequence[LegacyIdentifier],
        enhanced_identifiers: Sequence[Identifier],
        source_entry: Optional[UUID],
        enriched_data: Optional[Dict[str, Any]] = None,
    ) -> Item:
        """Create an item that has not been admitted to any circuit yet.

        The item gets a fresh ``local_id`` and the placeholder DFID
        ``LID-{local_id}`` until a push tokenizes it.
        """
        local_id = new_uuid()
        item = Item(
            dfid=lid_placeholder(local_id),
            local_id=local_id,
            identifiers=merge_legacy_identifiers([], identifiers),
            enhanced_identifiers=merge_identifiers([], enhanced_identifiers),
            enriched_data=dict(enriched_data or {}),
        )
        item.add_source_entry(source_entry)
        self.storage.store_item(item)
        self.logger.info("local_item_created", local_id=str(local_id))
        return item

    def get_item(self, dfid: str) -> Optional[Item]:
        return self.storage.get_item_by_dfid(dfid)

    def get_item_by_lid(self, local_id: UUID) -> Optional[Item]:
        """Resolve a local id through its DFID mapping, else its placeholder."""
        dfid = self.storage.get_dfid_by_lid(local_id)
        if dfid is not None:
            item = self.storage.get_item_by_dfid(dfid)
            if item is not None:
                return item
        return self.storage.get_item_by_dfid(lid_placeholder(local_id))

    def list_items(self) -> List[Item]:
        return self.storage.list_items()

    def enrich_item(
        self, dfid: str, enrichment: Dict[str, Any], source_entry: Optional[UUID]
    ) -> Item:
        """Merge ``enrichment`` into ``enriched_data``; last write wins per key."""
        with self.storage.locked(item_lock_key(dfid)):
            item = self._load(dfid)
            self._require_active(item, "enrich")
            item.enriched_data.update(enrichment)
            item.add_source_entry(source_entry)
            item.touch()
            self.storage.store_item(item)
        self.logger.info("item_enriched", dfid=dfid, keys=sorted(enrichment))
        self._record(dfid, EventType.ENRICHED, source_entry, {"enriched_keys": sorted(enrichment)})
        return item

    def add_identifiers(self, dfid: str, identifiers: Sequence[AnyIdentifier]) -> Item:
        legacy, enhanced = split_identifiers(identifiers)
        with self.storage.locked(item_lock_key(dfid)):
            item = self._load(dfid)
            self._require_active(item, "add identifiers to")
            item.identifiers = merge_legacy_identifiers(item.identifiers, legacy)
            item.enhanced_identifiers = merge_identifiers(item.enhanced_identifiers, enhanced)
            item.touch()
            self.storage.store_item(item)
        self.logger.info("item_identifiers_added", dfid=dfid, count=len(identifiers))
        self._record(dfid, EventType.UPDATED, None, {"identifiers_added": len(identifiers)})
        return item

    def merge_items(self, primary_dfid: str, secondary_dfid: str) -> Item:
        """Fold ``secondary`` into ``primary`` and mark ``secondary`` Merged.

        Identifiers and source entries are unioned; enriched data from the
        secondary overwrites matching keys; confidence is averaged.

        Raises:
            NotFound: Either item is unknown
            InvalidStateTransition: Same DFID twice, or either item is
                already Merged or Deprecated
        """
        if primary_dfid == secondary_dfid:
            raise InvalidStateTransition(
                f"Cannot merge item {primary_dfid} into itself", details={"dfid": primary_dfid}
            )
        with self.storage.locked(item_lock_key(primary_dfid), item_lock_key(secondary_dfid)):
            primary = self._load(primary_dfid)
            secondary = self._load(secondary_dfid)
            self._require_active(primary, "merge")
            self._require_active(secondary, "merge")

            primary.identifiers = merge_legacy_identifiers(primary.identifiers, secondary.identifiers)
            primary.enhanced_identifiers = merge_identifiers(
                primary.enhanced_identifiers, secondary.enhanced_identifiers
            )
            primary.enriched_data.update(secondary.enriched_data)
            for entry in secondary.source_entries:
                primary.add_source_entry(entry)
            primary.confidence_score = (primary.confidence_score + secondary.confidence_score) / 2
            primary.touch()

            secondary.status = ItemStatus.MERGED
            secondary.merged_into = primary_dfid
            secondary.touch()

            self.storage.store_item(primary)
            self.storage.store_item(secondary)

        self.logger.info("items_merged", primary=primary_dfid, secondary=secondary_dfid)
        if self.events is not None:
            self.events.create_item_merged_event(primary_dfid, secondary_dfid, "items_engine")
        self._record(
            secondary_dfid,
            EventType.STATUS_CHANGED,
            None,
            {"status": ItemStatus.MERGED.value, "merged_into": primary_dfid},
        )
        return primary

    def deprecate_item(self, dfid: str) -> Item:
        """Mark an item Deprecated. Idempotent; fails for Merged items."""
        with self.storage.locked(item_lock_key(dfid)):
            item = self._load(dfid)
            if item.status == ItemStatus.DEPRECATED:
                return item
            if item.status == ItemStatus.MERGED:
                raise InvalidStateTransition(
                    f"Cannot deprecate merged item {dfid}",
                    details={"dfid": dfid, "merged_into": item.merged_into},
                )
            item.status = ItemStatus.DEPRECATED
            item.touch()
            self.storage.store_item(item)
        self.logger.info("item_deprecated", dfid=dfid)
        self._record(dfid, EventType.STATUS_CHANGED, None, {"status": ItemStatus.DEPRECATED.value})
        return item

    def find_items_by_identifier(self, identifier: AnyIdentifier) -> List[Item]:
        if isinstance(identifier, Identifier):
            wanted = identifier.dedup_key()
            return [
                item
                for item in self.list_items()
                if any(i.dedup_key() == wanted for i in item.enhanced_identifiers)
            ]
        return [item for item in self.list_items() if identifier in item.identifiers]

    def find_items_by_status(self, status: ItemStatus) -> List[Item]:
        return [item for item in self.list_items() if item.status == status]

    def find_duplicate_local_items(self) -> Dict[str, List[Item]]:
        """Group un-pushed local items by each canonical identifier they share.

        An item with several canonical identifiers can appear in several groups.
        """
        groups: Dict[str, List[Item]] = defaultdict(list)
        for item in self.list_items():
            if not item.is_local:
                continue
            for key in canonical_identity_keys(item.enhanced_identifiers):
                groups[key].append(item)
        return {key: items for key, items in groups.items() if len(items) > 1}

    def get_item_statistics(self) -> ItemStatistics:
        items = self.list_items()
        stats = ItemStatistics(total=len(items))
        if not items:
            return stats
        for item in items:
            if item.status == ItemStatus.ACTIVE:
                stats.active += 1
            elif item.status == ItemStatus.DEPRECATED:
                stats.deprecated += 1
            elif item.status == ItemStatus.MERGED:
                stats.merged += 1
            if item.is_local:
                stats.local += 1
            stats.total_identifiers += len(item.identifiers) + len(item.enhanced_identifiers)
        stats.average_confidence = sum(i.confidence_score for i in items) / len(items)
        return stats
