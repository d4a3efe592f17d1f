"""
SQLAlchemy storage backend.

Each call runs in its own short transaction. Uniqueness of LID mappings and
canonical identities is enforced by primary keys, so concurrent writers in
different processes still converge on one winner.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Iterator, List, Optional
from uuid import UUID

import structlog
from sqlalchemy import Engine, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..db.base import get_session_local, init_database
from ..db.models import (
    CanonicalIdentityModel,
    CircuitItemModel,
    CircuitModel,
    CircuitOperationModel,
    EventModel,
    ItemModel,
    LidDfidMappingModel,
    SequenceModel,
    StorageRecordModel,
    TimelineEntryModel,
    UserAccountModel,
    as_utc,
)
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
from ..errors import StorageFailure
from .base import StorageBackend

logger = structlog.get_logger(__name__)


class SqlStorage(StorageBackend):
    """Storage backend over a SQLAlchemy engine."""

    def __init__(self, engine: Engine, lock_shards: int = 64, create_tables: bool = True):
        super().__init__(lock_shards)
        self.engine = engine
        self._session_factory = get_session_local(engine)
        self._sequence_lock = threading.Lock()
        if create_tables:
            init_database(engine)

    @contextmanager
    def _transaction(self, operation: str) -> Iterator[Session]:
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            logger.error("storage_operation_failed", operation=operation, error=str(exc))
            raise StorageFailure(
                f"{operation} failed: {exc}", details={"operation": operation}
            ) from exc
        finally:
            session.close()

    def _insert_once(self, operation: str, row, model, key) -> str:
        """Insert ``row`` unless ``key`` exists; return the stored ``dfid``."""
        try:
            with self._transaction(operation) as session:
                existing = session.get(model, key)
                if existing is not None:
                    return existing.dfid
                session.add(row)
                session.flush()
                return row.dfid
        except StorageFailure as exc:
            # Lost an insert race with another process
            if not isinstance(exc.__cause__, IntegrityError):
                raise
        with self._transaction(operation) as session:
            existing = session.get(model, key)
            if existing is None:
                raise StorageFailure(f"{operation} failed: row vanished after conflict")
            return existing.dfid

    def next_sequence(self, name: str) -> int:
        with self._sequence_lock, self._transaction("next_sequence") as session:
            row = session.execute(
                select(SequenceModel).where(SequenceModel.name == name).with_for_update()
            ).scalar_one_or_none()
            if row is None:
                row = SequenceModel(name=name, value=0)
                session.add(row)
            row.value += 1
            session.flush()
            return row.value

    # Items

    def store_item(self, item: Item) -> None:
        data = item.model_dump(mode="json")
        with self._transaction("store_item") as session:
            session.merge(
                ItemModel(
                    dfid=item.dfid,
                    local_id=data["local_id"],
                    status=data["status"],
                    confidence_score=item.confidence_score,
                    merged_into=item.merged_into,
                    identifiers=data["identifiers"],
                    enhanced_identifiers=data["enhanced_identifiers"],
                    enriched_data=data["enriched_data"],
                    source_entries=data["source_entries"],
                    creation_timestamp=item.creation_timestamp,
                    last_modified=item.last_modified,
                )
            )

    def get_item_by_dfid(self, dfid: str) -> Optional[Item]:
        with self._transaction("get_item_by_dfid") as session:
            row = session.get(ItemModel, dfid)
            return Item.model_validate(row.to_dict()) if row else None

    def list_items(self) -> List[Item]:
        with self._transaction("list_items") as session:
            rows = session.execute(select(ItemModel).order_by(ItemModel.creation_timestamp))
            return [Item.model_validate(row.to_dict()) for row in rows.scalars()]

    def remove_item(self, dfid: str) -> None:
        with self._transaction("remove_item") as session:
            row = session.get(ItemModel, dfid)
            if row is not None:
                session.delete(row)

    # LID -> DFID mappings

    def store_lid_dfid_mapping(self, local_id: UUID, dfid: str) -> str:
        key = str(local_id)
        return self._insert_once(
            "store_lid_dfid_mapping",
            LidDfidMappingModel(local_id=key, dfid=dfid),
            LidDfidMappingModel,
            key,
        )

    def get_dfid_by_lid(self, local_id: UUID) -> Optional[str]:
        with self._transaction("get_dfid_by_lid") as session:
            row = session.get(LidDfidMappingModel, str(local_id))
            return row.dfid if row else None

    # Canonical identities

    def claim_canonical_identity(self, identity_hash: str, identity_key: str, dfid: str) -> str:
        return self._insert_once(
            "claim_canonical_identity",
            CanonicalIdentityModel(
                identity_hash=identity_hash, identity_key=identity_key, dfid=dfid
            ),
            CanonicalIdentityModel,
            identity_hash,
        )

    def get_dfid_by_canonical_identity(self, identity_hash: str) -> Optional[str]:
        with self._transaction("get_dfid_by_canonical_identity") as session:
            row = session.get(CanonicalIdentityModel, identity_hash)
            return row.dfid if row else None

    # Circuits

    def store_circuit(self, circuit: Circuit) -> None:
        data = circuit.model_dump(mode="json")
        with self._transaction("store_circuit") as session:
            session.merge(
                CircuitModel(
                    circuit_id=data["circuit_id"],
                    name=circuit.name,
                    description=circuit.description,
                    owner_id=circuit.owner_id,
                    default_namespace=circuit.default_namespace,
                    members=data["members"],
                    alias_config=data["alias_config"],
                    adapter_config=data["adapter_config"],
                    status=data["status"],
                    created_at=circuit.created_at,
                    updated_at=circuit.updated_at,
                )
            )

    def get_circuit(self, circuit_id: UUID) -> Optional[Circuit]:
        with self._transaction("get_circuit") as session:
            row = session.get(CircuitModel, str(circuit_id))
            return Circuit.model_validate(row.to_dict()) if row else None

    def list_circuits(self) -> List[Circuit]:
        with self._transaction("list_circuits") as session:
            rows = session.execute(select(CircuitModel).order_by(CircuitModel.created_at))
            return [Circuit.model_validate(row.to_dict()) for row in rows.scalars()]

    def add_circuit_item(self, circuit_id: UUID, dfid: str, added_by: str) -> bool:
        try:
            with self._transaction("add_circuit_item") as session:
                exists = session.execute(
                    select(CircuitItemModel.id).where(
                        CircuitItemModel.circuit_id == str(circuit_id),
                        CircuitItemModel.dfid == dfid,
                    )
                ).first()
                if exists:
                    return False
                session.add(
                    CircuitItemModel(circuit_id=str(circuit_id), dfid=dfid, added_by=added_by)
                )
                return True
        except StorageFailure as exc:
            if isinstance(exc.__cause__, IntegrityError):
                return False
            raise

    def is_item_in_circuit(self, circuit_id: UUID, dfid: str) -> bool:
        with self._transaction("is_item_in_circuit") as session:
            return (
                session.execute(
                    select(CircuitItemModel.id).where(
                        CircuitItemModel.circuit_id == str(circuit_id),
                        CircuitItemModel.dfid == dfid,
                    )
                ).first()
                is not None
            )

    def list_circuit_items(self, circuit_id: UUID) -> List[str]:
        with self._transaction("list_circuit_items") as session:
            rows = session.execute(
                select(CircuitItemModel.dfid)
                .where(CircuitItemModel.circuit_id == str(circuit_id))
                .order_by(CircuitItemModel.id)
            )
            return list(rows.scalars())

    def store_circuit_operation(self, operation: CircuitOperation) -> None:
        data = operation.model_dump(mode="json")
        with self._transaction("store_circuit_operation") as session:
            session.add(
                CircuitOperationModel(
                    operation_id=data["operation_id"],
                    circuit_id=data["circuit_id"],
                    dfid=operation.dfid,
                    operation_type=data["operation_type"],
                    requester_id=operation.requester_id,
                    status=data["status"],
                    timestamp=operation.timestamp,
                )
            )

    def list_circuit_operations(self, circuit_id: UUID) -> List[CircuitOperation]:
        with self._transaction("list_circuit_operations") as session:
            rows = session.execute(
                select(CircuitOperationModel)
                .where(CircuitOperationModel.circuit_id == str(circuit_id))
                .order_by(CircuitOperationModel.id)
            )
            return [CircuitOperation.model_validate(row.to_dict()) for row in rows.scalars()]

    # User accounts

    def store_user_account(self, account: UserAccount) -> None:
        with self._transaction("store_user_account") as session:
            session.merge(
                UserAccountModel(
                    user_id=account.user_id,
                    username=account.username,
                    tier=account.tier.value,
                    created_at=account.created_at,
                )
            )

    def get_user_account(self, user_id: str) -> Optional[UserAccount]:
        with self._transaction("get_user_account") as session:
            row = session.get(UserAccountModel, user_id)
            if row is None:
                return None
            return UserAccount(
                user_id=row.user_id,
                username=row.username,
                tier=row.tier,
                created_at=as_utc(row.created_at),
            )

    # Events

    def store_event(self, event: Event) -> None:
        data = event.model_dump(mode="json")
        with self._transaction("store_event") as session:
            session.add(
                EventModel(
                    event_id=data["event_id"],
                    dfid=event.dfid,
                    event_type=data["event_type"],
                    source=event.source,
                    visibility=data["visibility"],
                    is_encrypted=event.is_encrypted,
                    timestamp=event.timestamp,
                    meta=data["metadata"],
                )
            )

    def get_event(self, event_id: UUID) -> Optional[Event]:
        with self._transaction("get_event") as session:
            row = session.execute(
                select(EventModel).where(EventModel.event_id == str(event_id))
            ).scalar_one_or_none()
            return Event.model_validate(row.to_dict()) if row else None

    def get_events_for_item(self, dfid: str) -> List[Event]:
        with self._transaction("get_events_for_item") as session:
            rows = session.execute(
                select(EventModel).where(EventModel.dfid == dfid).order_by(EventModel.id)
            )
            return [Event.model_validate(row.to_dict()) for row in rows.scalars()]

    def list_events(self) -> List[Event]:
        with self._transaction("list_events") as session:
            rows = session.execute(select(EventModel).order_by(EventModel.id))
            return [Event.model_validate(row.to_dict()) for row in rows.scalars()]

    # Storage history

    def add_storage_record(self, dfid: str, record: StorageRecord) -> None:
        data = record.model_dump(mode="json")
        with self._transaction("add_storage_record") as session:
            session.add(
                StorageRecordModel(
                    dfid=dfid,
                    adapter_type=data["adapter_type"],
                    storage_location=data["storage_location"],
                    stored_at=record.stored_at,
                    triggered_by=record.triggered_by,
                    is_active=record.is_active,
                    meta=data["metadata"],
                )
            )

    def deactivate_storage_records(self, dfid: str, adapter_type: AdapterType) -> int:
        with self._transaction("deactivate_storage_records") as session:
            result = session.execute(
                update(StorageRecordModel)
                .where(
                    StorageRecordModel.dfid == dfid,
                    StorageRecordModel.adapter_type == adapter_type.value,
                    StorageRecordModel.is_active.is_(True),
                )
                .values(is_active=False)
            )
            return result.rowcount or 0

    def get_storage_history(self, dfid: str) -> Optional[List[StorageRecord]]:
        with self._transaction("get_storage_history") as session:
            rows = session.execute(
                select(StorageRecordModel)
                .where(StorageRecordModel.dfid == dfid)
                .order_by(StorageRecordModel.id)
            )
            records = [StorageRecord.model_validate(row.to_dict()) for row in rows.scalars()]
            return records or None

    # Timeline

    def add_cid_to_timeline(self, entry: TimelineEntry) -> None:
        with self._transaction("add_cid_to_timeline") as session:
            session.add(TimelineEntryModel(**entry.model_dump()))

    def get_item_timeline(self, dfid: str) -> List[TimelineEntry]:
        with self._transaction("get_item_timeline") as session:
            rows = session.execute(
                select(TimelineEntryModel)
                .where(TimelineEntryModel.dfid == dfid)
                .order_by(TimelineEntryModel.id)
            )
            return [TimelineEntry.model_validate(row.to_dict()) for row in rows.scalars()]
