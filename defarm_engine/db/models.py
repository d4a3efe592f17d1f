"""
SQLAlchemy models for the SQL storage backend.

Scalar fields that are filtered on get their own columns; nested structures
(identifier lists, member maps, storage locations) are stored as JSON.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    Column,
    DateTime,
    Float,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.sql import func

from .base import Base


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite drops tzinfo; reattach UTC on the way out."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class SequenceModel(Base):
    __tablename__ = "defarm_sequences"

    name = Column(String(64), primary_key=True)
    value = Column(BigInteger, nullable=False, default=0)


class ItemModel(Base):
    """An item, local (LID- placeholder) or tokenized (DFID)."""

    __tablename__ = "defarm_items"

    dfid = Column(String(64), primary_key=True)
    local_id = Column(String(36), nullable=True, index=True)
    status = Column(String(20), nullable=False, index=True)
    confidence_score = Column(Float, nullable=False, default=1.0)
    merged_into = Column(String(64), nullable=True)

    identifiers = Column(JSON, nullable=False, default=list)
    enhanced_identifiers = Column(JSON, nullable=False, default=list)
    enriched_data = Column(JSON, nullable=False, default=dict)
    source_entries = Column(JSON, nullable=False, default=list)

    creation_timestamp = Column(DateTime(timezone=True), nullable=False)
    last_modified = Column(DateTime(timezone=True), nullable=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "dfid": self.dfid,
            "local_id": self.local_id,
            "status": self.status,
            "confidence_score": self.confidence_score,
            "merged_into": self.merged_into,
            "identifiers": self.identifiers or [],
            "enhanced_identifiers": self.enhanced_identifiers or [],
            "enriched_data": self.enriched_data or {},
            "source_entries": self.source_entries or [],
            "creation_timestamp": as_utc(self.creation_timestamp),
            "last_modified": as_utc(self.last_modified),
        }


class LidDfidMappingModel(Base):
    """Append-only LID -> DFID association, one row per local id."""

    __tablename__ = "defarm_lid_dfid_mappings"

    local_id = Column(String(36), primary_key=True)
    dfid = Column(String(64), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class CanonicalIdentityModel(Base):
    """Binding of a canonical identity fingerprint to exactly one DFID.

    The primary key on ``identity_hash`` is what makes concurrent mints of
    the same identity collapse to a single winner across processes.
    """

    __tablename__ = "defarm_canonical_identities"

    identity_hash = Column(String(64), primary_key=True)
    identity_key = Column(Text, nullable=False)
    dfid = Column(String(64), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class CircuitModel(Base):
    __tablename__ = "defarm_circuits"

    circuit_id = Column(String(36), primary_key=True)
    name = Column(String(256), nullable=False)
    description = Column(Text, nullable=False, default="")
    owner_id = Column(String(128), nullable=False, index=True)
    default_namespace = Column(String(64), nullable=False)
    members = Column(JSON, nullable=False, default=dict)
    alias_config = Column(JSON, nullable=True)
    adapter_config = Column(JSON, nullable=True)
    status = Column(String(20), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "circuit_id": self.circuit_id,
            "name": self.name,
            "description": self.description,
            "owner_id": self.owner_id,
            "default_namespace": self.default_namespace,
            "members": self.members or {},
            "alias_config": self.alias_config,
            "adapter_config": self.adapter_config,
            "status": self.status,
            "created_at": as_utc(self.created_at),
            "updated_at": as_utc(self.updated_at),
        }


class CircuitItemModel(Base):
    __tablename__ = "defarm_circuit_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    circuit_id = Column(String(36), nullable=False)
    dfid = Column(String(64), nullable=False)
    added_by = Column(String(128), nullable=False)
    added_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        UniqueConstraint("circuit_id", "dfid", name="uq_circuit_item"),
        Index("ix_circuit_items_circuit", "circuit_id"),
    )


class CircuitOperationModel(Base):
    __tablename__ = "defarm_circuit_operations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    operation_id = Column(String(36), nullable=False, unique=True)
    circuit_id = Column(String(36), nullable=False, index=True)
    dfid = Column(String(64), nullable=False)
    operation_type = Column(String(20), nullable=False)
    requester_id = Column(String(128), nullable=False)
    status = Column(String(20), nullable=False)
    timestamp = Column(DateTime(timezone=True), nullable=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "operation_id": self.operation_id,
            "circuit_id": self.circuit_id,
            "dfid": self.dfid,
            "operation_type": self.operation_type,
            "requester_id": self.requester_id,
            "status": self.status,
            "timestamp": as_utc(self.timestamp),
        }


class UserAccountModel(Base):
    __tablename__ = "defarm_user_accounts"

    user_id = Column(String(128), primary_key=True)
    username = Column(String(128), nullable=False)
    tier = Column(String(20), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)


class EventModel(Base):
    """Append-only lifecycle event. Rows are never updated."""

    __tablename__ = "defarm_events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    event_id = Column(String(36), nullable=False, unique=True)
    dfid = Column(String(64), nullable=False)
    event_type = Column(String(32), nullable=False)
    source = Column(String(256), nullable=False)
    visibility = Column(String(20), nullable=False)
    is_encrypted = Column(Boolean, nullable=False, default=False)
    timestamp = Column(DateTime(timezone=True), nullable=False)
    meta = Column(JSON, nullable=False, default=dict)

    __table_args__ = (
        Index("ix_events_dfid_timestamp", "dfid", "timestamp"),
        Index("ix_events_type", "event_type"),
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event_id": self.event_id,
            "dfid": self.dfid,
            "event_type": self.event_type,
            "source": self.source,
            "visibility": self.visibility,
            "timestamp": as_utc(self.timestamp),
            "metadata": self.meta or {},
        }


class StorageRecordModel(Base):
    __tablename__ = "defarm_storage_records"

    id = Column(Integer, primary_key=True, autoincrement=True)
    dfid = Column(String(64), nullable=False)
    adapter_type = Column(String(32), nullable=False)
    storage_location = Column(JSON, nullable=False)
    stored_at = Column(DateTime(timezone=True), nullable=False)
    triggered_by = Column(String(64), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    meta = Column(JSON, nullable=False, default=dict)

    __table_args__ = (Index("ix_storage_records_dfid_adapter", "dfid", "adapter_type"),)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "adapter_type": self.adapter_type,
            "storage_location": self.storage_location,
            "stored_at": as_utc(self.stored_at),
            "triggered_by": self.triggered_by,
            "is_active": self.is_active,
            "metadata": self.meta or {},
        }


class TimelineEntryModel(Base):
    __tablename__ = "defarm_timeline_entries"

    id = Column(Integer, primary_key=True, autoincrement=True)
    dfid = Column(String(64), nullable=False, index=True)
    cid = Column(String(128), nullable=False)
    transaction_hash = Column(String(128), nullable=False)
    ledger_timestamp = Column(BigInteger, nullable=False)
    network = Column(String(32), nullable=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "dfid": self.dfid,
            "cid": self.cid,
            "transaction_hash": self.transaction_hash,
            "ledger_timestamp": self.ledger_timestamp,
            "network": self.network,
        }
