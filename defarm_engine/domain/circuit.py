"""
Circuit - a permissioned sharing group, plus the records its operations produce.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, constr, model_validator

from .enums import (
    AdapterType,
    CircuitStatus,
    MemberRole,
    MirrorStatus,
    OperationStatus,
    OperationType,
    PushStatus,
    UserTier,
)
from .identifiers import GENERIC_NAMESPACE, AliasConfig
from .primitives import new_uuid, utc_now
from .storage_record import StorageMetadata


class AdapterConfig(BaseModel):
    """How a circuit mirrors pushed items to external storage."""

    model_config = ConfigDict(extra="forbid")

    adapter_type: AdapterType = AdapterType.NONE
    sponsor_adapter_access: bool = Field(
        False, description="Circuit pays for adapter access on behalf of members"
    )
    requires_approval: bool = False
    auto_migrate_existing: bool = False


class Circuit(BaseModel):
    """A circuit.

    Invariants:
    - ``owner_id`` is always present in ``members`` with role Owner
    - Membership and adapter config only change while Active
    """

    model_config = ConfigDict(extra="forbid")

    circuit_id: UUID = Field(default_factory=new_uuid)
    name: constr(min_length=1, max_length=256)
    description: str = ""
    owner_id: constr(min_length=1, max_length=128)
    default_namespace: constr(min_length=1, max_length=64) = GENERIC_NAMESPACE
    members: Dict[str, MemberRole] = Field(default_factory=dict)
    alias_config: Optional[AliasConfig] = None
    adapter_config: Optional[AdapterConfig] = None
    status: CircuitStatus = CircuitStatus.ACTIVE
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @model_validator(mode="after")
    def _owner_is_member(self) -> "Circuit":
        self.members[self.owner_id] = MemberRole.OWNER
        return self

    @property
    def is_active(self) -> bool:
        return self.status == CircuitStatus.ACTIVE

    def role_of(self, user_id: str) -> Optional[MemberRole]:
        if user_id == self.owner_id:
            return MemberRole.OWNER
        return self.members.get(user_id)

    def owners(self) -> List[str]:
        return [uid for uid, role in self.members.items() if role == MemberRole.OWNER]

    def touch(self) -> None:
        self.updated_at = utc_now()


class CircuitOperation(BaseModel):
    """Record of a push or pull against a circuit."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    operation_id: UUID = Field(default_factory=new_uuid)
    circuit_id: UUID
    dfid: str
    operation_type: OperationType
    requester_id: str
    status: OperationStatus = OperationStatus.COMPLETED
    timestamp: datetime = Field(default_factory=utc_now)


class PushResult(BaseModel):
    """Outcome of a push.

    A failed or skipped mirror is still a successful push: the DFID and its
    mapping are committed before the adapter runs.
    """

    model_config = ConfigDict(extra="forbid")

    dfid: str
    local_id: Optional[UUID] = None
    circuit_id: UUID
    push_status: PushStatus
    operation_id: UUID
    storage: Optional[StorageMetadata] = None
    mirror_status: MirrorStatus = MirrorStatus.SKIPPED
    mirror_error: Optional[Dict[str, Any]] = None

    @property
    def degraded(self) -> bool:
        return self.mirror_status == MirrorStatus.FAILED


class UserAccount(BaseModel):
    model_config = ConfigDict(extra="forbid")

    user_id: constr(min_length=1, max_length=128)
    username: constr(min_length=1, max_length=128)
    tier: UserTier = UserTier.BASIC
    created_at: datetime = Field(default_factory=utc_now)


class MirrorResult(BaseModel):
    """Outcome of mirroring one DFID through a circuit's adapter."""

    model_config = ConfigDict(extra="forbid")

    dfid: str
    circuit_id: UUID
    mirror_status: MirrorStatus
    storage: Optional[StorageMetadata] = None
    mirror_error: Optional[Dict[str, Any]] = None
