"""
DeFarm domain model.

Pydantic objects shared by the engines and the storage backends.
"""

from .circuit import (
    AdapterConfig,
    Circuit,
    CircuitOperation,
    MirrorResult,
    PushResult,
    UserAccount,
)
from .enums import (
    AdapterType,
    CircuitStatus,
    EventType,
    EventVisibility,
    IdentifierKind,
    ItemStatus,
    MemberRole,
    MirrorStatus,
    OperationStatus,
    OperationType,
    Permission,
    PushStatus,
    UserTier,
)
from .event import Event
from .identifiers import (
    GENERIC_NAMESPACE,
    KNOWN_NAMESPACES,
    AliasConfig,
    Identifier,
    LegacyIdentifier,
    canonical_identity_key,
    canonical_identity_keys,
    contextual_fingerprint_key,
    identity_hash,
    validate_registry_value,
)
from .item import Item, ItemStatistics
from .primitives import is_lid_placeholder, lid_placeholder, new_uuid, utc_now
from .storage_record import (
    AdapterResult,
    IpfsLocation,
    LocalLocation,
    StellarLocation,
    StorageLocation,
    StorageMetadata,
    StorageRecord,
    SyncStatus,
    TimelineEntry,
)

__all__ = [
    # Enums
    "AdapterType",
    "CircuitStatus",
    "EventType",
    "EventVisibility",
    "IdentifierKind",
    "ItemStatus",
    "MemberRole",
    "MirrorStatus",
    "OperationStatus",
    "OperationType",
    "Permission",
    "PushStatus",
    "UserTier",
    # Identifiers
    "GENERIC_NAMESPACE",
    "KNOWN_NAMESPACES",
    "AliasConfig",
    "Identifier",
    "LegacyIdentifier",
    "canonical_identity_key",
    "canonical_identity_keys",
    "contextual_fingerprint_key",
    "identity_hash",
    "validate_registry_value",
    # Objects
    "AdapterConfig",
    "Circuit",
    "CircuitOperation",
    "Event",
    "Item",
    "ItemStatistics",
    "MirrorResult",
    "PushResult",
    "UserAccount",
    # Storage
    "AdapterResult",
    "IpfsLocation",
    "LocalLocation",
    "StellarLocation",
    "StorageLocation",
    "StorageMetadata",
    "StorageRecord",
    "SyncStatus",
    "TimelineEntry",
    # Helpers
    "is_lid_placeholder",
    "lid_placeholder",
    "new_uuid",
    "utc_now",
]
