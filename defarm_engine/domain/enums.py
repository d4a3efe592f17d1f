"""
Enumerations for the DeFarm domain model.

All enums use string values for JSON serialization compatibility.
"""

from enum import Enum


class IdentifierKind(str, Enum):
    """Whether an identifier participates in deduplication."""

    CANONICAL = "canonical"
    CONTEXTUAL = "contextual"


class ItemStatus(str, Enum):
    """Lifecycle status of an item. Merged and Deprecated are terminal."""

    ACTIVE = "active"
    MERGED = "merged"
    DEPRECATED = "deprecated"

    @property
    def is_terminal(self) -> bool:
        return self in (ItemStatus.MERGED, ItemStatus.DEPRECATED)


class CircuitStatus(str, Enum):
    """Lifecycle status of a circuit."""

    ACTIVE = "active"
    ARCHIVED = "archived"


class MemberRole(str, Enum):
    """Role a user holds within a circuit."""

    OWNER = "owner"
    MEMBER = "member"
    VIEWER = "viewer"


class Permission(str, Enum):
    """Capabilities granted by a member role."""

    PUSH = "push"
    PULL = "pull"
    MANAGE_MEMBERS = "manage_members"
    MANAGE_ADAPTER = "manage_adapter"


class PushStatus(str, Enum):
    """Outcome of identity resolution during a push."""

    CREATED = "created"
    DEDUPLICATED = "deduplicated"


class MirrorStatus(str, Enum):
    """Outcome of the best-effort adapter mirroring step."""

    MIRRORED = "mirrored"
    FAILED = "failed"
    SKIPPED = "skipped"


class OperationType(str, Enum):
    """Type of circuit operation."""

    PUSH = "push"
    PULL = "pull"


class OperationStatus(str, Enum):
    """Status of a circuit operation."""

    COMPLETED = "completed"
    DEGRADED = "degraded"


class EventType(str, Enum):
    """Item lifecycle event types."""

    CREATED = "created"
    ENRICHED = "enriched"
    MERGED = "merged"
    PUSHED_TO_CIRCUIT = "pushed_to_circuit"
    PULLED_FROM_CIRCUIT = "pulled_from_circuit"
    UPDATED = "updated"
    STATUS_CHANGED = "status_changed"


class EventVisibility(str, Enum):
    """Who may read an event. Private events are flagged encrypted."""

    PUBLIC = "public"
    PRIVATE = "private"
    CIRCUIT_ONLY = "circuit_only"


class AdapterType(str, Enum):
    """Storage adapter kinds a circuit can mirror through."""

    NONE = "none"
    LOCAL_LOCAL = "local-local"
    IPFS_IPFS = "ipfs-ipfs"
    STELLAR_TESTNET_IPFS = "stellar_testnet-ipfs"
    STELLAR_MAINNET_IPFS = "stellar_mainnet-ipfs"

    @property
    def network(self) -> str:
        """Network label recorded on timeline entries."""
        return _ADAPTER_NETWORKS[self]


_ADAPTER_NETWORKS = {
    AdapterType.NONE: "none",
    AdapterType.LOCAL_LOCAL: "local",
    AdapterType.IPFS_IPFS: "ipfs",
    AdapterType.STELLAR_TESTNET_IPFS: "stellar-testnet",
    AdapterType.STELLAR_MAINNET_IPFS: "stellar-mainnet",
}


class UserTier(str, Enum):
    """Account tier, which gates adapter access."""

    BASIC = "basic"
    PROFESSIONAL = "professional"
    ENTERPRISE = "enterprise"
    ADMIN = "admin"
