"""
Circuit access policy.

Pure functions mapping member roles to permission sets and account tiers to
the storage adapters they may use. Nothing here touches storage; callers
load the circuit and pass it in.
"""

from typing import Dict, FrozenSet, Optional

from ..domain import AdapterType, Circuit, MemberRole, Permission, UserTier
from ..errors import PermissionDenied

ROLE_PERMISSIONS: Dict[MemberRole, FrozenSet[Permission]] = {
    MemberRole.OWNER: frozenset(Permission),
    MemberRole.MEMBER: frozenset({Permission.PUSH, Permission.PULL}),
    MemberRole.VIEWER: frozenset({Permission.PULL}),
}

TIER_ADAPTERS: Dict[UserTier, FrozenSet[AdapterType]] = {
    UserTier.BASIC: frozenset({AdapterType.NONE, AdapterType.LOCAL_LOCAL}),
    UserTier.PROFESSIONAL: frozenset(
        {AdapterType.NONE, AdapterType.LOCAL_LOCAL, AdapterType.IPFS_IPFS}
    ),
    UserTier.ENTERPRISE: frozenset(AdapterType),
    UserTier.ADMIN: frozenset(AdapterType),
}


def permissions_for(role: Optional[MemberRole]) -> FrozenSet[Permission]:
    """Return the permission set granted by ``role``.

    Examples:
        >>> Permission.PUSH in permissions_for(MemberRole.MEMBER)
        True
        >>> permissions_for(None)
        frozenset()
    """
    if role is None:
        return frozenset()
    return ROLE_PERMISSIONS[role]


def effective_permissions(circuit: Circuit, user_id: str) -> FrozenSet[Permission]:
    """Permissions ``user_id`` holds in ``circuit``. The owner always holds all."""
    if user_id == circuit.owner_id:
        return ROLE_PERMISSIONS[MemberRole.OWNER]
    return permissions_for(circuit.members.get(user_id))


def has_permission(circuit: Circuit, user_id: str, permission: Permission) -> bool:
    return permission in effective_permissions(circuit, user_id)


def require_permission(circuit: Circuit, user_id: str, permission: Permission) -> None:
    """Raise PermissionDenied unless ``user_id`` holds ``permission``."""
    if not has_permission(circuit, user_id, permission):
        raise PermissionDenied(
            f"User '{user_id}' lacks {permission.value} permission on circuit "
            f"{circuit.circuit_id}",
            details={
                "circuit_id": str(circuit.circuit_id),
                "user_id": user_id,
                "permission": permission.value,
            },
        )


def tier_allows_adapter(tier: UserTier, adapter_type: AdapterType) -> bool:
    """Whether accounts of ``tier`` may use ``adapter_type``.

    Examples:
        >>> tier_allows_adapter(UserTier.BASIC, AdapterType.IPFS_IPFS)
        False
    """
    return adapter_type in TIER_ADAPTERS[tier]
