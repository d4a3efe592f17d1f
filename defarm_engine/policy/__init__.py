"""Access policy for circuits and adapters."""

from .circuit_access import (
    ROLE_PERMISSIONS,
    TIER_ADAPTERS,
    effective_permissions,
    has_permission,
    permissions_for,
    require_permission,
    tier_allows_adapter,
)

__all__ = [
    "ROLE_PERMISSIONS",
    "TIER_ADAPTERS",
    "effective_permissions",
    "has_permission",
    "permissions_for",
    "require_permission",
    "tier_allows_adapter",
]
