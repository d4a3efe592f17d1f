"""
Error taxonomy for the DeFarm engines.

Every failure carries a stable ``code`` (usable for transport status mapping)
and a human-readable ``message``. Expected domain conditions are raised as
these exceptions; infrastructure errors are wrapped in ``StorageFailure``.
"""

from typing import Any, Dict, Optional


class DeFarmError(Exception):
    """Base error for all engine operations."""

    code = "defarm_error"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for API responses."""
        payload: Dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class NotFound(DeFarmError):
    code = "not_found"


class PermissionDenied(DeFarmError):
    code = "permission_denied"


class DuplicateDfid(DeFarmError):
    code = "duplicate_dfid"


class ValidationError(DeFarmError):
    """Malformed input that no retry can fix."""

    code = "validation_error"


class MissingRequiredIdentifier(ValidationError):
    code = "missing_required_identifier"


class InvalidIdentifier(ValidationError):
    code = "invalid_identifier"


class CannotRemoveSoleOwner(DeFarmError):
    code = "cannot_remove_sole_owner"


class InvalidStateTransition(DeFarmError):
    code = "invalid_state_transition"


class StorageFailure(DeFarmError):
    """Wraps an error raised by a storage backend."""

    code = "storage_failure"


class AdapterFailure(DeFarmError):
    """Wraps an error raised by an external storage adapter.

    Never fatal to a mapping that was already committed.
    """

    code = "adapter_failure"
