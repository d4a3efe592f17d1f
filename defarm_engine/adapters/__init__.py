"""Storage adapters."""

from .base import StorageAdapter
from .local import LocalAdapter
from .registry import AdapterRegistry, create_default_registry

__all__ = ["AdapterRegistry", "LocalAdapter", "StorageAdapter", "create_default_registry"]
