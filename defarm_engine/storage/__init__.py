"""Storage backends."""

from .base import StorageBackend
from .memory import InMemoryStorage
from .sql import SqlStorage

__all__ = ["InMemoryStorage", "SqlStorage", "StorageBackend"]
