"""Lookup of adapter instances by adapter type."""

from __future__ import annotations

from typing import Dict, Optional

from ..domain import AdapterType
from .base import StorageAdapter
from .local import LocalAdapter


class AdapterRegistry:
    """Holds one adapter instance per ``AdapterType``."""

    def __init__(self) -> None:
        self._adapters: Dict[AdapterType, StorageAdapter] = {}

    def register(self, adapter: StorageAdapter, adapter_type: Optional[AdapterType] = None) -> None:
        self._adapters[adapter_type or adapter.adapter_type] = adapter

    def get(self, adapter_type: AdapterType) -> Optional[StorageAdapter]:
        return self._adapters.get(adapter_type)

    def registered_types(self):
        return sorted(self._adapters, key=lambda t: t.value)

    def health(self) -> Dict[str, bool]:
        return {t.value: self._adapters[t].health_check() for t in self.registered_types()}


def create_default_registry() -> AdapterRegistry:
    """Registry with the in-process local adapter registered."""
    registry = AdapterRegistry()
    registry.register(LocalAdapter())
    return registry
