from __future__ import annotations

import threading
from typing import Dict, List, Optional

from .types import EntityDescriptor, type_key


class SchemaRegistry:
    """In-memory cache of entity descriptors, keyed by type key."""

    def __init__(self):
        self._cache: Dict[str, EntityDescriptor] = {}
        self._lock = threading.Lock()

    def register(self, entity_type: type) -> EntityDescriptor:
        key = type_key(entity_type)
        with self._lock:
            cached = self._cache.get(key)
            if cached is None:
                cached = EntityDescriptor.from_model(entity_type)
                self._cache[key] = cached
            return cached

    def get(self, entity_type: type) -> Optional[EntityDescriptor]:
        return self._cache.get(type_key(entity_type))

    def describe(self, entity_type: type) -> EntityDescriptor:
        return self.get(entity_type) or self.register(entity_type)

    def descriptors(self) -> List[EntityDescriptor]:
        return list(self._cache.values())

    def find(self, name: str) -> Optional[type]:
        """Return the registered type whose key or class name equals ``name``."""
        for desc in self._cache.values():
            if name in (desc.name, desc.entity_type.__name__):
                return desc.entity_type
        lowered = name.lower()
        for desc in self._cache.values():
            if desc.entity_type.__name__.lower() == lowered:
                return desc.entity_type
        return None


__all__ = ["SchemaRegistry"]
