from __future__ import annotations

"""Service registry and the type-keyed fetch table.

Each entity type is served by exactly one client. When a client is
registered, its ``fetch_data`` is bound to that type and stored in the fetch
table, so the resolver can fetch any registered type through a plain
``(filter, include_all)`` call.
"""

import functools
import logging
from typing import Any, Dict, List, Optional

from .lifecycle import WiringPhase
from .protocols import FetchFn
from .schema.types import type_key

logger = logging.getLogger(__name__)


class ServiceRegistry:
    def __init__(self, *, phase: Optional[WiringPhase] = None):
        self.phase = phase or WiringPhase("services")
        self._clients: Dict[str, Any] = {}
        self._fetch_table: Dict[str, FetchFn] = {}

    def register_service_for_type(
        self,
        entity_type: type,
        client: Any,
        *,
        fetch: Optional[FetchFn] = None,
    ) -> bool:
        """Register ``client`` for ``entity_type``; return ``False`` if one is already registered."""
        key = type_key(entity_type)
        with self.phase.mutation():
            if key in self._clients:
                logger.debug("Service for %s already registered; keeping the first client", key)
                return False
            if fetch is None:
                fetch_data = getattr(client, "fetch_data", None)
                if not callable(fetch_data):
                    raise TypeError(f"Client for {key} has no fetch_data method and no fetch callable was given")
                fetch = functools.partial(fetch_data, entity_type)
            self._clients[key] = client
            self._fetch_table[key] = fetch
            logger.debug("Registered service for %s", key)
            return True

    def lookup(self, entity_type: type) -> Optional[Any]:
        return self._clients.get(type_key(entity_type))

    def fetcher(self, entity_type: type) -> Optional[FetchFn]:
        return self._fetch_table.get(type_key(entity_type))

    def types(self) -> List[str]:
        return sorted(self._clients)

    def freeze(self) -> None:
        self.phase.freeze()

    def __contains__(self, entity_type: object) -> bool:
        return isinstance(entity_type, type) and type_key(entity_type) in self._clients


__all__ = ["ServiceRegistry"]
