from __future__ import annotations

"""In-process service client.

:class:`LocalServiceClient` answers filtered fetches from a
:class:`~graphstitch.repository.RepositoryHandler`, standing in for the
transport layer when every service runs in one process (tests, demos, the
CLI).
"""

import logging
from typing import Any, List

from .filters import parse_filter
from .repository import RepositoryHandler
from .schema.types import type_key

logger = logging.getLogger(__name__)


class LocalServiceClient:
    def __init__(self, repositories: RepositoryHandler, *, name: str = "local"):
        self.name = name
        self.repositories = repositories

    async def fetch_data(self, entity_type: type, filter: str, include_all: bool = True) -> List[Any]:
        flt = parse_filter(filter)
        if not self.repositories.has_repository(entity_type):
            raise LookupError(f"Service '{self.name}' does not serve {type_key(entity_type)}")
        items = self.repositories.query(entity_type, flt)
        logger.debug("%s: %d %s rows for %r", self.name, len(items), entity_type.__name__, filter)
        return items


__all__ = ["LocalServiceClient"]
