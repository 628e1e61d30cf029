from __future__ import annotations

from typing import Any, Awaitable, Callable, List, Optional, Protocol, Union, runtime_checkable

EntityList = List[Any]
FetchResult = Union[EntityList, Awaitable[EntityList]]
FetchFn = Callable[[str, bool], FetchResult]


@runtime_checkable
class LocalRepository(Protocol):
    def has_repository(self, entity_type: type) -> bool: ...

    def get_by_id(self, entity_type: type, entity_id: Any, include_all: bool = True) -> Any: ...


@runtime_checkable
class RemoteClient(Protocol):
    def fetch_data(self, entity_type: type, filter: str, include_all: bool = True) -> FetchResult: ...


class EntityStore(Protocol):
    entity_type: type

    def get_by_id(self, entity_id: Any) -> Optional[Any]: ...

    def query(self, flt: Any) -> EntityList: ...


__all__ = [
    "EntityList",
    "EntityStore",
    "FetchFn",
    "FetchResult",
    "LocalRepository",
    "RemoteClient",
]
