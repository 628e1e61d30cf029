from __future__ import annotations

"""Local stores and the repository handler consumed by the resolver."""

import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

import pandas as pd

from .filters import EqFilter
from .protocols import EntityStore
from .schema.types import type_key

logger = logging.getLogger(__name__)


def _normalize_scalar(value: object) -> object:
    """Convert pandas/numpy scalars to plain Python values; missing cells become ``None``."""

    if value is None:
        return None
    try:
        if pd.isna(value):
            return None
    except (TypeError, ValueError):
        pass
    if isinstance(value, (str, int, float, bool)):
        return value
    item = getattr(value, "item", None)
    if callable(item):
        try:
            return item()
        except (TypeError, ValueError):
            pass
    return value


def _key_text(value: object) -> str:
    # int columns holding nulls are stored as float64
    value = _normalize_scalar(value)
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


class InMemoryRepository:
    """Dict-backed store keyed by ``str(entity.id)``.

    Reads return deep copies so callers can mutate what they get.
    """

    def __init__(self, entity_type: type, entities: Iterable[Any] = ()):
        self.entity_type = entity_type
        self._rows: Dict[str, Any] = {}
        for entity in entities:
            self.add(entity)

    def add(self, entity: Any) -> None:
        if not isinstance(entity, self.entity_type):
            raise TypeError(f"Expected {self.entity_type.__name__}, got {type(entity).__name__}")
        self._rows[str(entity.id)] = entity

    def get_by_id(self, entity_id: Any) -> Optional[Any]:
        entity = self._rows.get(str(entity_id))
        return entity.model_copy(deep=True) if entity is not None else None

    def query(self, flt: EqFilter) -> List[Any]:
        return [e.model_copy(deep=True) for e in self._rows.values() if flt.matches(e)]

    def __len__(self) -> int:
        return len(self._rows)


class FrameRepository:
    """Store backed by a pandas ``DataFrame``, one row per entity.

    Rows are validated into ``entity_type`` on every read; columns the model
    does not declare are ignored.
    """

    def __init__(self, entity_type: type, frame: pd.DataFrame, *, id_column: str = "id"):
        if id_column not in frame.columns:
            raise KeyError(f"ID column '{id_column}' not found in frame")
        self.entity_type = entity_type
        self.frame = frame
        self.id_column = id_column

    @classmethod
    def from_csv(cls, entity_type: type, csv_path: str | Path, *, id_column: str = "id") -> "FrameRepository":
        return cls(entity_type, pd.read_csv(csv_path), id_column=id_column)

    def _to_entity(self, row: Dict[str, Any]) -> Any:
        data: Dict[str, Any] = {}
        for key, raw in row.items():
            value = _normalize_scalar(raw)
            # blank cells fall back to the model defaults
            if value is not None:
                data[str(key)] = value
        return self.entity_type.model_validate(data)

    def _select(self, column: str, value: str) -> List[Any]:
        if column not in self.frame.columns:
            return []
        keys = self.frame[column].map(_key_text, na_action="ignore")
        rows = self.frame[keys == value].to_dict(orient="records")
        return [self._to_entity(row) for row in rows]

    def get_by_id(self, entity_id: Any) -> Optional[Any]:
        rows = self._select(self.id_column, str(entity_id))
        return rows[0] if rows else None

    def query(self, flt: EqFilter) -> List[Any]:
        return self._select(flt.field, flt.value)

    def __len__(self) -> int:
        return len(self.frame)


class RepositoryHandler:
    """Per-type registry of local stores, implementing the local repository contract."""

    def __init__(self):
        self._stores: Dict[str, EntityStore] = {}

    def register(self, store: EntityStore) -> None:
        key = type_key(store.entity_type)
        if key in self._stores:
            logger.debug("Repository for %s already registered; keeping the first store", key)
            return
        self._stores[key] = store

    def get_repository(self, entity_type: type) -> Optional[EntityStore]:
        return self._stores.get(type_key(entity_type))

    def has_repository(self, entity_type: type) -> bool:
        return type_key(entity_type) in self._stores

    def get_by_id(self, entity_type: type, entity_id: Any, include_all: bool = True) -> Optional[Any]:
        # stores hold flat rows; include_all only matters for stores with local navigation
        store = self.get_repository(entity_type)
        if store is None:
            return None
        return store.get_by_id(entity_id)

    def query(self, entity_type: type, flt: EqFilter) -> List[Any]:
        store = self.get_repository(entity_type)
        if store is None:
            return []
        return store.query(flt)


__all__ = ["FrameRepository", "InMemoryRepository", "RepositoryHandler"]
