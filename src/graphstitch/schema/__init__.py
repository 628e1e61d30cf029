"""Entity descriptors and the schema cache consumed by the resolver."""

from .types import (
    Cardinality,
    Constraint,
    EntityDescriptor,
    FieldDescriptor,
    RelationDescriptor,
    type_key,
)
from .registry import SchemaRegistry

__all__ = [
    "Cardinality",
    "Constraint",
    "EntityDescriptor",
    "FieldDescriptor",
    "RelationDescriptor",
    "SchemaRegistry",
    "type_key",
]
