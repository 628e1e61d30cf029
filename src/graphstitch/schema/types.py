from __future__ import annotations

import types
from dataclasses import dataclass, field
from typing import Any, List, Literal, Optional, Union, get_args, get_origin

Cardinality = Literal["one", "many"]


def type_key(entity_type: type) -> str:
    """Fully-qualified name used to key registries by entity type."""
    return f"{entity_type.__module__}.{entity_type.__qualname__}"


@dataclass(frozen=True)
class Constraint:
    """Relation declared on ``owner_type`` for fields named ``property_name``.

    ``owner_type`` is the type key of the related type, i.e. the type the
    resolver fetches. The remote side is filtered on ``foreign_key_name``;
    for has-one relations the lookup key is read from the root's
    ``local_key_name`` field, falling back to ``foreign_key_name``.
    """

    owner_type: str
    property_name: str
    foreign_key_name: str
    local_key_name: Optional[str] = None

    @property
    def key_field(self) -> str:
        return self.local_key_name or self.foreign_key_name


@dataclass
class FieldDescriptor:
    name: str
    declared_type: Optional[type] = None
    element_type: Optional[type] = None
    writable: bool = True

    @property
    def cardinality(self) -> Cardinality:
        return "many" if self.element_type is not None else "one"


@dataclass(frozen=True)
class RelationDescriptor:
    field_name: str
    related_type: str
    foreign_key: str
    key_field: str
    cardinality: Cardinality


def _strip_optional(annotation: Any) -> Any:
    origin = get_origin(annotation)
    if origin is Union or origin is types.UnionType:
        args = [a for a in get_args(annotation) if a is not type(None)]
        if len(args) == 1:
            return args[0]
    return annotation


def _as_class(annotation: Any) -> Optional[type]:
    # forward references left unresolved by the model are not usable
    return annotation if isinstance(annotation, type) else None


@dataclass
class EntityDescriptor:
    name: str
    entity_type: type
    fields: List[FieldDescriptor] = field(default_factory=list)

    def field_names(self) -> List[str]:
        return [f.name for f in self.fields]

    def get_field(self, name: str) -> Optional[FieldDescriptor]:
        for f in self.fields:
            if f.name == name:
                return f
        return None

    def writable_fields(self) -> List[FieldDescriptor]:
        return [f for f in self.fields if f.writable]

    @classmethod
    def from_model(cls, entity_type: type) -> "EntityDescriptor":
        """Build an :class:`EntityDescriptor` from a pydantic model class.

        ``list[X]`` annotations (optionally wrapped in ``Optional``) yield an
        ``element_type``; any other class annotation yields a
        ``declared_type``. Fields marked ``frozen``, and every field of a
        frozen model, are not writable.
        """

        model_fields = getattr(entity_type, "model_fields", None)
        if model_fields is None:
            raise TypeError(f"{entity_type!r} is not a pydantic model")
        model_frozen = bool(getattr(entity_type, "model_config", {}).get("frozen", False))

        fields: List[FieldDescriptor] = []
        for name, info in model_fields.items():
            annotation = _strip_optional(info.annotation)
            declared: Optional[type] = None
            element: Optional[type] = None
            if get_origin(annotation) is list:
                args = get_args(annotation)
                element = _as_class(_strip_optional(args[0])) if args else None
            else:
                declared = _as_class(annotation)
            fields.append(
                FieldDescriptor(
                    name=name,
                    declared_type=declared,
                    element_type=element,
                    writable=not (model_frozen or bool(info.frozen)),
                )
            )
        return cls(name=type_key(entity_type), entity_type=entity_type, fields=fields)


__all__ = [
    "Cardinality",
    "Constraint",
    "EntityDescriptor",
    "FieldDescriptor",
    "RelationDescriptor",
    "type_key",
]
