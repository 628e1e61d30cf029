from __future__ import annotations

import logging
from typing import Dict, FrozenSet, List, Optional

from .lifecycle import WiringPhase
from .schema.types import Constraint, type_key

logger = logging.getLogger(__name__)


class ConstraintConflict(Exception):
    def __init__(self, existing: Constraint, foreign_key_name: str):
        super().__init__(
            f"Constraint for '{existing.owner_type}.{existing.property_name}' is already registered "
            f"with foreign key '{existing.foreign_key_name}' (attempted '{foreign_key_name}')"
        )
        self.existing = existing
        self.foreign_key_name = foreign_key_name


class ConstraintRegistry:
    """Relations declared per related type.

    At most one constraint exists per ``(type, property_name)``; the first
    registration wins. A later registration with a different foreign key is
    ignored with a warning, or raises :class:`ConstraintConflict` when the
    registry is strict.
    """

    def __init__(self, *, strict: bool = False, phase: Optional[WiringPhase] = None):
        self.strict = strict
        self.phase = phase or WiringPhase("constraints")
        self._constraints: Dict[str, List[Constraint]] = {}

    def register_constraint(
        self,
        entity_type: type,
        property_name: str,
        foreign_key_name: str,
        *,
        local_key_name: Optional[str] = None,
    ) -> Constraint:
        owner = type_key(entity_type)
        with self.phase.mutation():
            bucket = self._constraints.setdefault(owner, [])
            for existing in bucket:
                if existing.property_name != property_name:
                    continue
                if existing.foreign_key_name != foreign_key_name:
                    if self.strict:
                        raise ConstraintConflict(existing, foreign_key_name)
                    logger.warning(
                        "Ignoring constraint %s.%s -> %s; already registered with foreign key %s",
                        owner,
                        property_name,
                        foreign_key_name,
                        existing.foreign_key_name,
                    )
                return existing
            constraint = Constraint(
                owner_type=owner,
                property_name=property_name,
                foreign_key_name=foreign_key_name,
                local_key_name=local_key_name,
            )
            bucket.append(constraint)
            logger.debug("Registered constraint %s.%s via %s", owner, property_name, foreign_key_name)
            return constraint

    def constraints_for(self, entity_type: type) -> FrozenSet[Constraint]:
        return frozenset(self._constraints.get(type_key(entity_type), ()))

    def find(self, entity_type: type, property_name: str) -> Optional[Constraint]:
        for constraint in self._constraints.get(type_key(entity_type), ()):
            if constraint.property_name == property_name:
                return constraint
        return None

    def owners(self) -> List[str]:
        return sorted(self._constraints)

    def freeze(self) -> None:
        self.phase.freeze()


__all__ = ["ConstraintConflict", "ConstraintRegistry"]
