from __future__ import annotations

"""Relational resolver that stitches entities across services.

The root entity is loaded from the local repository; each of its writable
fields is then checked against the constraint and service registries and, when
both know the related type, filled from the owning service:

* a field holding a non-empty list is a has-many relation: related entities
  whose foreign key equals the root id are appended to it. Empty lists are
  left alone unless ``resolve_empty_collections`` is set;
* any other field is a has-one relation: the related entity whose foreign key
  equals the root's key field replaces the current value, or ``None`` when the
  owning service returns nothing.

Resolution is one hop deep. Fetched entities are inserted as returned and
their own relation fields are left alone.
"""

import asyncio
import inspect
import logging
from dataclasses import dataclass
from typing import Any, List, Optional

from .constraints import ConstraintRegistry
from .filters import build_filter
from .logging_config import request_scope
from .protocols import FetchFn, LocalRepository, RemoteClient
from .schema.registry import SchemaRegistry
from .schema.types import (
    Cardinality,
    Constraint,
    EntityDescriptor,
    FieldDescriptor,
    RelationDescriptor,
    type_key,
)
from .services import ServiceRegistry
from .settings import ResolverSettings

logger = logging.getLogger(__name__)

_MISSING = object()


async def _maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


@dataclass
class _PlannedFetch:
    field_name: str
    cardinality: Cardinality
    related_type: type
    filter: str
    fetch: FetchFn


@dataclass
class _Assignment:
    field_name: str
    value: Any


class RelationalResolver:
    """Load entities by id and fill their cross-service relations.

    Parameters
    ----------
    repositories:
        Local repository answering ``has_repository`` and ``get_by_id`` for
        the types owned by this service.
    services, constraints, schemas:
        Registries; fresh ones are created when omitted.
    settings:
        Resolver options, see :class:`graphstitch.settings.ResolverSettings`.
    """

    def __init__(
        self,
        repositories: LocalRepository,
        *,
        services: Optional[ServiceRegistry] = None,
        constraints: Optional[ConstraintRegistry] = None,
        schemas: Optional[SchemaRegistry] = None,
        settings: Optional[ResolverSettings] = None,
    ):
        self.settings = settings or ResolverSettings()
        self.repositories = repositories
        self.services = services or ServiceRegistry()
        self.constraints = constraints or ConstraintRegistry(strict=self.settings.strict_constraints)
        self.schemas = schemas or SchemaRegistry()

    # --- wiring ---
    def register_service_for_type(
        self,
        entity_type: type,
        client: RemoteClient,
        *,
        fetch: Optional[FetchFn] = None,
    ) -> bool:
        registered = self.services.register_service_for_type(entity_type, client, fetch=fetch)
        self.schemas.register(entity_type)
        return registered

    def register_constraint(
        self,
        entity_type: type,
        property_name: str,
        foreign_key_name: str,
        *,
        local_key_name: Optional[str] = None,
    ) -> Constraint:
        constraint = self.constraints.register_constraint(
            entity_type,
            property_name,
            foreign_key_name,
            local_key_name=local_key_name,
        )
        self.schemas.register(entity_type)
        return constraint

    def register_entity(self, entity_type: type) -> EntityDescriptor:
        """Describe a root type up front instead of on its first request."""
        return self.schemas.register(entity_type)

    def freeze(self) -> None:
        self.services.freeze()
        self.constraints.freeze()

    @property
    def frozen(self) -> bool:
        return self.services.phase.frozen and self.constraints.phase.frozen

    # --- requests ---
    async def get_by_id(self, entity_type: type, entity_id: Any, include_all: bool = True) -> Any:
        """Return the entity with ``entity_id``, relations filled when ``include_all``.

        Returns ``None`` when no repository serves ``entity_type`` or the id is
        unknown. Faults raised by a remote fetch propagate unchanged and the
        loaded entity is discarded. Log lines emitted while serving the call
        carry one request id (see :func:`graphstitch.logging_config.request_scope`).
        """
        if self.settings.freeze_on_first_request and not self.frozen:
            self.freeze()

        with request_scope():
            if not self.repositories.has_repository(entity_type):
                logger.debug("No local repository for %s", type_key(entity_type))
                return None

            logger.debug("Loading %s %r (include_all=%s)", type_key(entity_type), entity_id, include_all)
            entity = await _maybe_await(self.repositories.get_by_id(entity_type, entity_id, include_all))
            if entity is None or not include_all:
                return entity
            return await self.resolve_relations(entity)

    async def resolve_relations(self, entity: Any) -> Any:
        with request_scope():
            planned, assignments = self._plan(entity)
            if not planned and not assignments:
                return entity

            include_all = self.settings.remote_include_all
            if self.settings.parallel_fetch and len(planned) > 1:
                results = await self._fetch_concurrently(planned, include_all)
            else:
                results = []
                for step in planned:
                    results.append(await self._fetch(step, include_all))

            # nothing is written until every fetch has succeeded
            for step, items in zip(planned, results):
                self._apply(entity, step, items)
            for assignment in assignments:
                setattr(entity, assignment.field_name, assignment.value)
            logger.debug("Resolved %d relation(s) on %s %r", len(planned) + len(assignments), type(entity).__name__, getattr(entity, "id", None))
            return entity

    def describe_relations(self, entity_type: type) -> List[RelationDescriptor]:
        """Relations of ``entity_type`` that the registries can currently resolve."""
        descriptor = self.schemas.describe(entity_type)
        relations: List[RelationDescriptor] = []
        for field in descriptor.writable_fields():
            related = field.element_type or field.declared_type
            if related is None or related not in self.services:
                continue
            constraint = self.constraints.find(related, field.name)
            if constraint is None:
                continue
            relations.append(
                RelationDescriptor(
                    field_name=field.name,
                    related_type=type_key(related),
                    foreign_key=constraint.foreign_key_name,
                    key_field="id" if field.cardinality == "many" else constraint.key_field,
                    cardinality=field.cardinality,
                )
            )
        return relations

    # --- internals ---
    def _resolvable(self, related: Optional[type], field_name: str) -> tuple[Optional[Constraint], Optional[FetchFn]]:
        if related is None:
            return None, None
        constraint = self.constraints.find(related, field_name)
        fetch = self.services.fetcher(related)
        if constraint is None or fetch is None:
            return None, None
        return constraint, fetch

    def _plan(self, entity: Any) -> tuple[List[_PlannedFetch], List[_Assignment]]:
        descriptor = self.schemas.describe(type(entity))
        planned: List[_PlannedFetch] = []
        assignments: List[_Assignment] = []
        for field in descriptor.writable_fields():
            step = self._plan_field(entity, field)
            if isinstance(step, _PlannedFetch):
                planned.append(step)
            elif isinstance(step, _Assignment):
                assignments.append(step)
        return planned, assignments

    def _plan_field(self, entity: Any, field: FieldDescriptor) -> Optional[_PlannedFetch | _Assignment]:
        value = getattr(entity, field.name, None)

        if isinstance(value, list) and (value or self.settings.resolve_empty_collections):
            related = field.element_type
            constraint, fetch = self._resolvable(related, field.name)
            if constraint is None or fetch is None:
                logger.debug("Skipping collection field %s: no constraint or service", field.name)
                return None
            return _PlannedFetch(
                field_name=field.name,
                cardinality="many",
                related_type=related,  # type: ignore[arg-type]
                filter=build_filter(constraint.foreign_key_name, entity.id),
                fetch=fetch,
            )

        if isinstance(value, list):
            logger.debug("Skipping empty collection field %s", field.name)
            return None

        related = field.declared_type
        constraint, fetch = self._resolvable(related, field.name)
        if constraint is None or fetch is None:
            if related is not None:
                logger.debug("Skipping field %s: no constraint or service for %s", field.name, related.__name__)
            return None
        key = getattr(entity, constraint.key_field, _MISSING)
        if key is _MISSING:
            logger.debug("Skipping field %s: entity has no key field %s", field.name, constraint.key_field)
            return None
        if key is None:
            return _Assignment(field_name=field.name, value=None)
        return _PlannedFetch(
            field_name=field.name,
            cardinality="one",
            related_type=related,  # type: ignore[arg-type]
            filter=build_filter(constraint.foreign_key_name, key),
            fetch=fetch,
        )

    async def _fetch(self, step: _PlannedFetch, include_all: bool) -> List[Any]:
        logger.debug("Fetching %s for field %s with filter %r", type_key(step.related_type), step.field_name, step.filter)
        items = await _maybe_await(step.fetch(step.filter, include_all))
        return list(items or [])

    async def _fetch_concurrently(self, planned: List[_PlannedFetch], include_all: bool) -> List[List[Any]]:
        tasks = [asyncio.ensure_future(self._fetch(step, include_all)) for step in planned]
        try:
            return list(await asyncio.gather(*tasks))
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

    @staticmethod
    def _apply(entity: Any, step: _PlannedFetch, items: List[Any]) -> None:
        if step.cardinality == "many":
            getattr(entity, step.field_name).extend(items)
            return
        setattr(entity, step.field_name, items[0] if items else None)


__all__ = ["RelationalResolver"]
