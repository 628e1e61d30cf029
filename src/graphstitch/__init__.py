import logging

from pydantic import __version__ as _pydantic_version

# Graphstitch relies on the Pydantic v2 API (model_fields/model_copy, etc.).
# Import errors should surface early if an incompatible version is installed.
if not _pydantic_version.startswith("2"):
    raise ImportError(
        "graphstitch requires pydantic>=2.0; detected version %s" % _pydantic_version
    )

from .clients import LocalServiceClient
from .constraints import ConstraintConflict, ConstraintRegistry
from .filters import EqFilter, FilterSyntaxError, build_filter, parse_filter
from .lifecycle import RegistryFrozenError, WiringPhase
from .models import BaseEntity
from .protocols import FetchFn, LocalRepository, RemoteClient
from .repository import FrameRepository, InMemoryRepository, RepositoryHandler
from .resolver import RelationalResolver
from .schema import (
    Constraint,
    EntityDescriptor,
    FieldDescriptor,
    RelationDescriptor,
    SchemaRegistry,
    type_key,
)
from .services import ServiceRegistry
from .settings import GraphStitchSettings, LoggingSettings, ResolverSettings, load_settings

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    "BaseEntity",
    "Constraint",
    "ConstraintConflict",
    "ConstraintRegistry",
    "EntityDescriptor",
    "EqFilter",
    "FetchFn",
    "FieldDescriptor",
    "FilterSyntaxError",
    "FrameRepository",
    "GraphStitchSettings",
    "InMemoryRepository",
    "LocalRepository",
    "LocalServiceClient",
    "LoggingSettings",
    "RegistryFrozenError",
    "RelationDescriptor",
    "RelationalResolver",
    "RemoteClient",
    "RepositoryHandler",
    "ResolverSettings",
    "SchemaRegistry",
    "ServiceRegistry",
    "WiringPhase",
    "build_filter",
    "load_settings",
    "parse_filter",
    "type_key",
]
