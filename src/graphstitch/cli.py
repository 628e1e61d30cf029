from __future__ import annotations

import argparse
import asyncio
import importlib
import json
import sys
from pathlib import Path
from typing import Any, Callable

from graphstitch.logging_config import configure_logging
from graphstitch.resolver import RelationalResolver
from graphstitch.settings import GraphStitchSettings, load_settings

WiringFn = Callable[[GraphStitchSettings], RelationalResolver]


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Graphstitch utilities")
    parser.add_argument("--config", type=Path, default=None, help="Path to graphstitch TOML config")
    parser.add_argument("--log-level", default=None, help="Override logging.level")
    parser.add_argument("--log-jsonl", action="store_true", help="Emit JSON lines logs")
    sub = parser.add_subparsers(dest="command", required=True)

    describe = sub.add_parser("describe", help="List registered services and relations")
    describe.add_argument("--wiring", required=True, help="Wiring callable as 'module:attr'")

    get = sub.add_parser("get", help="Load an entity by id and print it as JSON")
    get.add_argument("--wiring", required=True, help="Wiring callable as 'module:attr'")
    get.add_argument("entity", help="Entity class name or fully-qualified type key")
    get.add_argument("id", help="Entity id")
    get.add_argument(
        "--no-include-all",
        dest="include_all",
        action="store_false",
        help="Skip cross-service relation resolution",
    )
    return parser.parse_args(argv)


def load_wiring(reference: str) -> WiringFn:
    module_name, sep, attr = reference.partition(":")
    if not sep or not module_name or not attr:
        raise SystemExit(f"Invalid wiring reference {reference!r}; expected 'module:attr'")
    module = importlib.import_module(module_name)
    target = getattr(module, attr, None)
    if not callable(target):
        raise SystemExit(f"Wiring reference {reference!r} is not callable")
    return target


def _describe(resolver: RelationalResolver) -> dict[str, Any]:
    entities = []
    for desc in resolver.schemas.descriptors():
        relations = resolver.describe_relations(desc.entity_type)
        entities.append(
            {
                "type": desc.name,
                "local": resolver.repositories.has_repository(desc.entity_type),
                "service": desc.entity_type in resolver.services,
                "relations": [
                    {
                        "field": rel.field_name,
                        "related_type": rel.related_type,
                        "foreign_key": rel.foreign_key,
                        "key_field": rel.key_field,
                        "cardinality": rel.cardinality,
                    }
                    for rel in relations
                ],
            }
        )
    return {"services": resolver.services.types(), "entities": entities}


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    overrides: dict[str, Any] = {"logging": {}}
    if args.log_level:
        overrides["logging"]["level"] = args.log_level
    if args.log_jsonl:
        overrides["logging"]["jsonl"] = True
    settings = load_settings(config_path=args.config, overrides=overrides)
    configure_logging(settings.logging)

    resolver = load_wiring(args.wiring)(settings)

    if args.command == "describe":
        print(json.dumps(_describe(resolver), ensure_ascii=False, indent=2))
        return 0
    if args.command == "get":
        entity_type = resolver.schemas.find(args.entity)
        if entity_type is None:
            print(f"Unknown entity type: {args.entity}", file=sys.stderr)
            return 2
        entity = asyncio.run(resolver.get_by_id(entity_type, args.id, include_all=args.include_all))
        if entity is None:
            print(f"{entity_type.__name__} {args.id} not found", file=sys.stderr)
            return 1
        print(entity.model_dump_json(indent=2))
        return 0
    raise SystemExit(f"Unknown command: {args.command}")


if __name__ == "__main__":
    sys.exit(main())
