from __future__ import annotations

import os
import tomllib
from pathlib import Path
from typing import Any, Dict

from pydantic import BaseModel, ConfigDict, field_validator

ENV_PREFIX = "GRAPHSTITCH_"
ENV_FILE = ".env.graphstitch"


class ResolverSettings(BaseModel):
    parallel_fetch: bool = False
    remote_include_all: bool = False
    strict_constraints: bool = False
    freeze_on_first_request: bool = False
    resolve_empty_collections: bool = False

    model_config = ConfigDict(extra="ignore")


class LoggingSettings(BaseModel):
    level: str = "INFO"
    jsonl: bool = False
    log_dir: Path | None = None
    to_stderr: bool = False

    model_config = ConfigDict(extra="ignore")

    @field_validator("level")
    @classmethod
    def validate_level(cls, value: str) -> str:
        level = value.upper()
        if level not in {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}:
            raise ValueError(f"Unknown log level: {value}")
        return level

    @field_validator("log_dir", mode="before")
    @classmethod
    def empty_log_dir(cls, value: Any) -> Any:
        if value in (None, ""):
            return None
        return value


class GraphStitchSettings(BaseModel):
    resolver: ResolverSettings = ResolverSettings()
    logging: LoggingSettings = LoggingSettings()

    model_config = ConfigDict(extra="ignore")


def _deep_update(target: Dict[str, Any], updates: Dict[str, Any]) -> Dict[str, Any]:
    for key, value in updates.items():
        if isinstance(value, dict) and isinstance(target.get(key), dict):
            _deep_update(target[key], value)  # type: ignore[index]
        else:
            target[key] = value
    return target


def _load_toml(path: Path | None) -> Dict[str, Any]:
    if path is None or not path.exists():
        return {}
    with path.open("rb") as f:
        return tomllib.load(f)


def _parse_env_file(path: Path) -> Dict[str, str]:
    if not path.exists():
        return {}
    result: Dict[str, str] = {}
    for raw in path.read_text(encoding="utf-8").splitlines():
        line = raw.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        result[key.strip()] = value.strip()
    return result


def _extract_prefixed(source: Dict[str, str], *, prefix: str = ENV_PREFIX, delimiter: str = "__") -> Dict[str, Any]:
    data: Dict[str, Any] = {}
    for key, value in source.items():
        if not key.startswith(prefix):
            continue
        path = key.removeprefix(prefix).split(delimiter)
        target = data
        for part in path[:-1]:
            target = target.setdefault(part.lower(), {})
        target[path[-1].lower()] = value
    return data


def load_settings(
    *,
    config_path: Path | None = None,
    env_file: Path | None = None,
    overrides: Dict[str, Any] | None = None,
) -> GraphStitchSettings:
    """Merge TOML config, env file, ``GRAPHSTITCH_*`` variables and overrides, in that order."""
    if config_path is not None and not config_path.exists():
        raise FileNotFoundError(f"Config file not found at {config_path}")

    merged: Dict[str, Any] = {}
    _deep_update(merged, _load_toml(config_path))
    _deep_update(merged, _extract_prefixed(_parse_env_file(env_file or Path(ENV_FILE))))
    _deep_update(merged, _extract_prefixed(dict(os.environ)))
    if overrides:
        _deep_update(merged, overrides)

    return GraphStitchSettings(**merged)


__all__ = [
    "GraphStitchSettings",
    "LoggingSettings",
    "ResolverSettings",
    "load_settings",
]
