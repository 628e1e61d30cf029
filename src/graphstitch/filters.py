from __future__ import annotations

"""Textual filter contract shared by the resolver and remote fetch calls.

The only query the resolver ever issues is an equality match on one field,
rendered as ``"<field> eq <value>"``. Fetch implementations parse it back
with :func:`parse_filter`.
"""

import re
from typing import Any

from pydantic import BaseModel, ConfigDict

_EQ_PATTERN = re.compile(r"^\s*(?P<field>[A-Za-z_][\w.]*)\s+eq\s+(?P<value>.*?)\s*$")


class FilterSyntaxError(ValueError):
    def __init__(self, text: str):
        super().__init__(f"Unsupported filter expression: {text!r} (expected '<field> eq <value>')")
        self.text = text


class EqFilter(BaseModel):
    field: str
    value: str

    model_config = ConfigDict(frozen=True)

    def render(self) -> str:
        return f"{self.field} eq {self.value}"

    def matches(self, entity: Any) -> bool:
        if not hasattr(entity, self.field):
            return False
        current = getattr(entity, self.field)
        return current is not None and str(current) == self.value

    @classmethod
    def parse(cls, text: str) -> "EqFilter":
        match = _EQ_PATTERN.match(text or "")
        if match is None:
            raise FilterSyntaxError(text)
        return cls(field=match.group("field"), value=match.group("value"))


def build_filter(foreign_key_name: str, value: Any) -> str:
    """Return ``"<foreign_key_name> eq <value>"``; ``value`` is passed through ``str``."""
    return f"{foreign_key_name} eq {value}"


def parse_filter(text: str) -> EqFilter:
    return EqFilter.parse(text)


__all__ = ["EqFilter", "FilterSyntaxError", "build_filter", "parse_filter"]
