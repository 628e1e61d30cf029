from __future__ import annotations

"""Base class for entities resolved across services."""

from typing import Any

from pydantic import BaseModel, ConfigDict


class BaseEntity(BaseModel):
    """Entity owned by exactly one service.

    Relation fields are declared as ``Optional[Related]`` (has-one) or
    ``list[Related]`` (has-many); the resolver fills them in place, so
    assignment is not re-validated.
    """

    id: Any = None

    model_config = ConfigDict(extra="ignore", validate_assignment=False)


__all__ = ["BaseEntity"]
