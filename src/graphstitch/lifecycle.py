from __future__ import annotations

"""Two-phase lifecycle for process-wide registries.

Registries are written while services are wired at startup and only read once
requests are served. :class:`WiringPhase` serializes writes during the build
phase and rejects them after :meth:`WiringPhase.freeze`.
"""

import threading
from contextlib import contextmanager
from typing import Iterator


class RegistryFrozenError(Exception):
    def __init__(self, registry: str):
        super().__init__(f"Registry '{registry}' is frozen; register during wiring only")
        self.registry = registry


class WiringPhase:
    def __init__(self, name: str):
        self.name = name
        self._lock = threading.RLock()
        self._frozen = False

    @property
    def frozen(self) -> bool:
        return self._frozen

    def freeze(self) -> None:
        with self._lock:
            self._frozen = True

    @contextmanager
    def mutation(self) -> Iterator[None]:
        with self._lock:
            if self._frozen:
                raise RegistryFrozenError(self.name)
            yield


__all__ = ["RegistryFrozenError", "WiringPhase"]
