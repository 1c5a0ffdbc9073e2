"""Identity-preserving factory for compiled units."""

from __future__ import annotations

import os
import threading
from typing import TYPE_CHECKING, Any, TypeVar

from sfc_orchestrator.build.bead import Bead, canonical_path
from sfc_orchestrator.constants import DEFAULT_SCRIPT_EXT, DEFAULT_SOURCE_EXT

if TYPE_CHECKING:
    from collections.abc import Collection, Iterator

    from sfc_orchestrator.build.bead import PathLike

B = TypeVar("B", bound=Bead)


class Producer:
    """Path-keyed cache of beads.

    For a given canonical path ``make`` returns the same instance until the
    cache is cleared. The first caller decides the unit's kind and attributes;
    later calls get the cached unit unchanged.
    """

    __slots__ = ("_beads", "_lock", "_unit_extensions")

    def __init__(
        self,
        *,
        unit_extensions: Collection[str] = (DEFAULT_SOURCE_EXT, DEFAULT_SCRIPT_EXT),
    ) -> None:
        self._beads: dict[str, Bead] = {}
        self._lock = threading.Lock()
        self._unit_extensions = tuple(unit_extensions)

    @property
    def unit_extensions(self) -> tuple[str, ...]:
        return self._unit_extensions

    def key_for(self, path: PathLike) -> str:
        return canonical_path(path, unit_extensions=self._unit_extensions)

    def make(self, kind: type[B], path: PathLike, **attrs: Any) -> B:
        """Return the cached unit for ``path`` or construct one of ``kind``."""
        key = self.key_for(path)
        with self._lock:
            existing = self._beads.get(key)
            if existing is None:
                existing = kind(path=key, **attrs)
                self._beads[key] = existing
        return existing  # type: ignore[return-value]

    def get(self, path: PathLike) -> Bead | None:
        with self._lock:
            return self._beads.get(self.key_for(path))

    def clear(self) -> None:
        with self._lock:
            self._beads.clear()

    def __contains__(self, path: object) -> bool:
        if not isinstance(path, (str, os.PathLike)):
            return False
        with self._lock:
            return self.key_for(path) in self._beads

    def __len__(self) -> int:
        with self._lock:
            return len(self._beads)

    def __iter__(self) -> Iterator[Bead]:
        with self._lock:
            return iter(tuple(self._beads.values()))


__all__ = ["Producer"]
