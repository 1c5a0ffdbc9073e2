"""Per-pass tracking of vendor modules and assets."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterator


class ModuleSet:
    """Insertion-ordered set of file paths with stable integer ids.

    An id stays valid until :meth:`clear`; re-adding a known path returns its
    existing id.
    """

    __slots__ = ("_ids", "_paths")

    def __init__(self) -> None:
        self._ids: dict[str, int] = {}
        self._paths: list[str] = []

    def add(self, path: str) -> int:
        existing = self._ids.get(path)
        if existing is not None:
            return existing
        module_id = len(self._paths)
        self._ids[path] = module_id
        self._paths.append(path)
        return module_id

    def get(self, module_id: int) -> str:
        if module_id < 0 or module_id >= len(self._paths):
            raise KeyError(f"Unknown module id: {module_id}")
        return self._paths[module_id]

    def id_of(self, path: str) -> int | None:
        return self._ids.get(path)

    def clear(self) -> None:
        self._ids.clear()
        self._paths.clear()

    def __contains__(self, path: object) -> bool:
        return path in self._ids

    def __iter__(self) -> Iterator[str]:
        return iter(tuple(self._paths))

    def __len__(self) -> int:
        return len(self._paths)

    def __repr__(self) -> str:
        return f"ModuleSet({self._paths!r})"


__all__ = ["ModuleSet"]
