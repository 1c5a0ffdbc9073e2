"""Build-chain tree nodes linking beads to their position in a build pass."""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from sfc_orchestrator.build.bead import Bead, BeadRole

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path


class BuildChain:
    """Tree node wrapping exactly one :class:`Bead`.

    ``previous`` and ``root`` are navigation aids only; the tree is owned top
    down by the driver's active pass. ``config`` and ``children`` are filled in
    by the ``make`` stage.
    """

    role: BeadRole = BeadRole.UNKNOWN

    __slots__ = ("bead", "file", "config", "children", "previous", "root", "_ignored")

    def __init__(self, bead: Bead, *, file: Path | str | None = None) -> None:
        self.bead = bead
        self.file = file
        self.config: dict[str, Any] = {}
        self.children: list[ComponentChain] = []
        self.previous: BuildChain | None = None
        self.root: BuildChain | None = None
        self._ignored = False

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.bead.path!r})"

    @property
    def path(self) -> str:
        return self.bead.path

    @property
    def unit_role(self) -> BeadRole:
        """Role of the chain itself, falling back to the bead's inferred role."""
        if self.role is BeadRole.UNKNOWN:
            return self.bead.role
        return self.role

    @property
    def ignored(self) -> bool:
        return self._ignored

    def ignore(self, value: bool = True) -> None:
        self._ignored = value

    def set_previous(self, chain: BuildChain) -> None:
        self.previous = chain
        self.root = chain.root if chain.root is not None else chain

    def lineage(self) -> Iterator[BuildChain]:
        """Yield this chain and then each ancestor up to the root."""
        cursor: BuildChain | None = self
        while cursor is not None:
            yield cursor
            cursor = cursor.previous

    @property
    def depth(self) -> int:
        return sum(1 for _ in self.lineage()) - 1

    def resolve_config(self) -> Mapping[str, Any]:
        return self.config

    def add_child(self, child: ComponentChain) -> ComponentChain:
        child.set_previous(self)
        self.children.append(child)
        return child

    def child_references(self) -> tuple[ComponentChain, ...]:
        """Child component chains that still need building."""
        return tuple(child for child in self.children if not child.ignored)


class AppChain(BuildChain):
    __slots__ = ()

    role = BeadRole.APP

    def pages(self) -> tuple[str, ...]:
        raw = self.config.get("pages")
        if not isinstance(raw, (list, tuple)):
            return ()
        return tuple(item for item in raw if isinstance(item, str) and item)

    def sub_packages(self) -> tuple[Mapping[str, Any], ...]:
        raw = self.config.get("subpackages") or self.config.get("subPackages") or ()
        if not isinstance(raw, (list, tuple)):
            return ()
        return tuple(item for item in raw if isinstance(item, Mapping))

    def has_custom_tab_bar(self) -> bool:
        tab_bar = self.config.get("tabBar")
        return isinstance(tab_bar, Mapping) and bool(tab_bar.get("custom"))


class PageChain(BuildChain):
    __slots__ = ()

    role = BeadRole.PAGE


class ComponentChain(BuildChain):
    __slots__ = ()

    role = BeadRole.COMPONENT


__all__ = ["AppChain", "BuildChain", "ComponentChain", "PageChain"]
