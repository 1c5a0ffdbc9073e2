"""Compiled-unit identity (``Bead``) and role classification."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path
from typing import TYPE_CHECKING

from sfc_orchestrator.constants import DEFAULT_SCRIPT_EXT, DEFAULT_SOURCE_EXT

if TYPE_CHECKING:
    from collections.abc import Collection

PathLike = str | os.PathLike[str]


class BeadRole(StrEnum):
    """Closed set of roles a compiled unit can play in the bundle."""

    APP = "app"
    PAGE = "page"
    COMPONENT = "component"
    ASSET = "asset"
    UNKNOWN = "unknown"

    @property
    def is_component_like(self) -> bool:
        return self in {BeadRole.PAGE, BeadRole.COMPONENT}


def canonical_path(
    path: PathLike,
    *,
    unit_extensions: Collection[str] = (DEFAULT_SOURCE_EXT, DEFAULT_SCRIPT_EXT),
) -> str:
    """Return the identity key for ``path``.

    The path is made absolute and normalized. Unit extensions are stripped so a
    page authored as ``index.wpy`` or ``index.js`` maps to one unit; every other
    suffix is part of the identity.
    """

    normalized = Path(os.path.normpath(os.path.abspath(os.fspath(path))))
    if normalized.suffix and normalized.suffix in unit_extensions:
        normalized = normalized.with_suffix("")
    return normalized.as_posix()


def classify_path(
    path: PathLike,
    *,
    entry: PathLike | None = None,
    hint: BeadRole | None = None,
    unit_extensions: Collection[str] = (DEFAULT_SOURCE_EXT, DEFAULT_SCRIPT_EXT),
) -> BeadRole:
    """Infer the role of a source file.

    ``hint`` is the role the creating context knows about (page list entries,
    discovered child references). Without it, unit files cannot be told apart
    and classify as ``UNKNOWN``.
    """

    candidate = canonical_path(path, unit_extensions=unit_extensions)
    if entry is not None and candidate == canonical_path(entry, unit_extensions=unit_extensions):
        return BeadRole.APP
    if hint is not None:
        return hint
    suffix = Path(os.fspath(path)).suffix
    if not suffix or suffix in unit_extensions:
        return BeadRole.UNKNOWN
    return BeadRole.ASSET


@dataclass(eq=False, slots=True)
class Bead:
    """One source unit's compiled state, keyed by canonical path.

    ``path`` and ``role`` are fixed at construction. ``parsed`` is attached by
    the ``make`` stage and may be replaced on rebuild.
    """

    path: str
    role: BeadRole = BeadRole.UNKNOWN
    parsed: object | None = field(default=None, repr=False)

    @property
    def name(self) -> str:
        return Path(self.path).name

    @property
    def directory(self) -> Path:
        return Path(self.path).parent

    def attach(self, parsed: object) -> None:
        self.parsed = parsed


__all__ = ["Bead", "BeadRole", "canonical_path", "classify_path"]
