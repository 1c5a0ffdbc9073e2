"""Mapping of source files to their location in the output bundle."""

from __future__ import annotations

import os
from pathlib import Path

from sfc_orchestrator.constants import VENDOR_DIR

PathLike = str | os.PathLike[str]


def target_path(
    file: PathLike,
    *,
    context: PathLike,
    source_dir: PathLike,
    target_dir: PathLike,
) -> Path:
    """Re-root ``file`` from ``<context>/<source_dir>`` under ``<context>/<target_dir>``."""

    source_root = Path(context) / source_dir
    relative = os.path.relpath(_absolute(file), _absolute(source_root))
    return Path(os.path.normpath(Path(context) / target_dir / relative))


def module_target_path(
    file: PathLike,
    *,
    context: PathLike,
    target_dir: PathLike,
    vendor_dir: str = VENDOR_DIR,
) -> Path:
    """Re-root a package-manager module under ``<context>/<target_dir>/<vendor_dir>``.

    The first segment of the path relative to ``context`` is the package-manager
    directory and is dropped.
    """

    relative = Path(os.path.relpath(_absolute(file), _absolute(context)))
    remainder = relative.parts[1:]
    return Path(os.path.normpath(Path(context) / target_dir / vendor_dir / Path(*remainder)))


def _absolute(path: PathLike) -> str:
    return os.path.normpath(os.path.abspath(os.fspath(path)))


__all__ = ["module_target_path", "target_path"]
