"""Plugin discovery: each plugin module exposes ``apply(driver)``."""

from __future__ import annotations

import importlib
from collections.abc import Iterable
from types import ModuleType
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from sfc_orchestrator.control_plane.driver import BuildDriver

logger = structlog.get_logger(__name__)


class PluginLoadError(RuntimeError):
    """A configured plugin module could not be imported or applied."""

    def __init__(self, module: str, message: str) -> None:
        self.module = module
        super().__init__(f"plugin {module!r}: {message}")


def load_plugins(driver: BuildDriver, modules: Iterable[str]) -> tuple[ModuleType, ...]:
    """Import each module in order and call its ``apply(driver)``."""

    loaded: list[ModuleType] = []
    for name in modules:
        try:
            module = importlib.import_module(name)
        except ImportError as exc:
            raise PluginLoadError(name, f"import failed: {exc}") from exc

        apply = getattr(module, "apply", None)
        if not callable(apply):
            raise PluginLoadError(name, "module does not define apply(driver)")

        try:
            apply(driver)
        except PluginLoadError:
            raise
        except Exception as exc:  # noqa: BLE001 - plugin boundary
            raise PluginLoadError(name, f"apply() failed: {exc}") from exc

        logger.debug("plugin_loaded", plugin=name)
        loaded.append(module)
    return tuple(loaded)


__all__ = ["PluginLoadError", "load_plugins"]
