"""Built-in plugin that claims every driver hook and copies sources unchanged.

Unit configuration lives in a JSON sidecar next to the unit (``app.json`` for
the app, ``pages/index.json`` for ``pages/index.wpy``). Child components are
declared under ``usingComponents``.
"""

from __future__ import annotations

import json
import os
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import TYPE_CHECKING, Any

import structlog

from sfc_orchestrator.build.bead import BeadRole
from sfc_orchestrator.build.chain import BuildChain
from sfc_orchestrator.constants import (
    DEFAULT_CONFIG_EXT,
    HOOK_BUILD_APP,
    HOOK_BUILD_ASSETS,
    HOOK_BUILD_COMPONENTS,
    HOOK_BUILD_VENDOR,
    HOOK_MAKE,
    HOOK_OUTPUT_APP,
    HOOK_OUTPUT_ASSETS,
    HOOK_OUTPUT_COMPONENTS,
    HOOK_OUTPUT_STATIC,
    HOOK_OUTPUT_VENDOR,
    STATIC_DIR,
)
from sfc_orchestrator.hooks.bus import Severity
from sfc_orchestrator.utils.fs import atomic_copy, is_within_lexically

if TYPE_CHECKING:
    from sfc_orchestrator.build.tracking import ModuleSet
    from sfc_orchestrator.control_plane.driver import BuildDriver

_USING_COMPONENTS = "usingComponents"
_PACKAGE_ENTRY = "index"


class PassthroughPlugin:
    def __init__(self, driver: BuildDriver, *, logger: Any | None = None) -> None:
        self._driver = driver
        self._logger = logger if logger is not None else structlog.get_logger(__name__)
        self.tokens: tuple[int, ...] = ()

    def register(self) -> tuple[int, ...]:
        hooks = self._driver.hooks
        self.tokens = (
            hooks.register(HOOK_MAKE, self.make),
            hooks.register(HOOK_BUILD_APP, _identity),
            hooks.register(HOOK_BUILD_COMPONENTS, _identity),
            hooks.register(HOOK_BUILD_VENDOR, _identity),
            hooks.register(HOOK_BUILD_ASSETS, _identity),
            hooks.register(HOOK_OUTPUT_APP, self.output_app),
            hooks.register(HOOK_OUTPUT_COMPONENTS, self.output_components),
            hooks.register(HOOK_OUTPUT_VENDOR, self.output_vendor),
            hooks.register(HOOK_OUTPUT_ASSETS, self.output_assets),
            hooks.register(HOOK_OUTPUT_STATIC, self.output_static),
        )
        return self.tokens

    def make(self, chain: BuildChain) -> BuildChain:
        """Attach the sidecar config and discover ``usingComponents`` children."""

        if chain.unit_role is BeadRole.ASSET:
            self._driver.assets.add(os.fspath(chain.file or chain.path))
            return chain

        config = _read_sidecar(sidecar_path(chain))
        chain.config = config
        chain.bead.attach(config)
        chain.children.clear()

        references = config.get(_USING_COMPONENTS)
        if isinstance(references, Mapping):
            for tag in sorted(references):
                reference = references[tag]
                if isinstance(reference, str) and reference:
                    self._add_child(chain, tag, reference)
        return chain

    def output_app(self, chain: BuildChain) -> int:
        return self._emit_unit(chain)

    def output_components(self, chains: Iterable[BuildChain]) -> int:
        return sum(self._emit_unit(chain) for chain in chains if not chain.ignored)

    def output_vendor(self, vendors: ModuleSet) -> int:
        written = 0
        for path in vendors:
            atomic_copy(path, self._driver.get_module_target(path))
            written += 1
        return written

    def output_assets(self, assets: ModuleSet) -> int:
        written = 0
        for path in assets:
            if Path(path).is_file():
                atomic_copy(path, self._driver.get_target(path))
                written += 1
        return written

    def output_static(self) -> int:
        static_root = self._driver.options.source_root / STATIC_DIR
        if not static_root.is_dir():
            return 0
        written = 0
        for source in sorted(static_root.rglob("*")):
            if source.is_file():
                atomic_copy(source, self._driver.get_target(source))
                written += 1
        self._logger.debug("static_copied", files=written)
        return written

    def _add_child(self, chain: BuildChain, tag: str, reference: str) -> None:
        driver = self._driver
        base = self._reference_base(chain, reference)
        resolved = driver.resolve_unit(base) or driver.resolve_unit(base / _PACKAGE_ENTRY)
        if resolved is None:
            driver.report(
                Severity.ERROR,
                chain,
                f"Can not resolve component: {reference} (<{tag}>)",
            )
            return

        child = driver.create_component_chain(resolved, chain)
        if is_within_lexically(resolved, driver.options.package_root):
            driver.vendors.add(os.fspath(resolved))
            child.ignore()

    def _reference_base(self, chain: BuildChain, reference: str) -> Path:
        options = self._driver.options
        if reference.startswith("/"):
            return options.source_root / reference.lstrip("/")
        if reference.startswith("."):
            return Path(os.path.normpath(Path(chain.path).parent / reference))
        return options.package_root / reference

    def _emit_unit(self, chain: BuildChain) -> int:
        written = 0
        source = Path(chain.file) if chain.file is not None else None
        if source is not None and source.is_file():
            atomic_copy(source, self._driver.get_target(source))
            written += 1
        sidecar = sidecar_path(chain)
        if sidecar.is_file():
            atomic_copy(sidecar, self._driver.get_target(sidecar))
            written += 1
        return written


def sidecar_path(chain: BuildChain) -> Path:
    return Path(f"{chain.path}{DEFAULT_CONFIG_EXT}")


def apply(driver: BuildDriver) -> PassthroughPlugin:
    plugin = PassthroughPlugin(driver)
    plugin.register()
    return plugin


def _identity(value: object) -> object:
    return value


def _read_sidecar(path: Path) -> dict[str, Any]:
    if not path.is_file():
        return {}
    try:
        parsed = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ValueError(f"invalid JSON in {path}: {exc}") from exc
    if not isinstance(parsed, dict):
        raise ValueError(f"{path} must contain a JSON object")
    return parsed


__all__ = ["PassthroughPlugin", "apply", "sidecar_path"]
