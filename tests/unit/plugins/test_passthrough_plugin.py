"""
sfc-orchestrator: unit tests for the built-in passthrough plugin and plugin loading.
"""

from __future__ import annotations

import json
import sys
from pathlib import Path
from types import ModuleType

import pytest

from sfc_orchestrator.build.bead import Bead, BeadRole
from sfc_orchestrator.build.chain import ComponentChain
from sfc_orchestrator.constants import HOOK_ERROR_HANDLER, HOOK_MAKE
from sfc_orchestrator.control_plane import BuildDriver, BuildOptions
from sfc_orchestrator.hooks import HookIssue, Severity
from sfc_orchestrator.plugins import PluginLoadError, load_plugins
from sfc_orchestrator.plugins.passthrough import PassthroughPlugin, apply, sidecar_path

pytestmark = pytest.mark.unit


def _write(path: Path, content: str = "") -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    return path


def _write_json(path: Path, payload: object) -> Path:
    return _write(path, json.dumps(payload))


def _driver(context: Path) -> tuple[BuildDriver, PassthroughPlugin, list[HookIssue]]:
    driver = BuildDriver(BuildOptions(context=context)).init()
    plugin = apply(driver)
    issues: list[HookIssue] = []
    driver.hooks.register(HOOK_ERROR_HANDLER, issues.append)
    return driver, plugin, issues


def test_apply_claims_every_unique_hook(tmp_path: Path) -> None:
    driver, plugin, _ = _driver(tmp_path)

    assert len(plugin.tokens) == 10
    assert driver.hooks.handlers(HOOK_MAKE) == (plugin.make,)


def test_sidecar_sits_next_to_the_unit(tmp_path: Path) -> None:
    driver, _, _ = _driver(tmp_path)
    page = driver.create_page_chain(tmp_path / "src" / "pages" / "index.wpy")

    assert sidecar_path(page) == tmp_path / "src" / "pages" / "index.json"


def test_make_attaches_sidecar_config(tmp_path: Path) -> None:
    _write(tmp_path / "src" / "app.wpy")
    _write_json(tmp_path / "src" / "app.json", {"pages": ["pages/index"]})
    driver, plugin, _ = _driver(tmp_path)
    app = driver.create_app_chain(tmp_path / "src" / "app.wpy")

    made = plugin.make(app)

    assert made is app
    assert app.pages() == ("pages/index",)
    assert app.bead.parsed == {"pages": ["pages/index"]}


def test_make_without_sidecar_leaves_empty_config(tmp_path: Path) -> None:
    _write(tmp_path / "src" / "pages" / "about.wpy")
    driver, plugin, _ = _driver(tmp_path)
    page = driver.create_page_chain(tmp_path / "src" / "pages" / "about.wpy")

    plugin.make(page)

    assert page.config == {}
    assert page.children == []


def test_make_resolves_component_references(tmp_path: Path) -> None:
    src = tmp_path / "src"
    _write(src / "pages" / "index.wpy")
    _write(src / "components" / "card.wpy")
    _write(src / "components" / "badge.js")
    _write(tmp_path / "node_modules" / "ui-kit" / "button" / "index.wpy")
    _write_json(
        src / "pages" / "index.json",
        {
            "usingComponents": {
                "card": "/components/card",
                "badge": "../components/badge",
                "btn": "ui-kit/button",
                "missing": "/components/nope",
            }
        },
    )
    driver, plugin, issues = _driver(tmp_path)
    page = driver.create_page_chain(src / "pages" / "index.wpy")

    plugin.make(page)

    assert [child.path for child in page.children] == [
        (src / "components" / "badge").as_posix(),
        (tmp_path / "node_modules" / "ui-kit" / "button" / "index").as_posix(),
        (src / "components" / "card").as_posix(),
    ]
    assert all(isinstance(child, ComponentChain) for child in page.children)
    assert [child.ignored for child in page.children] == [False, True, False]
    assert [child.path for child in page.child_references()] == [
        (src / "components" / "badge").as_posix(),
        (src / "components" / "card").as_posix(),
    ]
    assert list(driver.vendors) == [
        str(tmp_path / "node_modules" / "ui-kit" / "button" / "index.wpy")
    ]

    assert len(issues) == 1
    assert issues[0].severity is Severity.ERROR
    assert issues[0].chain is page
    assert issues[0].message == "Can not resolve component: /components/nope (<missing>)"


def test_remake_replaces_previous_children(tmp_path: Path) -> None:
    src = tmp_path / "src"
    _write(src / "components" / "card.wpy")
    _write(src / "components" / "list.wpy")
    sidecar = _write_json(
        src / "components" / "list.json", {"usingComponents": {"card": "./card"}}
    )
    driver, plugin, _ = _driver(tmp_path)
    chain = driver.create_component_chain(src / "components" / "list.wpy")

    plugin.make(chain)
    assert len(chain.children) == 1

    _write_json(sidecar, {"usingComponents": {}})
    plugin.make(chain)
    assert chain.children == []


def test_invalid_sidecar_json_raises(tmp_path: Path) -> None:
    _write(tmp_path / "src" / "pages" / "broken.wpy")
    _write(tmp_path / "src" / "pages" / "broken.json", "{not json")
    driver, plugin, _ = _driver(tmp_path)
    page = driver.create_page_chain(tmp_path / "src" / "pages" / "broken.wpy")

    with pytest.raises(ValueError, match="invalid JSON"):
        plugin.make(page)


def test_sidecar_must_hold_an_object(tmp_path: Path) -> None:
    _write(tmp_path / "src" / "pages" / "list.wpy")
    _write_json(tmp_path / "src" / "pages" / "list.json", ["pages/index"])
    driver, plugin, _ = _driver(tmp_path)
    page = driver.create_page_chain(tmp_path / "src" / "pages" / "list.wpy")

    with pytest.raises(ValueError, match="JSON object"):
        plugin.make(page)


def test_asset_make_registers_the_asset(tmp_path: Path) -> None:
    logo = _write(tmp_path / "src" / "images" / "logo.png", "png")
    driver, plugin, _ = _driver(tmp_path)
    asset = driver.producer.make(Bead, logo, role=driver.classify(logo))
    assert asset.role is BeadRole.ASSET
    chain = driver.create_chain(asset, file=logo)

    plugin.make(chain)

    assert list(driver.assets) == [str(logo)]


def test_outputs_copy_units_sidecars_assets_and_static(tmp_path: Path) -> None:
    src = tmp_path / "src"
    dist = tmp_path / "dist"
    _write(src / "app.wpy", "<app/>")
    _write_json(src / "app.json", {"pages": []})
    _write(src / "components" / "card.wpy", "<card/>")
    _write(src / "images" / "logo.png", "png")
    _write(src / "static" / "fonts" / "mono.woff", "font")
    vendor = _write(tmp_path / "node_modules" / "ui-kit" / "button" / "index.wpy", "<btn/>")
    driver, plugin, _ = _driver(tmp_path)

    app = driver.create_app_chain(src / "app.wpy")
    card = driver.create_component_chain(src / "components" / "card.wpy")
    ignored = driver.create_component_chain(vendor)
    ignored.ignore()
    driver.vendors.add(str(vendor))
    driver.assets.add(str(src / "images" / "logo.png"))
    driver.assets.add(str(src / "images" / "gone.png"))

    assert plugin.output_app(app) == 2
    assert plugin.output_components([card, ignored]) == 1
    assert plugin.output_vendor(driver.vendors) == 1
    assert plugin.output_assets(driver.assets) == 1
    assert plugin.output_static() == 1

    assert (dist / "app.wpy").read_text(encoding="utf-8") == "<app/>"
    assert json.loads((dist / "app.json").read_text(encoding="utf-8")) == {"pages": []}
    assert (dist / "components" / "card.wpy").read_text(encoding="utf-8") == "<card/>"
    assert (dist / "vendor" / "ui-kit" / "button" / "index.wpy").exists()
    assert (dist / "images" / "logo.png").exists()
    assert (dist / "static" / "fonts" / "mono.woff").exists()


def test_output_static_without_directory_is_a_noop(tmp_path: Path) -> None:
    _, plugin, _ = _driver(tmp_path)

    assert plugin.output_static() == 0


def test_load_plugins_applies_modules_in_order(tmp_path: Path) -> None:
    driver = BuildDriver(BuildOptions(context=tmp_path)).init()

    loaded = load_plugins(driver, ["sfc_orchestrator.plugins.passthrough"])

    assert [module.__name__ for module in loaded] == ["sfc_orchestrator.plugins.passthrough"]
    assert len(driver.hooks.handlers(HOOK_MAKE)) == 1


def test_load_plugins_reports_import_failures(tmp_path: Path) -> None:
    driver = BuildDriver(BuildOptions(context=tmp_path)).init()

    with pytest.raises(PluginLoadError, match="import failed") as excinfo:
        load_plugins(driver, ["sfc_plugin_that_does_not_exist"])

    assert excinfo.value.module == "sfc_plugin_that_does_not_exist"


def test_load_plugins_requires_apply(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    module = ModuleType("sfc_plugin_without_apply")
    monkeypatch.setitem(sys.modules, "sfc_plugin_without_apply", module)
    driver = BuildDriver(BuildOptions(context=tmp_path)).init()

    with pytest.raises(PluginLoadError, match="does not define apply"):
        load_plugins(driver, ["sfc_plugin_without_apply"])


def test_load_plugins_wraps_apply_failures(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    module = ModuleType("sfc_plugin_that_fails")

    def apply_fails(driver: BuildDriver) -> None:
        raise RuntimeError("boom")

    module.apply = apply_fails  # type: ignore[attr-defined]
    monkeypatch.setitem(sys.modules, "sfc_plugin_that_fails", module)
    driver = BuildDriver(BuildOptions(context=tmp_path)).init()

    with pytest.raises(PluginLoadError, match="apply\\(\\) failed: boom"):
        load_plugins(driver, ["sfc_plugin_that_fails"])
