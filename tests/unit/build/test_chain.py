"""
sfc-orchestrator: unit tests for build chains and module tracking.
"""

from __future__ import annotations

import pytest

from sfc_orchestrator.build.bead import Bead, BeadRole
from sfc_orchestrator.build.chain import AppChain, BuildChain, ComponentChain, PageChain
from sfc_orchestrator.build.tracking import ModuleSet

pytestmark = pytest.mark.unit


def _chain(kind: type[BuildChain], path: str, role: BeadRole = BeadRole.UNKNOWN) -> BuildChain:
    return kind(Bead(path=path, role=role))


def test_chain_role_prefers_chain_type_over_bead() -> None:
    assert _chain(PageChain, "/src/pages/index").unit_role is BeadRole.PAGE
    assert _chain(BuildChain, "/src/logo.png", BeadRole.ASSET).unit_role is BeadRole.ASSET


def test_add_child_links_previous_and_root() -> None:
    app = _chain(AppChain, "/src/app")
    page = _chain(PageChain, "/src/pages/index")
    page.set_previous(app)
    card = ComponentChain(Bead(path="/src/components/card"))

    page.add_child(card)

    assert card.previous is page
    assert card.root is app
    assert page.root is app
    assert [item.path for item in card.lineage()] == [
        "/src/components/card",
        "/src/pages/index",
        "/src/app",
    ]
    assert card.depth == 2


def test_child_references_exclude_ignored_children() -> None:
    page = _chain(PageChain, "/src/pages/index")
    kept = page.add_child(ComponentChain(Bead(path="/src/components/card")))
    vendor = page.add_child(ComponentChain(Bead(path="/node_modules/ui/button")))
    vendor.ignore()

    assert page.child_references() == (kept,)
    assert vendor.ignored


def test_app_chain_reads_pages_subpackages_and_tab_bar() -> None:
    app = AppChain(Bead(path="/src/app"))
    app.config = {
        "pages": ["pages/index", "", 3, "pages/list"],
        "subPackages": [{"root": "pkg", "pages": ["a"]}, "bogus"],
        "tabBar": {"custom": True},
    }

    assert app.pages() == ("pages/index", "pages/list")
    assert app.sub_packages() == ({"root": "pkg", "pages": ["a"]},)
    assert app.has_custom_tab_bar()


def test_app_chain_defaults_when_config_is_empty() -> None:
    app = AppChain(Bead(path="/src/app"))

    assert app.pages() == ()
    assert app.sub_packages() == ()
    assert not app.has_custom_tab_bar()


def test_lowercase_subpackages_key_is_accepted() -> None:
    app = AppChain(Bead(path="/src/app"))
    app.config = {"subpackages": [{"root": "pkg", "pages": ["b"]}]}

    assert app.sub_packages() == ({"root": "pkg", "pages": ["b"]},)


def test_module_set_assigns_stable_ids() -> None:
    modules = ModuleSet()

    first = modules.add("/node_modules/ui/button.wpy")
    second = modules.add("/node_modules/ui/icon.wpy")
    again = modules.add("/node_modules/ui/button.wpy")

    assert (first, second, again) == (0, 1, 0)
    assert modules.get(1) == "/node_modules/ui/icon.wpy"
    assert modules.id_of("/node_modules/ui/icon.wpy") == 1
    assert list(modules) == ["/node_modules/ui/button.wpy", "/node_modules/ui/icon.wpy"]
    assert "/node_modules/ui/button.wpy" in modules


def test_module_set_clear_and_unknown_id() -> None:
    modules = ModuleSet()
    modules.add("/a")
    modules.clear()

    assert len(modules) == 0
    with pytest.raises(KeyError):
        modules.get(0)
