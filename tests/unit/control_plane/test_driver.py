"""
sfc-orchestrator: unit tests for the build driver.

A recording compiler claims every hook the driver dispatches. Unit configs are
keyed by their path relative to the source root, without extension; each
config may list ``children`` references that ``make`` turns into component
chains.
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import pytest

from sfc_orchestrator.build.bead import Bead, BeadRole
from sfc_orchestrator.build.chain import BuildChain
from sfc_orchestrator.config import default_config
from sfc_orchestrator.constants import (
    HOOK_BUILD_APP,
    HOOK_BUILD_ASSETS,
    HOOK_BUILD_COMPONENTS,
    HOOK_BUILD_VENDOR,
    HOOK_ERROR_HANDLER,
    HOOK_MAKE,
    HOOK_OUTPUT_APP,
    HOOK_OUTPUT_ASSETS,
    HOOK_OUTPUT_COMPONENTS,
    HOOK_OUTPUT_STATIC,
    HOOK_OUTPUT_VENDOR,
    HOOK_PROCESS_DONE,
)
from sfc_orchestrator.control_plane import (
    BuildAborted,
    BuildDriver,
    BuildOptions,
    OutcomeKind,
    WatchOptions,
)
from sfc_orchestrator.hooks import HookIssue, Severity

pytestmark = pytest.mark.unit

_OUTPUT_TAIL = [
    HOOK_BUILD_VENDOR,
    HOOK_OUTPUT_VENDOR,
    HOOK_BUILD_ASSETS,
    HOOK_OUTPUT_ASSETS,
    HOOK_OUTPUT_STATIC,
    HOOK_PROCESS_DONE,
]


class RecordingCompiler:
    def __init__(
        self,
        driver: BuildDriver,
        configs: Mapping[str, Mapping[str, Any]] | None = None,
    ) -> None:
        self.driver = driver
        self.configs = dict(configs or {})
        self.made: list[str] = []
        self.phases: list[str] = []
        self.emitted: list[tuple[str, ...]] = []
        self.issues: list[HookIssue] = []
        self.cancelled: list[str] = []
        self.gates: dict[str, asyncio.Event] = {}
        self.failures: dict[str, BaseException] = {}

        hooks = driver.hooks
        hooks.register(HOOK_MAKE, self.make)
        hooks.register(HOOK_ERROR_HANDLER, self.issues.append)
        hooks.register(HOOK_PROCESS_DONE, lambda: self.phases.append(HOOK_PROCESS_DONE))
        for name in (HOOK_BUILD_APP, HOOK_BUILD_COMPONENTS, HOOK_BUILD_VENDOR, HOOK_BUILD_ASSETS):
            hooks.register(name, self._stage(name))
        for name in (HOOK_OUTPUT_APP, HOOK_OUTPUT_VENDOR, HOOK_OUTPUT_ASSETS, HOOK_OUTPUT_STATIC):
            hooks.register(name, self._stage(name))
        hooks.register(HOOK_OUTPUT_COMPONENTS, self._output_components)

    def key(self, chain: BuildChain) -> str:
        return Path(chain.path).relative_to(self.driver.options.source_root).as_posix()

    async def make(self, chain: BuildChain) -> BuildChain:
        key = self.key(chain)
        self.made.append(key)
        gate = self.gates.get(key)
        try:
            if gate is not None:
                await gate.wait()
            else:
                await asyncio.sleep(0)
        except asyncio.CancelledError:
            self.cancelled.append(key)
            raise
        failure = self.failures.get(key)
        if failure is not None:
            raise failure

        chain.config = dict(self.configs.get(key, {}))
        chain.children.clear()
        for reference in chain.config.get("children", ()):
            file = self.driver.options.source_root / f"{reference}.wpy"
            self.driver.create_component_chain(file, chain)
        return chain

    def _stage(self, name: str) -> Any:
        def handler(*args: object) -> object:
            self.phases.append(name)
            return args[0] if args else None

        return handler

    def _output_components(self, chains: tuple[BuildChain, ...]) -> None:
        self.phases.append(HOOK_OUTPUT_COMPONENTS)
        self.emitted.append(tuple(self.key(chain) for chain in chains))


class FakeObserver:
    def __init__(self) -> None:
        self.scheduled: list[tuple[object, str, bool]] = []
        self.started = False
        self.stopped = False

    def schedule(self, handler: object, path: str, recursive: bool = False) -> None:
        self.scheduled.append((handler, path, recursive))

    def start(self) -> None:
        self.started = True

    def stop(self) -> None:
        self.stopped = True

    def join(self, timeout: float | None = None) -> None:
        return None


def _project(tmp_path: Path, *units: str, script_units: tuple[str, ...] = ()) -> Path:
    src = tmp_path / "src"
    src.mkdir(parents=True, exist_ok=True)
    for unit in ("app", *units):
        file = src / f"{unit}.wpy"
        file.parent.mkdir(parents=True, exist_ok=True)
        file.write_text("<template></template>\n", encoding="utf-8")
    for unit in script_units:
        file = src / f"{unit}.js"
        file.parent.mkdir(parents=True, exist_ok=True)
        file.write_text("export default {}\n", encoding="utf-8")
    return src


def _driver(tmp_path: Path, **option_overrides: Any) -> tuple[BuildDriver, list[FakeObserver]]:
    observers: list[FakeObserver] = []

    def factory() -> FakeObserver:
        observer = FakeObserver()
        observers.append(observer)
        return observer

    options = BuildOptions(context=tmp_path, **option_overrides)
    driver = BuildDriver(options, observer_factory=factory).init()
    return driver, observers


async def _wait_for(predicate: Any, *, attempts: int = 200) -> None:
    for _ in range(attempts):
        if predicate():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition not reached")


@pytest.mark.asyncio
async def test_full_build_runs_every_phase_in_order(tmp_path: Path) -> None:
    _project(tmp_path, "pages/index")
    driver, _ = _driver(tmp_path)
    compiler = RecordingCompiler(
        driver,
        {
            "app": {"pages": ["pages/index"]},
            "pages/index": {"children": ["components/card"]},
        },
    )

    outcome = await driver.start()

    assert outcome.kind is OutcomeKind.COMPLETED
    assert outcome.ok
    assert compiler.made == ["app", "pages/index", "components/card"]
    assert compiler.phases == [
        HOOK_BUILD_APP,
        HOOK_OUTPUT_APP,
        HOOK_BUILD_COMPONENTS,
        HOOK_OUTPUT_COMPONENTS,
        HOOK_BUILD_COMPONENTS,
        HOOK_OUTPUT_COMPONENTS,
        *_OUTPUT_TAIL,
    ]
    assert compiler.emitted == [("pages/index",), ("components/card",)]
    assert compiler.issues == []
    assert not driver.running

    src = driver.options.source_root.as_posix()
    assert driver.file_deps.edges == (
        (f"{src}/app", f"{src}/pages/index"),
        (f"{src}/pages/index", f"{src}/components/card"),
    )


@pytest.mark.asyncio
async def test_missing_pages_warns_once_and_still_runs_output_phases(tmp_path: Path) -> None:
    _project(tmp_path)
    driver, _ = _driver(tmp_path)
    compiler = RecordingCompiler(driver, {"app": {}})

    outcome = await driver.start()

    assert outcome.kind is OutcomeKind.COMPLETED
    assert compiler.made == ["app"]
    assert [(issue.severity, issue.message) for issue in compiler.issues] == [
        (Severity.WARNING, 'Missing "pages" in App config')
    ]
    assert compiler.phases == [HOOK_BUILD_APP, HOOK_OUTPUT_APP, *_OUTPUT_TAIL]


@pytest.mark.asyncio
async def test_unresolvable_page_is_reported_and_dropped(tmp_path: Path) -> None:
    _project(tmp_path, "pages/index")
    driver, _ = _driver(tmp_path)
    compiler = RecordingCompiler(driver, {"app": {"pages": ["pages/index", "pages/missing"]}})

    outcome = await driver.start()

    assert outcome.kind is OutcomeKind.COMPLETED
    assert compiler.made == ["app", "pages/index"]
    assert len(compiler.issues) == 1
    issue = compiler.issues[0]
    assert issue.severity is Severity.ERROR
    assert issue.message.startswith("Can not resolve page: ")
    assert issue.message.endswith("pages/missing")
    assert compiler.emitted == [("pages/index",)]


@pytest.mark.asyncio
async def test_page_falls_back_to_script_extension(tmp_path: Path) -> None:
    _project(tmp_path, script_units=("pages/plain",))
    driver, _ = _driver(tmp_path)
    compiler = RecordingCompiler(driver, {"app": {"pages": ["pages/plain"]}})

    outcome = await driver.start()

    assert outcome.ok
    assert compiler.made == ["app", "pages/plain"]
    assert compiler.issues == []


@pytest.mark.asyncio
async def test_sub_package_pages_and_custom_tab_bar_are_built(tmp_path: Path) -> None:
    _project(tmp_path, "pages/index", "shop/pages/cart", "custom-tab-bar/index")
    driver, _ = _driver(tmp_path)
    compiler = RecordingCompiler(
        driver,
        {
            "app": {
                "pages": ["pages/index"],
                "subPackages": [{"root": "shop", "pages": ["pages/cart"]}],
                "tabBar": {"custom": True},
            },
        },
    )

    outcome = await driver.start()

    assert outcome.ok
    assert sorted(compiler.made) == [
        "app",
        "custom-tab-bar/index",
        "pages/index",
        "shop/pages/cart",
    ]
    assert compiler.emitted == [("pages/index", "shop/pages/cart", "custom-tab-bar/index")]


@pytest.mark.asyncio
async def test_start_while_building_is_skipped(tmp_path: Path) -> None:
    _project(tmp_path)
    driver, _ = _driver(tmp_path)
    compiler = RecordingCompiler(driver, {"app": {"pages": []}})
    gate = compiler.gates["app"] = asyncio.Event()

    first = asyncio.create_task(driver.start())
    await _wait_for(lambda: compiler.made == ["app"])

    assert driver.running
    second = await driver.start()
    chain = driver.create_component_chain(tmp_path / "src" / "components" / "x.wpy")
    third = await driver.rebuild_unit(chain)

    assert second.kind is OutcomeKind.SKIPPED
    assert third.kind is OutcomeKind.SKIPPED
    assert compiler.made == ["app"]

    gate.set()
    assert (await first).kind is OutcomeKind.COMPLETED
    assert not driver.running


@pytest.mark.asyncio
async def test_component_cycles_and_shared_children_build_once(tmp_path: Path) -> None:
    _project(tmp_path, "pages/index")
    driver, _ = _driver(tmp_path)
    compiler = RecordingCompiler(
        driver,
        {
            "app": {"pages": ["pages/index"]},
            "pages/index": {"children": ["components/a", "components/b"]},
            "components/a": {"children": ["components/b", "components/c"]},
            "components/b": {"children": ["components/a", "components/c"]},
            "components/c": {"children": ["pages/index"]},
        },
    )

    outcome = await driver.start()

    assert outcome.ok
    assert sorted(compiler.made) == [
        "app",
        "components/a",
        "components/b",
        "components/c",
        "pages/index",
    ]
    assert compiler.emitted == [
        ("pages/index",),
        ("components/a", "components/b"),
        ("components/c",),
    ]
    src = driver.options.source_root.as_posix()
    assert f"{src}/components/b" in driver.file_deps.targets(f"{src}/components/a")
    assert f"{src}/components/a" in driver.file_deps.targets(f"{src}/components/b")


@pytest.mark.asyncio
async def test_failed_make_cancels_siblings_and_releases_guard(tmp_path: Path) -> None:
    _project(tmp_path, "pages/index")
    driver, _ = _driver(tmp_path)
    compiler = RecordingCompiler(
        driver,
        {
            "app": {"pages": ["pages/index"]},
            "pages/index": {"children": ["components/broken", "components/slow"]},
        },
    )
    compiler.failures["components/broken"] = RuntimeError("broken component")
    compiler.gates["components/slow"] = asyncio.Event()

    outcome = await driver.start()

    assert outcome.kind is OutcomeKind.FAILED
    assert isinstance(outcome.cause, RuntimeError)
    assert compiler.cancelled == ["components/slow"]
    assert HOOK_PROCESS_DONE not in compiler.phases
    assert not driver.running


@pytest.mark.asyncio
async def test_abort_yields_aborted_outcome(tmp_path: Path) -> None:
    _project(tmp_path, "pages/index")
    driver, _ = _driver(tmp_path)
    compiler = RecordingCompiler(driver, {"app": {"pages": ["pages/index"]}})
    compiler.failures["pages/index"] = BuildAborted("stop")

    outcome = await driver.start()

    assert outcome.kind is OutcomeKind.ABORTED
    assert isinstance(outcome.cause, BuildAborted)
    assert not outcome.ok
    assert not driver.running


@pytest.mark.asyncio
async def test_make_timeout_fails_the_pass(tmp_path: Path) -> None:
    _project(tmp_path)
    driver, _ = _driver(tmp_path, make_timeout_seconds=0.05)
    compiler = RecordingCompiler(driver)
    compiler.gates["app"] = asyncio.Event()

    outcome = await driver.start()

    assert outcome.kind is OutcomeKind.FAILED
    assert isinstance(outcome.cause, TimeoutError)
    assert compiler.cancelled == ["app"]


@pytest.mark.asyncio
async def test_rebuild_unit_remakes_one_component_without_app(tmp_path: Path) -> None:
    _project(tmp_path, "pages/index")
    driver, _ = _driver(tmp_path)
    compiler = RecordingCompiler(
        driver,
        {
            "app": {"pages": ["pages/index"]},
            "pages/index": {"children": ["components/card"]},
        },
    )
    assert (await driver.start()).ok
    compiler.made.clear()
    compiler.phases.clear()
    compiler.emitted.clear()

    card_file = driver.options.source_root / "components" / "card.wpy"
    bead = driver.producer.get(card_file)
    assert bead is not None
    outcome = await driver.rebuild_unit(driver.create_chain(bead, file=card_file))

    assert outcome.ok
    assert compiler.made == ["components/card"]
    assert compiler.emitted == [("components/card",)]
    assert compiler.phases == [HOOK_BUILD_COMPONENTS, HOOK_OUTPUT_COMPONENTS, *_OUTPUT_TAIL]


@pytest.mark.asyncio
async def test_rebuild_without_discovery_only_runs_output_phases(tmp_path: Path) -> None:
    _project(tmp_path)
    driver, _ = _driver(tmp_path)
    compiler = RecordingCompiler(driver)
    chain = driver.create_component_chain(driver.options.source_root / "logo.png")

    outcome = await driver.rebuild_unit(chain, discover_components=False)

    assert outcome.ok
    assert compiler.made == ["logo.png"]
    assert compiler.phases == _OUTPUT_TAIL


@pytest.mark.asyncio
async def test_watch_starts_after_success_and_after_failure(tmp_path: Path) -> None:
    _project(tmp_path)
    driver, observers = _driver(tmp_path, watch=True, watch_options=WatchOptions(debounce_ms=5))
    compiler = RecordingCompiler(driver, {"app": {"pages": []}})
    compiler.failures["app"] = RuntimeError("first pass fails")

    failed = await driver.start()
    assert failed.kind is OutcomeKind.FAILED
    assert driver.watcher is not None
    assert len(observers) == 1 and observers[0].started

    del compiler.failures["app"]
    completed = await driver.start()

    assert completed.ok
    assert len(observers) == 1
    driver.watcher.stop()
    assert observers[0].stopped


def test_clear_broadcast_resets_per_pass_state(tmp_path: Path) -> None:
    driver, _ = _driver(tmp_path)
    driver.create_page_chain(tmp_path / "src" / "pages" / "index.wpy")
    driver.vendors.add("/node_modules/ui/button.wpy")
    driver.assets.add("/src/logo.png")
    driver.file_deps.add_edge("a", "b")

    driver.clear("manual")

    assert len(driver.producer) == 0
    assert len(driver.vendors) == 0
    assert len(driver.assets) == 0
    assert len(driver.file_deps) == 0


def test_init_is_idempotent(tmp_path: Path) -> None:
    driver, _ = _driver(tmp_path)
    before = len(driver.hooks.handlers("process-clear"))

    driver.init()

    assert len(driver.hooks.handlers("process-clear")) == before == 1


def test_target_path_mapping(tmp_path: Path) -> None:
    driver, _ = _driver(tmp_path)

    page = tmp_path / "src" / "pages" / "index.wpy"
    module = tmp_path / "node_modules" / "ui" / "button.wpy"

    assert driver.get_target(page) == tmp_path / "dist" / "pages" / "index.wpy"
    assert driver.get_target(page, "preview") == tmp_path / "preview" / "pages" / "index.wpy"
    assert driver.get_module_target(module) == tmp_path / "dist" / "vendor" / "ui" / "button.wpy"


def test_build_options_from_config(tmp_path: Path) -> None:
    config = default_config()
    config["build"]["entry"] = "main"
    config["watch"]["enabled"] = True
    config["watch"]["debounce_ms"] = 50
    config["watch"]["ignored"] = ["*.tmp"]

    options = BuildOptions.from_config(config, context=tmp_path)

    assert options.entry_file == tmp_path / "src" / "main.wpy"
    assert options.watch is True
    assert options.watch_options.debounce_ms == 50
    assert options.watch_options.ignored == ("*.tmp",)
    assert options.unit_extensions == (".wpy", ".js")
    assert BuildOptions.from_config(config, context=tmp_path, watch=False).watch is False


def test_build_options_reject_negative_timeout(tmp_path: Path) -> None:
    with pytest.raises(ValueError, match="make_timeout_seconds"):
        BuildOptions(context=tmp_path, make_timeout_seconds=-1.0)


@pytest.mark.asyncio
async def test_start_without_init_still_resets_build_state(tmp_path: Path) -> None:
    _project(tmp_path)
    driver = BuildDriver(BuildOptions(context=tmp_path))
    RecordingCompiler(driver, {"app": {"pages": []}})
    driver.producer.make(Bead, tmp_path / "src" / "stale.wpy", role=BeadRole.PAGE)
    driver.vendors.add("/node_modules/ui/stale.wpy")
    driver.assets.add("/src/stale.png")
    driver.file_deps.add_edge("stale", "other")

    outcome = await driver.start()

    assert outcome.ok
    assert (tmp_path / "src" / "stale.wpy") not in driver.producer
    assert len(driver.vendors) == 0
    assert len(driver.assets) == 0
    assert "stale" not in driver.file_deps
    assert len(driver.hooks.handlers("process-clear")) == 1
