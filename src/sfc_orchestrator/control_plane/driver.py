"""
Build driver: app, pages, component fixpoint, then vendor, asset and static output.

Every phase is reached through the hook bus. The driver only decides what to
build next and in which order; producing and emitting units is left to the
handlers registered by plugins.
"""

from __future__ import annotations

import asyncio
import os
import uuid
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

import structlog

from sfc_orchestrator.build.bead import Bead, BeadRole, PathLike, classify_path
from sfc_orchestrator.build.chain import AppChain, BuildChain, ComponentChain, PageChain
from sfc_orchestrator.build.graph import DependencyGraph
from sfc_orchestrator.build.producer import Producer
from sfc_orchestrator.build.tracking import ModuleSet
from sfc_orchestrator.constants import (
    CUSTOM_TAB_BAR_ENTRY,
    DEFAULT_DEBOUNCE_MS,
    DEFAULT_ENTRY,
    DEFAULT_SCRIPT_EXT,
    DEFAULT_SOURCE_DIR,
    DEFAULT_SOURCE_EXT,
    DEFAULT_TARGET_DIR,
    DEFAULT_WATCH_DEPTH,
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
    HOOK_PROCESS_CLEAR,
    HOOK_PROCESS_DONE,
    PACKAGE_MANAGER_DIR,
    VENDOR_DIR,
)
from sfc_orchestrator.control_plane.errors import ErrorFunnel
from sfc_orchestrator.control_plane.outcome import BuildOutcome, RunningGuard
from sfc_orchestrator.control_plane.watch import ObserverFactory, WatchController, WatchOptions
from sfc_orchestrator.hooks.bus import HookBus, HookIssue, Severity
from sfc_orchestrator.observability.logging import correlation_scope
from sfc_orchestrator.utils.concurrency import cancel_pending, gather_first_failure
from sfc_orchestrator.utils.paths import module_target_path, target_path

if TYPE_CHECKING:
    from collections.abc import Callable

_CHAIN_KINDS: dict[BeadRole, type[BuildChain]] = {
    BeadRole.APP: AppChain,
    BeadRole.PAGE: PageChain,
    BeadRole.COMPONENT: ComponentChain,
}


@dataclass(frozen=True, slots=True)
class BuildOptions:
    """Resolved inputs of one driver instance."""

    context: Path = field(default_factory=Path.cwd)
    src: str = DEFAULT_SOURCE_DIR
    target: str = DEFAULT_TARGET_DIR
    entry: str = DEFAULT_ENTRY
    source_ext: str = DEFAULT_SOURCE_EXT
    script_ext: str = DEFAULT_SCRIPT_EXT
    vendor_dir: str = VENDOR_DIR
    package_dir: str = PACKAGE_MANAGER_DIR
    make_timeout_seconds: float = 0.0
    watch: bool = False
    watch_options: WatchOptions = field(default_factory=WatchOptions)

    def __post_init__(self) -> None:
        object.__setattr__(self, "context", Path(os.path.abspath(self.context)))
        if self.make_timeout_seconds < 0:
            raise ValueError("make_timeout_seconds must be >= 0")

    @classmethod
    def from_config(
        cls,
        config: Mapping[str, Any],
        *,
        context: PathLike | None = None,
        watch: bool | None = None,
    ) -> BuildOptions:
        """Build options from a validated config mapping."""

        build = _section(config, "build")
        watch_section = _section(config, "watch")
        watch_options = WatchOptions(
            debounce_ms=int(watch_section.get("debounce_ms", DEFAULT_DEBOUNCE_MS)),
            depth=int(watch_section.get("depth", DEFAULT_WATCH_DEPTH)),
            ignore_initial=bool(watch_section.get("ignore_initial", True)),
            ignored=tuple(str(item) for item in watch_section.get("ignored", ())),
        )
        return cls(
            context=Path(context) if context is not None else Path.cwd(),
            src=str(build.get("src", DEFAULT_SOURCE_DIR)),
            target=str(build.get("target", DEFAULT_TARGET_DIR)),
            entry=str(build.get("entry", DEFAULT_ENTRY)),
            source_ext=str(build.get("source_ext", DEFAULT_SOURCE_EXT)),
            script_ext=str(build.get("script_ext", DEFAULT_SCRIPT_EXT)),
            vendor_dir=str(build.get("vendor_dir", VENDOR_DIR)),
            package_dir=str(build.get("package_dir", PACKAGE_MANAGER_DIR)),
            make_timeout_seconds=float(build.get("make_timeout_seconds", 0.0)),
            watch=bool(watch_section.get("enabled", False)) if watch is None else watch,
            watch_options=watch_options,
        )

    @property
    def source_root(self) -> Path:
        return Path(os.path.normpath(self.context / self.src))

    @property
    def target_root(self) -> Path:
        return Path(os.path.normpath(self.context / self.target))

    @property
    def package_root(self) -> Path:
        return Path(os.path.normpath(self.context / self.package_dir))

    @property
    def entry_file(self) -> Path:
        if os.path.isabs(self.entry):
            return Path(self.entry)
        return self.source_root / f"{self.entry}{self.source_ext}"

    @property
    def unit_extensions(self) -> tuple[str, ...]:
        return (self.source_ext, self.script_ext)


class BuildDriver:
    """Drives one app through its build phases.

    At most one pass runs at a time. ``start()`` and ``rebuild_unit()`` return
    ``BuildOutcome.skipped()`` while another pass holds the guard; failures are
    turned into outcomes by the :class:`ErrorFunnel` and never escape.
    """

    def __init__(
        self,
        options: BuildOptions | None = None,
        *,
        hooks: HookBus | None = None,
        producer: Producer | None = None,
        observer_factory: ObserverFactory | None = None,
        trace_enabled: Callable[[], bool] | None = None,
        logger: Any | None = None,
    ) -> None:
        self.options = options or BuildOptions()
        self._logger = logger if logger is not None else structlog.get_logger(__name__)
        self.hooks = hooks or HookBus(logger=self._logger)
        self.producer = producer or Producer(unit_extensions=self.options.unit_extensions)
        self.file_deps = DependencyGraph()
        self.vendors = ModuleSet()
        self.assets = ModuleSet()
        self.guard = RunningGuard()
        self.errors = ErrorFunnel(self, trace_enabled=trace_enabled, logger=self._logger)
        self.watcher: WatchController | None = None
        self._observer_factory = observer_factory
        self._initialized = False

    @property
    def context(self) -> Path:
        return self.options.context

    @property
    def running(self) -> bool:
        return self.guard.running

    def init(self) -> BuildDriver:
        """Register the driver's own handlers and reset per-pass state once."""

        if self._initialized:
            return self
        self._initialized = True
        self.hooks.register(HOOK_PROCESS_CLEAR, self._reset)
        self.hooks.register(HOOK_ERROR_HANDLER, self._log_issue)
        self.clear("init")
        return self

    def clear(self, reason: str) -> BuildDriver:
        self.hooks.hook(HOOK_PROCESS_CLEAR, reason)
        return self

    async def run(self) -> BuildOutcome:
        return await self.start()

    async def start(self) -> BuildOutcome:
        """Full build from the app entry; initializes the driver on first use."""

        self.init()
        if not self.guard.try_acquire():
            self._logger.debug("build_skipped", reason="already_running")
            return BuildOutcome.skipped()

        with correlation_scope(build_id=_new_build_id()):
            self._logger.info("build_started", entry=str(self.options.entry_file))
            try:
                await self.hooks.hook_async(HOOK_PROCESS_CLEAR, "build")
                frontier = await self._build_app()
                return await self.build_components(frontier)
            except asyncio.CancelledError:
                self.guard.release()
                raise
            except Exception as exc:  # noqa: BLE001
                return self.errors.handle(exc)

    async def rebuild_unit(
        self,
        chain: BuildChain,
        *,
        discover_components: bool = True,
    ) -> BuildOutcome:
        """Re-make one unit and run the output phases without touching the app."""

        if not self.guard.try_acquire():
            self._logger.debug("rebuild_skipped", unit=chain.path, reason="already_running")
            return BuildOutcome.skipped()

        with correlation_scope(build_id=_new_build_id()):
            self._logger.info(
                "rebuild_started",
                unit=chain.path,
                role=chain.unit_role.value,
                discover_components=discover_components,
            )
            try:
                made = await self._make(chain)
                frontier = [made] if discover_components else None
                return await self.build_components(frontier)
            except asyncio.CancelledError:
                self.guard.release()
                raise
            except Exception as exc:  # noqa: BLE001
                return self.errors.handle(exc)

    async def build_components(
        self,
        frontier: Sequence[BuildChain] | None,
    ) -> BuildOutcome:
        """Build the component tree below ``frontier`` to a fixpoint, then emit everything else.

        Each round builds and emits the current frontier, then makes every
        child reference not yet built in this pass; the made children become
        the next frontier.
        """

        visited: set[str] = set()
        current = tuple(frontier or ())
        while current:
            visited.update(chain.path for chain in current)
            built = await self.hooks.hook_seq_async(HOOK_BUILD_COMPONENTS, current)
            await self.hooks.hook_unique(HOOK_OUTPUT_COMPONENTS, built)

            scheduled: set[str] = set()
            pending: list[BuildChain] = []
            for chain in current:
                for child in chain.child_references():
                    self.file_deps.add_edge(chain.path, child.path)
                    if child.path in visited or child.path in scheduled:
                        continue
                    scheduled.add(child.path)
                    pending.append(child)

            current = tuple(await gather_first_failure(self._make(child) for child in pending))

        vendors = await self.hooks.hook_seq_async(HOOK_BUILD_VENDOR, self.vendors)
        await self.hooks.hook_unique(HOOK_OUTPUT_VENDOR, vendors)
        assets = await self.hooks.hook_seq_async(HOOK_BUILD_ASSETS, self.assets)
        await self.hooks.hook_unique(HOOK_OUTPUT_ASSETS, assets)
        await self.hooks.hook_unique(HOOK_OUTPUT_STATIC)

        await self.hooks.hook_async(HOOK_PROCESS_DONE)
        self.guard.release()
        self._logger.info("build_finished", units=len(visited))
        if self.options.watch:
            self.watch()
        return BuildOutcome.completed()

    def watch(self) -> WatchController:
        """Start the watcher for this driver; later calls return the running one."""

        if self.watcher is None:
            self.watcher = WatchController(
                self,
                self.options.watch_options,
                observer_factory=self._observer_factory,
                logger=self._logger,
            )
        self.watcher.start()
        return self.watcher

    def create_app_chain(self, file: PathLike) -> AppChain:
        bead = self.producer.make(Bead, file, role=BeadRole.APP)
        return AppChain(bead, file=file)

    def create_page_chain(self, file: PathLike, parent: BuildChain | None = None) -> PageChain:
        bead = self.producer.make(Bead, file, role=BeadRole.PAGE)
        chain = PageChain(bead, file=file)
        if parent is not None:
            chain.set_previous(parent)
        return chain

    def create_component_chain(
        self,
        file: PathLike,
        parent: BuildChain | None = None,
    ) -> ComponentChain:
        bead = self.producer.make(Bead, file, role=BeadRole.COMPONENT)
        chain = ComponentChain(bead, file=file)
        if parent is not None:
            parent.add_child(chain)
        return chain

    def create_chain(self, bead: Bead, *, file: PathLike | None = None) -> BuildChain:
        """Wrap an existing bead in the chain type matching its role."""

        kind = _CHAIN_KINDS.get(bead.role, BuildChain)
        return kind(bead, file=file if file is not None else bead.path)

    def classify(self, file: PathLike, *, hint: BeadRole | None = None) -> BeadRole:
        return classify_path(
            file,
            entry=self.options.entry_file,
            hint=hint,
            unit_extensions=self.options.unit_extensions,
        )

    def resolve_unit(self, base: PathLike) -> Path | None:
        """Return ``base`` plus the first existing unit extension, or ``None``."""

        for ext in self.options.unit_extensions:
            candidate = Path(f"{os.fspath(base)}{ext}")
            if candidate.is_file():
                return candidate
        return None

    def report(self, severity: Severity, chain: BuildChain | None, message: str) -> None:
        self.hooks.hook(HOOK_ERROR_HANDLER, HookIssue(severity, chain, message))

    def get_target(self, file: PathLike, target_dir: PathLike | None = None) -> Path:
        return target_path(
            file,
            context=self.context,
            source_dir=self.options.src,
            target_dir=target_dir if target_dir is not None else self.options.target,
        )

    def get_module_target(self, file: PathLike, target_dir: PathLike | None = None) -> Path:
        return module_target_path(
            file,
            context=self.context,
            target_dir=target_dir if target_dir is not None else self.options.target,
            vendor_dir=self.options.vendor_dir,
        )

    async def _build_app(self) -> list[BuildChain]:
        app = self.create_app_chain(self.options.entry_file)
        made = await self._make(app)
        if isinstance(made, AppChain):
            app = made

        pages = app.pages()
        if not pages:
            self.report(Severity.WARNING, app, 'Missing "pages" in App config')

        app_dir = Path(app.path).parent
        page_bases = [app_dir / page for page in pages]
        for sub_package in app.sub_packages():
            root = sub_package.get("root") or ""
            sub_pages = sub_package.get("pages") or ()
            page_bases.extend(
                app_dir / str(root) / page for page in sub_pages if isinstance(page, str)
            )

        tasks: list[asyncio.Future[BuildChain]] = []
        for base in page_bases:
            file = self.resolve_unit(base)
            if file is None:
                self.report(
                    Severity.ERROR,
                    app,
                    f"Can not resolve page: {os.path.normpath(base)}",
                )
                continue
            page = self.create_page_chain(file, app)
            self.file_deps.add_edge(app.path, page.path)
            tasks.append(asyncio.ensure_future(self._make(page)))

        if app.has_custom_tab_bar():
            tab_bar_file = app_dir / f"{CUSTOM_TAB_BAR_ENTRY}{self.options.source_ext}"
            if tab_bar_file.is_file():
                tab_bar = self.create_component_chain(tab_bar_file)
                tab_bar.set_previous(app)
                self.file_deps.add_edge(app.path, tab_bar.path)
                tasks.append(asyncio.ensure_future(self._make(tab_bar)))

        try:
            built = await self.hooks.hook_seq_async(HOOK_BUILD_APP, app)
            await self.hooks.hook_unique(HOOK_OUTPUT_APP, built)
        except BaseException:
            await cancel_pending(tasks)
            raise

        return await gather_first_failure(tasks)

    async def _make(self, chain: BuildChain) -> BuildChain:
        timeout = self.options.make_timeout_seconds or None
        with correlation_scope(unit=chain.path):
            made = await self.hooks.hook_unique(HOOK_MAKE, chain, timeout_seconds=timeout)
        return made if isinstance(made, BuildChain) else chain

    def _reset(self, reason: object = None) -> None:
        self.producer.clear()
        self.vendors.clear()
        self.assets.clear()
        self.file_deps.clear()
        self._logger.debug("build_state_cleared", reason=str(reason))

    def _log_issue(self, issue: HookIssue) -> None:
        unit = issue.chain.path if issue.chain is not None else None
        if issue.severity is Severity.WARNING:
            self._logger.warning(issue.message, unit=unit)
        else:
            self._logger.error(issue.message, unit=unit)


def _section(config: Mapping[str, Any], name: str) -> Mapping[str, Any]:
    value = config.get(name, {})
    if not isinstance(value, Mapping):
        return {}
    return value


def _new_build_id() -> str:
    return uuid.uuid4().hex[:12]


__all__ = ["BuildDriver", "BuildOptions"]
