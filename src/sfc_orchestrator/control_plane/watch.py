"""Source-tree watcher that debounces change events into full or scoped rebuilds."""

from __future__ import annotations

import asyncio
import fnmatch
import os
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

import structlog
from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from sfc_orchestrator.build.bead import Bead, BeadRole, classify_path
from sfc_orchestrator.constants import DEFAULT_CONFIG_EXT, DEFAULT_DEBOUNCE_MS, DEFAULT_WATCH_DEPTH
from sfc_orchestrator.utils.fs import is_within_lexically

if TYPE_CHECKING:
    from sfc_orchestrator.control_plane.driver import BuildDriver
    from sfc_orchestrator.control_plane.outcome import BuildOutcome

ObserverFactory = Callable[[], Any]

_CHANGE: str = "change"


@dataclass(frozen=True, slots=True)
class WatchOptions:
    """Watcher settings; ``ignored`` holds absolute paths or source-relative globs."""

    debounce_ms: int = DEFAULT_DEBOUNCE_MS
    depth: int = DEFAULT_WATCH_DEPTH
    ignore_initial: bool = True
    ignored: tuple[str, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        if isinstance(self.debounce_ms, bool) or not isinstance(self.debounce_ms, int):
            raise ValueError("debounce_ms must be an integer")
        if self.debounce_ms < 0:
            raise ValueError("debounce_ms must be >= 0")
        if isinstance(self.depth, bool) or not isinstance(self.depth, int):
            raise ValueError("depth must be an integer")
        if self.depth < 0:
            raise ValueError("depth must be >= 0")
        object.__setattr__(self, "ignored", tuple(self.ignored))


class _SourceTreeHandler(FileSystemEventHandler):
    """Forward watchdog file events from the observer thread onto the event loop."""

    def __init__(self, controller: WatchController) -> None:
        super().__init__()
        self._controller = controller

    def on_modified(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        self._controller.on_event_threadsafe(_CHANGE, os.fsdecode(event.src_path))

    def on_created(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        self._controller.on_event_threadsafe("add", os.fsdecode(event.src_path))

    def on_deleted(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        self._controller.on_event_threadsafe("unlink", os.fsdecode(event.src_path))

    def on_moved(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        self._controller.on_move_threadsafe(
            os.fsdecode(event.src_path),
            os.fsdecode(event.dest_path),
        )


class WatchController:
    """Collects change events and turns each debounce window into one rebuild.

    A window with several distinct files rebuilds everything. A single file is
    classified through the driver's producer: the app entry and unknown files
    rebuild everything, pages and components rebuild their subtree, assets
    re-run the output stages only. A JSON sidecar of a cached unit re-makes
    that unit.
    """

    def __init__(
        self,
        driver: BuildDriver,
        options: WatchOptions | None = None,
        *,
        observer_factory: ObserverFactory | None = None,
        logger: Any | None = None,
    ) -> None:
        self._driver = driver
        base = options or WatchOptions()
        target_root = os.fspath(driver.options.target_root)
        ignored = base.ignored if target_root in base.ignored else (*base.ignored, target_root)
        self.options = WatchOptions(
            debounce_ms=base.debounce_ms,
            depth=base.depth,
            ignore_initial=base.ignore_initial,
            ignored=ignored,
        )
        self._source_root = Path(os.path.normpath(os.path.abspath(driver.options.source_root)))
        self._observer_factory = observer_factory or Observer
        self._observer: Any | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._timer: asyncio.TimerHandle | None = None
        self._flush_task: asyncio.Task[BuildOutcome | None] | None = None
        self._pending: list[str] = []
        self.initialized = False
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    @property
    def pending(self) -> tuple[str, ...]:
        return tuple(self._pending)

    @property
    def source_root(self) -> Path:
        return self._source_root

    def start(self) -> None:
        """Start observing the source tree. Calling it again is a no-op."""

        if self.initialized:
            return
        self.initialized = True
        self._loop = asyncio.get_running_loop()

        observer = self._observer_factory()
        observer.schedule(_SourceTreeHandler(self), str(self._source_root), recursive=True)
        observer.start()
        self._observer = observer
        self._logger.info(
            "watch_started",
            source_root=str(self._source_root),
            debounce_ms=self.options.debounce_ms,
            depth=self.options.depth,
        )

    def stop(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if self._observer is not None:
            self._observer.stop()
            self._observer.join(timeout=5.0)
            self._observer = None
        if self.initialized:
            self._logger.info("watch_stopped", source_root=str(self._source_root))
        self.initialized = False

    def on_event_threadsafe(self, kind: str, path: str) -> None:
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        loop.call_soon_threadsafe(self.on_event, kind, path)

    def on_move_threadsafe(self, src_path: str, dest_path: str) -> None:
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        loop.call_soon_threadsafe(self.on_move, src_path, dest_path)

    def on_event(self, kind: str, path: str | os.PathLike[str]) -> bool:
        """Queue a change and restart the debounce window.

        Returns ``True`` when the event was accepted.
        """

        if kind != _CHANGE:
            return False

        resolved = os.path.normpath(os.path.abspath(os.fspath(path)))
        if not self._accepts(resolved):
            return False

        if resolved not in self._pending:
            self._pending.append(resolved)

        loop = self._loop or asyncio.get_running_loop()
        if self._timer is not None:
            self._timer.cancel()
        self._timer = loop.call_later(self.options.debounce_ms / 1000.0, self._on_debounce)
        return True

    def on_move(self, src_path: str | os.PathLike[str], dest_path: str | os.PathLike[str]) -> bool:
        """Treat a rename onto a watched file as a change of the destination.

        Editors that save through a temporary file rename it over the target;
        the temporary path is dropped from the pending queue.
        """

        moved = os.path.normpath(os.path.abspath(os.fspath(src_path)))
        if moved in self._pending:
            self._pending.remove(moved)
        return self.on_event(_CHANGE, dest_path)

    async def flush(self) -> BuildOutcome | None:
        """Rebuild for the files collected in the current window."""

        changed = list(self._pending)
        self._pending.clear()
        if not changed:
            return None

        if len(changed) > 1:
            self._logger.info("watch_full_rebuild", files=len(changed))
            return await self._driver.start()

        changed_file = changed[0]
        driver = self._driver
        owner = self._sidecar_owner(changed_file)
        if owner is not None:
            self._logger.info("watch_config_changed", file=changed_file, unit=owner.path)
            if owner.role is BeadRole.APP:
                return await driver.start()
            unit_file = driver.resolve_unit(owner.path) or owner.path
            chain = driver.create_chain(owner, file=unit_file)
            return await driver.rebuild_unit(chain, discover_components=True)

        bead = driver.producer.make(
            Bead,
            changed_file,
            role=classify_path(
                changed_file,
                entry=driver.options.entry_file,
                unit_extensions=driver.producer.unit_extensions,
            ),
        )
        self._logger.info("watch_changed", file=changed_file, role=bead.role.value)

        if bead.role is BeadRole.APP:
            return await driver.start()
        if bead.role.is_component_like:
            chain = driver.create_chain(bead, file=changed_file)
            return await driver.rebuild_unit(chain, discover_components=True)
        if bead.role is BeadRole.ASSET:
            chain = driver.create_chain(bead, file=changed_file)
            return await driver.rebuild_unit(chain, discover_components=False)
        return await driver.start()

    async def drain(self) -> BuildOutcome | None:
        """Await the flush started by the last debounce window, if any."""

        task = self._flush_task
        if task is None:
            return None
        self._flush_task = None
        return await task

    def _on_debounce(self) -> None:
        self._timer = None
        loop = self._loop or asyncio.get_running_loop()
        self._flush_task = loop.create_task(self.flush())

    def _sidecar_owner(self, path: str) -> Bead | None:
        """The cached app, page or component whose JSON sidecar is ``path``."""

        candidate = Path(path)
        if candidate.suffix != DEFAULT_CONFIG_EXT:
            return None
        owner = self._driver.producer.get(candidate.with_suffix(""))
        if owner is None:
            return None
        if owner.role is BeadRole.APP or owner.role.is_component_like:
            return owner
        return None

    def _accepts(self, path: str) -> bool:
        if not is_within_lexically(path, self._source_root):
            return False
        relative = Path(path).relative_to(self._source_root)
        if len(relative.parts) - 1 > self.options.depth:
            return False
        return not self._is_ignored(path, relative)

    def _is_ignored(self, path: str, relative: Path) -> bool:
        relative_text = relative.as_posix()
        for pattern in self.options.ignored:
            if os.path.isabs(pattern):
                if is_within_lexically(path, pattern):
                    return True
                continue
            if fnmatch.fnmatch(relative_text, pattern):
                return True
            if any(fnmatch.fnmatch(part, pattern) for part in relative.parts):
                return True
        return False


__all__ = ["ObserverFactory", "WatchController", "WatchOptions"]
