"""Typed extension-point registry with broadcast, sequential and unique dispatch."""

from __future__ import annotations

import asyncio
import inspect
import threading
from collections import deque
from collections.abc import Awaitable, Callable, Coroutine, Mapping
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Any, Final, cast

import structlog

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
    HOOK_PROCESS_CLEAR,
    HOOK_PROCESS_DONE,
)
from sfc_orchestrator.utils.concurrency import run_with_timeout

if TYPE_CHECKING:
    from sfc_orchestrator.build.chain import BuildChain

Handler = Callable[..., object]
ClaimPredicate = Callable[..., bool]

_DEFAULT_ERROR_BUFFER: Final[int] = 1024


class DispatchMode(StrEnum):
    BROADCAST = "broadcast"
    SEQUENTIAL = "sequential"
    UNIQUE = "unique"


class Severity(StrEnum):
    WARNING = "warning"
    ERROR = "error"


DEFAULT_HOOK_POINTS: Final[Mapping[str, DispatchMode]] = {
    HOOK_PROCESS_CLEAR: DispatchMode.BROADCAST,
    HOOK_PROCESS_DONE: DispatchMode.BROADCAST,
    HOOK_ERROR_HANDLER: DispatchMode.BROADCAST,
    HOOK_MAKE: DispatchMode.UNIQUE,
    HOOK_BUILD_APP: DispatchMode.SEQUENTIAL,
    HOOK_BUILD_COMPONENTS: DispatchMode.SEQUENTIAL,
    HOOK_BUILD_VENDOR: DispatchMode.SEQUENTIAL,
    HOOK_BUILD_ASSETS: DispatchMode.SEQUENTIAL,
    HOOK_OUTPUT_APP: DispatchMode.UNIQUE,
    HOOK_OUTPUT_COMPONENTS: DispatchMode.UNIQUE,
    HOOK_OUTPUT_VENDOR: DispatchMode.UNIQUE,
    HOOK_OUTPUT_ASSETS: DispatchMode.UNIQUE,
    HOOK_OUTPUT_STATIC: DispatchMode.UNIQUE,
}


class HookContractError(RuntimeError):
    """A hook point was registered or dispatched against its declared discipline."""


class NoClaimantError(HookContractError):
    """No handler claimed a unique dispatch."""


class AmbiguousClaimError(HookContractError):
    """More than one handler claimed a unique dispatch."""


@dataclass(frozen=True, slots=True)
class HookIssue:
    """Payload of the ``error-handler`` broadcast."""

    severity: Severity
    chain: BuildChain | None
    message: str


@dataclass(frozen=True, slots=True)
class DispatchError:
    """Broadcast handler failure captured without interrupting the dispatcher."""

    hook: str
    target: str
    error_type: str
    message: str


@dataclass(frozen=True, slots=True)
class _Registration:
    token: int
    name: str
    handler: Handler
    claims: ClaimPredicate | None


class HookBus:
    """Registry of handlers keyed by extension-point name.

    Every point carries one :class:`DispatchMode`. Broadcast points never raise
    handler failures to the dispatcher; sequential points pipe a value through
    handlers in registration order; unique points require exactly one claimant.
    """

    def __init__(
        self,
        *,
        points: Mapping[str, DispatchMode] | None = None,
        logger: Any | None = None,
    ) -> None:
        declared_points = DEFAULT_HOOK_POINTS if points is None else points
        self._modes: dict[str, DispatchMode] = dict(declared_points)
        self._registrations: dict[int, _Registration] = {}
        self._pending_tasks: set[asyncio.Task[None]] = set()
        self._dispatch_errors = deque[DispatchError](maxlen=_DEFAULT_ERROR_BUFFER)
        self._next_token = 1
        self._lock = threading.RLock()
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    def declare(self, name: str, mode: DispatchMode) -> None:
        """Declare ``name`` with ``mode``; re-declaring with the same mode is a no-op."""

        point = _normalize_name(name)
        resolved = DispatchMode(mode)
        with self._lock:
            existing = self._modes.get(point)
            if existing is not None and existing is not resolved:
                raise HookContractError(
                    f"hook {point!r} is declared {existing.value}, "
                    f"cannot redeclare as {resolved.value}"
                )
            self._modes[point] = resolved

    def mode_of(self, name: str) -> DispatchMode | None:
        with self._lock:
            return self._modes.get(name)

    def register(
        self,
        name: str,
        handler: Handler,
        *,
        mode: DispatchMode | None = None,
        claims: ClaimPredicate | None = None,
    ) -> int:
        """Register ``handler`` on ``name`` and return an unregister token."""

        if not callable(handler):
            raise ValueError("handler must be callable")
        if claims is not None and not callable(claims):
            raise ValueError("claims must be callable")

        point = _normalize_name(name)
        with self._lock:
            declared = self._modes.get(point)
            if declared is None:
                if mode is None:
                    raise HookContractError(
                        f"hook {point!r} is not declared; pass mode= to declare it"
                    )
                self._modes[point] = DispatchMode(mode)
            elif mode is not None and DispatchMode(mode) is not declared:
                raise HookContractError(
                    f"hook {point!r} is declared {declared.value}, not {DispatchMode(mode).value}"
                )
            if claims is not None and self._modes[point] is not DispatchMode.UNIQUE:
                raise HookContractError(f"claims= only applies to unique hooks, not {point!r}")

            token = self._next_token
            self._next_token += 1
            self._registrations[token] = _Registration(
                token=token,
                name=point,
                handler=handler,
                claims=claims,
            )
        return token

    def unregister(self, token: int) -> bool:
        """Remove a registration. Returns ``True`` when the token existed."""

        if not isinstance(token, int):
            raise ValueError(f"token must be an integer, got {type(token).__name__}")
        with self._lock:
            return self._registrations.pop(token, None) is not None

    def handlers(self, name: str) -> tuple[Handler, ...]:
        return tuple(item.handler for item in self._matching(name))

    def hook(self, name: str, *args: object) -> tuple[DispatchError, ...]:
        """Broadcast ``args`` to every handler of ``name``.

        Awaitable results are scheduled on the running loop, or run to
        completion when no loop is running. Failures are recorded and logged.
        """

        registrations = self._dispatchable(name, DispatchMode.BROADCAST)
        running_loop = _current_running_loop()
        errors: list[DispatchError] = []
        for registration in registrations:
            try:
                result = registration.handler(*args)
                if inspect.isawaitable(result):
                    coroutine = _as_coroutine(result)
                    if running_loop is None:
                        asyncio.run(coroutine)
                        continue
                    task = running_loop.create_task(coroutine)
                    with self._lock:
                        self._pending_tasks.add(task)
                    task.add_done_callback(
                        lambda done, reg=registration: self._on_task_done(done, reg)
                    )
            except Exception as exc:  # noqa: BLE001
                errors.append(self._record(registration, exc))
        return tuple(errors)

    async def hook_async(self, name: str, *args: object) -> tuple[DispatchError, ...]:
        """Broadcast from async code, awaiting each handler in registration order."""

        registrations = self._dispatchable(name, DispatchMode.BROADCAST)
        errors: list[DispatchError] = []
        for registration in registrations:
            try:
                result = registration.handler(*args)
                if inspect.isawaitable(result):
                    await result
            except Exception as exc:  # noqa: BLE001
                errors.append(self._record(registration, exc))
        return tuple(errors)

    def hook_seq(self, name: str, initial: object) -> object:
        """Pipe ``initial`` through every handler of ``name``; synchronous handlers only."""

        value = initial
        for registration in self._dispatchable(name, DispatchMode.SEQUENTIAL):
            value = registration.handler(value)
            if inspect.isawaitable(value):
                _close_unawaited(value)
                raise HookContractError(
                    f"handler {_callback_name(registration.handler)!r} on {name!r} returned an "
                    "awaitable; use hook_seq_async"
                )
        return value

    async def hook_seq_async(self, name: str, initial: object) -> object:
        """Pipe ``initial`` through every handler of ``name``, awaiting awaitable results."""

        value = initial
        for registration in self._dispatchable(name, DispatchMode.SEQUENTIAL):
            value = registration.handler(value)
            if inspect.isawaitable(value):
                value = await value
        return value

    async def hook_unique(
        self,
        name: str,
        *args: object,
        timeout_seconds: float | None = None,
    ) -> object:
        """Dispatch to the single handler that claims ``args`` and return its result."""

        registrations = self._dispatchable(name, DispatchMode.UNIQUE)
        claimants = [
            item for item in registrations if item.claims is None or item.claims(*args)
        ]
        if not claimants:
            raise NoClaimantError(f"no handler claimed unique hook {name!r}")
        if len(claimants) > 1:
            names = ", ".join(_callback_name(item.handler) for item in claimants)
            raise AmbiguousClaimError(f"unique hook {name!r} claimed by several handlers: {names}")

        handler = claimants[0].handler
        if timeout_seconds is not None and timeout_seconds > 0:
            return await run_with_timeout(_call(handler, args), timeout_seconds)
        return await _call(handler, args)

    async def drain(self) -> tuple[DispatchError, ...]:
        """Await broadcast tasks scheduled by :meth:`hook` and return recorded errors."""

        with self._lock:
            pending = tuple(self._pending_tasks)
            self._pending_tasks.clear()

        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        with self._lock:
            return tuple(self._dispatch_errors)

    def dispatch_errors(self, *, limit: int | None = None) -> tuple[DispatchError, ...]:
        """Return recorded broadcast failures."""

        with self._lock:
            errors = tuple(self._dispatch_errors)

        if limit is None:
            return errors
        if not isinstance(limit, int):
            raise ValueError(f"limit must be an integer, got {type(limit).__name__}")
        if limit <= 0:
            return ()
        return errors[-limit:]

    def _matching(self, name: str) -> tuple[_Registration, ...]:
        with self._lock:
            return tuple(item for item in self._registrations.values() if item.name == name)

    def _dispatchable(self, name: str, expected: DispatchMode) -> tuple[_Registration, ...]:
        with self._lock:
            declared = self._modes.get(name)
        if declared is None:
            raise HookContractError(f"hook {name!r} is not declared")
        if declared is not expected:
            raise HookContractError(
                f"hook {name!r} is declared {declared.value}, dispatched as {expected.value}"
            )
        return self._matching(name)

    def _record(self, registration: _Registration, exc: Exception) -> DispatchError:
        error = DispatchError(
            hook=registration.name,
            target=_callback_name(registration.handler),
            error_type=exc.__class__.__name__,
            message=str(exc),
        )
        with self._lock:
            self._dispatch_errors.append(error)
        self._logger.warning(
            "hook_handler_failed",
            hook=error.hook,
            target=error.target,
            error_type=error.error_type,
            error=error.message,
        )
        return error

    def _on_task_done(self, task: asyncio.Task[None], registration: _Registration) -> None:
        with self._lock:
            self._pending_tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if isinstance(exc, Exception):
            self._record(registration, exc)


def _normalize_name(value: str) -> str:
    if not isinstance(value, str):
        raise ValueError(f"hook name must be a string, got {type(value).__name__}")
    normalized = value.strip()
    if not normalized:
        raise ValueError("hook name must not be empty")
    return normalized


async def _call(handler: Handler, args: tuple[object, ...]) -> object:
    result = handler(*args)
    if inspect.isawaitable(result):
        return await result
    return result


def _callback_name(callback: object) -> str:
    name = getattr(callback, "__qualname__", None) or getattr(callback, "__name__", None)
    if isinstance(name, str) and name:
        return name
    return callback.__class__.__name__


def _current_running_loop() -> asyncio.AbstractEventLoop | None:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None


def _as_coroutine(value: object) -> Coroutine[Any, Any, None]:
    if inspect.iscoroutine(value):
        return cast("Coroutine[Any, Any, None]", value)
    return _await_awaitable(cast("Awaitable[None]", value))


async def _await_awaitable(awaitable: Awaitable[None]) -> None:
    await awaitable


def _close_unawaited(value: object) -> None:
    if inspect.iscoroutine(value):
        value.close()


__all__ = [
    "AmbiguousClaimError",
    "ClaimPredicate",
    "DEFAULT_HOOK_POINTS",
    "DispatchError",
    "DispatchMode",
    "Handler",
    "HookBus",
    "HookContractError",
    "HookIssue",
    "NoClaimantError",
    "Severity",
]
