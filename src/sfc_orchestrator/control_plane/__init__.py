"""Control-plane public API: the build driver, its watcher and its error funnel."""

from sfc_orchestrator.control_plane.driver import BuildDriver, BuildOptions
from sfc_orchestrator.control_plane.errors import ErrorFunnel
from sfc_orchestrator.control_plane.outcome import (
    BuildAborted,
    BuildOutcome,
    BuildState,
    OutcomeKind,
    RunningGuard,
)
from sfc_orchestrator.control_plane.watch import WatchController, WatchOptions

__all__ = [
    "BuildAborted",
    "BuildDriver",
    "BuildOptions",
    "BuildOutcome",
    "BuildState",
    "ErrorFunnel",
    "OutcomeKind",
    "RunningGuard",
    "WatchController",
    "WatchOptions",
]
