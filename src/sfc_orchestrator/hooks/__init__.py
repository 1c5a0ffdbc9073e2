"""Extension points the build driver dispatches through."""

from sfc_orchestrator.hooks.bus import (
    DEFAULT_HOOK_POINTS,
    AmbiguousClaimError,
    DispatchError,
    DispatchMode,
    HookBus,
    HookContractError,
    HookIssue,
    NoClaimantError,
    Severity,
)

__all__ = [
    "AmbiguousClaimError",
    "DEFAULT_HOOK_POINTS",
    "DispatchError",
    "DispatchMode",
    "HookBus",
    "HookContractError",
    "HookIssue",
    "NoClaimantError",
    "Severity",
]
