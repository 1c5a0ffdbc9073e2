"""Utility exports for filesystem, path-mapping, and concurrency helpers."""

from sfc_orchestrator.utils.concurrency import (
    CancellationToken,
    cancel_pending,
    gather_first_failure,
    run_with_timeout,
)
from sfc_orchestrator.utils.fs import atomic_copy, atomic_write, is_within_lexically
from sfc_orchestrator.utils.paths import module_target_path, target_path

__all__ = [
    "CancellationToken",
    "atomic_copy",
    "atomic_write",
    "cancel_pending",
    "gather_first_failure",
    "is_within_lexically",
    "module_target_path",
    "run_with_timeout",
    "target_path",
]
