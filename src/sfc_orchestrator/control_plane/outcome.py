"""Terminal results of a build pass and the single-pass running guard."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from enum import StrEnum


class OutcomeKind(StrEnum):
    COMPLETED = "completed"
    ABORTED = "aborted"
    FAILED = "failed"
    SKIPPED = "skipped"


class BuildState(StrEnum):
    IDLE = "idle"
    BUILDING = "building"


class BuildAborted(Exception):
    """Raised by a stage to stop the current pass without reporting a failure."""


@dataclass(frozen=True, slots=True)
class BuildOutcome:
    """Tagged result of ``start()``, a scoped rebuild, or the error funnel."""

    kind: OutcomeKind
    cause: BaseException | None = None

    @classmethod
    def completed(cls) -> BuildOutcome:
        return cls(OutcomeKind.COMPLETED)

    @classmethod
    def aborted(cls, cause: BuildAborted | None = None) -> BuildOutcome:
        return cls(OutcomeKind.ABORTED, cause)

    @classmethod
    def failed(cls, cause: BaseException) -> BuildOutcome:
        return cls(OutcomeKind.FAILED, cause)

    @classmethod
    def skipped(cls) -> BuildOutcome:
        return cls(OutcomeKind.SKIPPED)

    @property
    def ok(self) -> bool:
        return self.kind is OutcomeKind.COMPLETED


class RunningGuard:
    """Compare-and-set ``IDLE -> BUILDING`` transition shared by every entry point."""

    __slots__ = ("_lock", "_state")

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._state = BuildState.IDLE

    @property
    def state(self) -> BuildState:
        with self._lock:
            return self._state

    @property
    def running(self) -> bool:
        return self.state is BuildState.BUILDING

    def try_acquire(self) -> bool:
        with self._lock:
            if self._state is BuildState.BUILDING:
                return False
            self._state = BuildState.BUILDING
            return True

    def release(self) -> None:
        with self._lock:
            self._state = BuildState.IDLE


__all__ = ["BuildAborted", "BuildOutcome", "BuildState", "OutcomeKind", "RunningGuard"]
