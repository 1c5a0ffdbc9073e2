"""Single exit path for failed or aborted build passes."""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING, Any

import structlog

from sfc_orchestrator.control_plane.outcome import BuildAborted, BuildOutcome
from sfc_orchestrator.observability.logging import is_trace_enabled

if TYPE_CHECKING:
    from sfc_orchestrator.control_plane.driver import BuildDriver

TRACE_HINT = 'Compile failed. Add "--log-level TRACE" to see more details'


class ErrorFunnel:
    """Release the running guard, report the failure, and keep watch mode alive."""

    def __init__(
        self,
        driver: BuildDriver,
        *,
        trace_enabled: Callable[[], bool] | None = None,
        logger: Any | None = None,
    ) -> None:
        self._driver = driver
        self._trace_enabled = trace_enabled or is_trace_enabled
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    def handle(self, exc: BaseException) -> BuildOutcome:
        self._driver.guard.release()

        outcome: BuildOutcome
        if isinstance(exc, BuildAborted):
            self._logger.info("build_aborted")
            outcome = BuildOutcome.aborted(exc)
        else:
            self._logger.error(
                "build_failed",
                error_type=exc.__class__.__name__,
                error=str(exc),
                exc_info=exc,
            )
            if self._trace_enabled():
                self._logger.error("Compile failed.")
            else:
                self._logger.error(TRACE_HINT)
            outcome = BuildOutcome.failed(exc)

        if self._driver.options.watch:
            self._logger.info("watching")
            self._driver.watch()
        return outcome


__all__ = ["ErrorFunnel", "TRACE_HINT"]
