"""Plain-text output rendering for the ``sfc`` command line.

Respects the ``NO_COLOR`` environment variable and the ``--no-color`` flag;
color is only emitted when stdout is a terminal.
"""

from __future__ import annotations

import os
import sys
from typing import TextIO

_GREEN = "\033[32m"
_YELLOW = "\033[33m"
_RED = "\033[31m"
_RESET = "\033[0m"


def _color_allowed(no_color_flag: bool, stream: TextIO) -> bool:
    """Check whether color output should be attempted."""

    if no_color_flag:
        return False
    if os.environ.get("NO_COLOR", ""):
        return False
    return hasattr(stream, "isatty") and stream.isatty()


class CLIRenderer:
    """Thin CLI output renderer producing deterministic plain text."""

    def __init__(self, *, no_color: bool = False, stream: TextIO | None = None) -> None:
        self._stream = stream if stream is not None else sys.stdout
        self._color = _color_allowed(no_color, self._stream)

    @property
    def color(self) -> bool:
        return self._color

    def kv(self, key: str, value: object) -> None:
        """Print a key: value pair."""

        self._write(f"{key}: {value}")

    def text(self, line: str) -> None:
        self._write(line)

    def warning(self, text: str) -> None:
        self._write(self._paint(f"  Warning: {text}", _YELLOW))

    def ok(self, label: str) -> None:
        self._write(self._paint(f"  OK  {label}", _GREEN))

    def fail(self, label: str) -> None:
        self._write(self._paint(f"  FAIL  {label}", _RED))

    def _paint(self, text: str, code: str) -> str:
        if not self._color:
            return text
        return f"{code}{text}{_RESET}"

    def _write(self, line: str) -> None:
        print(line, file=self._stream)


def create_renderer(*, no_color: bool = False, stream: TextIO | None = None) -> CLIRenderer:
    """Create a CLI renderer with the given settings."""

    return CLIRenderer(no_color=no_color, stream=stream)


__all__ = ["CLIRenderer", "create_renderer"]
