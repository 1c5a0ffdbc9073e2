"""Module entrypoint for ``python -m sfc_orchestrator``."""

from __future__ import annotations

from sfc_orchestrator.main import cli_entrypoint

if __name__ == "__main__":
    raise SystemExit(cli_entrypoint())
