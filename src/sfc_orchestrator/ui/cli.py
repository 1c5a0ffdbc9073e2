"""Command-line interface router for sfc-orchestrator."""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
import uuid
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path

from sfc_orchestrator.config import (
    LOG_LEVELS,
    ConfigLoadError,
    ConfigValidationError,
    dump_effective_config,
    load_config,
    resolve_config_path,
)
from sfc_orchestrator.control_plane import BuildDriver, BuildOptions, BuildOutcome, OutcomeKind
from sfc_orchestrator.main import ExitCode
from sfc_orchestrator.observability import setup_logging, shutdown_logging
from sfc_orchestrator.plugins import PluginLoadError, load_plugins
from sfc_orchestrator.ui.render import CLIRenderer, create_renderer


@dataclass(frozen=True, slots=True)
class CLIError(RuntimeError):
    """Typed CLI failure with an explicit process exit code."""

    message: str
    exit_code: int = ExitCode.BUILD_FAILED

    def __str__(self) -> str:
        return self.message


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse command router."""

    parser = argparse.ArgumentParser(
        prog="sfc",
        description=(
            "sfc-orchestrator: incremental build driver for single-file components.\n\n"
            "Common workflows:\n"
            "  sfc build                   Build the app once\n"
            "  sfc build --watch           Build, then rebuild on change\n"
            "  sfc config --json           Print the effective config\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--config",
        dest="config_path",
        default=None,
        help="Path to sfc TOML config (default: ./sfc.toml if present).",
    )
    common.add_argument(
        "--profile",
        default=None,
        help="Optional config profile overlay name (built in: dev, release).",
    )
    common.add_argument(
        "--log-level",
        dest="log_level",
        type=str.upper,
        choices=LOG_LEVELS,
        default=None,
        help="Override observability.log_level.",
    )
    common.add_argument(
        "--context",
        default=None,
        help="Project directory that src/target paths are relative to "
        "(default: the config file's directory).",
    )
    common.add_argument(
        "--no-color",
        action="store_true",
        default=False,
        help="Disable colored output (also respects NO_COLOR env var).",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # build ---------------------------------------------------------------
    build = subparsers.add_parser(
        "build",
        parents=[common],
        help="Build the app",
        description=(
            "Run one full build.\n\n"
            "Examples:\n"
            "  sfc build\n"
            "  sfc build --watch --profile dev\n"
            "  sfc build --log-level TRACE\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    build.add_argument(
        "--watch",
        action="store_true",
        default=False,
        help="Keep running and rebuild on source changes.",
    )
    build.set_defaults(handler=_cmd_build)

    # watch ---------------------------------------------------------------
    watch = subparsers.add_parser(
        "watch",
        parents=[common],
        help="Build, then watch the source tree",
    )
    watch.set_defaults(handler=_cmd_watch)

    # config --------------------------------------------------------------
    config = subparsers.add_parser(
        "config",
        parents=[common],
        help="Show the effective configuration",
    )
    config.add_argument("--json", action="store_true", help="Emit deterministic JSON output")
    config.set_defaults(handler=_cmd_config)

    return parser


def run_cli(argv: Sequence[str] | None = None) -> int:
    """Parse argv, route to a command handler, and return process exit code."""

    parser = build_parser()
    namespace = parser.parse_args(list(argv) if argv is not None else None)
    handler = getattr(namespace, "handler", None)
    if not callable(handler):
        parser.print_help(sys.stderr)
        return int(ExitCode.CONFIG_ERROR)

    try:
        result = handler(namespace)
    except CLIError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return int(exc.exit_code)
    return int(result)


def main(argv: Sequence[str] | None = None) -> int:
    """Compatibility wrapper for main-module wiring."""

    return run_cli(argv)


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


def _cmd_build(args: argparse.Namespace) -> int:
    return _run_build(args, watch=True if _flag(args, "watch") else None)


def _cmd_watch(args: argparse.Namespace) -> int:
    return _run_build(args, watch=True)


def _cmd_config(args: argparse.Namespace) -> int:
    config = _load_effective_config(args, search_dir=_explicit_context(args))
    profile = _optional_str(getattr(args, "profile", None))

    if _flag(args, "json"):
        _emit_json({"command": "config", "active_profile": profile, "config": config})
        return int(ExitCode.SUCCESS)

    renderer = _get_renderer(args)
    renderer.kv("Active profile", profile or "(default)")
    renderer.text(dump_effective_config(config, indent=2))
    return int(ExitCode.SUCCESS)


def _run_build(args: argparse.Namespace, *, watch: bool | None) -> int:
    context = _explicit_context(args)
    config = _load_effective_config(args, search_dir=context)
    if context is None:
        context = _config_dir(args)
    observability = _mapping(config.get("observability"))
    setup_logging(observability, build_id=f"sfc-{uuid.uuid4().hex[:8]}")

    try:
        options = BuildOptions.from_config(config, context=context, watch=watch)
        driver = BuildDriver(options).init()
        modules = _mapping(config.get("plugins")).get("modules", ())
        try:
            load_plugins(driver, [str(item) for item in modules])
        except PluginLoadError as exc:
            raise CLIError(str(exc), exit_code=ExitCode.PLUGIN_ERROR) from exc

        renderer = _get_renderer(args)
        try:
            outcome = asyncio.run(_drive(driver))
        except KeyboardInterrupt:
            renderer.text("Stopped.")
            return int(ExitCode.SUCCESS)
    finally:
        shutdown_logging()

    _render_outcome(renderer, outcome)
    return int(ExitCode.SUCCESS if outcome.ok else ExitCode.BUILD_FAILED)


async def _drive(driver: BuildDriver) -> BuildOutcome:
    outcome = await driver.run()
    if not driver.options.watch:
        return outcome
    try:
        await asyncio.Event().wait()
    finally:
        if driver.watcher is not None:
            driver.watcher.stop()
    return outcome


def _render_outcome(renderer: CLIRenderer, outcome: BuildOutcome) -> None:
    if outcome.kind is OutcomeKind.COMPLETED:
        renderer.ok("Build completed")
    elif outcome.kind is OutcomeKind.ABORTED:
        renderer.warning("Build aborted")
    elif outcome.kind is OutcomeKind.SKIPPED:
        renderer.warning("Build skipped: another build is running")
    else:
        renderer.fail(f"Build failed: {outcome.cause}")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _emit_json(payload: Mapping[str, object]) -> None:
    """Emit a JSON payload to stdout with deterministic formatting."""

    print(json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False))


def _get_renderer(args: argparse.Namespace) -> CLIRenderer:
    return create_renderer(no_color=_flag(args, "no_color"))


def _load_effective_config(
    args: argparse.Namespace,
    *,
    search_dir: Path | None = None,
) -> dict[str, object]:
    config_path = _optional_str(getattr(args, "config_path", None))
    profile = _optional_str(getattr(args, "profile", None))
    overrides: dict[str, object] = {}
    log_level = _optional_str(getattr(args, "log_level", None))
    if log_level is not None:
        overrides["observability.log_level"] = log_level

    try:
        loaded = load_config(
            config_path,
            profile=profile,
            cli_overrides=overrides,
            search_dir=search_dir,
        )
    except (ConfigLoadError, ConfigValidationError) as exc:
        raise CLIError(str(exc), exit_code=ExitCode.CONFIG_ERROR) from exc

    return dict(loaded)


def _config_dir(args: argparse.Namespace) -> Path:
    return resolve_config_path(_optional_str(getattr(args, "config_path", None))).parent


def _explicit_context(args: argparse.Namespace) -> Path | None:
    """Validated ``--context`` directory; it also becomes the config search directory."""

    raw = _optional_str(getattr(args, "context", None))
    if raw is None:
        return None
    candidate = Path(raw).expanduser().resolve()
    if not candidate.is_dir():
        raise CLIError(f"context is not a directory: {candidate}", exit_code=ExitCode.CONFIG_ERROR)
    return candidate


def _mapping(value: object) -> Mapping[str, object]:
    if isinstance(value, Mapping):
        return value
    return {}


def _optional_str(value: object) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        return None
    normalized = value.strip()
    return normalized or None


def _flag(args: argparse.Namespace, name: str) -> bool:
    return bool(getattr(args, name, False))


__all__ = ["CLIError", "build_parser", "main", "run_cli"]
