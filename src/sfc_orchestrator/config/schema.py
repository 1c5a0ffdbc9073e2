"""
sfc-orchestrator configuration schema and validation.

Defines the built-in defaults, strict per-section validation with structured
issues (field path + message), profile overlays and a deterministic deep
merge. Unknown keys are rejected so a typo never silently falls back to a
default.
"""

from __future__ import annotations

import copy
import math
import re
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Final, Literal, TypedDict

from sfc_orchestrator.constants import (
    CONFIG_SCHEMA_VERSION,
    DEFAULT_DEBOUNCE_MS,
    DEFAULT_ENTRY,
    DEFAULT_SCRIPT_EXT,
    DEFAULT_SOURCE_DIR,
    DEFAULT_SOURCE_EXT,
    DEFAULT_TARGET_DIR,
    DEFAULT_WATCH_DEPTH,
    PACKAGE_MANAGER_DIR,
    VENDOR_DIR,
)

ConfigSchemaVersion: Final[int] = CONFIG_SCHEMA_VERSION
BUILTIN_PROFILE_NAMES: Final[tuple[str, ...]] = ("dev", "release")
DEFAULT_PLUGIN_MODULES: Final[tuple[str, ...]] = ("sfc_orchestrator.plugins.passthrough",)
LOG_LEVELS: Final[tuple[str, ...]] = ("TRACE", "DEBUG", "INFO", "WARNING", "ERROR")

_PROFILE_NAME_PATTERN = re.compile(r"^[a-z][a-z0-9_-]*$")
_MODULE_NAME_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*)*$")
_EXTENSION_PATTERN = re.compile(r"^\.[A-Za-z0-9_]+$")

# Config paths that should be normalized relative to config file location.
PATH_FIELDS: Final[tuple[tuple[str, ...], ...]] = (
    ("build", "src"),
    ("build", "target"),
    ("observability", "log_dir"),
)

_SECTIONS: Final[tuple[str, ...]] = ("build", "watch", "plugins", "observability")


class MetaConfig(TypedDict):
    schema_version: int


class BuildConfig(TypedDict):
    src: str
    target: str
    entry: str
    source_ext: str
    script_ext: str
    vendor_dir: str
    package_dir: str
    make_timeout_seconds: float


class WatchConfig(TypedDict):
    enabled: bool
    debounce_ms: int
    depth: int
    ignore_initial: bool
    ignored: list[str]


class PluginsConfig(TypedDict):
    modules: list[str]


class ObservabilityConfig(TypedDict):
    log_level: Literal["TRACE", "DEBUG", "INFO", "WARNING", "ERROR"]
    log_format: Literal["json", "text"]
    log_dir: str
    log_to_file: bool


class ProfileOverlay(TypedDict, total=False):
    build: dict[str, object]
    watch: dict[str, object]
    plugins: dict[str, object]
    observability: dict[str, object]


class SfcConfig(TypedDict):
    meta: MetaConfig
    build: BuildConfig
    watch: WatchConfig
    plugins: PluginsConfig
    observability: ObservabilityConfig
    profiles: dict[str, ProfileOverlay]


DEFAULT_CONFIG: Final[SfcConfig] = {
    "meta": {
        "schema_version": ConfigSchemaVersion,
    },
    "build": {
        "src": DEFAULT_SOURCE_DIR,
        "target": DEFAULT_TARGET_DIR,
        "entry": DEFAULT_ENTRY,
        "source_ext": DEFAULT_SOURCE_EXT,
        "script_ext": DEFAULT_SCRIPT_EXT,
        "vendor_dir": VENDOR_DIR,
        "package_dir": PACKAGE_MANAGER_DIR,
        "make_timeout_seconds": 0.0,
    },
    "watch": {
        "enabled": False,
        "debounce_ms": DEFAULT_DEBOUNCE_MS,
        "depth": DEFAULT_WATCH_DEPTH,
        "ignore_initial": True,
        "ignored": [],
    },
    "plugins": {
        "modules": list(DEFAULT_PLUGIN_MODULES),
    },
    "observability": {
        "log_level": "INFO",
        "log_format": "text",
        "log_dir": "logs/",
        "log_to_file": False,
    },
    "profiles": {
        "dev": {
            "watch": {"enabled": True},
            "observability": {"log_level": "DEBUG"},
        },
        "release": {
            "watch": {"enabled": False},
            "observability": {"log_level": "INFO"},
        },
    },
}


@dataclass(frozen=True, slots=True)
class ConfigValidationIssue:
    """Single structured validation failure."""

    path: str
    message: str


@dataclass(frozen=True, slots=True)
class ConfigValidationResult:
    """Validation result with normalized config when no issues were found."""

    config: dict[str, Any] | None
    issues: tuple[ConfigValidationIssue, ...]

    @property
    def is_valid(self) -> bool:
        return self.config is not None and not self.issues


class ConfigValidationError(ValueError):
    """Raised when strict config validation fails."""

    def __init__(self, issues: Sequence[ConfigValidationIssue]) -> None:
        self.issues = tuple(issues)
        if not self.issues:
            rendered = "unknown validation failure"
        else:
            rendered = "\n".join(f"- {item.path}: {item.message}" for item in self.issues)
        super().__init__(f"invalid config:\n{rendered}")


class _IssueCollector:
    __slots__ = ("_items",)

    def __init__(self) -> None:
        self._items: list[ConfigValidationIssue] = []

    def add(self, path: str, message: str) -> None:
        self._items.append(ConfigValidationIssue(path=path, message=message))

    def items(self) -> tuple[ConfigValidationIssue, ...]:
        return tuple(self._items)

    @property
    def has_issues(self) -> bool:
        return bool(self._items)


def default_config() -> SfcConfig:
    """Return a deep copy of the built-in defaults."""

    return copy.deepcopy(DEFAULT_CONFIG)


def migration_guidance(found_version: int) -> str:
    """Return migration guidance for a schema version mismatch."""

    if found_version < ConfigSchemaVersion:
        return (
            f"schema version {found_version} is older than supported {ConfigSchemaVersion}; "
            "upgrade sfc.toml to the current schema"
        )
    if found_version > ConfigSchemaVersion:
        return (
            f"schema version {found_version} is newer than supported {ConfigSchemaVersion}; "
            "upgrade the sfc-orchestrator runtime"
        )
    return "schema version is current"


def merge_config(base: Mapping[str, object], overlay: Mapping[str, object]) -> dict[str, Any]:
    """Deep-merge ``overlay`` onto ``base``; lists are replaced, not concatenated."""

    merged = _deep_copy_mapping(base)
    _merge_into(merged, overlay)
    return merged


def apply_profile_overlay(config: Mapping[str, object], profile: str | None) -> dict[str, Any]:
    """Apply a named profile overlay and re-validate the resulting config."""

    materialized = _deep_copy_mapping(config)
    if profile is None:
        return materialized

    selected = profile.strip()
    if not selected:
        return materialized

    profiles_raw = materialized.get("profiles")
    if not isinstance(profiles_raw, Mapping):
        raise ConfigValidationError(
            (ConfigValidationIssue("profiles", "profiles section is required"),)
        )

    overlay_raw = profiles_raw.get(selected)
    if overlay_raw is None:
        raise ConfigValidationError(
            (ConfigValidationIssue("profiles", f"profile {selected!r} is not defined"),)
        )
    if not isinstance(overlay_raw, Mapping):
        raise ConfigValidationError(
            (
                ConfigValidationIssue(
                    f"profiles.{selected}",
                    "profile overlay must be an object",
                ),
            )
        )

    merged = merge_config(materialized, overlay_raw)
    return assert_valid_config(merged, active_profile=selected)


def validate_config(
    config: Mapping[str, object] | object,
    *,
    active_profile: str | None = None,
) -> ConfigValidationResult:
    """Validate config and return structured issues with dotted paths."""

    issues = _IssueCollector()
    root = _as_object(config, "<root>", issues)
    if root is None:
        return ConfigValidationResult(config=None, issues=issues.items())

    normalized = _validate_root(root, "", issues, partial=False)
    if normalized is None:
        return ConfigValidationResult(config=None, issues=issues.items())

    selected_profile = active_profile.strip() if isinstance(active_profile, str) else None
    if selected_profile:
        profiles = normalized.get("profiles")
        if not isinstance(profiles, Mapping):
            issues.add("profiles", "profiles section is required")
        elif selected_profile not in profiles:
            issues.add("profiles", f"profile {selected_profile!r} is not defined")
        else:
            overlay = profiles[selected_profile]
            if isinstance(overlay, Mapping):
                effective = merge_config(normalized, overlay)
                _validate_root(effective, "", issues, partial=False)
            else:
                issues.add(f"profiles.{selected_profile}", "profile overlay must be an object")

    if issues.has_issues:
        return ConfigValidationResult(config=None, issues=issues.items())

    return ConfigValidationResult(config=normalized, issues=issues.items())


def assert_valid_config(
    config: Mapping[str, object] | object,
    *,
    active_profile: str | None = None,
) -> dict[str, Any]:
    """Validate config and raise ``ConfigValidationError`` on failure."""

    result = validate_config(config, active_profile=active_profile)
    if result.config is None:
        raise ConfigValidationError(result.issues)
    return result.config


_SectionValidator = Callable[[dict[str, object], str, _IssueCollector, bool], dict[str, Any]]


def _validate_root(
    payload: Mapping[str, object],
    path: str,
    issues: _IssueCollector,
    *,
    partial: bool,
) -> dict[str, Any] | None:
    allowed = {"meta", *_SECTIONS, "profiles"}
    required = {"meta", *_SECTIONS}

    _reject_unknown_keys(payload, allowed, path, issues)
    if not partial:
        _require_keys(payload, required, path, issues)

    out: dict[str, Any] = {}
    _section(payload, key="meta", path=path, issues=issues, partial=partial, out=out)
    for key in _SECTIONS:
        _section(payload, key=key, path=path, issues=issues, partial=partial, out=out)

    profiles_raw = payload.get("profiles")
    if profiles_raw is not None:
        profiles_path = _join(path, "profiles")
        profiles_obj = _as_object(profiles_raw, profiles_path, issues)
        if profiles_obj is not None:
            out["profiles"] = _validate_profiles(profiles_obj, profiles_path, issues)

    return out


def _section(
    payload: Mapping[str, object],
    *,
    key: str,
    path: str,
    issues: _IssueCollector,
    partial: bool,
    out: dict[str, Any],
) -> None:
    raw = payload.get(key)
    if raw is None:
        return
    section_path = _join(path, key)
    section_obj = _as_object(raw, section_path, issues)
    if section_obj is None:
        return
    out[key] = _SECTION_VALIDATORS[key](section_obj, section_path, issues, partial)


def _validate_meta(
    payload: Mapping[str, object],
    path: str,
    issues: _IssueCollector,
    partial: bool,
) -> dict[str, Any]:
    allowed = {"schema_version"}
    _reject_unknown_keys(payload, allowed, path, issues)
    if not partial:
        _require_keys(payload, {"schema_version"}, path, issues)

    out: dict[str, Any] = {}
    if "schema_version" in payload:
        parsed = _as_int(
            payload["schema_version"], _join(path, "schema_version"), issues, minimum=1
        )
        if parsed is not None:
            out["schema_version"] = parsed
            if parsed != ConfigSchemaVersion:
                issues.add(_join(path, "schema_version"), migration_guidance(parsed))
    return out


def _validate_build(
    payload: Mapping[str, object],
    path: str,
    issues: _IssueCollector,
    partial: bool,
) -> dict[str, Any]:
    allowed = {
        "src",
        "target",
        "entry",
        "source_ext",
        "script_ext",
        "vendor_dir",
        "package_dir",
        "make_timeout_seconds",
    }
    _reject_unknown_keys(payload, allowed, path, issues)
    if not partial:
        _require_keys(payload, allowed, path, issues)

    out: dict[str, Any] = {}
    for key in ("src", "target", "entry", "vendor_dir", "package_dir"):
        if key in payload:
            parsed = _as_path_text(payload[key], _join(path, key), issues)
            if parsed is not None:
                out[key] = parsed

    for key in ("source_ext", "script_ext"):
        if key in payload:
            parsed_ext = _as_extension(payload[key], _join(path, key), issues)
            if parsed_ext is not None:
                out[key] = parsed_ext

    if "make_timeout_seconds" in payload:
        parsed_timeout = _as_float(
            payload["make_timeout_seconds"],
            _join(path, "make_timeout_seconds"),
            issues,
            minimum=0.0,
        )
        if parsed_timeout is not None:
            out["make_timeout_seconds"] = parsed_timeout

    source_ext = out.get("source_ext")
    if source_ext is not None and source_ext == out.get("script_ext"):
        issues.add(_join(path, "script_ext"), "must differ from source_ext")

    return out


def _validate_watch(
    payload: Mapping[str, object],
    path: str,
    issues: _IssueCollector,
    partial: bool,
) -> dict[str, Any]:
    allowed = {"enabled", "debounce_ms", "depth", "ignore_initial", "ignored"}
    _reject_unknown_keys(payload, allowed, path, issues)
    if not partial:
        _require_keys(payload, allowed, path, issues)

    out: dict[str, Any] = {}
    for key in ("enabled", "ignore_initial"):
        if key in payload:
            parsed_flag = _as_bool(payload[key], _join(path, key), issues)
            if parsed_flag is not None:
                out[key] = parsed_flag

    if "debounce_ms" in payload:
        parsed_debounce = _as_int(
            payload["debounce_ms"], _join(path, "debounce_ms"), issues, minimum=0
        )
        if parsed_debounce is not None:
            out["debounce_ms"] = parsed_debounce

    if "depth" in payload:
        parsed_depth = _as_int(payload["depth"], _join(path, "depth"), issues, minimum=0)
        if parsed_depth is not None:
            out["depth"] = parsed_depth

    if "ignored" in payload:
        parsed_ignored = _as_str_list(payload["ignored"], _join(path, "ignored"), issues)
        if parsed_ignored is not None:
            out["ignored"] = parsed_ignored

    return out


def _validate_plugins(
    payload: Mapping[str, object],
    path: str,
    issues: _IssueCollector,
    partial: bool,
) -> dict[str, Any]:
    allowed = {"modules"}
    _reject_unknown_keys(payload, allowed, path, issues)
    if not partial:
        _require_keys(payload, allowed, path, issues)

    out: dict[str, Any] = {}
    if "modules" in payload:
        modules_path = _join(path, "modules")
        parsed_modules = _as_str_list(payload["modules"], modules_path, issues)
        if parsed_modules is not None:
            for index, name in enumerate(parsed_modules):
                if not _MODULE_NAME_PATTERN.fullmatch(name):
                    issues.add(f"{modules_path}[{index}]", "must be a dotted module name")
            out["modules"] = parsed_modules
    return out


def _validate_observability(
    payload: Mapping[str, object],
    path: str,
    issues: _IssueCollector,
    partial: bool,
) -> dict[str, Any]:
    allowed = {"log_level", "log_format", "log_dir", "log_to_file"}
    _reject_unknown_keys(payload, allowed, path, issues)
    if not partial:
        _require_keys(payload, allowed, path, issues)

    out: dict[str, Any] = {}

    if "log_level" in payload:
        parsed_log_level = _as_enum(
            payload["log_level"],
            _join(path, "log_level"),
            issues,
            allowed_values=LOG_LEVELS,
        )
        if parsed_log_level is not None:
            out["log_level"] = parsed_log_level

    if "log_format" in payload:
        parsed_log_format = _as_enum(
            payload["log_format"],
            _join(path, "log_format"),
            issues,
            allowed_values=("json", "text"),
        )
        if parsed_log_format is not None:
            out["log_format"] = parsed_log_format

    if "log_dir" in payload:
        parsed_log_dir = _as_path_text(payload["log_dir"], _join(path, "log_dir"), issues)
        if parsed_log_dir is not None:
            out["log_dir"] = parsed_log_dir

    if "log_to_file" in payload:
        parsed_to_file = _as_bool(payload["log_to_file"], _join(path, "log_to_file"), issues)
        if parsed_to_file is not None:
            out["log_to_file"] = parsed_to_file

    return out


_SECTION_VALIDATORS: Final[dict[str, _SectionValidator]] = {
    "meta": _validate_meta,
    "build": _validate_build,
    "watch": _validate_watch,
    "plugins": _validate_plugins,
    "observability": _validate_observability,
}


def _validate_profiles(
    payload: Mapping[str, object],
    path: str,
    issues: _IssueCollector,
) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for profile_name in sorted(payload):
        profile_path = _join(path, profile_name)
        raw = payload[profile_name]
        if not _PROFILE_NAME_PATTERN.fullmatch(profile_name):
            issues.add(profile_path, "profile name must match ^[a-z][a-z0-9_-]*$")
            continue
        profile_obj = _as_object(raw, profile_path, issues)
        if profile_obj is None:
            continue
        out[profile_name] = _validate_profile_overlay(profile_obj, profile_path, issues)
    return out


def _validate_profile_overlay(
    payload: Mapping[str, object],
    path: str,
    issues: _IssueCollector,
) -> dict[str, Any]:
    _reject_unknown_keys(payload, set(_SECTIONS), path, issues)

    out: dict[str, Any] = {}
    for section in _SECTIONS:
        raw = payload.get(section)
        if raw is None:
            continue
        section_path = _join(path, section)
        section_obj = _as_object(raw, section_path, issues)
        if section_obj is None:
            continue
        out[section] = _SECTION_VALIDATORS[section](section_obj, section_path, issues, True)
    return out


def _as_object(value: object, path: str, issues: _IssueCollector) -> dict[str, object] | None:
    if not isinstance(value, Mapping):
        issues.add(path, f"expected object, got {type(value).__name__}")
        return None
    out: dict[str, object] = {}
    for key, item in value.items():
        if not isinstance(key, str):
            issues.add(path, f"object key must be string, got {type(key).__name__}")
            continue
        out[key] = item
    return out


def _as_str(value: object, path: str, issues: _IssueCollector) -> str | None:
    if not isinstance(value, str):
        issues.add(path, f"expected string, got {type(value).__name__}")
        return None
    parsed = value.strip()
    if not parsed:
        issues.add(path, "must not be empty")
        return None
    return parsed


def _as_path_text(value: object, path: str, issues: _IssueCollector) -> str | None:
    parsed = _as_str(value, path, issues)
    if parsed is None:
        return None
    if "\x00" in parsed:
        issues.add(path, "must not contain NUL bytes")
        return None
    return parsed


def _as_extension(value: object, path: str, issues: _IssueCollector) -> str | None:
    parsed = _as_str(value, path, issues)
    if parsed is None:
        return None
    if not _EXTENSION_PATTERN.fullmatch(parsed):
        issues.add(path, "must be a file extension starting with '.' (example: .wpy)")
        return None
    return parsed


def _as_str_list(value: object, path: str, issues: _IssueCollector) -> list[str] | None:
    if isinstance(value, str) or not isinstance(value, (list, tuple)):
        issues.add(path, f"expected list of strings, got {type(value).__name__}")
        return None
    out: list[str] = []
    for index, item in enumerate(value):
        parsed = _as_str(item, f"{path}[{index}]", issues)
        if parsed is not None:
            out.append(parsed)
    return out


def _as_bool(value: object, path: str, issues: _IssueCollector) -> bool | None:
    if isinstance(value, bool):
        return value
    issues.add(path, f"expected boolean, got {type(value).__name__}")
    return None


def _as_int(
    value: object,
    path: str,
    issues: _IssueCollector,
    *,
    minimum: int | None = None,
) -> int | None:
    if isinstance(value, bool) or not isinstance(value, int):
        issues.add(path, f"expected integer, got {type(value).__name__}")
        return None
    if minimum is not None and value < minimum:
        issues.add(path, f"must be >= {minimum}")
        return None
    return value


def _as_float(
    value: object,
    path: str,
    issues: _IssueCollector,
    *,
    minimum: float | None = None,
) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        issues.add(path, f"expected number, got {type(value).__name__}")
        return None
    parsed = float(value)
    if not math.isfinite(parsed):
        issues.add(path, "must be finite")
        return None
    if minimum is not None and parsed < minimum:
        issues.add(path, f"must be >= {minimum}")
        return None
    return parsed


def _as_enum(
    value: object,
    path: str,
    issues: _IssueCollector,
    *,
    allowed_values: tuple[str, ...],
) -> str | None:
    parsed = _as_str(value, path, issues)
    if parsed is None:
        return None
    if parsed not in allowed_values:
        expected = ", ".join(sorted(allowed_values))
        issues.add(path, f"invalid value {parsed!r}; expected one of: {expected}")
        return None
    return parsed


def _reject_unknown_keys(
    payload: Mapping[str, object],
    allowed: set[str],
    path: str,
    issues: _IssueCollector,
) -> None:
    for key in sorted(payload):
        if key not in allowed:
            issues.add(_join(path, key), "unknown field")


def _require_keys(
    payload: Mapping[str, object],
    required: set[str],
    path: str,
    issues: _IssueCollector,
) -> None:
    for key in sorted(required):
        if key not in payload:
            issues.add(_join(path, key), "missing required field")


def _join(path: str, key: str) -> str:
    if not path:
        return key
    return f"{path}.{key}"


def _merge_into(target: dict[str, Any], overlay: Mapping[str, object]) -> None:
    for key in sorted(overlay):
        value = overlay[key]
        if isinstance(value, Mapping):
            existing = target.get(key)
            if isinstance(existing, dict):
                _merge_into(existing, value)
            elif isinstance(existing, Mapping):
                nested = _deep_copy_mapping(existing)
                _merge_into(nested, value)
                target[key] = nested
            else:
                nested_new: dict[str, Any] = {}
                _merge_into(nested_new, value)
                target[key] = nested_new
        else:
            target[key] = _deep_copy_value(value)


def _deep_copy_mapping(value: Mapping[str, object]) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for key in sorted(value):
        out[key] = _deep_copy_value(value[key])
    return out


def _deep_copy_value(value: object) -> Any:
    if isinstance(value, Mapping):
        out: dict[str, Any] = {}
        for key, item in value.items():
            if isinstance(key, str):
                out[key] = _deep_copy_value(item)
        return out
    if isinstance(value, list):
        return [_deep_copy_value(item) for item in value]
    if isinstance(value, tuple):
        return tuple(_deep_copy_value(item) for item in value)
    return copy.deepcopy(value)


__all__ = [
    "BUILTIN_PROFILE_NAMES",
    "ConfigSchemaVersion",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "ConfigValidationResult",
    "DEFAULT_CONFIG",
    "DEFAULT_PLUGIN_MODULES",
    "LOG_LEVELS",
    "PATH_FIELDS",
    "ProfileOverlay",
    "SfcConfig",
    "apply_profile_overlay",
    "assert_valid_config",
    "default_config",
    "merge_config",
    "migration_guidance",
    "validate_config",
]
