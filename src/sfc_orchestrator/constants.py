"""Stable constants shared across the build driver, watcher, and plugins."""

from __future__ import annotations

from typing import Final

# Schema versions for persisted contracts.
CONFIG_SCHEMA_VERSION: Final[int] = 1
DEPENDENCY_GRAPH_SCHEMA_VERSION: Final[int] = 1

# Source conventions.
DEFAULT_SOURCE_EXT: Final[str] = ".wpy"
DEFAULT_SCRIPT_EXT: Final[str] = ".js"
DEFAULT_CONFIG_EXT: Final[str] = ".json"
DEFAULT_SOURCE_DIR: Final[str] = "src"
DEFAULT_TARGET_DIR: Final[str] = "dist"
DEFAULT_ENTRY: Final[str] = "app"
STATIC_DIR: Final[str] = "static"
CUSTOM_TAB_BAR_ENTRY: Final[str] = "custom-tab-bar/index"

# Vendor layout: modules under the package-manager directory are re-rooted here.
VENDOR_DIR: Final[str] = "vendor"
PACKAGE_MANAGER_DIR: Final[str] = "node_modules"

# Watch defaults.
DEFAULT_DEBOUNCE_MS: Final[int] = 300
DEFAULT_WATCH_DEPTH: Final[int] = 99

# Hook points consumed by the build driver.
HOOK_PROCESS_CLEAR: Final[str] = "process-clear"
HOOK_PROCESS_DONE: Final[str] = "process-done"
HOOK_ERROR_HANDLER: Final[str] = "error-handler"
HOOK_MAKE: Final[str] = "make"
HOOK_BUILD_APP: Final[str] = "build-app"
HOOK_BUILD_COMPONENTS: Final[str] = "build-components"
HOOK_BUILD_VENDOR: Final[str] = "build-vendor"
HOOK_BUILD_ASSETS: Final[str] = "build-assets"
HOOK_OUTPUT_APP: Final[str] = "output-app"
HOOK_OUTPUT_COMPONENTS: Final[str] = "output-components"
HOOK_OUTPUT_VENDOR: Final[str] = "output-vendor"
HOOK_OUTPUT_ASSETS: Final[str] = "output-assets"
HOOK_OUTPUT_STATIC: Final[str] = "output-static"

__all__ = [
    "CONFIG_SCHEMA_VERSION",
    "CUSTOM_TAB_BAR_ENTRY",
    "DEFAULT_CONFIG_EXT",
    "DEFAULT_DEBOUNCE_MS",
    "DEFAULT_ENTRY",
    "DEFAULT_SCRIPT_EXT",
    "DEFAULT_SOURCE_DIR",
    "DEFAULT_SOURCE_EXT",
    "DEFAULT_TARGET_DIR",
    "DEFAULT_WATCH_DEPTH",
    "DEPENDENCY_GRAPH_SCHEMA_VERSION",
    "HOOK_BUILD_APP",
    "HOOK_BUILD_ASSETS",
    "HOOK_BUILD_COMPONENTS",
    "HOOK_BUILD_VENDOR",
    "HOOK_ERROR_HANDLER",
    "HOOK_MAKE",
    "HOOK_OUTPUT_APP",
    "HOOK_OUTPUT_ASSETS",
    "HOOK_OUTPUT_COMPONENTS",
    "HOOK_OUTPUT_STATIC",
    "HOOK_OUTPUT_VENDOR",
    "HOOK_PROCESS_CLEAR",
    "HOOK_PROCESS_DONE",
    "PACKAGE_MANAGER_DIR",
    "STATIC_DIR",
    "VENDOR_DIR",
]
