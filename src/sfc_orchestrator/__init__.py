"""
sfc-orchestrator: incremental build orchestration for single-file components.

The package root stays free of import-time side effects; configuration and
logging are set up by the CLI, not on import.
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
