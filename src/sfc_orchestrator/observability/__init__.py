"""Public observability primitives: queue-backed logging and correlation scopes."""

from sfc_orchestrator.observability.logging import (
    TRACE,
    LoggingConfig,
    StructuredLoggingHandle,
    correlation_scope,
    flush_logging,
    get_active_logging_handle,
    get_correlation_context,
    is_trace_enabled,
    parse_log_level,
    reset_correlation_fields,
    set_correlation_fields,
    setup_logging,
    setup_structured_logging,
    shutdown_logging,
)

__all__ = [
    "LoggingConfig",
    "StructuredLoggingHandle",
    "TRACE",
    "correlation_scope",
    "flush_logging",
    "get_active_logging_handle",
    "get_correlation_context",
    "is_trace_enabled",
    "parse_log_level",
    "reset_correlation_fields",
    "set_correlation_fields",
    "setup_logging",
    "setup_structured_logging",
    "shutdown_logging",
]
