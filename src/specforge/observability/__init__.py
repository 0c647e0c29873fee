"""Logging configuration, correlation fields and secret redaction."""

from specforge.observability.logging import (
    LOG_FORMATS,
    REDACTED_VALUE,
    configure_from_config,
    configure_logging,
    correlation_scope,
    get_correlation_context,
    redact_event,
    redact_string,
    redact_value,
)

__all__ = [
    "LOG_FORMATS",
    "REDACTED_VALUE",
    "configure_from_config",
    "configure_logging",
    "correlation_scope",
    "get_correlation_context",
    "redact_event",
    "redact_string",
    "redact_value",
]
