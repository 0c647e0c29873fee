"""Structured logging setup for structlog with correlation fields and redaction support."""

from __future__ import annotations

import logging
import re
import sys
from collections.abc import Iterator, Mapping, MutableMapping
from contextlib import contextmanager
from typing import Any, Final, TextIO

import structlog
from structlog.contextvars import bound_contextvars, get_contextvars, merge_contextvars

REDACTED_VALUE: Final[str] = "***REDACTED***"
LOG_FORMATS: Final[tuple[str, ...]] = ("json", "text")

_SENSITIVE_KEY_TERMS: Final[tuple[str, ...]] = (
    "secret",
    "token",
    "password",
    "passphrase",
    "api_key",
    "apikey",
    "authorization",
    "credential",
    "cookie",
    "private_key",
)

# Token counts are logged as ``input_tokens``/``output_tokens`` and are not secrets.
_SAFE_KEYS: Final[frozenset[str]] = frozenset(
    {"input_tokens", "output_tokens", "max_tokens", "api_key_env"}
)

_SENSITIVE_ASSIGNMENT_PATTERN: Final[re.Pattern[str]] = re.compile(
    r"(?i)\b(api[_-]?key|token|password|secret|authorization)\b\s*([:=])\s*([^\s,;]+)"
)
_BEARER_TOKEN_PATTERN: Final[re.Pattern[str]] = re.compile(r"(?i)\bbearer\s+[A-Za-z0-9._~+/-]+=*")
_ANTHROPIC_KEY_PATTERN: Final[re.Pattern[str]] = re.compile(r"\bsk-ant-[A-Za-z0-9_-]{12,}\b")
_OPENAI_KEY_PATTERN: Final[re.Pattern[str]] = re.compile(r"\bsk-[A-Za-z0-9_-]{12,}\b")


def configure_logging(
    level: int | str = "INFO",
    fmt: str = "json",
    *,
    redact_secrets: bool = True,
    stream: TextIO | None = None,
) -> None:
    """Configure structlog for the process.

    ``fmt`` is ``json`` (one object per line) or ``text`` (console renderer). Logs go to
    stderr by default so command output on stdout stays machine-readable.
    """
    if fmt not in LOG_FORMATS:
        raise ValueError(f"unsupported log format {fmt!r}; expected one of {LOG_FORMATS}")
    numeric_level = _parse_log_level(level)

    processors: list[Any] = [
        merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.format_exc_info,
    ]
    if redact_secrets:
        processors.append(redact_event)
    if fmt == "json":
        processors.append(structlog.processors.JSONRenderer(sort_keys=True))
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=False))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        logger_factory=structlog.PrintLoggerFactory(file=stream or sys.stderr),
        cache_logger_on_first_use=False,
    )


def configure_from_config(observability: Mapping[str, object] | None) -> None:
    """Apply an ``[observability]`` config section."""
    section = dict(observability or {})
    raw_level = section.get("log_level", "INFO")
    raw_format = section.get("log_format", "json")
    configure_logging(
        raw_level if isinstance(raw_level, (int, str)) else "INFO",
        raw_format if isinstance(raw_format, str) else "json",
        redact_secrets=bool(section.get("redact_secrets", True)),
    )


@contextmanager
def correlation_scope(**fields: str | None) -> Iterator[None]:
    """Temporarily bind correlation fields for log events in scope.

    ``None`` values are skipped so callers can pass optional ids unconditionally.
    """
    bound = {
        _validate_correlation_key(key): _validate_correlation_value(value)
        for key, value in fields.items()
        if value is not None
    }
    with bound_contextvars(**bound):
        yield


def get_correlation_context() -> dict[str, Any]:
    return dict(get_contextvars())


def redact_event(
    _logger: Any, _method_name: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    """structlog processor applying :func:`redact_value` to every field."""
    for key in list(event_dict):
        event_dict[key] = redact_value(event_dict[key], key_context=key)
    return event_dict


def redact_value(value: Any, *, key_context: str | None = None) -> Any:
    if key_context is not None and _requires_redaction_for_key(key_context):
        return REDACTED_VALUE
    if isinstance(value, str):
        return redact_string(value)
    if isinstance(value, list | tuple):
        return [redact_value(item) for item in value]
    if isinstance(value, Mapping):
        return {str(key): redact_value(item, key_context=str(key)) for key, item in value.items()}
    return value


def redact_string(text: str) -> str:
    redacted = _SENSITIVE_ASSIGNMENT_PATTERN.sub(
        lambda match: f"{match.group(1)}{match.group(2)}{REDACTED_VALUE}", text
    )
    redacted = _BEARER_TOKEN_PATTERN.sub(f"Bearer {REDACTED_VALUE}", redacted)
    redacted = _ANTHROPIC_KEY_PATTERN.sub(REDACTED_VALUE, redacted)
    return _OPENAI_KEY_PATTERN.sub(REDACTED_VALUE, redacted)


def _requires_redaction_for_key(key: str) -> bool:
    key_lower = key.lower()
    if key_lower in _SAFE_KEYS:
        return False
    return any(term in key_lower for term in _SENSITIVE_KEY_TERMS)


def _parse_log_level(value: int | str) -> int:
    if isinstance(value, int):
        return value
    if not isinstance(value, str):
        raise ValueError(f"level must be int or str, got {type(value).__name__}")
    parsed = logging.getLevelName(value.strip().upper())
    if isinstance(parsed, int):
        return parsed
    raise ValueError(f"unsupported logging level {value!r}")


def _validate_correlation_key(value: str) -> str:
    normalized = value.strip()
    if not normalized:
        raise ValueError("correlation key must not be empty")
    return normalized


def _validate_correlation_value(value: str) -> str:
    if not isinstance(value, str):
        raise ValueError(f"correlation value must be a string, got {type(value).__name__}")
    normalized = value.strip()
    if not normalized:
        raise ValueError("correlation value must not be empty")
    return normalized


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
