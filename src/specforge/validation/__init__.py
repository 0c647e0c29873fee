"""Schema validation for compiled documents."""

from __future__ import annotations

from specforge.validation.schema_validator import (
    DEFAULT_SCHEMA_NAME,
    SchemaReport,
    SchemaValidator,
    SchemaViolation,
    load_schema,
)

__all__ = [
    "DEFAULT_SCHEMA_NAME",
    "SchemaReport",
    "SchemaValidator",
    "SchemaViolation",
    "load_schema",
]
