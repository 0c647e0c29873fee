"""JSON Schema validation of compiled documents.

The bundled ``project_spec`` schema is loaded lazily from ``schemas/`` next to this module
and compiled once per process. Validation never raises on an invalid document; it returns
a :class:`SchemaReport` listing leaf violations sorted by path.
"""

from __future__ import annotations

import json
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Any, Final

from jsonschema import Draft202012Validator
from jsonschema.exceptions import ValidationError

from specforge.domain.canonical import CanonicalModel
from specforge.domain.json_value import child_path, display_path, index_path

_SCHEMA_DIR: Final[Path] = Path(__file__).parent / "schemas"
DEFAULT_SCHEMA_NAME: Final[str] = "project_spec"


@dataclass(frozen=True, slots=True)
class SchemaViolation(CanonicalModel):
    path: str
    message: str


@dataclass(frozen=True, slots=True)
class SchemaReport(CanonicalModel):
    valid: bool
    errors: tuple[SchemaViolation, ...] = field(default_factory=tuple)

    @classmethod
    def ok(cls) -> SchemaReport:
        return cls(valid=True)


def load_schema(name: str = DEFAULT_SCHEMA_NAME) -> dict[str, Any]:
    """Load a bundled schema by name (without the ``.schema.json`` suffix)."""
    return dict(_load_schema_cached(name))


@lru_cache(maxsize=8)
def _load_schema_cached(name: str) -> Mapping[str, Any]:
    schema_path = _SCHEMA_DIR / f"{name}.schema.json"
    if not schema_path.exists():
        raise FileNotFoundError(f"Schema not found: {schema_path}")
    with schema_path.open("r", encoding="utf-8") as handle:
        loaded = json.load(handle)
    if not isinstance(loaded, dict):
        raise ValueError(f"{schema_path}: schema root must be an object")
    Draft202012Validator.check_schema(loaded)
    return loaded


class SchemaValidator:
    """Validates documents against one compiled JSON Schema."""

    def __init__(self, schema: Mapping[str, Any] | None = None) -> None:
        resolved = dict(schema) if schema is not None else load_schema()
        if schema is not None:
            Draft202012Validator.check_schema(resolved)
        self._validator = Draft202012Validator(resolved)

    def validate(self, document: object) -> SchemaReport:
        violations = [
            SchemaViolation(path=_instance_path(error), message=error.message)
            for error in _leaf_errors(self._validator.iter_errors(document))
        ]
        if not violations:
            return SchemaReport.ok()
        unique = dict.fromkeys(violations)
        return SchemaReport(
            valid=False,
            errors=tuple(sorted(unique, key=lambda item: (item.path, item.message))),
        )

    def validate_json(self, raw: str) -> SchemaReport:
        try:
            document = json.loads(raw)
        except json.JSONDecodeError as exc:
            return SchemaReport(
                valid=False,
                errors=(SchemaViolation(path="/", message=f"invalid JSON: {exc.msg}"),),
            )
        return self.validate(document)


def _leaf_errors(errors: Iterable[ValidationError]) -> Iterable[ValidationError]:
    for error in errors:
        if error.context:
            yield from _leaf_errors(error.context)
        else:
            yield error


def _instance_path(error: ValidationError) -> str:
    path = ""
    for part in error.absolute_path:
        path = index_path(path, part) if isinstance(part, int) else child_path(path, str(part))
    return display_path(path)


__all__ = [
    "DEFAULT_SCHEMA_NAME",
    "SchemaReport",
    "SchemaValidator",
    "SchemaViolation",
    "load_schema",
]
