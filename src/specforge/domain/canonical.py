"""Canonical serialization mixin and strict field coercion helpers for domain models."""

from __future__ import annotations

import json
import math
from collections.abc import Mapping
from dataclasses import fields, is_dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import NoReturn, TypeVar, cast

from specforge.domain.json_value import JSONValue, canonical_json

TModel = TypeVar("TModel", bound="CanonicalModel")
TEnum = TypeVar("TEnum", bound=Enum)

MAX_TEXT = 16_384
MAX_JSON_DEPTH = 32
MAX_JSON_COLLECTION = 4096


class CanonicalModel:
    """Mixin for canonical dict/json serialization."""

    def to_dict(self) -> dict[str, JSONValue]:
        serialized = serialize_value(self, self.__class__.__name__)
        if not isinstance(serialized, dict):
            fail(self.__class__.__name__, "serialized model must be an object")
        return serialized

    def to_json(self) -> str:
        return canonical_json(self.to_dict())

    @classmethod
    def from_json(cls: type[TModel], raw: str) -> TModel:
        if not isinstance(raw, str):
            fail(cls.__name__, f"expected JSON string, got {type(raw).__name__}")
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError as exc:
            fail(cls.__name__, f"invalid JSON: {exc}")
        if not isinstance(parsed, dict):
            fail(cls.__name__, "JSON root must be an object")
        return cls.from_dict(parsed)

    @classmethod
    def from_dict(cls: type[TModel], data: Mapping[str, object]) -> TModel:
        fail(cls.__name__, "from_dict is not implemented for this model type")


def fail(path: str, message: str) -> NoReturn:
    raise ValueError(f"{path}: {message}")


def expect_object(
    value: object,
    path: str,
    *,
    required: set[str],
    optional: set[str] | None = None,
    allow_unknown: bool = False,
) -> dict[str, object]:
    if not isinstance(value, Mapping):
        fail(path, f"expected object, got {type(value).__name__}")

    parsed: dict[str, object] = {}
    for key, item in value.items():
        if not isinstance(key, str):
            fail(path, f"object keys must be strings, got {type(key).__name__}")
        parsed[key] = item

    if not allow_unknown:
        allowed = required | (optional or set())
        unknown = sorted(key for key in parsed if key not in allowed)
        if unknown:
            fail(path, f"unexpected fields: {unknown}")

    missing = sorted(key for key in required if key not in parsed)
    if missing:
        fail(path, f"missing required fields: {missing}")

    return parsed


def as_str(
    value: object,
    path: str,
    *,
    min_len: int = 1,
    max_len: int = MAX_TEXT,
    strip: bool = True,
) -> str:
    if not isinstance(value, str):
        fail(path, f"expected string, got {type(value).__name__}")
    normalized = value.strip() if strip else value
    if len(normalized) < min_len:
        fail(path, f"must be at least {min_len} character(s)")
    if len(normalized) > max_len:
        fail(path, f"must be <= {max_len} characters")
    return normalized


def as_optional_str(value: object, path: str, *, max_len: int = MAX_TEXT) -> str | None:
    if value is None:
        return None
    return as_str(value, path, max_len=max_len)


def as_int(value: object, path: str, *, minimum: int | None = None) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        fail(path, f"expected integer, got {type(value).__name__}")
    if minimum is not None and value < minimum:
        fail(path, f"must be >= {minimum}")
    return value


def as_float(value: object, path: str, *, minimum: float | None = None) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        fail(path, f"expected number, got {type(value).__name__}")
    parsed = float(value)
    if not math.isfinite(parsed):
        fail(path, "must be finite")
    if minimum is not None and parsed < minimum:
        fail(path, f"must be >= {minimum}")
    return parsed


def as_datetime(value: object, path: str) -> datetime:
    parsed: datetime
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        text = value[:-1] + "+00:00" if value.endswith("Z") else value
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError as exc:
            fail(path, f"invalid ISO-8601 datetime: {value!r} ({exc})")
    else:
        fail(path, f"expected datetime or ISO-8601 string, got {type(value).__name__}")

    if parsed.tzinfo is None or parsed.utcoffset() is None:
        fail(path, "datetime must be timezone-aware UTC")
    return parsed.astimezone(UTC)


def datetime_to_iso8601z(value: datetime) -> str:
    normalized = as_datetime(value, "datetime")
    return normalized.isoformat(timespec="microseconds").replace("+00:00", "Z")


def as_enum(enum_type: type[TEnum], value: object, path: str) -> TEnum:
    if isinstance(value, enum_type):
        return value
    if not isinstance(value, str):
        fail(path, f"expected string enum value, got {type(value).__name__}")
    try:
        return enum_type(value)
    except ValueError:
        allowed = ", ".join(sorted(item.value for item in enum_type))
        fail(path, f"invalid value {value!r}; expected one of: {allowed}")


def as_sequence(value: object, path: str) -> list[object]:
    if isinstance(value, (list, tuple)):
        return list(value)
    fail(path, f"expected array, got {type(value).__name__}")


def as_str_tuple(
    value: object,
    path: str,
    *,
    allow_empty: bool = True,
    unique: bool = False,
    max_len: int = MAX_TEXT,
) -> tuple[str, ...]:
    values = as_sequence(value, path)
    if not allow_empty and not values:
        fail(path, "must not be empty")
    if len(values) > MAX_JSON_COLLECTION:
        fail(path, f"too many items (>{MAX_JSON_COLLECTION})")

    parsed = tuple(
        as_str(item, f"{path}[{index}]", max_len=max_len) for index, item in enumerate(values)
    )
    if unique and len(set(parsed)) != len(parsed):
        fail(path, "contains duplicate values")
    return parsed


def as_json_value(value: object, path: str, *, depth: int = 0) -> JSONValue:
    if depth > MAX_JSON_DEPTH:
        fail(path, f"JSON nesting exceeds max depth {MAX_JSON_DEPTH}")

    if value is None or isinstance(value, (bool, int, str)):
        return cast("JSONValue", value)
    if isinstance(value, float):
        if not math.isfinite(value):
            fail(path, "float values must be finite")
        return value
    if isinstance(value, (list, tuple)):
        if len(value) > MAX_JSON_COLLECTION:
            fail(path, f"list length exceeds {MAX_JSON_COLLECTION}")
        return [
            as_json_value(item, f"{path}[{idx}]", depth=depth + 1)
            for idx, item in enumerate(value)
        ]
    if isinstance(value, Mapping):
        if len(value) > MAX_JSON_COLLECTION:
            fail(path, f"object size exceeds {MAX_JSON_COLLECTION}")
        parsed: dict[str, JSONValue] = {}
        for key, item in value.items():
            if not isinstance(key, str):
                fail(path, f"object key must be string, got {type(key).__name__}")
            parsed[key] = as_json_value(item, f"{path}.{key}", depth=depth + 1)
        return parsed

    fail(path, f"value is not JSON-serializable ({type(value).__name__})")


def as_json_object(value: object, path: str) -> dict[str, JSONValue]:
    parsed = as_json_value(value, path)
    if not isinstance(parsed, dict):
        fail(path, "expected JSON object")
    return parsed


def serialize_value(value: object, path: str) -> JSONValue:
    if value is None or isinstance(value, (bool, int, str)):
        return cast("JSONValue", value)
    if isinstance(value, float):
        if not math.isfinite(value):
            fail(path, "float values must be finite")
        return value
    if isinstance(value, Enum):
        raw = value.value
        if not isinstance(raw, str):
            fail(path, "enum value must be string")
        return raw
    if isinstance(value, datetime):
        return datetime_to_iso8601z(value)
    if isinstance(value, (list, tuple)):
        return [serialize_value(item, f"{path}[]") for item in value]
    if isinstance(value, Mapping):
        out: dict[str, JSONValue] = {}
        for key, item in value.items():
            if not isinstance(key, str):
                fail(path, "dict keys must be strings")
            out[key] = serialize_value(item, f"{path}.{key}")
        return out
    if isinstance(value, CanonicalModel) and type(value).to_dict is not CanonicalModel.to_dict:
        return value.to_dict()
    if is_dataclass(value):
        out_obj: dict[str, JSONValue] = {}
        for dataclass_field in fields(value):
            out_obj[dataclass_field.name] = serialize_value(
                getattr(value, dataclass_field.name),
                f"{path}.{dataclass_field.name}",
            )
        return out_obj

    fail(path, f"cannot serialize value of type {type(value).__name__}")


__all__ = [
    "CanonicalModel",
    "MAX_TEXT",
    "UTC",
    "as_datetime",
    "as_enum",
    "as_float",
    "as_int",
    "as_json_object",
    "as_json_value",
    "as_optional_str",
    "as_sequence",
    "as_str",
    "as_str_tuple",
    "datetime_to_iso8601z",
    "expect_object",
    "fail",
    "serialize_value",
]
