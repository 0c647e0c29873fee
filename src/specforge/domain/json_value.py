"""JSON value kinds and path helpers shared by the trace model and the diff engine.

Document paths use ``/key`` for object members and ``[i]`` for array elements, so the
``name`` field of the first persona is ``/personas[0]/name``. The empty string denotes the
document root while walking; callers that need to report the root use ``/``.
"""

from __future__ import annotations

import json
import math
from collections.abc import Iterator, Mapping
from enum import StrEnum
from typing import Final

JSONScalar = str | int | float | bool | None
JSONValue = JSONScalar | list["JSONValue"] | dict[str, "JSONValue"]

ROOT_PATH: Final[str] = "/"


class JSONKind(StrEnum):
    OBJECT = "object"
    ARRAY = "array"
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    NULL = "null"


def kind_of(value: object) -> JSONKind:
    """Classify ``value`` as one of the six JSON kinds.

    ``bool`` is checked before ``int`` because it is an ``int`` subclass; ``int`` and
    ``float`` share the ``number`` kind so ``1`` and ``1.0`` compare as the same type.
    """
    match value:
        case None:
            return JSONKind.NULL
        case bool():
            return JSONKind.BOOLEAN
        case int() | float():
            return JSONKind.NUMBER
        case str():
            return JSONKind.STRING
        case list() | tuple():
            return JSONKind.ARRAY
        case Mapping():
            return JSONKind.OBJECT
    raise TypeError(f"value is not JSON ({type(value).__name__})")


def child_path(parent: str, key: str) -> str:
    return f"{parent}/{key}"


def index_path(parent: str, index: int) -> str:
    return f"{parent}[{index}]"


def display_path(path: str) -> str:
    """Map the internal root marker ``""`` to ``/``."""
    return path or ROOT_PATH


def is_path_prefix(prefix: str, path: str) -> bool:
    """Return True when ``prefix`` names ``path`` itself or one of its ancestors."""
    if prefix in ("", ROOT_PATH) or prefix == path:
        return True
    if not path.startswith(prefix):
        return False
    return path[len(prefix)] in "/["


def top_level_section(path: str) -> str:
    """Return the first path segment with any index suffix stripped.

    ``/personas[0]/name`` -> ``personas``; ``/`` -> ``""``.
    """
    trimmed = path.lstrip("/")
    if not trimmed:
        return ""
    head = trimmed.split("/", 1)[0]
    return head.split("[", 1)[0]


def iter_leaves(value: JSONValue, path: str = "") -> Iterator[tuple[str, JSONValue]]:
    """Yield ``(path, value)`` for every scalar leaf of ``value``.

    Empty containers are not leaves and yield nothing.
    """
    match kind_of(value):
        case JSONKind.OBJECT:
            assert isinstance(value, dict)
            for key in sorted(value):
                yield from iter_leaves(value[key], child_path(path, key))
        case JSONKind.ARRAY:
            assert isinstance(value, list)
            for index, item in enumerate(value):
                yield from iter_leaves(item, index_path(path, index))
        case _:
            yield display_path(path), value


def json_equal(left: JSONValue, right: JSONValue) -> bool:
    """Structural equality that does not confuse ``True`` with ``1``."""
    left_kind = kind_of(left)
    if left_kind is not kind_of(right):
        return False
    if left_kind is JSONKind.OBJECT:
        assert isinstance(left, dict) and isinstance(right, dict)
        if left.keys() != right.keys():
            return False
        return all(json_equal(left[key], right[key]) for key in left)
    if left_kind is JSONKind.ARRAY:
        assert isinstance(left, list) and isinstance(right, list)
        if len(left) != len(right):
            return False
        return all(json_equal(a, b) for a, b in zip(left, right, strict=True))
    return left == right


def canonical_json(value: object) -> str:
    """Serialize ``value`` with sorted keys and compact separators."""
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def ensure_json(value: object, path: str = "$") -> JSONValue:
    """Deep-copy ``value`` into plain JSON containers, rejecting non-JSON content."""
    if value is None or isinstance(value, (bool, str, int)):
        return value
    if isinstance(value, float):
        if not math.isfinite(value):
            raise ValueError(f"{path}: float values must be finite")
        return value
    if isinstance(value, (list, tuple)):
        return [ensure_json(item, index_path(path, i)) for i, item in enumerate(value)]
    if isinstance(value, Mapping):
        out: dict[str, JSONValue] = {}
        for key, item in value.items():
            if not isinstance(key, str):
                raise ValueError(f"{path}: object keys must be strings")
            out[key] = ensure_json(item, child_path(path, key))
        return out
    raise ValueError(f"{path}: value is not JSON-serializable ({type(value).__name__})")


__all__ = [
    "JSONKind",
    "JSONScalar",
    "JSONValue",
    "ROOT_PATH",
    "canonical_json",
    "child_path",
    "display_path",
    "ensure_json",
    "index_path",
    "is_path_prefix",
    "iter_leaves",
    "json_equal",
    "kind_of",
    "top_level_section",
]
