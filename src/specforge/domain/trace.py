"""Trace model: provenance from document paths to the answer versions that produced them.

A document leaf counts as covered when the trace names its exact path or any ancestor of
it (``/product`` covers ``/product/name`` and ``/product/success_criteria[2]``). Populated
leaves without coverage are reported as :class:`TraceGap` records; they never abort a
compilation.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass, field

from specforge.domain.canonical import (
    CanonicalModel,
    as_int,
    as_sequence,
    as_str,
    expect_object,
    fail,
)
from specforge.domain.json_value import JSONValue, is_path_prefix, iter_leaves

_POINTER_INDEX_RE = re.compile(r"/(\d+)(?=/|$)")
_TRACE_WRAPPER_KEY = "spec_path_to_sources"


def normalize_path(path: str) -> str:
    """Normalize a model-emitted path to the ``/key[i]`` form.

    JSON-pointer style numeric segments (``/personas/0/name``) become index suffixes
    (``/personas[0]/name``); a missing leading slash is added.
    """
    stripped = path.strip()
    if not stripped or stripped == "/":
        return "/"
    if not stripped.startswith("/"):
        stripped = "/" + stripped
    return _POINTER_INDEX_RE.sub(r"[\1]", stripped.rstrip("/"))


@dataclass(frozen=True, slots=True)
class TraceSource(CanonicalModel):
    question_id: str
    answer_id: str
    answer_version: int

    def __post_init__(self) -> None:
        as_str(self.question_id, "TraceSource.question_id")
        as_str(self.answer_id, "TraceSource.answer_id")
        as_int(self.answer_version, "TraceSource.answer_version", minimum=1)

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> TraceSource:
        parsed = expect_object(
            data,
            "TraceSource",
            required={"question_id", "answer_id", "answer_version"},
            allow_unknown=True,
        )
        return cls(
            question_id=as_str(parsed["question_id"], "TraceSource.question_id"),
            answer_id=as_str(parsed["answer_id"], "TraceSource.answer_id"),
            answer_version=as_int(
                parsed["answer_version"], "TraceSource.answer_version", minimum=1
            ),
        )


@dataclass(slots=True)
class Trace(CanonicalModel):
    spec_path_to_sources: dict[str, tuple[TraceSource, ...]] = field(default_factory=dict)

    def __post_init__(self) -> None:
        normalized: dict[str, tuple[TraceSource, ...]] = {}
        for path, sources in self.spec_path_to_sources.items():
            key = normalize_path(as_str(path, "Trace.spec_path_to_sources.<key>"))
            merged = normalized.get(key, ()) + tuple(sources)
            normalized[key] = tuple(dict.fromkeys(merged))
        self.spec_path_to_sources = dict(sorted(normalized.items()))

    def __len__(self) -> int:
        return len(self.spec_path_to_sources)

    def paths(self) -> tuple[str, ...]:
        return tuple(self.spec_path_to_sources)

    def covers(self, path: str) -> bool:
        return any(is_path_prefix(traced, path) for traced in self.spec_path_to_sources)

    def sources_for(self, path: str) -> tuple[TraceSource, ...]:
        """Return sources attached to ``path`` or any of its ancestors, nearest first."""
        matches = [
            traced for traced in self.spec_path_to_sources if is_path_prefix(traced, path)
        ]
        out: list[TraceSource] = []
        for traced in sorted(matches, key=len, reverse=True):
            out.extend(self.spec_path_to_sources[traced])
        return tuple(dict.fromkeys(out))

    def question_ids(self) -> frozenset[str]:
        return frozenset(
            source.question_id
            for sources in self.spec_path_to_sources.values()
            for source in sources
        )

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> Trace:
        parsed = expect_object(data, "Trace", required={_TRACE_WRAPPER_KEY})
        raw_map = parsed[_TRACE_WRAPPER_KEY]
        if not isinstance(raw_map, Mapping):
            fail("Trace.spec_path_to_sources", "expected object")
        entries: dict[str, tuple[TraceSource, ...]] = {}
        for path, raw_sources in raw_map.items():
            item_path = f"Trace.spec_path_to_sources.{path}"
            entries[str(path)] = tuple(
                TraceSource.from_dict(item) for item in as_sequence(raw_sources, item_path)
            )
        return cls(spec_path_to_sources=entries)

    @classmethod
    def from_payload(cls, payload: object) -> Trace:
        """Build a trace from model output, dropping malformed source entries.

        Accepts either ``{"spec_path_to_sources": {...}}`` or the bare path mapping.
        """
        if not isinstance(payload, Mapping):
            return cls()
        raw_map = payload.get(_TRACE_WRAPPER_KEY, payload)
        if not isinstance(raw_map, Mapping):
            return cls()
        entries: dict[str, tuple[TraceSource, ...]] = {}
        for path, raw_sources in raw_map.items():
            if not isinstance(path, str) or not path.strip():
                continue
            if isinstance(raw_sources, Mapping):
                raw_sources = [raw_sources]
            if not isinstance(raw_sources, list):
                continue
            sources: list[TraceSource] = []
            for item in raw_sources:
                try:
                    sources.append(TraceSource.from_dict(item))
                except ValueError:
                    continue
            if sources:
                entries[path] = tuple(sources)
        return cls(spec_path_to_sources=entries)


@dataclass(frozen=True, slots=True)
class TraceGap(CanonicalModel):
    """A populated document leaf with no trace entry on itself or any ancestor."""

    path: str
    value: JSONValue


def find_trace_gaps(document: JSONValue, trace: Trace) -> tuple[TraceGap, ...]:
    """Report every non-null leaf of ``document`` that ``trace`` does not cover."""
    return tuple(
        TraceGap(path=path, value=value)
        for path, value in iter_leaves(document)
        if value is not None and not trace.covers(path)
    )


__all__ = ["Trace", "TraceGap", "TraceSource", "find_trace_gaps", "normalize_path"]
