"""Structural diff between JSON documents and change-impact classification.

The diff is a pure function over two JSON values:

* a key or index present only in the target is ``added``; only in the base, ``removed``;
* ``null`` counts as absent: ``null`` to a value is ``added``, a value to ``null`` is
  ``removed``, and ``null`` on both sides is no change;
* values of different JSON kinds produce one ``modified`` change for the whole subtree;
* objects recurse over the union of their keys, arrays recurse positionally with the
  unmatched tail reported as added or removed;
* scalars are ``modified`` when they differ.

Changes are reported sorted by path. A change at the document root uses the path ``/``.
"""

from __future__ import annotations

import json
from collections.abc import Iterable
from dataclasses import dataclass
from enum import StrEnum
from typing import Final

from specforge.constants import HIGH_IMPACT_SECTIONS
from specforge.domain.canonical import CanonicalModel
from specforge.domain.json_value import (
    JSONValue,
    child_path,
    display_path,
    index_path,
    json_equal,
    kind_of,
    top_level_section,
)


class ChangeKind(StrEnum):
    ADDED = "added"
    REMOVED = "removed"
    MODIFIED = "modified"


class _Missing:
    __slots__ = ()

    def __repr__(self) -> str:
        return "<missing>"


_MISSING: Final = _Missing()


@dataclass(frozen=True, slots=True)
class Change(CanonicalModel):
    path: str
    kind: ChangeKind
    old_value: JSONValue = None
    new_value: JSONValue = None

    def to_dict(self) -> dict[str, JSONValue]:
        out: dict[str, JSONValue] = {"path": self.path, "kind": self.kind.value}
        if self.kind is not ChangeKind.ADDED:
            out["old_value"] = self.old_value
        if self.kind is not ChangeKind.REMOVED:
            out["new_value"] = self.new_value
        return out


@dataclass(frozen=True, slots=True)
class DiffSummary(CanonicalModel):
    added: int = 0
    removed: int = 0
    modified: int = 0

    @property
    def total(self) -> int:
        return self.added + self.removed + self.modified

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "added": self.added,
            "removed": self.removed,
            "modified": self.modified,
            "total": self.total,
        }

    @classmethod
    def of(cls, changes: Iterable[Change]) -> DiffSummary:
        counts = {kind: 0 for kind in ChangeKind}
        for change in changes:
            counts[change.kind] += 1
        return cls(
            added=counts[ChangeKind.ADDED],
            removed=counts[ChangeKind.REMOVED],
            modified=counts[ChangeKind.MODIFIED],
        )


@dataclass(frozen=True, slots=True)
class DiffResult(CanonicalModel):
    changes: tuple[Change, ...]
    summary: DiffSummary
    base_id: str | None = None
    target_id: str | None = None

    @property
    def is_empty(self) -> bool:
        return not self.changes

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "base_id": self.base_id,
            "target_id": self.target_id,
            "changes": [change.to_dict() for change in self.changes],
            "summary": self.summary.to_dict(),
        }


@dataclass(frozen=True, slots=True)
class ImpactReport(CanonicalModel):
    affected_sections: tuple[str, ...]
    high_impact: tuple[str, ...]
    low_impact: tuple[str, ...]


def diff(
    base: JSONValue,
    target: JSONValue,
    *,
    base_id: str | None = None,
    target_id: str | None = None,
) -> DiffResult:
    """Compute the structural diff from ``base`` to ``target``."""
    changes: list[Change] = []
    _walk(base, target, "", changes)
    changes.sort(key=lambda change: change.path)
    return DiffResult(
        changes=tuple(changes),
        summary=DiffSummary.of(changes),
        base_id=base_id,
        target_id=target_id,
    )


def diff_json(
    base_text: str | None,
    target_text: str | None,
    *,
    base_id: str | None = None,
    target_id: str | None = None,
) -> DiffResult:
    """Diff two JSON texts; empty or missing text is treated as ``{}``."""
    return diff(
        _parse_document(base_text, "base"),
        _parse_document(target_text, "target"),
        base_id=base_id,
        target_id=target_id,
    )


def analyze_impact(
    result: DiffResult,
    *,
    high_impact_sections: Iterable[str] = HIGH_IMPACT_SECTIONS,
) -> ImpactReport:
    """Group changed paths by top-level section and split them into impact tiers.

    Changes at the document root belong to no section and are not counted.
    """
    high_allow = frozenset(high_impact_sections)
    affected: set[str] = set()
    high: set[str] = set()
    low: set[str] = set()
    for change in result.changes:
        section = top_level_section(change.path)
        if not section:
            continue
        affected.add(section)
        if section in high_allow:
            high.add(section)
        else:
            low.add(section)
    return ImpactReport(
        affected_sections=tuple(sorted(affected)),
        high_impact=tuple(sorted(high)),
        low_impact=tuple(sorted(low)),
    )


def _walk(
    old: JSONValue | _Missing,
    new: JSONValue | _Missing,
    path: str,
    out: list[Change],
) -> None:
    shown = display_path(path)
    if isinstance(old, _Missing):
        if not isinstance(new, _Missing):
            out.append(Change(path=shown, kind=ChangeKind.ADDED, new_value=new))
        return
    if isinstance(new, _Missing):
        out.append(Change(path=shown, kind=ChangeKind.REMOVED, old_value=old))
        return
    if old is None or new is None:
        if new is not None:
            out.append(Change(path=shown, kind=ChangeKind.ADDED, new_value=new))
        elif old is not None:
            out.append(Change(path=shown, kind=ChangeKind.REMOVED, old_value=old))
        return

    old_kind = kind_of(old)
    if old_kind is not kind_of(new):
        out.append(Change(path=shown, kind=ChangeKind.MODIFIED, old_value=old, new_value=new))
        return

    match old, new:
        case dict(), dict():
            for key in sorted(old.keys() | new.keys()):
                _walk(old.get(key, _MISSING), new.get(key, _MISSING), child_path(path, key), out)
        case list(), list():
            for index in range(max(len(old), len(new))):
                _walk(
                    old[index] if index < len(old) else _MISSING,
                    new[index] if index < len(new) else _MISSING,
                    index_path(path, index),
                    out,
                )
        case _:
            if not json_equal(old, new):
                out.append(
                    Change(path=shown, kind=ChangeKind.MODIFIED, old_value=old, new_value=new)
                )


def _parse_document(text: str | None, label: str) -> JSONValue:
    if text is None or not text.strip():
        return {}
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        raise ValueError(f"{label}: invalid JSON ({exc.msg})") from exc


__all__ = [
    "Change",
    "ChangeKind",
    "DiffResult",
    "DiffSummary",
    "ImpactReport",
    "analyze_impact",
    "diff",
    "diff_json",
]
