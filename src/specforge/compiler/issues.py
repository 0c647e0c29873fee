"""
Issue hydration and locally derived issue drafts.

Stages emit :class:`IssueDraft` values without identity. Hydration stamps them with a fresh
id, the owning project and snapshot, and one timestamp shared by the batch. Question
references that are not well-formed question ids, or that are unknown to the project when
the known set is supplied, are dropped.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Callable, Collection, Iterable
from datetime import datetime

import structlog

from specforge.domain import ids
from specforge.domain.canonical import UTC
from specforge.domain.json_value import top_level_section
from specforge.domain.models import Issue, IssueDraft, IssueKind, IssueSeverity
from specforge.domain.trace import TraceGap
from specforge.validation.schema_validator import SchemaReport

_logger = structlog.get_logger(__name__)


def hydrate_issues(
    drafts: Iterable[IssueDraft],
    *,
    project_id: str,
    snapshot_id: str,
    known_question_ids: Collection[str] | None = None,
    now: datetime | None = None,
    id_factory: Callable[[], str] | None = None,
) -> list[Issue]:
    created_at = now if now is not None else datetime.now(UTC)
    make_id = id_factory if id_factory is not None else ids.generate_issue_id
    issues: list[Issue] = []
    for draft in drafts:
        kept = tuple(
            dict.fromkeys(
                question_id
                for question_id in draft.question_ids
                if ids.is_valid_prefixed_id(question_id, ids.QUESTION_ID_PREFIX)
                and (known_question_ids is None or question_id in known_question_ids)
            )
        )
        dropped = len(draft.question_ids) - len(kept)
        if dropped:
            _logger.debug("issue_question_ids_dropped", snapshot_id=snapshot_id, dropped=dropped)
        issues.append(
            Issue(
                id=make_id(),
                project_id=project_id,
                snapshot_id=snapshot_id,
                kind=draft.kind,
                severity=draft.severity,
                message=draft.message,
                created_at=created_at,
                spec_paths=draft.spec_paths,
                question_ids=kept,
            )
        )
    return issues


def drafts_from_schema_report(report: SchemaReport) -> list[IssueDraft]:
    return [
        IssueDraft(
            kind=IssueKind.SCHEMA_VIOLATION,
            severity=IssueSeverity.ERROR,
            message=f"{violation.path}: {violation.message}",
            spec_paths=(violation.path,),
        )
        for violation in report.errors
    ]


def drafts_from_trace_gaps(gaps: Iterable[TraceGap]) -> list[IssueDraft]:
    """One ``assumption`` warning per top-level section holding untraced values."""
    by_section: dict[str, list[str]] = defaultdict(list)
    for gap in gaps:
        by_section[top_level_section(gap.path) or "/"].append(gap.path)
    drafts: list[IssueDraft] = []
    for section in sorted(by_section):
        paths = tuple(sorted(by_section[section]))
        noun = "value" if len(paths) == 1 else "values"
        drafts.append(
            IssueDraft(
                kind=IssueKind.ASSUMPTION,
                severity=IssueSeverity.WARNING,
                message=(
                    f"{len(paths)} populated {noun} in '{section}' not traced to any answer"
                ),
                spec_paths=paths,
            )
        )
    return drafts


def merge_drafts(*groups: Iterable[IssueDraft]) -> list[IssueDraft]:
    """Concatenate draft groups, keeping the first of any exact duplicates."""
    seen: set[tuple[str, str, str, tuple[str, ...]]] = set()
    merged: list[IssueDraft] = []
    for group in groups:
        for draft in group:
            key = (draft.kind.value, draft.severity.value, draft.message, draft.spec_paths)
            if key in seen:
                continue
            seen.add(key)
            merged.append(draft)
    return merged


__all__ = [
    "drafts_from_schema_report",
    "drafts_from_trace_gaps",
    "hydrate_issues",
    "merge_drafts",
]
