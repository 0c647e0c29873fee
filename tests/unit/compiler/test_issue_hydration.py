"""Issue hydration, locally derived drafts and QA bundle joins."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest

from specforge.compiler.bundles import build_qa_bundles, derived_from
from specforge.compiler.issues import (
    drafts_from_schema_report,
    drafts_from_trace_gaps,
    hydrate_issues,
    merge_drafts,
)
from specforge.domain import ids
from specforge.domain.models import (
    Answer,
    IssueDraft,
    IssueKind,
    IssueSeverity,
    Question,
    QuestionKind,
)
from specforge.domain.trace import Trace, TraceSource, find_trace_gaps
from specforge.validation.schema_validator import SchemaReport, SchemaViolation

_NOW = datetime(2026, 2, 1, 12, 0, 0, tzinfo=UTC)


def _question(project_id: str, text: str = "Name?") -> Question:
    return Question(
        id=ids.generate_question_id(),
        project_id=project_id,
        text=text,
        kind=QuestionKind.FREEFORM,
        created_at=_NOW,
        spec_paths=("/product/name",),
    )


def _answer(question: Question, version: int = 1, supersedes: str | None = None) -> Answer:
    return Answer(
        id=ids.generate_answer_id(),
        project_id=question.project_id,
        question_id=question.id,
        value=f"v{version}",
        version=version,
        supersedes=supersedes,
        created_at=_NOW,
    )


@pytest.mark.unit
def test_hydration_stamps_identity_and_shared_timestamp() -> None:
    project_id = ids.generate_project_id()
    snapshot_id = ids.generate_snapshot_id()
    drafts = [
        IssueDraft(kind=IssueKind.MISSING_INFO, severity=IssueSeverity.WARNING, message="a"),
        IssueDraft(kind=IssueKind.AMBIGUITY, severity=IssueSeverity.INFO, message="b"),
    ]

    issues = hydrate_issues(drafts, project_id=project_id, snapshot_id=snapshot_id, now=_NOW)

    assert [issue.message for issue in issues] == ["a", "b"]
    assert {issue.created_at for issue in issues} == {_NOW}
    assert {issue.snapshot_id for issue in issues} == {snapshot_id}
    assert {issue.project_id for issue in issues} == {project_id}
    assert len({issue.id for issue in issues}) == 2
    assert all(ids.is_valid_prefixed_id(issue.id, ids.ISSUE_ID_PREFIX) for issue in issues)


@pytest.mark.unit
def test_hydration_drops_malformed_and_unknown_question_ids() -> None:
    known = ids.generate_question_id()
    unknown = ids.generate_question_id()
    draft = IssueDraft(
        kind=IssueKind.SEMANTIC_CONFLICT,
        severity=IssueSeverity.ERROR,
        message="Conflicting answers",
        question_ids=(known, "q-1", "", unknown, known),
    )

    filtered = hydrate_issues(
        [draft],
        project_id=ids.generate_project_id(),
        snapshot_id=ids.generate_snapshot_id(),
        known_question_ids={known},
    )
    unfiltered = hydrate_issues(
        [draft],
        project_id=ids.generate_project_id(),
        snapshot_id=ids.generate_snapshot_id(),
    )

    assert filtered[0].question_ids == (known,)
    assert unfiltered[0].question_ids == (known, unknown)


@pytest.mark.unit
def test_schema_report_becomes_error_drafts() -> None:
    report = SchemaReport(
        valid=False,
        errors=(
            SchemaViolation(path="/", message="'plan' is a required property"),
            SchemaViolation(path="/api/endpoints[0]/method", message="'FETCH' is not one of"),
        ),
    )

    drafts = drafts_from_schema_report(report)

    assert {draft.kind for draft in drafts} == {IssueKind.SCHEMA_VIOLATION}
    assert {draft.severity for draft in drafts} == {IssueSeverity.ERROR}
    assert drafts[1].spec_paths == ("/api/endpoints[0]/method",)
    assert drafts[1].message.startswith("/api/endpoints[0]/method: ")
    assert drafts_from_schema_report(SchemaReport.ok()) == []


@pytest.mark.unit
def test_trace_gaps_group_into_one_warning_per_section() -> None:
    document = {
        "product": {"name": "Todo", "purpose": "Track tasks"},
        "scope": {"in_scope": ["lists"], "assumptions": []},
        "ui": {"screens": [{"id": "home", "name": "Home"}]},
    }
    trace = Trace(
        {"/product/name": (TraceSource(question_id="q", answer_id="a", answer_version=1),)}
    )

    drafts = drafts_from_trace_gaps(find_trace_gaps(document, trace))

    assert [draft.spec_paths for draft in drafts] == [
        ("/product/purpose",),
        ("/scope/in_scope[0]",),
        ("/ui/screens[0]/id", "/ui/screens[0]/name"),
    ]
    assert {draft.kind for draft in drafts} == {IssueKind.ASSUMPTION}
    assert drafts[0].message == "1 populated value in 'product' not traced to any answer"
    assert drafts[2].message == "2 populated values in 'ui' not traced to any answer"


@pytest.mark.unit
def test_merge_drafts_keeps_first_duplicate() -> None:
    first = IssueDraft(kind=IssueKind.ASSUMPTION, severity=IssueSeverity.WARNING, message="x")
    duplicate = IssueDraft(
        kind=IssueKind.ASSUMPTION,
        severity=IssueSeverity.WARNING,
        message="x",
        question_ids=("ignored",),
    )
    other = IssueDraft(kind=IssueKind.AMBIGUITY, severity=IssueSeverity.INFO, message="y")

    merged = merge_drafts([first], [duplicate, other])

    assert merged == [first, other]


@pytest.mark.unit
def test_bundles_join_latest_answers_and_skip_orphans() -> None:
    project_id = ids.generate_project_id()
    first = _question(project_id)
    second = _question(project_id, "Audience?")
    v1 = _answer(first)
    v2 = _answer(first, 2, supersedes=v1.id)
    other = _answer(second)
    orphan = _answer(_question(project_id, "Deleted?"))

    bundles = build_qa_bundles([first, second], [v2, other, orphan])

    assert [bundle.question_id for bundle in bundles] == sorted([first.id, second.id])
    by_question = {bundle.question_id: bundle for bundle in bundles}
    assert by_question[first.id].answer_version == 2
    assert by_question[first.id].answer_value == "v2"
    assert by_question[first.id].question_spec_paths == ("/product/name",)
    assert derived_from(bundles) == {first.id: 2, second.id: 1}
