"""Domain model validation and canonical serialization."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from specforge.domain import ids
from specforge.domain.models import (
    Answer,
    CompilerMeta,
    Project,
    ProjectMode,
    QABundle,
    Question,
    QuestionKind,
    QuestionStatus,
    SpecSnapshot,
)
from specforge.domain.trace import Trace, TraceSource

NOW = datetime(2026, 2, 1, 12, 0, 0, tzinfo=timezone.utc)
PROJECT_ID = ids.generate_project_id(timestamp_ms=1)
QUESTION_ID = ids.generate_question_id(timestamp_ms=2)


def _question(**overrides: object) -> Question:
    fields: dict[str, object] = {
        "id": QUESTION_ID,
        "project_id": PROJECT_ID,
        "text": "Which platforms?",
        "kind": QuestionKind.MULTI,
        "created_at": NOW,
        "options": ("web", "ios"),
    }
    fields.update(overrides)
    return Question(**fields)  # type: ignore[arg-type]


def _answer(version: int = 1, supersedes: str | None = None) -> Answer:
    return Answer(
        id=ids.generate_answer_id(),
        project_id=PROJECT_ID,
        question_id=QUESTION_ID,
        value=["web"],
        version=version,
        created_at=NOW,
        supersedes=supersedes,
    )


@pytest.mark.unit
def test_project_normalizes_timestamps_and_orders_them() -> None:
    plus_two = timezone(timedelta(hours=2))
    project = Project(
        id=PROJECT_ID,
        name="Todo app",
        created_at=datetime(2026, 2, 1, 14, 0, tzinfo=plus_two),
        updated_at="2026-02-01T12:00:00Z",  # type: ignore[arg-type]
        mode="basic",  # type: ignore[arg-type]
    )

    assert project.created_at == NOW
    assert project.created_at.tzinfo == timezone.utc
    assert project.mode is ProjectMode.BASIC
    assert Project.from_json(project.to_json()) == project

    with pytest.raises(ValueError, match="Project.updated_at: must be >= created_at"):
        Project(id=PROJECT_ID, name="x", created_at=NOW, updated_at=NOW - timedelta(seconds=1))
    with pytest.raises(ValueError, match="timezone-aware"):
        Project(
            id=PROJECT_ID,
            name="x",
            created_at=datetime(2026, 2, 1),
            updated_at=NOW,
        )
    with pytest.raises(ValueError, match="Project.id"):
        Project(id=QUESTION_ID, name="x", created_at=NOW, updated_at=NOW)


@pytest.mark.unit
def test_question_option_rules() -> None:
    assert _question().status is QuestionStatus.UNANSWERED

    with pytest.raises(ValueError, match="freeform questions must not carry options"):
        _question(kind=QuestionKind.FREEFORM)
    with pytest.raises(ValueError, match="require at least one option"):
        _question(kind=QuestionKind.SINGLE, options=())
    with pytest.raises(ValueError, match="Question.options"):
        _question(options=("web", "web"))


@pytest.mark.unit
@pytest.mark.parametrize("priority", [-1, 1001])
def test_question_priority_bounds(priority: int) -> None:
    with pytest.raises(ValueError, match="Question.priority"):
        _question(priority=priority)


@pytest.mark.unit
def test_question_from_dict_rejects_unknown_fields() -> None:
    payload = _question().to_dict()
    payload["colour"] = "blue"

    with pytest.raises(ValueError, match="unexpected fields"):
        Question.from_dict(payload)


@pytest.mark.unit
def test_answer_supersedes_exactly_when_versioned() -> None:
    first = _answer()
    second = _answer(version=2, supersedes=first.id)

    assert Answer.from_json(second.to_json()) == second
    with pytest.raises(ValueError, match="Answer.supersedes"):
        _answer(version=1, supersedes=first.id)
    with pytest.raises(ValueError, match="Answer.supersedes"):
        _answer(version=2)
    with pytest.raises(ValueError, match="Answer.version"):
        _answer(version=0)


@pytest.mark.unit
def test_qa_bundle_joins_matching_pairs_only() -> None:
    question = _question()
    answer = _answer()

    bundle = QABundle.join(question, answer)

    assert bundle.question_type is QuestionKind.MULTI
    assert bundle.answer_value == ["web"]
    other = _question(id=ids.generate_question_id())
    with pytest.raises(ValueError, match="does not belong to question"):
        QABundle.join(other, answer)


@pytest.mark.unit
def test_snapshot_round_trips_with_sorted_provenance() -> None:
    answer = _answer()
    second_question = ids.generate_question_id(timestamp_ms=1)
    snapshot = SpecSnapshot(
        id=ids.generate_snapshot_id(),
        project_id=PROJECT_ID,
        spec={"product": {"name": "Todo"}},
        trace=Trace(
            {"/product/": (TraceSource(QUESTION_ID, answer.id, 1),)},
        ),
        derived_from={QUESTION_ID: 1, second_question: 3},
        compiler=CompilerMeta(model="gpt-4o", provider="openai", prompt_version="v1"),
        created_at=NOW,
    )

    assert list(snapshot.derived_from) == [second_question, QUESTION_ID]
    assert snapshot.trace.paths() == ("/product",)
    restored = SpecSnapshot.from_json(snapshot.to_json())
    assert restored == snapshot
    assert restored.to_json() == snapshot.to_json()


@pytest.mark.unit
def test_snapshot_rejects_bad_provenance() -> None:
    payload = {
        "id": ids.generate_snapshot_id(),
        "project_id": PROJECT_ID,
        "spec": {},
        "trace": {"spec_path_to_sources": {}},
        "derived_from": {QUESTION_ID: 0},
        "compiler": {"model": "m", "provider": "p", "prompt_version": "v1"},
        "created_at": "2026-02-01T12:00:00Z",
    }

    with pytest.raises(ValueError, match="SpecSnapshot.derived_from"):
        SpecSnapshot.from_dict(payload)
    payload["derived_from"] = {}
    payload["compiler"] = ["not", "an", "object"]
    with pytest.raises(ValueError, match="SpecSnapshot.compiler: expected object"):
        SpecSnapshot.from_dict(payload)
