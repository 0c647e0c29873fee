"""Seed question catalog loading and question construction."""

from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path

import pytest

from specforge.domain import ids
from specforge.domain.models import ProjectMode, QuestionKind, QuestionStatus
from specforge.workflow.seeds import (
    SEED_BASE_PRIORITY,
    SEED_TAG,
    load_seed_catalog,
    seed_questions,
)

_NOW = datetime(2026, 2, 1, 12, 0, 0, tzinfo=UTC)


@pytest.mark.unit
def test_packaged_catalog_has_seven_questions_per_mode() -> None:
    catalog = load_seed_catalog()

    assert set(catalog) == set(ProjectMode)
    assert len(catalog[ProjectMode.BASIC]) == 7
    assert len(catalog[ProjectMode.ADVANCED]) == 7
    assert catalog[ProjectMode.ADVANCED][0].text == (
        "What is the product name and one-sentence purpose?"
    )
    assert catalog[ProjectMode.BASIC][0].text == "What do you want to call your product or app?"


@pytest.mark.unit
@pytest.mark.parametrize("mode", list(ProjectMode))
def test_seed_questions_are_freeform_tagged_and_descending(mode: ProjectMode) -> None:
    project_id = ids.generate_project_id()

    questions = seed_questions(project_id, mode, created_at=_NOW)

    assert [question.priority for question in questions] == [
        SEED_BASE_PRIORITY - index for index in range(len(questions))
    ]
    for question in questions:
        assert question.project_id == project_id
        assert question.kind is QuestionKind.FREEFORM
        assert question.tags == (SEED_TAG,)
        assert question.status is QuestionStatus.UNANSWERED
        assert question.created_at == _NOW
        assert len(question.spec_paths) == 1
        assert question.spec_paths[0].startswith("/")


@pytest.mark.unit
def test_basic_seeds_point_at_expected_sections() -> None:
    questions = seed_questions(ids.generate_project_id(), ProjectMode.BASIC, created_at=_NOW)

    assert [question.spec_paths[0] for question in questions] == [
        "/product",
        "/product",
        "/personas",
        "/workflows",
        "/requirements",
        "/scope/out_of_scope",
        "/product",
    ]


@pytest.mark.unit
@pytest.mark.parametrize(
    ("content", "message"),
    [
        ("- just a list\n", "top-level YAML mapping"),
        ("basic:\n  - text: Hi\n    spec_path: /product\n", "mode 'advanced'"),
        (
            "basic:\n  - text: Hi\n    spec_path: product\n"
            "advanced:\n  - text: Hi\n    spec_path: /product\n",
            "expected absolute path",
        ),
        (
            "basic:\n  - text: Hi\n    spec_path: /p\n    extra: 1\n"
            "advanced:\n  - text: Hi\n    spec_path: /product\n",
            "unexpected fields",
        ),
        ("basic: [\n", "invalid YAML"),
    ],
    ids=["not-mapping", "missing-mode", "relative-path", "unknown-field", "bad-yaml"],
)
def test_invalid_catalog_is_rejected(tmp_path: Path, content: str, message: str) -> None:
    path = tmp_path / "seeds.yaml"
    path.write_text(content, encoding="utf-8")

    with pytest.raises(ValueError, match=message):
        load_seed_catalog(path)
