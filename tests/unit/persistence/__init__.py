"""Shared builders for persistence tests."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

from specforge.domain import ids
from specforge.domain.json_value import JSONValue
from specforge.domain.models import Answer, CompilerMeta, Project, Question, SpecSnapshot
from specforge.domain.trace import Trace, TraceSource

_BASE_TS = datetime(2026, 2, 1, 12, 0, 0, tzinfo=UTC)


def ts(seed: int) -> datetime:
    return _BASE_TS + timedelta(seconds=seed)


def make_answer(
    question: Question,
    version: int,
    value: JSONValue,
    previous: Answer | None = None,
) -> Answer:
    return Answer(
        id=ids.generate_answer_id(),
        project_id=question.project_id,
        question_id=question.id,
        value=value,
        version=version,
        supersedes=None if previous is None else previous.id,
        created_at=ts(100 + version),
    )


def make_snapshot(project: Project, seed: int, *, name: str = "Todo") -> SpecSnapshot:
    source = TraceSource(question_id="q", answer_id="a", answer_version=1)
    return SpecSnapshot(
        id=ids.generate_snapshot_id(),
        project_id=project.id,
        spec={"product": {"name": name}},
        trace=Trace({"/product/name": (source,)}),
        derived_from={},
        compiler=CompilerMeta(model="scripted", provider="scripted", prompt_version="v1"),
        created_at=ts(seed),
    )
