"""Shared deterministic fixtures for specforge tests."""

from __future__ import annotations

from collections.abc import Callable, Iterator
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

import pytest

from specforge.domain import ids
from specforge.domain.models import Project, ProjectMode, Question, QuestionKind
from specforge.persistence.repositories import Repositories
from specforge.persistence.state_db import StateDB

BASE_TS = datetime(2026, 2, 1, 12, 0, 0, tzinfo=UTC)


def fixed_now(seed: int = 0) -> datetime:
    return BASE_TS + timedelta(seconds=seed)


class TickingClock:
    """Monotonic fake clock advancing one second per call."""

    def __init__(self, start: datetime = BASE_TS) -> None:
        self._current = start

    def __call__(self) -> datetime:
        value = self._current
        self._current += timedelta(seconds=1)
        return value


@pytest.fixture
def state_db(tmp_path: Path) -> StateDB:
    db = StateDB(tmp_path / "state" / "specforge.sqlite3")
    db.migrate()
    return db


@pytest.fixture
def repos(state_db: StateDB) -> Repositories:
    return Repositories(state_db)


@pytest.fixture
def clock() -> Iterator[TickingClock]:
    yield TickingClock()


@pytest.fixture
def project(repos: Repositories) -> Project:
    created = Project(
        id=ids.generate_project_id(),
        name="Todo app",
        created_at=fixed_now(),
        updated_at=fixed_now(),
        mode=ProjectMode.ADVANCED,
    )
    return repos.projects.add(created)


@pytest.fixture
def make_question(repos: Repositories, project: Project) -> Callable[..., Question]:
    counter = {"n": 0}

    def _make(
        text: str = "What is the product name?",
        *,
        project_id: str | None = None,
        kind: QuestionKind = QuestionKind.FREEFORM,
        options: tuple[str, ...] = (),
        spec_paths: tuple[str, ...] = ("/product",),
        priority: int = 10,
    ) -> Question:
        counter["n"] += 1
        question = Question(
            id=ids.generate_question_id(),
            project_id=project_id or project.id,
            text=text,
            kind=kind,
            created_at=fixed_now(counter["n"]),
            options=options,
            priority=priority,
            spec_paths=spec_paths,
        )
        return repos.questions.add(question)

    return _make


@pytest.fixture
def valid_spec() -> dict[str, Any]:
    """Smallest document accepted by the bundled project schema."""
    return {
        "product": {
            "name": "Todo app",
            "purpose": "Track personal tasks",
            "success_criteria": ["Users add a task in under 5 seconds"],
        },
        "scope": {"in_scope": ["task lists"], "out_of_scope": [], "assumptions": []},
        "personas": [{"name": "Solo user", "description": "", "goals": ["stay organized"]}],
        "requirements": {"functional": [], "non_functional": []},
        "workflows": [],
        "data_model": {"entities": []},
        "api": {"style": "REST", "endpoints": []},
        "ui": {"screens": []},
        "non_functionals": {},
        "acceptance": {"definition_of_done": [], "test_cases": []},
        "plan": {"milestones": [], "tasks": []},
    }
