"""Answer ledger versioning, lookups and concurrent submission."""

from __future__ import annotations

import sqlite3
import threading
from collections.abc import Callable
from datetime import datetime

import pytest

from specforge.domain import ids
from specforge.domain.errors import ConflictError, InvalidInputError, NotFoundError
from specforge.domain.models import Question
from specforge.ledger.answer_ledger import AnswerLedger
from specforge.persistence.repositories import Repositories


@pytest.mark.unit
def test_versions_increment_and_chain_supersedes(
    repos: Repositories,
    make_question: Callable[..., Question],
    clock: Callable[[], datetime],
) -> None:
    ledger = AnswerLedger(repos, clock=clock)
    question = make_question()

    first = ledger.submit(question.id, "Todo")
    second = ledger.submit(question.id, "Tasks")
    third = ledger.submit(question.id, {"name": "Tasks", "tagline": "done"})

    assert [first.version, second.version, third.version] == [1, 2, 3]
    assert first.supersedes is None
    assert second.supersedes == first.id
    assert third.supersedes == second.id
    assert third.project_id == question.project_id
    assert first.created_at < second.created_at < third.created_at


@pytest.mark.unit
def test_history_latest_and_get_version(
    repos: Repositories,
    make_question: Callable[..., Question],
) -> None:
    ledger = AnswerLedger(repos)
    question = make_question()
    other = make_question("Who are the users?")

    assert ledger.latest(question.id) is None
    ledger.submit(question.id, "a")
    ledger.submit(question.id, "b")
    ledger.submit(other.id, ["devs", "ops"])

    assert [answer.value for answer in ledger.history(question.id)] == ["a", "b"]
    latest = ledger.latest(question.id)
    assert latest is not None and latest.value == "b"
    version_one = ledger.get_version(question.id, 1)
    assert version_one is not None and version_one.value == "a"
    assert ledger.get_version(question.id, 9) is None
    by_question = {
        answer.question_id: answer.value
        for answer in ledger.latest_for_project(question.project_id)
    }
    assert by_question == {question.id: "b", other.id: ["devs", "ops"]}


@pytest.mark.unit
def test_unknown_question_is_not_found(repos: Repositories) -> None:
    ledger = AnswerLedger(repos)
    missing = ids.generate_question_id()

    with pytest.raises(NotFoundError) as excinfo:
        ledger.submit(missing, "x")

    assert excinfo.value.entity == "question"
    assert excinfo.value.entity_id == missing


@pytest.mark.unit
@pytest.mark.parametrize("value", [float("nan"), {1: "x"}, {"k": object()}, b"raw"])
def test_non_json_value_is_invalid_input(
    repos: Repositories,
    make_question: Callable[..., Question],
    value: object,
) -> None:
    ledger = AnswerLedger(repos)
    question = make_question()

    with pytest.raises(InvalidInputError):
        ledger.submit(question.id, value)  # type: ignore[arg-type]

    assert ledger.history(question.id) == []


@pytest.mark.unit
def test_retry_limit_must_be_non_negative(repos: Repositories) -> None:
    with pytest.raises(ValueError, match="retry_limit"):
        AnswerLedger(repos, retry_limit=-1)


@pytest.mark.unit
def test_persistent_version_conflict_surfaces_as_conflict_error(
    monkeypatch: pytest.MonkeyPatch,
    repos: Repositories,
    make_question: Callable[..., Question],
) -> None:
    question = make_question()
    ledger = AnswerLedger(repos, retry_limit=2)
    seeded = ledger.submit(question.id, "first")
    # A primary-key collision is not a version conflict.
    colliding = AnswerLedger(repos, id_factory=lambda: seeded.id)
    with pytest.raises(sqlite3.IntegrityError):
        colliding.submit(question.id, "second")

    stale_reads = {"n": 0}

    def stale_latest(question_id: str, **kwargs: object) -> object:
        stale_reads["n"] += 1
        return None

    monkeypatch.setattr(repos.answers, "latest", stale_latest)
    with pytest.raises(ConflictError, match="3 attempt"):
        ledger.submit(question.id, "second")
    monkeypatch.undo()

    assert stale_reads["n"] == 3
    assert [answer.value for answer in ledger.history(question.id)] == ["first"]


@pytest.mark.unit
def test_concurrent_submissions_produce_gapless_versions(
    repos: Repositories,
    make_question: Callable[..., Question],
) -> None:
    question = make_question()
    ledger = AnswerLedger(repos, retry_limit=5)
    per_thread = 5
    thread_count = 4
    errors: list[BaseException] = []
    barrier = threading.Barrier(thread_count)

    def worker(worker_id: int) -> None:
        barrier.wait()
        try:
            for index in range(per_thread):
                ledger.submit(question.id, f"w{worker_id}-{index}")
        except BaseException as exc:  # noqa: BLE001
            errors.append(exc)

    threads = [threading.Thread(target=worker, args=(n,)) for n in range(thread_count)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)

    assert errors == []
    history = ledger.history(question.id)
    assert [answer.version for answer in history] == list(
        range(1, per_thread * thread_count + 1)
    )
    for previous, current in zip(history, history[1:], strict=False):
        assert current.supersedes == previous.id
