"""
Append-only, versioned answer ledger.

Each question owns a gapless version sequence 1, 2, 3, ... . A submission reads the
current latest version and inserts the next one inside a single ``BEGIN IMMEDIATE``
transaction, so two concurrent submissions for the same question can never both observe
the same "latest". The ``UNIQUE(question_id, version)`` constraint backs this up; a
constraint violation is retried a bounded number of times and then surfaced as
:class:`ConflictError`.
"""

from __future__ import annotations

import sqlite3
from collections.abc import Callable
from datetime import datetime
from typing import Any

import structlog

from specforge.domain import ids
from specforge.domain.canonical import UTC
from specforge.domain.errors import ConflictError, InvalidInputError, NotFoundError
from specforge.domain.json_value import JSONValue, ensure_json
from specforge.domain.models import Answer
from specforge.persistence.repositories import Repositories

DEFAULT_RETRY_LIMIT = 3


def _utc_now() -> datetime:
    return datetime.now(UTC)


class AnswerLedger:
    """Versioned answer store over the answer repository."""

    def __init__(
        self,
        repos: Repositories,
        *,
        retry_limit: int = DEFAULT_RETRY_LIMIT,
        clock: Callable[[], datetime] | None = None,
        id_factory: Callable[[], str] | None = None,
        logger: Any | None = None,
    ) -> None:
        if retry_limit < 0:
            raise ValueError("retry_limit must be >= 0")
        self._repos = repos
        self._retry_limit = retry_limit
        self._clock = clock if clock is not None else _utc_now
        self._id_factory = id_factory if id_factory is not None else ids.generate_answer_id
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    def submit(
        self,
        question_id: str,
        value: JSONValue,
        *,
        conn: sqlite3.Connection | None = None,
    ) -> Answer:
        """Append the next answer version for ``question_id``.

        Raises :class:`NotFoundError` for an unknown question, :class:`InvalidInputError`
        for a non-JSON value and :class:`ConflictError` once retries are exhausted.
        """
        try:
            normalized = ensure_json(value, "value")
        except ValueError as exc:
            raise InvalidInputError(str(exc)) from exc

        for attempt in range(self._retry_limit + 1):
            try:
                with self._repos.transaction(conn=conn) as tx:
                    answer = self._append(tx, question_id, normalized)
            except sqlite3.IntegrityError as exc:
                if not _is_version_conflict(exc):
                    raise
                self._logger.warning(
                    "answer_version_conflict",
                    question_id=question_id,
                    attempt=attempt + 1,
                    retry_limit=self._retry_limit,
                )
                continue
            self._logger.info(
                "answer_submitted",
                question_id=question_id,
                answer_id=answer.id,
                version=answer.version,
                supersedes=answer.supersedes,
            )
            return answer

        raise ConflictError(
            f"could not append answer for {question_id} after "
            f"{self._retry_limit + 1} attempt(s): concurrent version conflict"
        )

    def latest(self, question_id: str) -> Answer | None:
        return self._repos.answers.latest(question_id)

    def latest_for_project(self, project_id: str) -> list[Answer]:
        return self._repos.answers.latest_for_project(project_id)

    def history(self, question_id: str) -> list[Answer]:
        return self._repos.answers.history(question_id)

    def get_version(self, question_id: str, version: int) -> Answer | None:
        return self._repos.answers.get_version(question_id, version)

    def _append(self, conn: sqlite3.Connection, question_id: str, value: JSONValue) -> Answer:
        question = self._repos.questions.get(question_id, conn=conn)
        if question is None:
            raise NotFoundError("question", question_id)
        previous = self._repos.answers.latest(question_id, conn=conn)
        answer = Answer(
            id=self._id_factory(),
            project_id=question.project_id,
            question_id=question_id,
            value=value,
            version=1 if previous is None else previous.version + 1,
            supersedes=None if previous is None else previous.id,
            created_at=self._clock(),
        )
        return self._repos.answers.add(answer, conn=conn)


def _is_version_conflict(exc: sqlite3.IntegrityError) -> bool:
    message = str(exc).lower()
    return "unique" in message and "answers.version" in message


__all__ = ["DEFAULT_RETRY_LIMIT", "AnswerLedger"]
