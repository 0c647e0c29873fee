"""Repositories for reading and writing domain entities to the state DB.

Every method accepts an optional ``conn`` so callers can compose several writes into one
:meth:`StateDB.transaction`. Rows keep a canonical ``payload_json`` copy of the model next
to the indexed columns; reads always rebuild the model from the payload.
"""

from __future__ import annotations

import sqlite3
from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager
from typing import Final, TypeVar, cast

from specforge.domain import ids
from specforge.domain.canonical import datetime_to_iso8601z
from specforge.domain.models import (
    Answer,
    Issue,
    Project,
    Question,
    QuestionStatus,
    SpecSnapshot,
)
from specforge.persistence.state_db import RowValue, SQLParams, StateDB

T = TypeVar("T")

_MAX_PAGE_SIZE: Final[int] = 1_000
_PROJECT_CHILD_TABLES: Final[tuple[str, ...]] = ("issues", "snapshots", "answers", "questions")


class _BaseRepo:
    def __init__(self, db: StateDB) -> None:
        self._db = db
        self._db.ensure_migrated()

    @staticmethod
    def _validate_page(limit: int, offset: int) -> None:
        if limit <= 0 or limit > _MAX_PAGE_SIZE:
            raise ValueError(f"limit must be in [1, {_MAX_PAGE_SIZE}]")
        if offset < 0:
            raise ValueError("offset must be >= 0")


class ProjectRepo(_BaseRepo):
    """Repository for projects."""

    def add(self, project: Project, *, conn: sqlite3.Connection | None = None) -> Project:
        self._db.execute(
            """
            INSERT INTO projects (id, name, mode, created_at, updated_at, payload_json)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                project.id,
                project.name,
                project.mode.value,
                datetime_to_iso8601z(project.created_at),
                datetime_to_iso8601z(project.updated_at),
                project.to_json(),
            ),
            conn=conn,
        )
        return project

    def update(self, project: Project, *, conn: sqlite3.Connection | None = None) -> Project:
        updated = self._db.execute(
            """
            UPDATE projects
            SET name = ?, mode = ?, updated_at = ?, payload_json = ?
            WHERE id = ?
            """,
            (
                project.name,
                project.mode.value,
                datetime_to_iso8601z(project.updated_at),
                project.to_json(),
                project.id,
            ),
            conn=conn,
        )
        if updated != 1:
            raise ValueError(f"project_id not found: {project.id}")
        return project

    def delete(self, project_id: str, *, conn: sqlite3.Connection | None = None) -> bool:
        """Delete a project and every row that references it; ``False`` when absent."""
        ids.validate_project_id(project_id)
        with self._db.transaction(conn=conn, immediate=True) as tx:
            # The marker lifts the append-only delete triggers for this project only.
            self._db.execute(
                "INSERT INTO project_deletions (project_id) VALUES (?)", (project_id,), conn=tx
            )
            # Children first so foreign keys hold after every statement.
            for table in _PROJECT_CHILD_TABLES:
                self._db.execute(
                    f"DELETE FROM {table} WHERE project_id = ?",
                    (project_id,),
                    conn=tx,
                )
            deleted = self._db.execute("DELETE FROM projects WHERE id = ?", (project_id,), conn=tx)
            self._db.execute(
                "DELETE FROM project_deletions WHERE project_id = ?", (project_id,), conn=tx
            )
        return deleted == 1

    def get(self, project_id: str, *, conn: sqlite3.Connection | None = None) -> Project | None:
        ids.validate_project_id(project_id)
        row = self._db.query_one(
            "SELECT payload_json FROM projects WHERE id = ?", (project_id,), conn=conn
        )
        if row is None:
            return None
        return Project.from_json(_row_text(row, "payload_json", "projects.payload_json"))

    def list(self, *, limit: int = 100, offset: int = 0) -> list[Project]:
        self._validate_page(limit, offset)
        rows = self._db.query_all(
            """
            SELECT payload_json FROM projects
            ORDER BY created_at DESC, rowid DESC
            LIMIT ? OFFSET ?
            """,
            (limit, offset),
        )
        return [
            Project.from_json(_row_text(row, "payload_json", "projects.payload_json"))
            for row in rows
        ]


class QuestionRepo(_BaseRepo):
    """Repository for questions. Only ``status`` changes after creation."""

    def add(self, question: Question, *, conn: sqlite3.Connection | None = None) -> Question:
        self._db.execute(
            """
            INSERT INTO questions (
                id, project_id, kind, status, priority, created_at, payload_json
            ) VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                question.id,
                question.project_id,
                question.kind.value,
                question.status.value,
                question.priority,
                datetime_to_iso8601z(question.created_at),
                question.to_json(),
            ),
            conn=conn,
        )
        return question

    def get(self, question_id: str, *, conn: sqlite3.Connection | None = None) -> Question | None:
        ids.validate_question_id(question_id)
        row = self._db.query_one(
            "SELECT payload_json FROM questions WHERE id = ?", (question_id,), conn=conn
        )
        if row is None:
            return None
        return Question.from_json(_row_text(row, "payload_json", "questions.payload_json"))

    def list_for_project(
        self,
        project_id: str,
        *,
        status: QuestionStatus | str | None = None,
        tag: str | None = None,
        limit: int = _MAX_PAGE_SIZE,
        offset: int = 0,
        conn: sqlite3.Connection | None = None,
    ) -> list[Question]:
        """List questions by descending priority, oldest first within a priority."""
        ids.validate_project_id(project_id)
        self._validate_page(limit, offset)
        sql = "SELECT payload_json FROM questions WHERE project_id = ?"
        params: list[object] = [project_id]
        if status is not None:
            sql += " AND status = ?"
            params.append(QuestionStatus(status).value)
        if tag is not None:
            sql += (
                " AND EXISTS (SELECT 1 FROM json_each(questions.payload_json, '$.tags')"
                " WHERE json_each.value = ?)"
            )
            params.append(tag)
        sql += " ORDER BY priority DESC, created_at ASC, rowid ASC LIMIT ? OFFSET ?"
        params.extend((limit, offset))
        rows = self._db.query_all(sql, cast("SQLParams", tuple(params)), conn=conn)
        return [
            Question.from_json(_row_text(row, "payload_json", "questions.payload_json"))
            for row in rows
        ]

    def update_status(
        self,
        question_id: str,
        status: QuestionStatus | str,
        *,
        conn: sqlite3.Connection | None = None,
    ) -> Question:
        question = self.get(question_id, conn=conn)
        if question is None:
            raise ValueError(f"question_id not found: {question_id}")
        payload = question.to_dict()
        payload["status"] = QuestionStatus(status).value
        updated = Question.from_dict(payload)
        self._db.execute(
            "UPDATE questions SET status = ?, payload_json = ? WHERE id = ?",
            (updated.status.value, updated.to_json(), updated.id),
            conn=conn,
        )
        return updated


class AnswerRepo(_BaseRepo):
    """Append-only repository for answer versions."""

    def add(self, answer: Answer, *, conn: sqlite3.Connection | None = None) -> Answer:
        self._db.execute(
            """
            INSERT INTO answers (
                id,
                project_id,
                question_id,
                version,
                supersedes,
                created_at,
                payload_json
            ) VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                answer.id,
                answer.project_id,
                answer.question_id,
                answer.version,
                answer.supersedes,
                datetime_to_iso8601z(answer.created_at),
                answer.to_json(),
            ),
            conn=conn,
        )
        return answer

    def get(self, answer_id: str, *, conn: sqlite3.Connection | None = None) -> Answer | None:
        ids.validate_answer_id(answer_id)
        row = self._db.query_one(
            "SELECT payload_json FROM answers WHERE id = ?", (answer_id,), conn=conn
        )
        if row is None:
            return None
        return Answer.from_json(_row_text(row, "payload_json", "answers.payload_json"))

    def latest(self, question_id: str, *, conn: sqlite3.Connection | None = None) -> Answer | None:
        ids.validate_question_id(question_id)
        row = self._db.query_one(
            """
            SELECT payload_json FROM answers
            WHERE question_id = ?
            ORDER BY version DESC
            LIMIT 1
            """,
            (question_id,),
            conn=conn,
        )
        if row is None:
            return None
        return Answer.from_json(_row_text(row, "payload_json", "answers.payload_json"))

    def get_version(
        self,
        question_id: str,
        version: int,
        *,
        conn: sqlite3.Connection | None = None,
    ) -> Answer | None:
        ids.validate_question_id(question_id)
        row = self._db.query_one(
            "SELECT payload_json FROM answers WHERE question_id = ? AND version = ?",
            (question_id, version),
            conn=conn,
        )
        if row is None:
            return None
        return Answer.from_json(_row_text(row, "payload_json", "answers.payload_json"))

    def history(self, question_id: str, *, conn: sqlite3.Connection | None = None) -> list[Answer]:
        ids.validate_question_id(question_id)
        rows = self._db.query_all(
            "SELECT payload_json FROM answers WHERE question_id = ? ORDER BY version ASC",
            (question_id,),
            conn=conn,
        )
        return [
            Answer.from_json(_row_text(row, "payload_json", "answers.payload_json"))
            for row in rows
        ]

    def latest_for_project(
        self,
        project_id: str,
        *,
        conn: sqlite3.Connection | None = None,
    ) -> list[Answer]:
        """Return the highest version per answered question, ordered by question id."""
        ids.validate_project_id(project_id)
        rows = self._db.query_all(
            """
            SELECT a.payload_json
            FROM answers AS a
            JOIN (
                SELECT question_id, MAX(version) AS version
                FROM answers
                WHERE project_id = ?
                GROUP BY question_id
            ) AS latest
            ON latest.question_id = a.question_id AND latest.version = a.version
            ORDER BY a.question_id ASC
            """,
            (project_id,),
            conn=conn,
        )
        return [
            Answer.from_json(_row_text(row, "payload_json", "answers.payload_json"))
            for row in rows
        ]


class SnapshotRepo(_BaseRepo):
    """Append-only repository for compiled snapshots."""

    def add(
        self, snapshot: SpecSnapshot, *, conn: sqlite3.Connection | None = None
    ) -> SpecSnapshot:
        self._db.execute(
            """
            INSERT INTO snapshots (id, project_id, created_at, payload_json)
            VALUES (?, ?, ?, ?)
            """,
            (
                snapshot.id,
                snapshot.project_id,
                datetime_to_iso8601z(snapshot.created_at),
                snapshot.to_json(),
            ),
            conn=conn,
        )
        return snapshot

    def get(
        self, snapshot_id: str, *, conn: sqlite3.Connection | None = None
    ) -> SpecSnapshot | None:
        ids.validate_snapshot_id(snapshot_id)
        row = self._db.query_one(
            "SELECT payload_json FROM snapshots WHERE id = ?", (snapshot_id,), conn=conn
        )
        if row is None:
            return None
        return SpecSnapshot.from_json(_row_text(row, "payload_json", "snapshots.payload_json"))

    def latest_id(self, project_id: str, *, conn: sqlite3.Connection | None = None) -> str | None:
        ids.validate_project_id(project_id)
        row = self._db.query_one(
            """
            SELECT id FROM snapshots
            WHERE project_id = ?
            ORDER BY created_at DESC, rowid DESC
            LIMIT 1
            """,
            (project_id,),
            conn=conn,
        )
        if row is None:
            return None
        return _row_text(row, "id", "snapshots.id")

    def latest(
        self, project_id: str, *, conn: sqlite3.Connection | None = None
    ) -> SpecSnapshot | None:
        snapshot_id = self.latest_id(project_id, conn=conn)
        if snapshot_id is None:
            return None
        return self.get(snapshot_id, conn=conn)

    def list_for_project(
        self,
        project_id: str,
        *,
        limit: int = 100,
        offset: int = 0,
    ) -> list[SpecSnapshot]:
        ids.validate_project_id(project_id)
        self._validate_page(limit, offset)
        rows = self._db.query_all(
            """
            SELECT payload_json FROM snapshots
            WHERE project_id = ?
            ORDER BY created_at DESC, rowid DESC
            LIMIT ? OFFSET ?
            """,
            (project_id, limit, offset),
        )
        return [
            SpecSnapshot.from_json(_row_text(row, "payload_json", "snapshots.payload_json"))
            for row in rows
        ]


class IssueRepo(_BaseRepo):
    """Append-only repository for hydrated issues."""

    def add(self, issue: Issue, *, conn: sqlite3.Connection | None = None) -> Issue:
        self._db.execute(
            """
            INSERT INTO issues (
                id,
                project_id,
                snapshot_id,
                kind,
                severity,
                created_at,
                payload_json
            ) VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                issue.id,
                issue.project_id,
                issue.snapshot_id,
                issue.kind.value,
                issue.severity.value,
                datetime_to_iso8601z(issue.created_at),
                issue.to_json(),
            ),
            conn=conn,
        )
        return issue

    def list_for_snapshot(
        self, snapshot_id: str, *, conn: sqlite3.Connection | None = None
    ) -> list[Issue]:
        ids.validate_snapshot_id(snapshot_id)
        rows = self._db.query_all(
            """
            SELECT payload_json FROM issues
            WHERE snapshot_id = ?
            ORDER BY rowid ASC
            """,
            (snapshot_id,),
            conn=conn,
        )
        return [
            Issue.from_json(_row_text(row, "payload_json", "issues.payload_json")) for row in rows
        ]


class Repositories:
    """All repositories over one :class:`StateDB`, plus transaction helpers."""

    def __init__(self, db: StateDB) -> None:
        self.db = db
        self.projects = ProjectRepo(db)
        self.questions = QuestionRepo(db)
        self.answers = AnswerRepo(db)
        self.snapshots = SnapshotRepo(db)
        self.issues = IssueRepo(db)

    @contextmanager
    def transaction(
        self, *, conn: sqlite3.Connection | None = None
    ) -> Iterator[sqlite3.Connection]:
        with self.db.transaction(conn=conn, immediate=True) as tx:
            yield tx

    def with_transaction(self, fn: Callable[[sqlite3.Connection], T]) -> T:
        """Run ``fn`` inside one ``BEGIN IMMEDIATE`` transaction and return its result."""
        with self.transaction() as conn:
            return fn(conn)


def _row_text(row: Mapping[str, RowValue], key: str, path: str) -> str:
    value = row.get(key)
    if not isinstance(value, str):
        raise ValueError(f"{path}: expected text value")
    return value


__all__ = [
    "AnswerRepo",
    "IssueRepo",
    "ProjectRepo",
    "QuestionRepo",
    "Repositories",
    "SnapshotRepo",
]
