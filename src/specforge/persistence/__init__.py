"""SQLite persistence: schema migrations and repositories."""

from __future__ import annotations

from specforge.persistence.repositories import (
    AnswerRepo,
    IssueRepo,
    ProjectRepo,
    QuestionRepo,
    Repositories,
    SnapshotRepo,
)
from specforge.persistence.state_db import (
    StateDB,
    StateDBBusyError,
    StateDBCorruptionError,
    StateDBError,
    StateDBMigrationError,
)

__all__ = [
    "AnswerRepo",
    "IssueRepo",
    "ProjectRepo",
    "QuestionRepo",
    "Repositories",
    "SnapshotRepo",
    "StateDB",
    "StateDBBusyError",
    "StateDBCorruptionError",
    "StateDBError",
    "StateDBMigrationError",
]
