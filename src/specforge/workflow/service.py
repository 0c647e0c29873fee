"""
Workflow service: the caller that owns bundle construction and persistence.

Model stages run first; every write for a workflow then happens in one ``BEGIN IMMEDIATE``
transaction, so a cancelled or failed model call leaves the store untouched. Secondary
effects (seeding, status updates, per-issue inserts, project timestamps) are best-effort:
their failures are logged at ``warning`` and never roll back the primary write.
"""

from __future__ import annotations

import sqlite3
from collections.abc import Callable, Mapping
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any

import structlog

from specforge.compiler.bundles import build_qa_bundles
from specforge.compiler.issues import hydrate_issues, merge_drafts
from specforge.compiler.orchestrator import (
    CompileResult,
    CompilerOrchestrator,
    CompilerSettings,
    ProviderOverride,
)
from specforge.completion.base import BackoffConfig
from specforge.completion.factory import CompletionFactory, ProviderInfo
from specforge.constants import DEFAULT_NEXT_QUESTION_COUNT, MAX_NEXT_QUESTION_COUNT
from specforge.diff.engine import DiffResult, ImpactReport, analyze_impact, diff
from specforge.domain import ids
from specforge.domain.canonical import UTC, CanonicalModel
from specforge.domain.errors import (
    InvalidInputError,
    NotFoundError,
    PreconditionError,
    ValidationFailed,
)
from specforge.domain.json_value import JSONValue
from specforge.domain.models import (
    Answer,
    AnswerSuggestion,
    Issue,
    IssueDraft,
    Project,
    ProjectMode,
    QABundle,
    Question,
    QuestionDraft,
    QuestionStatus,
    SpecSnapshot,
)
from specforge.domain.trace import Trace
from specforge.ledger.answer_ledger import DEFAULT_RETRY_LIMIT, AnswerLedger
from specforge.observability.logging import correlation_scope
from specforge.persistence.repositories import Repositories
from specforge.persistence.state_db import StateDB, StateDBError
from specforge.workflow.seeds import seed_questions

_BEST_EFFORT_ERRORS = (sqlite3.Error, StateDBError, ValueError)


def _utc_now() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True, slots=True)
class CompileOutcome(CanonicalModel):
    snapshot: SpecSnapshot
    issues: tuple[Issue, ...]


@dataclass(frozen=True, slots=True)
class SnapshotDiff(CanonicalModel):
    diff: DiffResult
    impact: ImpactReport


class SpecService:
    """Project, question, answer, snapshot and issue workflows over one state DB."""

    def __init__(
        self,
        repos: Repositories,
        orchestrator: CompilerOrchestrator,
        *,
        factory: CompletionFactory | None = None,
        ledger: AnswerLedger | None = None,
        default_question_count: int = DEFAULT_NEXT_QUESTION_COUNT,
        max_question_count: int = MAX_NEXT_QUESTION_COUNT,
        answer_retry_limit: int = DEFAULT_RETRY_LIMIT,
        clock: Callable[[], datetime] | None = None,
        logger: Any | None = None,
    ) -> None:
        if not 1 <= default_question_count <= max_question_count:
            raise ValueError("default_question_count must be in [1, max_question_count]")
        self._repos = repos
        self._orchestrator = orchestrator
        self._factory = factory
        self._clock = clock if clock is not None else _utc_now
        self._logger = logger if logger is not None else structlog.get_logger(__name__)
        self._ledger = (
            ledger
            if ledger is not None
            else AnswerLedger(repos, retry_limit=answer_retry_limit, clock=self._clock)
        )
        self._default_question_count = default_question_count
        self._max_question_count = max_question_count

    @classmethod
    def from_config(
        cls,
        config: Mapping[str, Any],
        *,
        environ: Mapping[str, str] | None = None,
        factory: CompletionFactory | None = None,
    ) -> SpecService:
        """Wire the state DB, completion factory and stages from an effective config."""
        compiler_config = config.get("compiler", {})
        state_db = StateDB(str(config["paths"]["state_db"]))
        state_db.migrate()
        if factory is None:
            factory = CompletionFactory(
                config.get("providers"),
                environ=environ,
                backoff=BackoffConfig(max_retries=int(compiler_config.get("max_retries", 2))),
            )
        orchestrator = CompilerOrchestrator(
            factory=factory,
            settings=CompilerSettings.from_config(compiler_config),
        )
        return cls(
            Repositories(state_db),
            orchestrator,
            factory=factory,
            default_question_count=int(
                compiler_config.get("default_next_question_count", DEFAULT_NEXT_QUESTION_COUNT)
            ),
            max_question_count=int(
                compiler_config.get("max_next_question_count", MAX_NEXT_QUESTION_COUNT)
            ),
            answer_retry_limit=int(
                compiler_config.get("answer_retry_limit", DEFAULT_RETRY_LIMIT)
            ),
        )

    @property
    def ledger(self) -> AnswerLedger:
        return self._ledger

    # Projects and questions -------------------------------------------------

    def create_project(self, name: str, mode: ProjectMode | str = ProjectMode.ADVANCED) -> Project:
        """Persist a new project and seed its opening questions.

        Seeding runs after the project row commits; a seeding failure is logged and the
        project is still returned.
        """
        if not isinstance(name, str) or not name.strip():
            raise InvalidInputError("project name is required")
        try:
            resolved_mode = ProjectMode(mode)
        except ValueError as exc:
            raise InvalidInputError(f"unsupported project mode: {mode!r}") from exc

        now = self._clock()
        try:
            project = Project(
                id=ids.generate_project_id(),
                name=name.strip(),
                created_at=now,
                updated_at=now,
                mode=resolved_mode,
            )
        except ValueError as exc:
            raise InvalidInputError(str(exc)) from exc
        self._repos.projects.add(project)
        self._logger.info("project_created", project_id=project.id, mode=resolved_mode.value)

        try:
            seeds = seed_questions(project.id, resolved_mode, created_at=now)
            with self._repos.transaction() as tx:
                for question in seeds:
                    self._repos.questions.add(question, conn=tx)
        except _BEST_EFFORT_ERRORS as exc:
            self._logger.warning("project_seed_failed", project_id=project.id, error=str(exc))
        return project

    def list_projects(self, *, limit: int = 100, offset: int = 0) -> list[Project]:
        return self._repos.projects.list(limit=limit, offset=offset)

    def get_project(self, project_id: str) -> Project:
        if not ids.is_valid_prefixed_id(project_id, ids.PROJECT_ID_PREFIX):
            raise NotFoundError("project", str(project_id))
        project = self._repos.projects.get(project_id)
        if project is None:
            raise NotFoundError("project", project_id)
        return project

    def delete_project(self, project_id: str) -> None:
        """Remove a project with its questions, answers, snapshots and issues."""
        if not ids.is_valid_prefixed_id(project_id, ids.PROJECT_ID_PREFIX):
            raise NotFoundError("project", str(project_id))
        if not self._repos.projects.delete(project_id):
            raise NotFoundError("project", project_id)
        self._logger.info("project_deleted", project_id=project_id)

    def list_questions(
        self,
        project_id: str,
        *,
        status: QuestionStatus | str | None = None,
        tag: str | None = None,
    ) -> list[Question]:
        self.get_project(project_id)
        try:
            resolved_status = QuestionStatus(status) if status is not None else None
        except ValueError as exc:
            raise InvalidInputError(f"unsupported question status: {status!r}") from exc
        return self._repos.questions.list_for_project(project_id, status=resolved_status, tag=tag)

    # Answers ----------------------------------------------------------------

    def submit_answer(self, project_id: str, question_id: str, value: JSONValue) -> Answer:
        if value is None:
            raise InvalidInputError("answer value is required")
        self.get_project(project_id)
        question = self._question_in_project(project_id, question_id)
        answer = self._ledger.submit(question.id, value)
        if question.status is not QuestionStatus.ANSWERED:
            try:
                self._repos.questions.update_status(question.id, QuestionStatus.ANSWERED)
            except _BEST_EFFORT_ERRORS as exc:
                self._logger.warning(
                    "question_status_update_failed", question_id=question.id, error=str(exc)
                )
        return answer

    def answer_history(self, project_id: str, question_id: str) -> list[Answer]:
        self.get_project(project_id)
        question = self._question_in_project(project_id, question_id)
        return self._ledger.history(question.id)

    # Compilation ------------------------------------------------------------

    async def compile_project(
        self,
        project_id: str,
        *,
        provider_override: ProviderOverride | None = None,
    ) -> CompileOutcome:
        """Compile the latest answers into a new snapshot with hydrated issues.

        Raises :class:`PreconditionError` (``no_answers``) before any model call when the
        project has no answers, and :class:`CompilationFailed` when the compiler stage
        fails. Validator failures are logged and treated as "no issues".
        """
        project = self.get_project(project_id)
        with correlation_scope(project_id=project.id):
            answers = self._ledger.latest_for_project(project.id)
            if not answers:
                raise PreconditionError(
                    "no_answers", "project has no answers; answer at least one question first"
                )
            questions = {
                question.id: question
                for question in self._repos.questions.list_for_project(project.id)
            }
            bundles = build_qa_bundles(questions, answers)
            current = self._repos.snapshots.latest(project.id)

            result = await self._orchestrator.compile(
                project,
                bundles,
                current.spec if current is not None else None,
                provider_override=provider_override,
            )
            drafts = await self._validate_quietly(project, result, bundles, provider_override)

            snapshot_id = ids.generate_snapshot_id()
            now = self._clock()
            snapshot = SpecSnapshot(
                id=snapshot_id,
                project_id=project.id,
                spec=result.spec,
                trace=result.trace,
                derived_from=result.derived_from,
                compiler=result.compiler_meta,
                created_at=now,
            )
            issues = hydrate_issues(
                merge_drafts(result.local_drafts, drafts),
                project_id=project.id,
                snapshot_id=snapshot_id,
                known_question_ids=frozenset(questions),
                now=now,
            )
            stored = self._persist_compilation(project, snapshot, issues, now)
            self._logger.info(
                "snapshot_created",
                snapshot_id=snapshot_id,
                issues=len(stored),
                derived_from=len(result.derived_from),
            )
            return CompileOutcome(snapshot=snapshot, issues=tuple(stored))

    async def _validate_quietly(
        self,
        project: Project,
        result: CompileResult,
        bundles: list[QABundle],
        provider_override: ProviderOverride | None,
    ) -> list[IssueDraft]:
        try:
            return await self._orchestrator.validate(
                project, result, bundles, provider_override=provider_override
            )
        except ValidationFailed as exc:
            self._logger.warning("validator_failed", project_id=project.id, error=str(exc))
            return []

    def _persist_compilation(
        self,
        project: Project,
        snapshot: SpecSnapshot,
        issues: list[Issue],
        now: datetime,
    ) -> list[Issue]:
        stored: list[Issue] = []
        with self._repos.transaction() as tx:
            self._repos.snapshots.add(snapshot, conn=tx)
            for issue in issues:
                try:
                    with self._repos.transaction(conn=tx) as savepoint:
                        self._repos.issues.add(issue, conn=savepoint)
                except _BEST_EFFORT_ERRORS as exc:
                    self._logger.warning("issue_persist_failed", issue_id=issue.id, error=str(exc))
                    continue
                stored.append(issue)
            try:
                with self._repos.transaction(conn=tx) as savepoint:
                    self._repos.projects.update(
                        replace(project, updated_at=max(now, project.updated_at)),
                        conn=savepoint,
                    )
            except _BEST_EFFORT_ERRORS as exc:
                self._logger.warning("project_touch_failed", project_id=project.id, error=str(exc))
        return stored

    # Question generation and suggestions ------------------------------------

    async def generate_next_questions(
        self,
        project_id: str,
        count: int | None = None,
        *,
        mode: ProjectMode | str | None = None,
        provider_override: ProviderOverride | None = None,
    ) -> list[Question]:
        """Plan gaps, draft questions and persist at most ``count`` of them.

        ``count`` outside ``1..max`` falls back to the configured default. Drafts that do
        not form a valid question are skipped.
        """
        project = self.get_project(project_id)
        limit = self._resolve_count(count)
        resolved_mode = ProjectMode(mode) if mode is not None else project.mode
        with correlation_scope(project_id=project.id):
            current = self._repos.snapshots.latest(project.id)
            current_spec = current.spec if current is not None else None
            current_issues = (
                self._repos.issues.list_for_snapshot(current.id) if current is not None else []
            )
            existing = self._repos.questions.list_for_project(project.id)
            latest_answers = self._ledger.latest_for_project(project.id)

            plan = await self._orchestrator.plan(
                project,
                current_spec,
                current_issues,
                existing,
                latest_answers,
                mode=resolved_mode,
                provider_override=provider_override,
            )
            drafts = await self._orchestrator.ask(
                project,
                plan.suggestions,
                current_spec,
                existing,
                latest_answers,
                mode=resolved_mode,
                provider_override=provider_override,
            )

            now = self._clock()
            questions = self._questions_from_drafts(project.id, drafts, limit, now)
            with self._repos.transaction() as tx:
                for question in questions:
                    self._repos.questions.add(question, conn=tx)
            self._logger.info(
                "questions_generated",
                drafted=len(drafts),
                persisted=len(questions),
                requested=limit,
            )
            return questions

    async def suggest_answers(
        self,
        project_id: str,
        *,
        mode: ProjectMode | str | None = None,
        provider_override: ProviderOverride | None = None,
    ) -> list[AnswerSuggestion]:
        project = self.get_project(project_id)
        with correlation_scope(project_id=project.id):
            unanswered = self._repos.questions.list_for_project(
                project.id, status=QuestionStatus.UNANSWERED
            )
            current = self._repos.snapshots.latest(project.id)
            return await self._orchestrator.suggest(
                project,
                unanswered,
                self._ledger.latest_for_project(project.id),
                current.spec if current is not None else None,
                mode=ProjectMode(mode) if mode is not None else None,
                provider_override=provider_override,
            )

    def _resolve_count(self, count: int | None) -> int:
        if count is None or isinstance(count, bool) or not 1 <= count <= self._max_question_count:
            return self._default_question_count
        return count

    def _questions_from_drafts(
        self,
        project_id: str,
        drafts: list[QuestionDraft],
        limit: int,
        now: datetime,
    ) -> list[Question]:
        questions: list[Question] = []
        for draft in drafts:
            if len(questions) >= limit:
                break
            try:
                questions.append(
                    Question(
                        id=ids.generate_question_id(),
                        project_id=project_id,
                        text=draft.text,
                        kind=draft.kind,
                        created_at=now,
                        options=draft.options,
                        tags=draft.tags,
                        priority=draft.priority,
                        spec_paths=draft.spec_paths,
                    )
                )
            except ValueError as exc:
                self._logger.warning("question_draft_skipped", text=draft.text, error=str(exc))
        return questions

    # Snapshots, traces and issues -------------------------------------------

    def list_snapshots(
        self, project_id: str, *, limit: int = 100, offset: int = 0
    ) -> list[SpecSnapshot]:
        self.get_project(project_id)
        return self._repos.snapshots.list_for_project(project_id, limit=limit, offset=offset)

    def get_snapshot(self, snapshot_id: str) -> SpecSnapshot:
        if not ids.is_valid_prefixed_id(snapshot_id, ids.SNAPSHOT_ID_PREFIX):
            raise NotFoundError("snapshot", str(snapshot_id))
        snapshot = self._repos.snapshots.get(snapshot_id)
        if snapshot is None:
            raise NotFoundError("snapshot", snapshot_id)
        return snapshot

    def latest_snapshot(self, project_id: str) -> SpecSnapshot | None:
        self.get_project(project_id)
        return self._repos.snapshots.latest(project_id)

    def latest_trace(self, project_id: str) -> Trace | None:
        snapshot = self.latest_snapshot(project_id)
        return snapshot.trace if snapshot is not None else None

    def issues_for_snapshot(self, snapshot_id: str) -> list[Issue]:
        snapshot = self.get_snapshot(snapshot_id)
        return self._repos.issues.list_for_snapshot(snapshot.id)

    def diff_snapshots(self, project_id: str, base_id: str, target_id: str) -> SnapshotDiff:
        """Diff two snapshots of the same project and classify the impact."""
        self.get_project(project_id)
        base = self._snapshot_in_project(project_id, base_id)
        target = self._snapshot_in_project(project_id, target_id)
        result = diff(base.spec, target.spec, base_id=base.id, target_id=target.id)
        return SnapshotDiff(diff=result, impact=analyze_impact(result))

    def list_providers(self) -> list[ProviderInfo]:
        if self._factory is None:
            return []
        return self._factory.list_providers()

    def _question_in_project(self, project_id: str, question_id: str) -> Question:
        if not ids.is_valid_prefixed_id(question_id, ids.QUESTION_ID_PREFIX):
            raise NotFoundError("question", str(question_id))
        question = self._repos.questions.get(question_id)
        if question is None or question.project_id != project_id:
            raise NotFoundError("question", question_id)
        return question

    def _snapshot_in_project(self, project_id: str, snapshot_id: str) -> SpecSnapshot:
        snapshot = self.get_snapshot(snapshot_id)
        if snapshot.project_id != project_id:
            raise NotFoundError("snapshot", snapshot_id)
        return snapshot


__all__ = ["CompileOutcome", "SnapshotDiff", "SpecService"]
