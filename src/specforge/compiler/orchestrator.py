"""
Compiler orchestrator: the model-driven stages of the pipeline.

Each stage renders its versioned prompt, makes one completion call with a caller-bounded
timeout and parses the reply. Stages never touch the store; the workflow service persists
their results. Completion and parse failures surface as the stage's error with the cause
chained. Nothing is retried at this layer beyond the adapters' own transport backoff.
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

import structlog

from specforge.completion.base import CompletionError, CompletionService, Message
from specforge.completion.factory import CompletionFactory
from specforge.compiler.bundles import derived_from as derive_sources
from specforge.compiler.issues import drafts_from_schema_report, drafts_from_trace_gaps
from specforge.compiler.outputs import (
    parse_answer_suggestions,
    parse_compile_output,
    parse_issue_drafts,
    parse_plan,
    parse_question_drafts,
)
from specforge.constants import (
    COMPILE_MAX_TOKENS,
    COMPILE_TEMPERATURE,
    PROMPT_VERSION,
    STAGE_MAX_TOKENS,
    SUGGESTER_TEMPERATURE,
)
from specforge.domain.errors import (
    AskerFailed,
    CompilationFailed,
    PlannerFailed,
    PreconditionError,
    StageError,
    SuggesterFailed,
    ValidationFailed,
)
from specforge.domain.json_value import JSONValue
from specforge.domain.models import (
    Answer,
    AnswerSuggestion,
    CompilerMeta,
    Issue,
    IssueDraft,
    Plan,
    PlanSuggestion,
    Project,
    ProjectMode,
    QABundle,
    Question,
    QuestionDraft,
)
from specforge.domain.trace import Trace, TraceGap, find_trace_gaps
from specforge.prompts.engine import PromptLibrary, PromptRole
from specforge.validation.schema_validator import SchemaReport, SchemaValidator

_NO_ANSWERS_TEXT = "No answers yet."


@dataclass(frozen=True, slots=True)
class CompilerSettings:
    prompt_version: str = PROMPT_VERSION
    compile_timeout_seconds: float = 300.0
    stage_timeout_seconds: float = 120.0
    compile_max_tokens: int = COMPILE_MAX_TOKENS
    stage_max_tokens: int = STAGE_MAX_TOKENS
    suggester_temperature: float = SUGGESTER_TEMPERATURE

    @classmethod
    def from_config(cls, compiler_config: Mapping[str, Any]) -> CompilerSettings:
        defaults = cls()
        return cls(
            prompt_version=str(compiler_config.get("prompt_version", defaults.prompt_version)),
            compile_timeout_seconds=float(
                compiler_config.get("compile_timeout_seconds", defaults.compile_timeout_seconds)
            ),
            stage_timeout_seconds=float(
                compiler_config.get("stage_timeout_seconds", defaults.stage_timeout_seconds)
            ),
            compile_max_tokens=int(
                compiler_config.get("compile_max_tokens", defaults.compile_max_tokens)
            ),
            stage_max_tokens=int(
                compiler_config.get("stage_max_tokens", defaults.stage_max_tokens)
            ),
            suggester_temperature=float(
                compiler_config.get("suggester_temperature", defaults.suggester_temperature)
            ),
        )


@dataclass(frozen=True, slots=True)
class ProviderOverride:
    """Selects a non-default completion service; ``model=None`` uses the provider default."""

    provider: str
    model: str | None = None


@dataclass(frozen=True, slots=True)
class CompileResult:
    spec: dict[str, JSONValue]
    trace: Trace
    derived_from: dict[str, int]
    compiler_meta: CompilerMeta
    schema_report: SchemaReport
    trace_gaps: tuple[TraceGap, ...] = ()
    prompt_hash: str = ""
    local_drafts: tuple[IssueDraft, ...] = field(default=(), repr=False)


class CompilerOrchestrator:
    """Runs the compiler, validator, planner, asker and suggester stages."""

    def __init__(
        self,
        completion: CompletionService | None = None,
        *,
        factory: CompletionFactory | None = None,
        prompts: PromptLibrary | None = None,
        schema_validator: SchemaValidator | None = None,
        settings: CompilerSettings | None = None,
        logger: Any | None = None,
    ) -> None:
        if completion is None and factory is None:
            raise ValueError("either completion or factory is required")
        self._completion = completion
        self._factory = factory
        self._settings = settings if settings is not None else CompilerSettings()
        if prompts is None:
            prompts = PromptLibrary(version=self._settings.prompt_version)
        self._prompts = prompts
        self._schema_validator = (
            schema_validator if schema_validator is not None else SchemaValidator()
        )
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    @property
    def settings(self) -> CompilerSettings:
        return self._settings

    async def compile(
        self,
        project: Project,
        qa_bundles: Sequence[QABundle],
        current_spec: Mapping[str, JSONValue] | None = None,
        *,
        provider_override: ProviderOverride | None = None,
    ) -> CompileResult:
        """Run the compiler stage over ``qa_bundles``.

        Raises :class:`PreconditionError` (``no_answers``) before provider resolution when
        there is nothing to compile.
        """
        if not qa_bundles:
            raise PreconditionError(
                "no_answers", "nothing to compile; answer at least one question first"
            )
        service = self._resolve_service(provider_override, CompilationFailed)
        rendered = self._prompts.render(
            PromptRole.COMPILER,
            mode=project.mode,
            variables={
                "PROJECT": project.to_dict(),
                "QA_BUNDLE_JSON": [bundle.to_dict() for bundle in qa_bundles],
                "CURRENT_SPEC_JSON": dict(current_spec) if current_spec else {},
            },
        )
        self._logger.info(
            "compile_started",
            project_id=project.id,
            provider=service.name,
            model=service.model,
            bundles=len(qa_bundles),
            prompt_hash=rendered.prompt_hash,
        )
        content = await self._complete(
            service,
            rendered.prompt,
            temperature=COMPILE_TEMPERATURE,
            max_tokens=self._settings.compile_max_tokens,
            timeout_seconds=self._settings.compile_timeout_seconds,
            error_type=CompilationFailed,
        )
        spec, trace = parse_compile_output(content)

        schema_report = self._schema_validator.validate(spec)
        if not schema_report.valid:
            self._logger.warning(
                "compile_schema_invalid",
                project_id=project.id,
                violations=len(schema_report.errors),
            )
        trace_gaps = find_trace_gaps(spec, trace)
        result = CompileResult(
            spec=spec,
            trace=trace,
            derived_from=derive_sources(qa_bundles),
            compiler_meta=CompilerMeta(
                model=service.model,
                provider=service.name,
                prompt_version=self._prompts.version,
                temperature=COMPILE_TEMPERATURE,
            ),
            schema_report=schema_report,
            trace_gaps=trace_gaps,
            prompt_hash=rendered.prompt_hash,
            local_drafts=tuple(
                drafts_from_schema_report(schema_report) + drafts_from_trace_gaps(trace_gaps)
            ),
        )
        self._logger.info(
            "compile_completed",
            project_id=project.id,
            trace_paths=len(trace),
            trace_gaps=len(trace_gaps),
            schema_valid=schema_report.valid,
        )
        return result

    async def validate(
        self,
        project: Project,
        compile_result: CompileResult,
        qa_bundles: Sequence[QABundle],
        *,
        provider_override: ProviderOverride | None = None,
    ) -> list[IssueDraft]:
        """Ask the model to review a compiled document; raises :class:`ValidationFailed`."""
        service = self._resolve_service(provider_override, ValidationFailed)
        report = compile_result.schema_report
        rendered = self._prompts.render(
            PromptRole.VALIDATOR,
            mode=project.mode,
            variables={
                "PROJECT": project.name,
                "COMPILED_SPEC_JSON": compile_result.spec,
                "TRACE_JSON": compile_result.trace.to_dict(),
                "SCHEMA_VALIDATION_JSON": {
                    "is_valid": report.valid,
                    "errors": [violation.to_dict() for violation in report.errors],
                },
                "QA_BUNDLE_JSON": [bundle.to_dict() for bundle in qa_bundles],
            },
        )
        content = await self._complete(
            service,
            rendered.prompt,
            temperature=COMPILE_TEMPERATURE,
            max_tokens=self._settings.stage_max_tokens,
            timeout_seconds=self._settings.stage_timeout_seconds,
            error_type=ValidationFailed,
        )
        drafts = parse_issue_drafts(content)
        self._logger.info("validate_completed", project_id=project.id, issues=len(drafts))
        return drafts

    async def plan(
        self,
        project: Project,
        current_spec: Mapping[str, JSONValue] | None,
        current_issues: Sequence[Issue],
        existing_questions: Sequence[Question],
        latest_answers: Sequence[Answer],
        *,
        mode: ProjectMode | None = None,
        provider_override: ProviderOverride | None = None,
    ) -> Plan:
        service = self._resolve_service(provider_override, PlannerFailed)
        rendered = self._prompts.render(
            PromptRole.PLANNER,
            mode=mode or project.mode,
            variables={
                "PROJECT": project.to_dict(),
                "CURRENT_SPEC_JSON": dict(current_spec) if current_spec else {},
                "CURRENT_ISSUES_JSON": [issue.to_dict() for issue in current_issues],
                "EXISTING_QUESTIONS_JSON": [question.to_dict() for question in existing_questions],
                "LATEST_ANSWERS_JSON": [answer.to_dict() for answer in latest_answers],
            },
        )
        content = await self._complete(
            service,
            rendered.prompt,
            temperature=COMPILE_TEMPERATURE,
            max_tokens=self._settings.stage_max_tokens,
            timeout_seconds=self._settings.stage_timeout_seconds,
            error_type=PlannerFailed,
        )
        plan = parse_plan(content)
        self._logger.info(
            "plan_completed",
            project_id=project.id,
            targets=len(plan.targets),
            suggestions=len(plan.suggestions),
        )
        return plan

    async def ask(
        self,
        project: Project,
        planner_suggestions: Sequence[PlanSuggestion],
        current_spec: Mapping[str, JSONValue] | None,
        existing_questions: Sequence[Question],
        latest_answers: Sequence[Answer],
        *,
        mode: ProjectMode | None = None,
        provider_override: ProviderOverride | None = None,
    ) -> list[QuestionDraft]:
        service = self._resolve_service(provider_override, AskerFailed)
        rendered = self._prompts.render(
            PromptRole.ASKER,
            mode=mode or project.mode,
            variables={
                "PROJECT": project.to_dict(),
                "PLANNER_SUGGESTIONS_JSON": [item.to_dict() for item in planner_suggestions],
                "CURRENT_SPEC_JSON": dict(current_spec) if current_spec else {},
                "EXISTING_QUESTIONS_JSON": [question.to_dict() for question in existing_questions],
                "LATEST_ANSWERS_JSON": [answer.to_dict() for answer in latest_answers],
            },
        )
        content = await self._complete(
            service,
            rendered.prompt,
            temperature=COMPILE_TEMPERATURE,
            max_tokens=self._settings.stage_max_tokens,
            timeout_seconds=self._settings.stage_timeout_seconds,
            error_type=AskerFailed,
        )
        drafts = parse_question_drafts(content)
        self._logger.info("ask_completed", project_id=project.id, questions=len(drafts))
        return drafts

    async def suggest(
        self,
        project: Project,
        unanswered_questions: Sequence[Question],
        latest_answers: Sequence[Answer],
        current_spec: Mapping[str, JSONValue] | None,
        *,
        mode: ProjectMode | None = None,
        provider_override: ProviderOverride | None = None,
    ) -> list[AnswerSuggestion]:
        """Draft answers for open questions; no completion call when there are none."""
        if not unanswered_questions:
            return []
        service = self._resolve_service(provider_override, SuggesterFailed)
        resolved_mode = ProjectMode(mode or project.mode)
        rendered = self._prompts.render(
            PromptRole.SUGGESTER,
            mode=resolved_mode,
            variables={
                "PROJECT_NAME": project.name,
                "PROJECT_MODE": resolved_mode.value,
                "EXISTING_ANSWERS": _answers_text(latest_answers),
                "CURRENT_SPEC": dict(current_spec) if current_spec else {},
                "UNANSWERED_QUESTIONS": [_question_brief(q) for q in unanswered_questions],
            },
        )
        content = await self._complete(
            service,
            rendered.prompt,
            temperature=self._settings.suggester_temperature,
            max_tokens=self._settings.stage_max_tokens,
            timeout_seconds=self._settings.stage_timeout_seconds,
            error_type=SuggesterFailed,
        )
        open_ids = {question.id for question in unanswered_questions}
        suggestions = [
            item for item in parse_answer_suggestions(content) if item.question_id in open_ids
        ]
        self._logger.info("suggest_completed", project_id=project.id, suggestions=len(suggestions))
        return suggestions

    def _resolve_service(
        self,
        override: ProviderOverride | None,
        error_type: type[StageError],
    ) -> CompletionService:
        try:
            if override is not None:
                if self._factory is None:
                    raise ValueError("provider override requires a completion factory")
                return self._factory.create(override.provider, override.model)
            if self._completion is None:
                assert self._factory is not None
                self._completion = self._factory.default()
            return self._completion
        except (CompletionError, ValueError) as exc:
            raise error_type(f"no completion service: {exc}") from exc

    async def _complete(
        self,
        service: CompletionService,
        prompt: str,
        *,
        temperature: float,
        max_tokens: int,
        timeout_seconds: float,
        error_type: type[StageError],
    ) -> str:
        try:
            completion = await asyncio.wait_for(
                service.complete(
                    [Message.user(prompt)], temperature=temperature, max_tokens=max_tokens
                ),
                timeout=timeout_seconds,
            )
        except asyncio.TimeoutError as exc:
            self._logger.warning(
                "stage_timeout", stage=error_type.stage, timeout_seconds=timeout_seconds
            )
            raise error_type(f"completion timed out after {timeout_seconds}s") from exc
        except CompletionError as exc:
            self._logger.warning(
                "stage_completion_failed", stage=error_type.stage, code=exc.code
            )
            raise error_type(f"completion failed: {exc}") from exc
        return completion.content


def _answers_text(answers: Sequence[Answer]) -> str | list[dict[str, JSONValue]]:
    if not answers:
        return _NO_ANSWERS_TEXT
    return [
        {"question_id": answer.question_id, "value": answer.value, "version": answer.version}
        for answer in answers
    ]


def _question_brief(question: Question) -> dict[str, JSONValue]:
    brief: dict[str, JSONValue] = {
        "id": question.id,
        "text": question.text,
        "type": question.kind.value,
    }
    if question.options:
        brief["options"] = list(question.options)
    if question.spec_paths:
        brief["spec_path"] = question.spec_paths[0]
    return brief


__all__ = [
    "CompileResult",
    "CompilerOrchestrator",
    "CompilerSettings",
    "ProviderOverride",
]
