"""Dataclass domain models with strict validation and canonical serialization."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum

from specforge.domain import ids as domain_ids
from specforge.domain.canonical import (
    CanonicalModel,
    as_datetime,
    as_enum,
    as_float,
    as_int,
    as_json_object,
    as_json_value,
    as_optional_str,
    as_sequence,
    as_str,
    as_str_tuple,
    expect_object,
    fail,
)
from specforge.domain.json_value import JSONValue
from specforge.domain.trace import Trace

_MAX_NAME = 256
_MAX_PRIORITY = 1000


class ProjectMode(StrEnum):
    BASIC = "basic"
    ADVANCED = "advanced"


class QuestionKind(StrEnum):
    SINGLE = "single"
    MULTI = "multi"
    FREEFORM = "freeform"


class QuestionStatus(StrEnum):
    UNANSWERED = "unanswered"
    ANSWERED = "answered"
    NEEDS_REVIEW = "needs_review"


class IssueKind(StrEnum):
    SCHEMA_VIOLATION = "schema_violation"
    SEMANTIC_CONFLICT = "semantic_conflict"
    MISSING_INFO = "missing_info"
    ASSUMPTION = "assumption"
    AMBIGUITY = "ambiguity"


class IssueSeverity(StrEnum):
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


class GapType(StrEnum):
    MISSING = "missing"
    CONFLICT = "conflict"
    ASSUMPTION = "assumption"
    UNCERTAINTY = "uncertainty"


class Confidence(StrEnum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


def _validate_id(validator: object, value: object, path: str) -> str:
    parsed = as_str(value, path)
    try:
        validator(parsed)  # type: ignore[operator]
    except ValueError as exc:
        fail(path, str(exc))
    return parsed


def _validate_options(kind: QuestionKind, options: tuple[str, ...], path: str) -> None:
    if kind is QuestionKind.FREEFORM and options:
        fail(path, "freeform questions must not carry options")
    if kind is not QuestionKind.FREEFORM and not options:
        fail(path, f"{kind.value} questions require at least one option")


@dataclass(slots=True)
class Project(CanonicalModel):
    id: str
    name: str
    created_at: datetime
    updated_at: datetime
    mode: ProjectMode = ProjectMode.ADVANCED

    def __post_init__(self) -> None:
        self.id = _validate_id(domain_ids.validate_project_id, self.id, "Project.id")
        self.name = as_str(self.name, "Project.name", max_len=_MAX_NAME)
        self.mode = as_enum(ProjectMode, self.mode, "Project.mode")
        self.created_at = as_datetime(self.created_at, "Project.created_at")
        self.updated_at = as_datetime(self.updated_at, "Project.updated_at")
        if self.updated_at < self.created_at:
            fail("Project.updated_at", "must be >= created_at")

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> Project:
        parsed = expect_object(
            data,
            "Project",
            required={"id", "name", "created_at", "updated_at"},
            optional={"mode"},
        )
        return cls(
            id=as_str(parsed["id"], "Project.id"),
            name=as_str(parsed["name"], "Project.name", max_len=_MAX_NAME),
            created_at=as_datetime(parsed["created_at"], "Project.created_at"),
            updated_at=as_datetime(parsed["updated_at"], "Project.updated_at"),
            mode=as_enum(
                ProjectMode, parsed.get("mode", ProjectMode.ADVANCED.value), "Project.mode"
            ),
        )


@dataclass(slots=True)
class Question(CanonicalModel):
    id: str
    project_id: str
    text: str
    kind: QuestionKind
    created_at: datetime
    options: tuple[str, ...] = ()
    tags: tuple[str, ...] = ()
    priority: int = 0
    spec_paths: tuple[str, ...] = ()
    status: QuestionStatus = QuestionStatus.UNANSWERED

    def __post_init__(self) -> None:
        self.id = _validate_id(domain_ids.validate_question_id, self.id, "Question.id")
        self.project_id = _validate_id(
            domain_ids.validate_project_id, self.project_id, "Question.project_id"
        )
        self.text = as_str(self.text, "Question.text")
        self.kind = as_enum(QuestionKind, self.kind, "Question.kind")
        self.options = as_str_tuple(self.options, "Question.options", unique=True)
        _validate_options(self.kind, self.options, "Question.options")
        self.tags = as_str_tuple(self.tags, "Question.tags", max_len=64)
        self.priority = as_int(self.priority, "Question.priority", minimum=0)
        if self.priority > _MAX_PRIORITY:
            fail("Question.priority", f"must be <= {_MAX_PRIORITY}")
        self.spec_paths = as_str_tuple(self.spec_paths, "Question.spec_paths", max_len=512)
        self.status = as_enum(QuestionStatus, self.status, "Question.status")
        self.created_at = as_datetime(self.created_at, "Question.created_at")

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> Question:
        parsed = expect_object(
            data,
            "Question",
            required={"id", "project_id", "text", "kind", "created_at"},
            optional={"options", "tags", "priority", "spec_paths", "status"},
        )
        return cls(
            id=as_str(parsed["id"], "Question.id"),
            project_id=as_str(parsed["project_id"], "Question.project_id"),
            text=as_str(parsed["text"], "Question.text"),
            kind=as_enum(QuestionKind, parsed["kind"], "Question.kind"),
            created_at=as_datetime(parsed["created_at"], "Question.created_at"),
            options=as_str_tuple(parsed.get("options", ()), "Question.options"),
            tags=as_str_tuple(parsed.get("tags", ()), "Question.tags"),
            priority=as_int(parsed.get("priority", 0), "Question.priority"),
            spec_paths=as_str_tuple(parsed.get("spec_paths", ()), "Question.spec_paths"),
            status=as_enum(
                QuestionStatus,
                parsed.get("status", QuestionStatus.UNANSWERED.value),
                "Question.status",
            ),
        )


@dataclass(slots=True)
class Answer(CanonicalModel):
    """One immutable version of the answer to a question.

    Version 1 never supersedes anything; every later version names its predecessor.
    """

    id: str
    project_id: str
    question_id: str
    value: JSONValue
    version: int
    created_at: datetime
    supersedes: str | None = None

    def __post_init__(self) -> None:
        self.id = _validate_id(domain_ids.validate_answer_id, self.id, "Answer.id")
        self.project_id = _validate_id(
            domain_ids.validate_project_id, self.project_id, "Answer.project_id"
        )
        self.question_id = _validate_id(
            domain_ids.validate_question_id, self.question_id, "Answer.question_id"
        )
        self.value = as_json_value(self.value, "Answer.value")
        self.version = as_int(self.version, "Answer.version", minimum=1)
        self.created_at = as_datetime(self.created_at, "Answer.created_at")
        if self.supersedes is not None:
            self.supersedes = _validate_id(
                domain_ids.validate_answer_id, self.supersedes, "Answer.supersedes"
            )
        if (self.version == 1) != (self.supersedes is None):
            fail("Answer.supersedes", "must be set exactly when version > 1")

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> Answer:
        parsed = expect_object(
            data,
            "Answer",
            required={"id", "project_id", "question_id", "value", "version", "created_at"},
            optional={"supersedes"},
        )
        return cls(
            id=as_str(parsed["id"], "Answer.id"),
            project_id=as_str(parsed["project_id"], "Answer.project_id"),
            question_id=as_str(parsed["question_id"], "Answer.question_id"),
            value=as_json_value(parsed["value"], "Answer.value"),
            version=as_int(parsed["version"], "Answer.version", minimum=1),
            created_at=as_datetime(parsed["created_at"], "Answer.created_at"),
            supersedes=as_optional_str(parsed.get("supersedes"), "Answer.supersedes"),
        )


@dataclass(frozen=True, slots=True)
class CompilerMeta(CanonicalModel):
    """Which model, provider and prompt version produced a snapshot."""

    model: str
    provider: str
    prompt_version: str
    temperature: float = 0.0
    seed: int | None = None

    def __post_init__(self) -> None:
        as_str(self.model, "CompilerMeta.model")
        as_str(self.provider, "CompilerMeta.provider", max_len=64)
        as_str(self.prompt_version, "CompilerMeta.prompt_version", max_len=32)
        as_float(self.temperature, "CompilerMeta.temperature", minimum=0.0)
        if self.seed is not None:
            as_int(self.seed, "CompilerMeta.seed")

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> CompilerMeta:
        parsed = expect_object(
            data,
            "CompilerMeta",
            required={"model", "provider", "prompt_version"},
            optional={"temperature", "seed"},
        )
        seed = parsed.get("seed")
        return cls(
            model=as_str(parsed["model"], "CompilerMeta.model"),
            provider=as_str(parsed["provider"], "CompilerMeta.provider"),
            prompt_version=as_str(parsed["prompt_version"], "CompilerMeta.prompt_version"),
            temperature=as_float(parsed.get("temperature", 0.0), "CompilerMeta.temperature"),
            seed=None if seed is None else as_int(seed, "CompilerMeta.seed"),
        )


@dataclass(slots=True)
class SpecSnapshot(CanonicalModel):
    id: str
    project_id: str
    spec: dict[str, JSONValue]
    trace: Trace
    derived_from: dict[str, int]
    compiler: CompilerMeta
    created_at: datetime

    def __post_init__(self) -> None:
        self.id = _validate_id(domain_ids.validate_snapshot_id, self.id, "SpecSnapshot.id")
        self.project_id = _validate_id(
            domain_ids.validate_project_id, self.project_id, "SpecSnapshot.project_id"
        )
        self.spec = as_json_object(self.spec, "SpecSnapshot.spec")
        if not isinstance(self.trace, Trace):
            fail("SpecSnapshot.trace", f"expected Trace, got {type(self.trace).__name__}")
        self.derived_from = _parse_derived_from(self.derived_from, "SpecSnapshot.derived_from")
        if not isinstance(self.compiler, CompilerMeta):
            fail(
                "SpecSnapshot.compiler",
                f"expected CompilerMeta, got {type(self.compiler).__name__}",
            )
        self.created_at = as_datetime(self.created_at, "SpecSnapshot.created_at")

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> SpecSnapshot:
        parsed = expect_object(
            data,
            "SpecSnapshot",
            required={
                "id",
                "project_id",
                "spec",
                "trace",
                "derived_from",
                "compiler",
                "created_at",
            },
        )
        trace_raw = parsed["trace"]
        compiler_raw = parsed["compiler"]
        if not isinstance(trace_raw, Mapping):
            fail("SpecSnapshot.trace", "expected object")
        if not isinstance(compiler_raw, Mapping):
            fail("SpecSnapshot.compiler", "expected object")
        return cls(
            id=as_str(parsed["id"], "SpecSnapshot.id"),
            project_id=as_str(parsed["project_id"], "SpecSnapshot.project_id"),
            spec=as_json_object(parsed["spec"], "SpecSnapshot.spec"),
            trace=Trace.from_dict(trace_raw),
            derived_from=_parse_derived_from(parsed["derived_from"], "SpecSnapshot.derived_from"),
            compiler=CompilerMeta.from_dict(compiler_raw),
            created_at=as_datetime(parsed["created_at"], "SpecSnapshot.created_at"),
        )


def _parse_derived_from(value: object, path: str) -> dict[str, int]:
    if not isinstance(value, Mapping):
        fail(path, f"expected object, got {type(value).__name__}")
    parsed: dict[str, int] = {}
    for key, item in value.items():
        question_id = as_str(key, f"{path}.<key>")
        parsed[question_id] = as_int(item, f"{path}.{question_id}", minimum=1)
    return dict(sorted(parsed.items()))


@dataclass(slots=True)
class IssueDraft(CanonicalModel):
    """An issue as emitted by a stage, before it has identity or a snapshot.

    ``question_ids`` are raw strings; hydration drops the ones that do not parse.
    """

    kind: IssueKind
    severity: IssueSeverity
    message: str
    spec_paths: tuple[str, ...] = ()
    question_ids: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        self.kind = as_enum(IssueKind, self.kind, "IssueDraft.kind")
        self.severity = as_enum(IssueSeverity, self.severity, "IssueDraft.severity")
        self.message = as_str(self.message, "IssueDraft.message")
        self.spec_paths = as_str_tuple(self.spec_paths, "IssueDraft.spec_paths")
        self.question_ids = tuple(
            str(item).strip() for item in as_sequence(self.question_ids, "IssueDraft.question_ids")
        )

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> IssueDraft:
        parsed = expect_object(
            data,
            "IssueDraft",
            required={"kind", "severity", "message"},
            optional={"spec_paths", "question_ids"},
            allow_unknown=True,
        )
        return cls(
            kind=as_enum(IssueKind, parsed["kind"], "IssueDraft.kind"),
            severity=as_enum(IssueSeverity, parsed["severity"], "IssueDraft.severity"),
            message=as_str(parsed["message"], "IssueDraft.message"),
            spec_paths=as_str_tuple(_or_empty(parsed.get("spec_paths")), "IssueDraft.spec_paths"),
            question_ids=tuple(
                str(item)
                for item in as_sequence(
                    _or_empty(parsed.get("question_ids")), "IssueDraft.question_ids"
                )
            ),
        )


@dataclass(slots=True)
class Issue(CanonicalModel):
    id: str
    project_id: str
    snapshot_id: str
    kind: IssueKind
    severity: IssueSeverity
    message: str
    created_at: datetime
    spec_paths: tuple[str, ...] = ()
    question_ids: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        self.id = _validate_id(domain_ids.validate_issue_id, self.id, "Issue.id")
        self.project_id = _validate_id(
            domain_ids.validate_project_id, self.project_id, "Issue.project_id"
        )
        self.snapshot_id = _validate_id(
            domain_ids.validate_snapshot_id, self.snapshot_id, "Issue.snapshot_id"
        )
        self.kind = as_enum(IssueKind, self.kind, "Issue.kind")
        self.severity = as_enum(IssueSeverity, self.severity, "Issue.severity")
        self.message = as_str(self.message, "Issue.message")
        self.created_at = as_datetime(self.created_at, "Issue.created_at")
        self.spec_paths = as_str_tuple(self.spec_paths, "Issue.spec_paths")
        self.question_ids = tuple(
            _validate_id(domain_ids.validate_question_id, item, f"Issue.question_ids[{index}]")
            for index, item in enumerate(as_sequence(self.question_ids, "Issue.question_ids"))
        )

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> Issue:
        parsed = expect_object(
            data,
            "Issue",
            required={
                "id",
                "project_id",
                "snapshot_id",
                "kind",
                "severity",
                "message",
                "created_at",
            },
            optional={"spec_paths", "question_ids"},
        )
        return cls(
            id=as_str(parsed["id"], "Issue.id"),
            project_id=as_str(parsed["project_id"], "Issue.project_id"),
            snapshot_id=as_str(parsed["snapshot_id"], "Issue.snapshot_id"),
            kind=as_enum(IssueKind, parsed["kind"], "Issue.kind"),
            severity=as_enum(IssueSeverity, parsed["severity"], "Issue.severity"),
            message=as_str(parsed["message"], "Issue.message"),
            created_at=as_datetime(parsed["created_at"], "Issue.created_at"),
            spec_paths=as_str_tuple(parsed.get("spec_paths", ()), "Issue.spec_paths"),
            question_ids=as_str_tuple(parsed.get("question_ids", ()), "Issue.question_ids"),
        )


@dataclass(frozen=True, slots=True)
class QABundle(CanonicalModel):
    """A question joined with its latest answer, as handed to the model stages."""

    question_id: str
    question_text: str
    question_type: QuestionKind
    answer_id: str
    answer_value: JSONValue
    answer_version: int
    question_tags: tuple[str, ...] = ()
    question_spec_paths: tuple[str, ...] = ()

    @classmethod
    def join(cls, question: Question, answer: Answer) -> QABundle:
        if answer.question_id != question.id:
            fail("QABundle", f"answer {answer.id} does not belong to question {question.id}")
        return cls(
            question_id=question.id,
            question_text=question.text,
            question_type=question.kind,
            answer_id=answer.id,
            answer_value=answer.value,
            answer_version=answer.version,
            question_tags=question.tags,
            question_spec_paths=question.spec_paths,
        )


# ------------------------------------------------------------------
# Stage outputs (parsed from model responses; unknown fields ignored)
# ------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class PlanTarget(CanonicalModel):
    gap_type: GapType
    spec_paths: tuple[str, ...]
    why_now: str
    suggested_question_count: int = 1

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> PlanTarget:
        parsed = expect_object(
            data, "PlanTarget", required={"gap_type"}, allow_unknown=True
        )
        return cls(
            gap_type=as_enum(GapType, parsed["gap_type"], "PlanTarget.gap_type"),
            spec_paths=as_str_tuple(_or_empty(parsed.get("spec_paths")), "PlanTarget.spec_paths"),
            why_now=_text_or_empty(parsed.get("why_now"), "PlanTarget.why_now"),
            suggested_question_count=as_int(
                parsed.get("suggested_question_count", 1),
                "PlanTarget.suggested_question_count",
                minimum=0,
            ),
        )


@dataclass(frozen=True, slots=True)
class PlanSuggestion(CanonicalModel):
    key: str
    question_intent: str
    recommended_type: QuestionKind
    recommended_options: tuple[str, ...] = ()
    priority: int = 0
    tags: tuple[str, ...] = ()
    spec_paths: tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> PlanSuggestion:
        parsed = expect_object(
            data,
            "PlanSuggestion",
            required={"question_intent"},
            allow_unknown=True,
        )
        return cls(
            key=_text_or_empty(parsed.get("key"), "PlanSuggestion.key"),
            question_intent=as_str(parsed["question_intent"], "PlanSuggestion.question_intent"),
            recommended_type=as_enum(
                QuestionKind,
                parsed.get("recommended_type") or QuestionKind.FREEFORM.value,
                "PlanSuggestion.recommended_type",
            ),
            recommended_options=as_str_tuple(
                _or_empty(parsed.get("recommended_options")),
                "PlanSuggestion.recommended_options",
            ),
            priority=as_int(parsed.get("priority", 0), "PlanSuggestion.priority", minimum=0),
            tags=as_str_tuple(_or_empty(parsed.get("tags")), "PlanSuggestion.tags"),
            spec_paths=as_str_tuple(
                _or_empty(parsed.get("spec_paths")), "PlanSuggestion.spec_paths"
            ),
        )


@dataclass(frozen=True, slots=True)
class Plan(CanonicalModel):
    rationale: str = ""
    targets: tuple[PlanTarget, ...] = ()
    suggestions: tuple[PlanSuggestion, ...] = ()

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> Plan:
        parsed = expect_object(data, "Plan", required=set(), allow_unknown=True)
        return cls(
            rationale=_text_or_empty(parsed.get("rationale"), "Plan.rationale"),
            targets=tuple(
                PlanTarget.from_dict(item)  # type: ignore[arg-type]
                for item in as_sequence(_or_empty(parsed.get("targets")), "Plan.targets")
            ),
            suggestions=tuple(
                PlanSuggestion.from_dict(item)  # type: ignore[arg-type]
                for item in as_sequence(_or_empty(parsed.get("suggestions")), "Plan.suggestions")
            ),
        )


@dataclass(frozen=True, slots=True)
class QuestionDraft(CanonicalModel):
    """A question proposed by the asker stage; becomes a :class:`Question` once persisted."""

    text: str
    kind: QuestionKind
    options: tuple[str, ...] = ()
    tags: tuple[str, ...] = ()
    priority: int = 0
    spec_paths: tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> QuestionDraft:
        parsed = expect_object(data, "QuestionDraft", required={"text"}, allow_unknown=True)
        raw_kind = parsed.get("kind", parsed.get("type")) or QuestionKind.FREEFORM.value
        return cls(
            text=as_str(parsed["text"], "QuestionDraft.text"),
            kind=as_enum(QuestionKind, raw_kind, "QuestionDraft.kind"),
            options=as_str_tuple(_or_empty(parsed.get("options")), "QuestionDraft.options"),
            tags=as_str_tuple(_or_empty(parsed.get("tags")), "QuestionDraft.tags"),
            priority=as_int(parsed.get("priority", 0), "QuestionDraft.priority", minimum=0),
            spec_paths=as_str_tuple(
                _or_empty(parsed.get("spec_paths")), "QuestionDraft.spec_paths"
            ),
        )


@dataclass(frozen=True, slots=True)
class AnswerSuggestion(CanonicalModel):
    question_id: str
    suggested_value: JSONValue
    confidence: Confidence
    reasoning: str = ""

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> AnswerSuggestion:
        parsed = expect_object(
            data,
            "AnswerSuggestion",
            required={"question_id", "suggested_value"},
            allow_unknown=True,
        )
        return cls(
            question_id=as_str(parsed["question_id"], "AnswerSuggestion.question_id"),
            suggested_value=as_json_value(
                parsed["suggested_value"], "AnswerSuggestion.suggested_value"
            ),
            confidence=as_enum(
                Confidence,
                parsed.get("confidence") or Confidence.LOW.value,
                "AnswerSuggestion.confidence",
            ),
            reasoning=_text_or_empty(parsed.get("reasoning"), "AnswerSuggestion.reasoning"),
        )


def _or_empty(value: object) -> object:
    return () if value is None else value


def _text_or_empty(value: object, path: str) -> str:
    if value is None:
        return ""
    return as_str(value, path, min_len=0)


__all__ = [
    "Answer",
    "AnswerSuggestion",
    "CompilerMeta",
    "Confidence",
    "GapType",
    "Issue",
    "IssueDraft",
    "IssueKind",
    "IssueSeverity",
    "Plan",
    "PlanSuggestion",
    "PlanTarget",
    "Project",
    "ProjectMode",
    "QABundle",
    "Question",
    "QuestionDraft",
    "QuestionKind",
    "QuestionStatus",
    "SpecSnapshot",
]
