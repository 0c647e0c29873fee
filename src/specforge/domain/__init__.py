"""Domain types for the compilation pipeline: projects, questions, answers, snapshots,
issues, traces and JSON value helpers. Free of IO side effects."""

from __future__ import annotations

from specforge.domain.errors import (
    AskerFailed,
    CompilationFailed,
    ConflictError,
    InvalidInputError,
    NotFoundError,
    PlannerFailed,
    PreconditionError,
    SpecForgeError,
    StageError,
    SuggesterFailed,
    ValidationFailed,
)
from specforge.domain.models import (
    Answer,
    AnswerSuggestion,
    CompilerMeta,
    Confidence,
    GapType,
    Issue,
    IssueDraft,
    IssueKind,
    IssueSeverity,
    Plan,
    PlanSuggestion,
    PlanTarget,
    Project,
    ProjectMode,
    QABundle,
    Question,
    QuestionDraft,
    QuestionKind,
    QuestionStatus,
    SpecSnapshot,
)
from specforge.domain.trace import Trace, TraceGap, TraceSource, find_trace_gaps

__all__ = [
    "Answer",
    "AnswerSuggestion",
    "AskerFailed",
    "CompilationFailed",
    "CompilerMeta",
    "Confidence",
    "ConflictError",
    "GapType",
    "InvalidInputError",
    "Issue",
    "IssueDraft",
    "IssueKind",
    "IssueSeverity",
    "NotFoundError",
    "Plan",
    "PlanSuggestion",
    "PlanTarget",
    "PlannerFailed",
    "PreconditionError",
    "Project",
    "ProjectMode",
    "QABundle",
    "Question",
    "QuestionDraft",
    "QuestionKind",
    "QuestionStatus",
    "SpecForgeError",
    "SpecSnapshot",
    "StageError",
    "SuggesterFailed",
    "Trace",
    "TraceGap",
    "TraceSource",
    "ValidationFailed",
    "find_trace_gaps",
]
