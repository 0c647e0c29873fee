"""Error taxonomy for the compilation pipeline.

Input and lookup failures subclass the builtin exception a caller would naturally catch
(``ValueError``/``LookupError``) so generic handlers keep working. Stage failures carry the
stage name and a ``retryable`` flag; the underlying completion or parse error is chained via
``raise ... from``.
"""

from __future__ import annotations


class SpecForgeError(Exception):
    """Base class for all domain errors."""

    code: str = "error"

    def to_dict(self) -> dict[str, str]:
        return {"code": self.code, "message": str(self)}


class NotFoundError(SpecForgeError, LookupError):
    code = "not_found"

    def __init__(self, entity: str, entity_id: str) -> None:
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} not found: {entity_id}")


class ConflictError(SpecForgeError):
    code = "conflict"


class InvalidInputError(SpecForgeError, ValueError):
    code = "invalid_input"


class PreconditionError(SpecForgeError):
    """A workflow was invoked before its inputs exist (``reason`` is machine-readable)."""

    code = "precondition_failed"

    def __init__(self, reason: str, message: str | None = None) -> None:
        self.reason = reason
        super().__init__(message or reason)

    def to_dict(self) -> dict[str, str]:
        return {"code": self.code, "reason": self.reason, "message": str(self)}


class StageError(SpecForgeError):
    """A model-driven stage failed to produce a usable result."""

    code = "stage_failed"
    stage: str = "stage"
    retryable: bool = False

    def __init__(self, message: str) -> None:
        super().__init__(f"{self.stage}: {message}")


class CompilationFailed(StageError):
    code = "compilation_failed"
    stage = "compiler"
    retryable = True

    def __init__(self, message: str, *, response_excerpt: str | None = None) -> None:
        self.response_excerpt = response_excerpt
        if response_excerpt is not None:
            message = f"{message} (response: {response_excerpt})"
        super().__init__(message)


class PlannerFailed(StageError):
    code = "planner_failed"
    stage = "planner"


class AskerFailed(StageError):
    code = "asker_failed"
    stage = "asker"


class SuggesterFailed(StageError):
    code = "suggester_failed"
    stage = "suggester"


class ValidationFailed(StageError):
    code = "validation_failed"
    stage = "validator"


__all__ = [
    "AskerFailed",
    "CompilationFailed",
    "ConflictError",
    "InvalidInputError",
    "NotFoundError",
    "PlannerFailed",
    "PreconditionError",
    "SpecForgeError",
    "StageError",
    "SuggesterFailed",
    "ValidationFailed",
]
