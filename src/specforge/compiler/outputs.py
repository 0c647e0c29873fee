"""
Parsers for model replies.

Models are asked for a bare JSON object but sometimes wrap it in a fenced block or in prose.
:func:`extract_json_object` accepts, in order: the whole reply as JSON, the first ``json`` (or
unlabelled) fenced block, then the first decodable object found by scanning the text.

List items that fail validation are dropped and logged; a reply with no usable top-level
object raises the stage's error with the start of the reply attached.
"""

from __future__ import annotations

import json
import re
from collections.abc import Callable, Mapping
from typing import Any, Final, TypeVar, cast

import structlog

from specforge.constants import RESPONSE_EXCERPT_CHARS
from specforge.domain.errors import (
    AskerFailed,
    CompilationFailed,
    PlannerFailed,
    StageError,
    SuggesterFailed,
    ValidationFailed,
)
from specforge.domain.json_value import JSONValue, ensure_json
from specforge.domain.models import (
    AnswerSuggestion,
    IssueDraft,
    Plan,
    PlanSuggestion,
    PlanTarget,
    QuestionDraft,
)
from specforge.domain.trace import Trace

_FENCED_BLOCK_RE: Final[re.Pattern[str]] = re.compile(
    r"(?P<fence>`{3,})(?P<lang>[^\n`]*)\n(?P<body>.*?)(?:\n(?P=fence))",
    flags=re.DOTALL,
)

_logger = structlog.get_logger(__name__)

T = TypeVar("T")


def excerpt(text: str, limit: int = RESPONSE_EXCERPT_CHARS) -> str:
    return text[:limit]


def extract_json_object(text: str) -> dict[str, Any] | None:
    """Return the first JSON object in ``text`` or ``None``."""

    stripped = text.strip()
    if not stripped:
        return None
    try:
        parsed = json.loads(stripped)
    except json.JSONDecodeError:
        parsed = None
    if isinstance(parsed, dict):
        return parsed

    for match in _FENCED_BLOCK_RE.finditer(text):
        if match.group("lang").strip().lower() not in {"", "json"}:
            continue
        try:
            fenced = json.loads(match.group("body").strip())
        except json.JSONDecodeError:
            continue
        if isinstance(fenced, dict):
            return fenced

    decoder = json.JSONDecoder()
    for index, character in enumerate(text):
        if character != "{":
            continue
        try:
            candidate, _ = decoder.raw_decode(text[index:])
        except json.JSONDecodeError:
            continue
        if isinstance(candidate, dict):
            return candidate
    return None


def parse_compile_output(text: str) -> tuple[dict[str, JSONValue], Trace]:
    """Parse a compiler reply into the document and its trace.

    Raises :class:`CompilationFailed` with the reply excerpt when no ``spec`` object exists.
    """

    payload = extract_json_object(text)
    if payload is None:
        raise CompilationFailed("reply is not a JSON object", response_excerpt=excerpt(text))
    spec = payload.get("spec")
    if not isinstance(spec, Mapping):
        raise CompilationFailed("reply has no 'spec' object", response_excerpt=excerpt(text))
    try:
        document = ensure_json(dict(spec), "spec")
    except ValueError as exc:
        raise CompilationFailed(str(exc), response_excerpt=excerpt(text)) from exc
    return cast("dict[str, JSONValue]", document), Trace.from_payload(payload.get("trace"))


def parse_issue_drafts(text: str) -> list[IssueDraft]:
    payload = _require_object(text, ValidationFailed)
    return _parse_items(payload, "issues", IssueDraft.from_dict, ValidationFailed, text)


def parse_plan(text: str) -> Plan:
    payload = _require_object(text, PlannerFailed)
    targets = _parse_items(payload, "targets", PlanTarget.from_dict, PlannerFailed, text)
    suggestions = _parse_items(
        payload, "suggestions", PlanSuggestion.from_dict, PlannerFailed, text
    )
    rationale = payload.get("rationale")
    return Plan(
        rationale=rationale if isinstance(rationale, str) else "",
        targets=tuple(targets),
        suggestions=tuple(suggestions),
    )


def parse_question_drafts(text: str) -> list[QuestionDraft]:
    payload = _require_object(text, AskerFailed)
    return _parse_items(payload, "questions", QuestionDraft.from_dict, AskerFailed, text)


def parse_answer_suggestions(text: str) -> list[AnswerSuggestion]:
    payload = _require_object(text, SuggesterFailed)
    return _parse_items(
        payload, "suggestions", AnswerSuggestion.from_dict, SuggesterFailed, text
    )


def _require_object(text: str, error_type: type[StageError]) -> dict[str, Any]:
    payload = extract_json_object(text)
    if payload is None:
        raise error_type(f"reply is not a JSON object: {excerpt(text)!r}")
    return payload


def _parse_items(
    payload: Mapping[str, Any],
    key: str,
    parse: Callable[[Mapping[str, object]], T],
    error_type: type[StageError],
    text: str,
) -> list[T]:
    raw_items = payload.get(key)
    if raw_items is None:
        return []
    if not isinstance(raw_items, list):
        raise error_type(f"'{key}' must be a list: {excerpt(text)!r}")
    items: list[T] = []
    for index, raw in enumerate(raw_items):
        if not isinstance(raw, Mapping):
            _logger.warning("stage_item_dropped", stage=error_type.stage, key=key, index=index)
            continue
        try:
            items.append(parse(raw))
        except ValueError as exc:
            _logger.warning(
                "stage_item_dropped",
                stage=error_type.stage,
                key=key,
                index=index,
                error=str(exc),
            )
    return items


__all__ = [
    "excerpt",
    "extract_json_object",
    "parse_answer_suggestions",
    "parse_compile_output",
    "parse_issue_drafts",
    "parse_plan",
    "parse_question_drafts",
]
