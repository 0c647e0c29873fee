"""
Versioned prompt templates for the model-driven stages.

Templates live under ``templates/<version>/<name>.j2`` and are rendered with jinja2 in
strict mode: every variable a template references must be supplied, and callers may only
supply the variables declared for the template's role. Non-string values are rendered as
sorted, indented JSON so identical inputs always yield byte-identical prompts.
"""

from __future__ import annotations

import hashlib
import json
import re
from collections.abc import Mapping
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path
from typing import Final

from jinja2 import Environment, StrictUndefined, meta

from specforge.constants import PROMPT_VERSION
from specforge.domain.models import ProjectMode

_VERSION_RE = re.compile(r"^v[0-9]+$")


class PromptRole(StrEnum):
    COMPILER = "compiler"
    VALIDATOR = "validator"
    PLANNER = "planner"
    ASKER = "asker"
    SUGGESTER = "suggester"


ROLE_VARIABLES: Final[Mapping[PromptRole, frozenset[str]]] = {
    PromptRole.COMPILER: frozenset({"PROJECT", "QA_BUNDLE_JSON", "CURRENT_SPEC_JSON"}),
    PromptRole.VALIDATOR: frozenset(
        {
            "PROJECT",
            "COMPILED_SPEC_JSON",
            "TRACE_JSON",
            "SCHEMA_VALIDATION_JSON",
            "QA_BUNDLE_JSON",
        }
    ),
    PromptRole.PLANNER: frozenset(
        {
            "PROJECT",
            "CURRENT_SPEC_JSON",
            "CURRENT_ISSUES_JSON",
            "EXISTING_QUESTIONS_JSON",
            "LATEST_ANSWERS_JSON",
        }
    ),
    PromptRole.ASKER: frozenset(
        {
            "PROJECT",
            "PLANNER_SUGGESTIONS_JSON",
            "CURRENT_SPEC_JSON",
            "EXISTING_QUESTIONS_JSON",
            "LATEST_ANSWERS_JSON",
        }
    ),
    PromptRole.SUGGESTER: frozenset(
        {
            "PROJECT_NAME",
            "PROJECT_MODE",
            "EXISTING_ANSWERS",
            "CURRENT_SPEC",
            "UNANSWERED_QUESTIONS",
        }
    ),
}

# Roles without a basic-mode variant share one template across modes.
_TEMPLATE_NAMES: Final[Mapping[tuple[PromptRole, ProjectMode], str]] = {
    (PromptRole.COMPILER, ProjectMode.ADVANCED): "compiler",
    (PromptRole.COMPILER, ProjectMode.BASIC): "compiler",
    (PromptRole.VALIDATOR, ProjectMode.ADVANCED): "validator",
    (PromptRole.VALIDATOR, ProjectMode.BASIC): "validator",
    (PromptRole.PLANNER, ProjectMode.ADVANCED): "planner",
    (PromptRole.PLANNER, ProjectMode.BASIC): "planner_basic",
    (PromptRole.ASKER, ProjectMode.ADVANCED): "asker",
    (PromptRole.ASKER, ProjectMode.BASIC): "asker_basic",
    (PromptRole.SUGGESTER, ProjectMode.ADVANCED): "suggester",
    (PromptRole.SUGGESTER, ProjectMode.BASIC): "suggester_basic",
}


class PromptTemplateError(RuntimeError):
    """Base error for prompt template loading and rendering."""


class PromptTemplateNotFoundError(PromptTemplateError, FileNotFoundError):
    """Raised when a template file does not exist."""


class PromptTemplateVariableError(PromptTemplateError, ValueError):
    """Raised for missing or unexpected variables."""


@dataclass(frozen=True, slots=True)
class RenderedPrompt:
    """Rendered prompt plus the identity needed to reproduce it."""

    prompt: str
    prompt_hash: str
    role: PromptRole
    template_name: str
    version: str
    template_hash: str


class PromptLibrary:
    """Selects and renders the template for a stage role and project mode."""

    def __init__(
        self,
        *,
        version: str = PROMPT_VERSION,
        template_root: Path | str | None = None,
    ) -> None:
        if not _VERSION_RE.fullmatch(version):
            raise ValueError(f"invalid prompt version: {version!r}")
        root = Path(template_root) if template_root is not None else _default_template_root()
        version_root = (root / version).resolve()
        if not version_root.is_dir():
            raise PromptTemplateNotFoundError(f"prompt version not found: {version_root}")
        self._version = version
        self._version_root = version_root
        self._environment = Environment(
            undefined=StrictUndefined,
            autoescape=False,
            newline_sequence="\n",
            keep_trailing_newline=True,
        )
        self._sources: dict[str, str] = {}

    @property
    def version(self) -> str:
        return self._version

    @staticmethod
    def template_name(role: PromptRole | str, mode: ProjectMode | str) -> str:
        return _TEMPLATE_NAMES[(PromptRole(role), ProjectMode(mode))]

    def declared_variables(self, template_name: str) -> frozenset[str]:
        source = self._source(template_name)
        return frozenset(meta.find_undeclared_variables(self._environment.parse(source)))

    def render(
        self,
        role: PromptRole | str,
        *,
        variables: Mapping[str, object],
        mode: ProjectMode | str = ProjectMode.ADVANCED,
    ) -> RenderedPrompt:
        resolved_role = PromptRole(role)
        name = self.template_name(resolved_role, mode)
        source = self._source(name)
        allowed = ROLE_VARIABLES[resolved_role]

        unexpected = sorted(set(variables) - allowed)
        if unexpected:
            raise PromptTemplateVariableError(
                f"unexpected variables for {name}: " + ", ".join(unexpected)
            )
        declared = self.declared_variables(name)
        undeclared_in_role = sorted(declared - allowed)
        if undeclared_in_role:
            raise PromptTemplateVariableError(
                f"template {name} uses variables outside its role: "
                + ", ".join(undeclared_in_role)
            )
        missing = sorted(declared - set(variables))
        if missing:
            raise PromptTemplateVariableError(
                f"missing required variables for {name}: " + ", ".join(missing)
            )

        values = {key: _serialize_variable_value(value) for key, value in variables.items()}
        prompt = _normalize_newlines(self._environment.from_string(source).render(**values))
        return RenderedPrompt(
            prompt=prompt,
            prompt_hash=_sha256(prompt),
            role=resolved_role,
            template_name=name,
            version=self._version,
            template_hash=_sha256(source),
        )

    def _source(self, template_name: str) -> str:
        cached = self._sources.get(template_name)
        if cached is not None:
            return cached
        path = self._version_root / f"{template_name}.j2"
        if not path.is_file():
            raise PromptTemplateNotFoundError(
                f"template not found: {template_name!r} under {self._version_root}"
            )
        source = _normalize_newlines(path.read_text(encoding="utf-8"))
        self._sources[template_name] = source
        return source


def _default_template_root() -> Path:
    return Path(__file__).resolve().parent / "templates"


def _serialize_variable_value(value: object) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False, indent=2, sort_keys=True)


def _normalize_newlines(text: str) -> str:
    return text.replace("\r\n", "\n").replace("\r", "\n")


def _sha256(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


__all__ = [
    "PromptLibrary",
    "PromptRole",
    "PromptTemplateError",
    "PromptTemplateNotFoundError",
    "PromptTemplateVariableError",
    "ROLE_VARIABLES",
    "RenderedPrompt",
]
