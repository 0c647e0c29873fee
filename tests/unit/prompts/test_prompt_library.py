"""Prompt template selection, strict variables and reproducible hashes."""

from __future__ import annotations

from pathlib import Path

import pytest

from specforge.domain.models import ProjectMode
from specforge.prompts import (
    ROLE_VARIABLES,
    PromptLibrary,
    PromptRole,
    PromptTemplateNotFoundError,
    PromptTemplateVariableError,
)


def _compiler_variables(**overrides: object) -> dict[str, object]:
    variables: dict[str, object] = {
        "PROJECT": {"name": "Todo app", "mode": "advanced"},
        "QA_BUNDLE_JSON": [{"question_id": "q", "answer_value": "Todo"}],
        "CURRENT_SPEC_JSON": {},
    }
    variables.update(overrides)
    return variables


@pytest.mark.unit
@pytest.mark.parametrize("mode", list(ProjectMode))
@pytest.mark.parametrize("role", list(PromptRole))
def test_packaged_templates_use_exactly_their_role_variables(
    role: PromptRole, mode: ProjectMode
) -> None:
    library = PromptLibrary()

    name = library.template_name(role, mode)

    assert library.declared_variables(name) == ROLE_VARIABLES[role]


@pytest.mark.unit
@pytest.mark.parametrize(
    ("role", "basic_name"),
    [
        (PromptRole.PLANNER, "planner_basic"),
        (PromptRole.ASKER, "asker_basic"),
        (PromptRole.SUGGESTER, "suggester_basic"),
        (PromptRole.COMPILER, "compiler"),
        (PromptRole.VALIDATOR, "validator"),
    ],
)
def test_basic_mode_selects_simplified_templates(role: PromptRole, basic_name: str) -> None:
    assert PromptLibrary.template_name(role, "basic") == basic_name
    assert PromptLibrary.template_name(role, "advanced") == role.value


@pytest.mark.unit
def test_render_is_deterministic_and_serializes_values_as_sorted_json() -> None:
    library = PromptLibrary()
    variables = _compiler_variables(CURRENT_SPEC_JSON={"scope": {"b": 1, "a": 2}})

    first = library.render(PromptRole.COMPILER, variables=variables)
    second = PromptLibrary().render("compiler", variables=dict(reversed(variables.items())))

    assert first == second
    assert first.template_name == "compiler"
    assert first.version == "v1"
    assert len(first.prompt_hash) == 64
    assert '"scope": {\n    "a": 2,\n    "b": 1\n  }' in first.prompt
    changed = library.render(PromptRole.COMPILER, variables=_compiler_variables())
    assert changed.prompt_hash != first.prompt_hash
    assert changed.template_hash == first.template_hash


@pytest.mark.unit
def test_render_rejects_missing_and_unexpected_variables() -> None:
    library = PromptLibrary()
    variables = _compiler_variables()
    del variables["QA_BUNDLE_JSON"]

    with pytest.raises(PromptTemplateVariableError, match="missing required variables.*QA_BUNDLE"):
        library.render(PromptRole.COMPILER, variables=variables)
    with pytest.raises(PromptTemplateVariableError, match="unexpected variables.*TRACE_JSON"):
        library.render(PromptRole.COMPILER, variables=_compiler_variables(TRACE_JSON={}))


@pytest.mark.unit
def test_custom_template_root_and_versions(tmp_path: Path) -> None:
    (tmp_path / "v2").mkdir()
    (tmp_path / "v2" / "compiler.j2").write_text(
        "Compile {{ PROJECT }}\r\nfrom {{ QA_BUNDLE_JSON }}\n{{ CURRENT_SPEC_JSON }}",
        encoding="utf-8",
    )
    (tmp_path / "v2" / "validator.j2").write_text("{{ SECRET_SAUCE }}", encoding="utf-8")
    library = PromptLibrary(version="v2", template_root=tmp_path)

    rendered = library.render(
        PromptRole.COMPILER, variables=_compiler_variables(PROJECT="Todo app")
    )

    assert rendered.prompt.startswith("Compile Todo app\nfrom [")
    assert "\r" not in rendered.prompt
    with pytest.raises(PromptTemplateVariableError, match="outside its role: SECRET_SAUCE"):
        library.render(PromptRole.VALIDATOR, variables={})
    with pytest.raises(PromptTemplateNotFoundError, match="planner"):
        library.render(PromptRole.PLANNER, variables={})
    with pytest.raises(PromptTemplateNotFoundError):
        PromptLibrary(version="v9", template_root=tmp_path)
    with pytest.raises(ValueError, match="invalid prompt version"):
        PromptLibrary(version="latest")
