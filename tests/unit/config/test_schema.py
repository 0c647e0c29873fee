"""Strict config validation, deep merge and redaction."""

from __future__ import annotations

from typing import Any

import pytest

from specforge.config.schema import (
    ConfigSchemaVersion,
    ConfigValidationError,
    assert_valid_config,
    default_config,
    merge_config,
    migration_guidance,
    redact_config,
    validate_config,
)


def _issues(config: Any) -> dict[str, str]:
    result = validate_config(config)
    return {issue.path: issue.message for issue in result.issues}


@pytest.mark.unit
def test_defaults_are_valid_and_independent_copies() -> None:
    first = default_config()
    first["compiler"]["max_retries"] = 99

    result = validate_config(default_config())

    assert result.is_valid
    assert result.config is not None
    assert result.config["compiler"]["max_retries"] == 2


@pytest.mark.unit
def test_embedded_secret_is_rejected_with_guidance() -> None:
    config = merge_config(default_config(), {"providers": {"openai": {"api_key": "sk-live"}}})

    issues = _issues(config)

    assert list(issues) == ["providers.openai.api_key"]
    assert "embedded secret values are forbidden" in issues["providers.openai.api_key"]


@pytest.mark.unit
@pytest.mark.parametrize(
    ("overlay", "path", "message"),
    [
        ({"compiler": {"turbo": True}}, "compiler.turbo", "unknown field"),
        ({"meta": {"schema_version": 2}}, "meta.schema_version", "newer than supported"),
        ({"compiler": {"prompt_version": "latest"}}, "compiler.prompt_version", "v1, v2"),
        ({"compiler": {"suggester_temperature": 2.5}}, "compiler.suggester_temperature", "<= 2.0"),
        (
            {"compiler": {"default_next_question_count": 60}},
            "compiler.default_next_question_count",
            "<= max_next_question_count",
        ),
        (
            {"compiler": {"compile_timeout_seconds": 10.0}},
            "compiler.compile_timeout_seconds",
            ">= stage_timeout_seconds",
        ),
        ({"compiler": {"max_retries": True}}, "compiler.max_retries", "expected integer"),
        (
            {"providers": {"openai": {"api_key_env": "openai-key"}}},
            "providers.openai.api_key_env",
            "env var name",
        ),
        ({"providers": {"ollama": {"models": ["ok", ""]}}}, "providers.ollama.models[1]", "empty"),
        ({"providers": {"default": "scripted"}}, "providers.default", "invalid value 'scripted'"),
        ({"observability": {"log_format": "xml"}}, "observability.log_format", "json, text"),
        ({"paths": {"state_db": "a\x00b"}}, "paths.state_db", "NUL"),
    ],
)
def test_invalid_values_report_dotted_paths(
    overlay: dict[str, Any], path: str, message: str
) -> None:
    issues = _issues(merge_config(default_config(), overlay))

    assert path in issues
    assert message in issues[path]


@pytest.mark.unit
def test_missing_sections_and_non_mapping_root() -> None:
    config = default_config()
    del config["observability"]  # type: ignore[misc]

    assert _issues(config) == {"observability": "missing required field"}
    assert _issues(["not", "a", "mapping"]) == {"<root>": "expected object, got list"}


@pytest.mark.unit
def test_default_provider_requires_its_section() -> None:
    config = default_config()
    config["providers"]["default"] = "ollama"
    del config["providers"]["ollama"]  # type: ignore[misc]

    assert _issues(config) == {
        "providers.default": "default provider 'ollama' has no config section"
    }


@pytest.mark.unit
def test_assert_valid_config_raises_with_rendered_issues() -> None:
    with pytest.raises(ConfigValidationError) as excinfo:
        assert_valid_config(merge_config(default_config(), {"paths": {"state_db": ""}}))

    assert str(excinfo.value) == "invalid config:\n- paths.state_db: must not be empty"
    assert len(excinfo.value.issues) == 1


@pytest.mark.unit
def test_merge_is_deep_and_leaves_inputs_untouched() -> None:
    base = {"a": {"b": 1, "c": [1, 2]}, "d": 1}
    overlay = {"a": {"b": 2}, "d": {"e": 3}}

    merged = merge_config(base, overlay)
    merged["a"]["c"].append(3)

    assert merged == {"a": {"b": 2, "c": [1, 2, 3]}, "d": {"e": 3}}
    assert base == {"a": {"b": 1, "c": [1, 2]}, "d": 1}


@pytest.mark.unit
def test_redaction_keeps_env_names_and_hides_secrets() -> None:
    redacted = redact_config(
        {
            "providers": {
                "openai": {"api_key_env": "OPENAI_API_KEY", "apiKey": "sk-1"},
                "extra": [{"accessToken": "t-1", "model": "m"}],
            },
            "password": "hunter2",
        }
    )

    assert redacted == {
        "password": "<redacted>",
        "providers": {
            "extra": [{"accessToken": "<redacted>", "model": "m"}],
            "openai": {"api_key_env": "OPENAI_API_KEY", "apiKey": "<redacted>"},
        },
    }
    assert redact_config("nope") == {}


@pytest.mark.unit
def test_migration_guidance_directions() -> None:
    assert "older than supported" in migration_guidance(ConfigSchemaVersion - 1)
    assert "upgrade specforge" in migration_guidance(ConfigSchemaVersion + 1)
    assert migration_guidance(ConfigSchemaVersion) == "schema version is current"
