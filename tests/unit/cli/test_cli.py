"""In-process CLI contracts: JSON output, exit codes and persistent side effects."""

from __future__ import annotations

import json
from collections.abc import Iterator
from pathlib import Path
from typing import Any

import pytest
import structlog

from specforge.main import ExitCode, cli_entrypoint
from specforge.ui.cli import build_parser, run_cli


@pytest.fixture
def workspace(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Iterator[Path]:
    monkeypatch.chdir(tmp_path)
    for name in ("ANTHROPIC_API_KEY", "GEMINI_API_KEY", "OPENAI_API_KEY"):
        monkeypatch.delenv(name, raising=False)
    yield tmp_path
    structlog.reset_defaults()


def _run(capsys: pytest.CaptureFixture[str], *argv: str) -> tuple[int, dict[str, Any]]:
    code = cli_entrypoint(list(argv))
    out = capsys.readouterr().out.strip()
    return code, (json.loads(out) if out else {})


def _init(capsys: pytest.CaptureFixture[str], *extra: str) -> dict[str, Any]:
    code, payload = _run(capsys, "init", "Todo app", *extra)
    assert code == ExitCode.SUCCESS
    return payload


@pytest.mark.unit
def test_parser_requires_a_command() -> None:
    parser = build_parser()

    with pytest.raises(SystemExit):
        parser.parse_args([])
    args = parser.parse_args(["compile", "prj-x", "--provider", "openai", "--model", "gpt-4o"])
    assert (args.command, args.provider, args.model) == ("compile", "openai", "gpt-4o")


@pytest.mark.unit
def test_init_creates_state_db_and_seeds_questions(
    workspace: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    payload = _init(capsys, "--mode", "basic")

    assert payload["command"] == "init"
    assert payload["project"]["name"] == "Todo app"
    assert payload["project"]["mode"] == "basic"
    assert len(payload["questions"]) == 7
    assert (workspace / "state" / "specforge.sqlite3").exists()

    code, listed = _run(capsys, "projects")
    assert code == ExitCode.SUCCESS
    assert [item["id"] for item in listed["projects"]] == [payload["project"]["id"]]


@pytest.mark.unit
def test_answer_flow_and_history(workspace: Path, capsys: pytest.CaptureFixture[str]) -> None:
    payload = _init(capsys)
    project_id = payload["project"]["id"]
    question_id = payload["questions"][0]["id"]

    code, first = _run(capsys, "answer", project_id, question_id, "Todo app")
    assert code == ExitCode.SUCCESS
    assert first["answer"]["value"] == "Todo app"
    assert first["answer"]["version"] == 1

    code, second = _run(
        capsys, "answer", project_id, question_id, '["web", "ios"]', "--json-value", "--history"
    )
    assert code == ExitCode.SUCCESS
    assert second["answer"]["value"] == ["web", "ios"]
    assert [item["version"] for item in second["history"]] == [1, 2]

    code, answered = _run(capsys, "questions", project_id, "--status", "answered")
    assert [item["id"] for item in answered["questions"]] == [question_id]


@pytest.mark.unit
def test_invalid_json_value_is_a_usage_error(
    workspace: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    payload = _init(capsys)

    code = run_cli(
        ["answer", payload["project"]["id"], payload["questions"][0]["id"], "{", "--json-value"]
    )

    assert code == 2
    assert "VALUE is not valid JSON" in capsys.readouterr().err


@pytest.mark.unit
def test_compile_without_answers_is_a_domain_error(
    workspace: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    project_id = _init(capsys)["project"]["id"]

    code = cli_entrypoint(["compile", project_id])

    assert code == ExitCode.DOMAIN_ERROR
    error = json.loads(capsys.readouterr().err.strip().splitlines()[-1])["error"]
    assert error["code"] == "precondition_failed"
    assert error["reason"] == "no_answers"
    _, snapshots = _run(capsys, "snapshots", project_id)
    assert snapshots["snapshots"] == []


@pytest.mark.unit
def test_compile_without_provider_keys_is_a_provider_error(
    workspace: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    payload = _init(capsys)
    project_id = payload["project"]["id"]
    _run(capsys, "answer", project_id, payload["questions"][0]["id"], "Todo app")

    code = cli_entrypoint(["compile", project_id])

    assert code == ExitCode.PROVIDER_ERROR
    assert "compilation_failed" in capsys.readouterr().err
    _, latest = _run(capsys, "snapshots", project_id, "--latest")
    assert latest["snapshot"] is None


@pytest.mark.unit
def test_model_without_provider_is_rejected(
    workspace: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    project_id = _init(capsys)["project"]["id"]

    code = run_cli(["suggest", project_id, "--model", "gpt-4o"])

    assert code == 2
    assert "--model requires --provider" in capsys.readouterr().err


@pytest.mark.unit
def test_lookups_of_unknown_ids_are_domain_errors(
    workspace: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    project_id = _init(capsys)["project"]["id"]

    assert cli_entrypoint(["questions", "prj-missing"]) == ExitCode.DOMAIN_ERROR
    assert cli_entrypoint(["issues", "snap-missing"]) == ExitCode.DOMAIN_ERROR
    assert cli_entrypoint(["diff", project_id, "snap-a", "snap-b"]) == ExitCode.DOMAIN_ERROR
    assert "not_found" in capsys.readouterr().err


@pytest.mark.unit
def test_delete_removes_the_project_and_its_questions(
    workspace: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    payload = _init(capsys)
    project_id = payload["project"]["id"]
    _run(capsys, "answer", project_id, payload["questions"][0]["id"], "Todo app")

    code, deleted = _run(capsys, "delete", project_id)

    assert code == ExitCode.SUCCESS
    assert deleted == {"command": "delete", "project_id": project_id}
    _, listed = _run(capsys, "projects")
    assert listed["projects"] == []
    assert cli_entrypoint(["questions", project_id]) == ExitCode.DOMAIN_ERROR
    assert cli_entrypoint(["delete", project_id]) == ExitCode.DOMAIN_ERROR
    assert "not_found" in capsys.readouterr().err


@pytest.mark.unit
def test_providers_report_availability_from_environment(
    workspace: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test-openai")

    code, payload = _run(capsys, "providers")

    assert code == ExitCode.SUCCESS
    availability = {item["id"]: item["available"] for item in payload["providers"]}
    assert availability == {"anthropic": False, "gemini": False, "ollama": True, "openai": True}


@pytest.mark.unit
def test_config_prints_redacted_effective_config(
    workspace: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    state_db = workspace / "elsewhere" / "db.sqlite3"

    code = cli_entrypoint(["config", "--state-db", str(state_db), "--log-level", "DEBUG"])

    assert code == ExitCode.SUCCESS
    config = json.loads(capsys.readouterr().out)
    assert config["paths"]["state_db"] == state_db.as_posix()
    assert config["observability"]["log_level"] == "DEBUG"
    assert config["providers"]["anthropic"]["api_key_env"] == "ANTHROPIC_API_KEY"


@pytest.mark.unit
def test_config_errors_exit_with_config_code(
    workspace: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    (workspace / "specforge.toml").write_text("[compiler]\nmax_retries = -1\n", encoding="utf-8")

    assert run_cli(["config"]) == 2
    assert "compiler.max_retries" in capsys.readouterr().err
    assert run_cli(["projects", "--config", str(workspace / "missing.toml")]) == 2
    assert "config file not found" in capsys.readouterr().err


@pytest.mark.unit
def test_entrypoint_normalizes_system_exit(capsys: pytest.CaptureFixture[str]) -> None:
    assert cli_entrypoint(["--version"]) == ExitCode.SUCCESS
    assert "specforge 0.1.0" in capsys.readouterr().out
    assert cli_entrypoint(["no-such-command"]) == 2
