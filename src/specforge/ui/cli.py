"""Command-line interface router for specforge.

Every command prints one deterministic JSON document to stdout; logs go to stderr.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from specforge import __version__
from specforge.compiler.orchestrator import ProviderOverride
from specforge.config import (
    ConfigLoadError,
    ConfigValidationError,
    dump_effective_config,
    load_config,
)
from specforge.domain.canonical import serialize_value
from specforge.domain.models import ProjectMode, QuestionStatus
from specforge.observability.logging import configure_from_config
from specforge.workflow.service import SpecService


@dataclass(frozen=True, slots=True)
class CLIError(RuntimeError):
    """Typed CLI failure with an explicit process exit code."""

    message: str
    exit_code: int = 2

    def __str__(self) -> str:
        return self.message


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse command router for all supported CLI workflows."""

    parser = argparse.ArgumentParser(
        prog="specforge",
        description=(
            "specforge: compile question/answer pairs into a traceable specification.\n\n"
            "Common workflows:\n"
            "  specforge init \"Todo app\"                 Create a project with seed questions\n"
            "  specforge questions <project-id>          List open questions\n"
            "  specforge answer <project-id> <q-id> ...  Record an answer\n"
            "  specforge compile <project-id>            Compile a new snapshot\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--version", action="version", version=f"specforge {__version__}")
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--config",
        dest="config_path",
        default=None,
        help="Path to specforge TOML config (default: ./specforge.toml if present).",
    )
    common.add_argument(
        "--state-db",
        dest="state_db",
        default=None,
        help="Override the state DB path.",
    )
    common.add_argument(
        "--log-level",
        dest="log_level",
        default=None,
        help="Override observability.log_level.",
    )

    provider = argparse.ArgumentParser(add_help=False)
    provider.add_argument("--provider", default=None, help="Completion provider override")
    provider.add_argument("--model", default=None, help="Model override for --provider")

    subparsers = parser.add_subparsers(dest="command", required=True)

    init_parser = subparsers.add_parser(
        "init", parents=[common], help="Create a project and seed its opening questions"
    )
    init_parser.add_argument("name", help="Project name")
    init_parser.add_argument(
        "--mode",
        choices=[mode.value for mode in ProjectMode],
        default=ProjectMode.ADVANCED.value,
        help="Question style (default: advanced)",
    )
    init_parser.set_defaults(handler=_cmd_init)

    projects_parser = subparsers.add_parser("projects", parents=[common], help="List projects")
    projects_parser.set_defaults(handler=_cmd_projects)

    delete_parser = subparsers.add_parser(
        "delete", parents=[common], help="Delete a project and everything recorded for it"
    )
    delete_parser.add_argument("project_id")
    delete_parser.set_defaults(handler=_cmd_delete)

    questions_parser = subparsers.add_parser(
        "questions", parents=[common], help="List questions for a project"
    )
    questions_parser.add_argument("project_id")
    questions_parser.add_argument(
        "--status", choices=[status.value for status in QuestionStatus], default=None
    )
    questions_parser.add_argument("--tag", default=None)
    questions_parser.set_defaults(handler=_cmd_questions)

    answer_parser = subparsers.add_parser(
        "answer", parents=[common], help="Append a new answer version for a question"
    )
    answer_parser.add_argument("project_id")
    answer_parser.add_argument("question_id")
    answer_parser.add_argument("value", help="Answer text (or JSON with --json-value)")
    answer_parser.add_argument(
        "--json-value",
        action="store_true",
        help="Parse VALUE as a JSON document instead of plain text",
    )
    answer_parser.add_argument(
        "--history", action="store_true", help="Also print every version of the answer"
    )
    answer_parser.set_defaults(handler=_cmd_answer)

    compile_parser = subparsers.add_parser(
        "compile", parents=[common, provider], help="Compile the latest answers into a snapshot"
    )
    compile_parser.add_argument("project_id")
    compile_parser.set_defaults(handler=_cmd_compile)

    next_parser = subparsers.add_parser(
        "next-questions", parents=[common, provider], help="Generate follow-up questions"
    )
    next_parser.add_argument("project_id")
    next_parser.add_argument("--count", type=int, default=None)
    next_parser.add_argument("--mode", choices=[mode.value for mode in ProjectMode], default=None)
    next_parser.set_defaults(handler=_cmd_next_questions)

    suggest_parser = subparsers.add_parser(
        "suggest", parents=[common, provider], help="Suggest answers for open questions"
    )
    suggest_parser.add_argument("project_id")
    suggest_parser.add_argument(
        "--mode", choices=[mode.value for mode in ProjectMode], default=None
    )
    suggest_parser.set_defaults(handler=_cmd_suggest)

    snapshots_parser = subparsers.add_parser(
        "snapshots", parents=[common], help="List snapshots or show one"
    )
    snapshots_parser.add_argument("project_id")
    snapshots_parser.add_argument("--id", dest="snapshot_id", default=None)
    snapshots_parser.add_argument(
        "--latest", action="store_true", help="Show only the latest snapshot"
    )
    snapshots_parser.add_argument(
        "--trace", action="store_true", help="Show only the latest snapshot's trace"
    )
    snapshots_parser.set_defaults(handler=_cmd_snapshots)

    issues_parser = subparsers.add_parser(
        "issues", parents=[common], help="List issues recorded for a snapshot"
    )
    issues_parser.add_argument("snapshot_id")
    issues_parser.set_defaults(handler=_cmd_issues)

    diff_parser = subparsers.add_parser(
        "diff", parents=[common], help="Diff two snapshots of one project"
    )
    diff_parser.add_argument("project_id")
    diff_parser.add_argument("base_id")
    diff_parser.add_argument("target_id")
    diff_parser.set_defaults(handler=_cmd_diff)

    providers_parser = subparsers.add_parser(
        "providers", parents=[common], help="List completion providers and availability"
    )
    providers_parser.set_defaults(handler=_cmd_providers)

    config_parser = subparsers.add_parser(
        "config", parents=[common], help="Print the effective (redacted) config"
    )
    config_parser.set_defaults(handler=_cmd_config)

    return parser


def run_cli(argv: Sequence[str] | None = None) -> int:
    """Parse argv, route to a command handler, and return process exit code."""

    parser = build_parser()
    namespace = parser.parse_args(list(argv) if argv is not None else None)
    handler = getattr(namespace, "handler", None)
    if not callable(handler):
        parser.print_help(sys.stderr)
        return 2

    try:
        result = handler(namespace)
    except CLIError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return exc.exit_code
    return int(result)


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


def _cmd_init(args: argparse.Namespace) -> int:
    service = _service(args)
    project = service.create_project(args.name, args.mode)
    _emit_json(
        {
            "command": "init",
            "project": project,
            "questions": service.list_questions(project.id),
        }
    )
    return 0


def _cmd_projects(args: argparse.Namespace) -> int:
    _emit_json({"command": "projects", "projects": _service(args).list_projects()})
    return 0


def _cmd_delete(args: argparse.Namespace) -> int:
    _service(args).delete_project(args.project_id)
    _emit_json({"command": "delete", "project_id": args.project_id})
    return 0


def _cmd_questions(args: argparse.Namespace) -> int:
    questions = _service(args).list_questions(args.project_id, status=args.status, tag=args.tag)
    _emit_json({"command": "questions", "questions": questions})
    return 0


def _cmd_answer(args: argparse.Namespace) -> int:
    value: Any = args.value
    if args.json_value:
        try:
            value = json.loads(args.value)
        except json.JSONDecodeError as exc:
            raise CLIError(f"VALUE is not valid JSON: {exc.msg}") from exc
    service = _service(args)
    answer = service.submit_answer(args.project_id, args.question_id, value)
    payload: dict[str, object] = {"command": "answer", "answer": answer}
    if args.history:
        payload["history"] = service.answer_history(args.project_id, args.question_id)
    _emit_json(payload)
    return 0


def _cmd_compile(args: argparse.Namespace) -> int:
    outcome = asyncio.run(
        _service(args).compile_project(
            args.project_id, provider_override=_provider_override(args)
        )
    )
    _emit_json({"command": "compile", "snapshot": outcome.snapshot, "issues": outcome.issues})
    return 0


def _cmd_next_questions(args: argparse.Namespace) -> int:
    questions = asyncio.run(
        _service(args).generate_next_questions(
            args.project_id,
            args.count,
            mode=args.mode,
            provider_override=_provider_override(args),
        )
    )
    _emit_json({"command": "next-questions", "questions": questions})
    return 0


def _cmd_suggest(args: argparse.Namespace) -> int:
    suggestions = asyncio.run(
        _service(args).suggest_answers(
            args.project_id, mode=args.mode, provider_override=_provider_override(args)
        )
    )
    _emit_json({"command": "suggest", "suggestions": suggestions})
    return 0


def _cmd_snapshots(args: argparse.Namespace) -> int:
    service = _service(args)
    if args.trace:
        _emit_json({"command": "snapshots", "trace": service.latest_trace(args.project_id)})
        return 0
    if args.latest:
        _emit_json({"command": "snapshots", "snapshot": service.latest_snapshot(args.project_id)})
        return 0
    if args.snapshot_id is not None:
        snapshot = service.get_snapshot(args.snapshot_id)
        if snapshot.project_id != args.project_id:
            raise CLIError(f"snapshot {args.snapshot_id} does not belong to {args.project_id}")
        _emit_json({"command": "snapshots", "snapshot": snapshot})
        return 0
    _emit_json({"command": "snapshots", "snapshots": service.list_snapshots(args.project_id)})
    return 0


def _cmd_issues(args: argparse.Namespace) -> int:
    issues = _service(args).issues_for_snapshot(args.snapshot_id)
    _emit_json({"command": "issues", "issues": issues})
    return 0


def _cmd_diff(args: argparse.Namespace) -> int:
    result = _service(args).diff_snapshots(args.project_id, args.base_id, args.target_id)
    _emit_json({"command": "diff", "diff": result.diff, "impact": result.impact})
    return 0


def _cmd_providers(args: argparse.Namespace) -> int:
    _emit_json({"command": "providers", "providers": _service(args).list_providers()})
    return 0


def _cmd_config(args: argparse.Namespace) -> int:
    config = _load_effective_config(args)
    print(dump_effective_config(config))
    return 0


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _emit_json(payload: Mapping[str, object]) -> None:
    """Emit a JSON payload to stdout with deterministic formatting."""

    print(
        json.dumps(
            serialize_value(payload, "output"),
            sort_keys=True,
            separators=(",", ":"),
            ensure_ascii=False,
        )
    )


def _load_effective_config(args: argparse.Namespace) -> dict[str, Any]:
    overrides: dict[str, object] = {}
    if getattr(args, "state_db", None):
        overrides["paths.state_db"] = args.state_db
    if getattr(args, "log_level", None):
        overrides["observability.log_level"] = args.log_level
    try:
        return load_config(args.config_path, cli_overrides=overrides)
    except (ConfigLoadError, ConfigValidationError) as exc:
        raise CLIError(str(exc), exit_code=2) from exc


def _service(args: argparse.Namespace) -> SpecService:
    config = _load_effective_config(args)
    configure_from_config(config.get("observability"))
    return SpecService.from_config(config)


def _provider_override(args: argparse.Namespace) -> ProviderOverride | None:
    provider = getattr(args, "provider", None)
    model = getattr(args, "model", None)
    if provider is None:
        if model is not None:
            raise CLIError("--model requires --provider")
        return None
    return ProviderOverride(provider=provider, model=model)


__all__ = ["CLIError", "build_parser", "run_cli"]
