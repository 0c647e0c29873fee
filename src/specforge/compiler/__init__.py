"""Model-driven pipeline stages, stage output parsing and issue hydration."""

from specforge.compiler.bundles import build_qa_bundles, derived_from
from specforge.compiler.issues import (
    drafts_from_schema_report,
    drafts_from_trace_gaps,
    hydrate_issues,
    merge_drafts,
)
from specforge.compiler.orchestrator import (
    CompileResult,
    CompilerOrchestrator,
    CompilerSettings,
    ProviderOverride,
)
from specforge.compiler.outputs import extract_json_object, parse_compile_output

__all__ = [
    "CompileResult",
    "CompilerOrchestrator",
    "CompilerSettings",
    "ProviderOverride",
    "build_qa_bundles",
    "derived_from",
    "drafts_from_schema_report",
    "drafts_from_trace_gaps",
    "extract_json_object",
    "hydrate_issues",
    "merge_drafts",
    "parse_compile_output",
]
