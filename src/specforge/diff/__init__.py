"""Structural diff and change-impact analysis for compiled documents."""

from __future__ import annotations

from specforge.diff.engine import (
    Change,
    ChangeKind,
    DiffResult,
    DiffSummary,
    ImpactReport,
    analyze_impact,
    diff,
    diff_json,
)

__all__ = [
    "Change",
    "ChangeKind",
    "DiffResult",
    "DiffSummary",
    "ImpactReport",
    "analyze_impact",
    "diff",
    "diff_json",
]
