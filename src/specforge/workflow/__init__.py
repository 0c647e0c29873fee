"""Workflow service over the ledger, compiler stages and state DB."""

from specforge.workflow.seeds import SEED_TAG, load_seed_catalog, seed_questions
from specforge.workflow.service import CompileOutcome, SnapshotDiff, SpecService

__all__ = [
    "SEED_TAG",
    "CompileOutcome",
    "SnapshotDiff",
    "SpecService",
    "load_seed_catalog",
    "seed_questions",
]
