"""Versioned, append-only answer ledger."""

from __future__ import annotations

from specforge.ledger.answer_ledger import DEFAULT_RETRY_LIMIT, AnswerLedger

__all__ = ["DEFAULT_RETRY_LIMIT", "AnswerLedger"]
