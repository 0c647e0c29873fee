"""Join latest answers with their questions into the records the model stages consume."""

from __future__ import annotations

from collections.abc import Iterable, Mapping

import structlog

from specforge.domain.models import Answer, QABundle, Question

_logger = structlog.get_logger(__name__)


def build_qa_bundles(
    questions: Mapping[str, Question] | Iterable[Question],
    answers: Iterable[Answer],
) -> list[QABundle]:
    """Return one bundle per answer whose question is known, ordered by question id.

    Answers pointing at a missing question are skipped.
    """
    by_id = (
        dict(questions)
        if isinstance(questions, Mapping)
        else {question.id: question for question in questions}
    )
    bundles: list[QABundle] = []
    for answer in answers:
        question = by_id.get(answer.question_id)
        if question is None:
            _logger.warning(
                "qa_bundle_question_missing",
                question_id=answer.question_id,
                answer_id=answer.id,
            )
            continue
        bundles.append(QABundle.join(question, answer))
    bundles.sort(key=lambda bundle: bundle.question_id)
    return bundles


def derived_from(bundles: Iterable[QABundle]) -> dict[str, int]:
    """Map each bundled question id to the answer version the compilation used."""
    return {bundle.question_id: bundle.answer_version for bundle in bundles}


__all__ = ["build_qa_bundles", "derived_from"]
