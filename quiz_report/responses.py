"""
Normalise stored quiz-response documents into one question mapping.

The quiz client upserts one field per answered question using a dotted name
(``responses.q3``), while older documents hold a nested ``responses``
mapping. Both shapes are merged here before any scoring takes place.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

RESPONSES_FIELD = "responses"
FLATTENED_PREFIX = RESPONSES_FIELD + "."


@dataclass(frozen=True)
class QuestionResponse:
    """Single answered question as written by the quiz client."""

    question_id: str
    answer: Optional[str] = None
    correct_answer: Optional[str] = None
    is_correct: Optional[bool] = None
    outcome: Optional[str] = None
    topic_id: Optional[str] = None
    topic_name: Optional[str] = None
    grade_level: Optional[str] = None

    @classmethod
    def from_mapping(cls, question_id: str, data: Any) -> "QuestionResponse":
        if not isinstance(data, Mapping):
            return cls(question_id=question_id)

        correct_answer = data.get("correctAnswer")
        is_correct = data.get("isCorrect")
        outcome = data.get("outcome")
        # NOTE: records with neither topicId nor topic are never aggregated by topic.
        topic_id = data.get("topicId") or data.get("topic")
        topic_name = data.get("topicName")

        return cls(
            question_id=question_id,
            answer=_as_text(data.get("answer")),
            correct_answer=correct_answer if isinstance(correct_answer, str) else None,
            is_correct=is_correct if isinstance(is_correct, bool) else None,
            outcome=str(outcome).strip().upper() if outcome else None,
            topic_id=str(topic_id) if topic_id else None,
            topic_name=str(topic_name) if topic_name else None,
            grade_level=_as_text(data.get("gradeLevel")),
        )

    @property
    def is_scored(self) -> bool:
        """True when the question has a correct answer and counts toward scores."""
        return isinstance(self.correct_answer, str) and self.correct_answer != ""

    @property
    def correct(self) -> bool:
        if not self.is_scored:
            return False
        if self.is_correct is not None:
            return self.is_correct
        return self.answer == self.correct_answer


def _as_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    return str(value)


def normalize_responses(document: Mapping[str, Any]) -> Dict[str, QuestionResponse]:
    """
    Merge nested and flattened question fields of a response document.

    Nested entries are read first and flattened ``responses.<id>`` fields
    second, so a flattened entry replaces a nested entry with the same id.
    Flattened fields whose value is not a mapping are ignored.
    """
    merged: Dict[str, Any] = {}

    nested = document.get(RESPONSES_FIELD)
    if isinstance(nested, Mapping):
        for question_id, payload in nested.items():
            merged[str(question_id)] = payload

    for key, payload in document.items():
        if not isinstance(key, str) or not key.startswith(FLATTENED_PREFIX):
            continue
        if not isinstance(payload, Mapping):
            continue
        merged[key[len(FLATTENED_PREFIX) :]] = payload

    return {
        question_id: QuestionResponse.from_mapping(question_id, payload)
        for question_id, payload in merged.items()
    }
