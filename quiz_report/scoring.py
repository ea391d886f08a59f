"""
Per-student scoring: overall and per-outcome percentages, topic mastery, grades.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Tuple

from .responses import QuestionResponse

OUTCOME_ORDER: Tuple[str, ...] = ("KU", "PCE", "PS", "CM")
OUTCOME_LABELS: Dict[str, str] = {
    "KU": "Knowledge & Understanding",
    "PCE": "Planning, Conducting & Evaluating",
    "PS": "Problem Solving",
    "CM": "Communication",
}

MASTERY_LEVELS: Tuple[Tuple[float, str], ...] = (
    (85.0, "Outstanding"),
    (70.0, "Thorough"),
    (55.0, "Sound"),
    (40.0, "Basic"),
)
LOWEST_MASTERY = "Limited"

GRADE_CUTOFFS: Tuple[Tuple[float, str], ...] = (
    (90.0, "A"),
    (75.0, "B"),
    (60.0, "C"),
    (45.0, "D"),
)
LOWEST_GRADE = "E"

DEFAULT_TOPIC_NAME = "Topic"


def percentage(correct: int, total: int) -> float:
    """100 * correct / total, or 0 when nothing was scored."""
    if total <= 0:
        return 0.0
    return 100.0 * correct / total


def mastery_level(percent: float) -> str:
    for threshold, label in MASTERY_LEVELS:
        if percent >= threshold:
            return label
    return LOWEST_MASTERY


def letter_grade(percent: float) -> str:
    for threshold, grade in GRADE_CUTOFFS:
        if percent >= threshold:
            return grade
    return LOWEST_GRADE


@dataclass(frozen=True)
class RawMark:
    """Correct/total counts for a group of scored questions."""

    correct: int = 0
    total: int = 0

    @property
    def percent(self) -> float:
        return percentage(self.correct, self.total)

    def to_dict(self) -> Dict[str, int]:
        return {"correct": self.correct, "total": self.total}


@dataclass(frozen=True)
class StudentScore:
    """Overall and per-outcome marks of one student."""

    overall: RawMark
    outcomes: Dict[str, RawMark] = field(default_factory=dict)

    @property
    def overall_percent(self) -> float:
        return self.overall.percent

    def outcome_percent(self, outcome: str) -> float:
        mark = self.outcomes.get(outcome)
        return mark.percent if mark else 0.0

    def outcome_percentages(self) -> Dict[str, float]:
        return {outcome: self.outcome_percent(outcome) for outcome in OUTCOME_ORDER}


@dataclass(frozen=True)
class TopicAggregate:
    """Correctness of one topic across the scored questions."""

    topic_id: str
    topic_name: str
    correct: int
    total: int

    @property
    def percent(self) -> float:
        return percentage(self.correct, self.total)

    @property
    def level(self) -> str:
        return mastery_level(self.percent)

    def to_dict(self) -> Dict[str, object]:
        return {
            "topicId": self.topic_id,
            "topicName": self.topic_name,
            "correct": self.correct,
            "total": self.total,
            "percent": self.percent,
            "level": self.level,
        }


def scored_set(responses: Mapping[str, QuestionResponse]) -> List[QuestionResponse]:
    """Questions that have a correct answer and therefore count toward scores."""
    return [response for response in responses.values() if response.is_scored]


def score_responses(responses: Mapping[str, QuestionResponse]) -> StudentScore:
    """
    Compute overall and per-outcome marks from a normalised response mapping.

    Only questions in the scored set contribute; survey items without a
    correct answer are ignored entirely.
    """
    scored = scored_set(responses)
    overall_correct = sum(1 for response in scored if response.correct)

    outcomes: Dict[str, RawMark] = {}
    for outcome in OUTCOME_ORDER:
        members = [response for response in scored if response.outcome == outcome]
        outcomes[outcome] = RawMark(
            correct=sum(1 for response in members if response.correct),
            total=len(members),
        )

    return StudentScore(
        overall=RawMark(correct=overall_correct, total=len(scored)),
        outcomes=outcomes,
    )


def overall_percent(responses: Mapping[str, QuestionResponse]) -> float:
    scored = scored_set(responses)
    return percentage(sum(1 for response in scored if response.correct), len(scored))


def aggregate_topics(responses: Mapping[str, QuestionResponse]) -> List[TopicAggregate]:
    """Group scored questions by topic id, sorted by topic id."""
    names: Dict[str, str] = {}
    counts: Dict[str, List[int]] = {}

    for response in scored_set(responses):
        topic_id = response.topic_id
        if topic_id is None:
            continue
        if topic_id not in counts:
            names[topic_id] = response.topic_name or topic_id or DEFAULT_TOPIC_NAME
            counts[topic_id] = [0, 0]
        tally = counts[topic_id]
        tally[1] += 1
        if response.correct:
            tally[0] += 1

    return [
        TopicAggregate(
            topic_id=topic_id,
            topic_name=names[topic_id],
            correct=counts[topic_id][0],
            total=counts[topic_id][1],
        )
        for topic_id in sorted(counts)
    ]


def outcomes_at_or_above(score: StudentScore, threshold: float) -> List[str]:
    return [outcome for outcome in OUTCOME_ORDER if score.outcome_percent(outcome) >= threshold]


def outcomes_below(score: StudentScore, threshold: float) -> List[str]:
    """Outcomes scoring under ``threshold``; an unassessed outcome counts as 0%."""
    return [outcome for outcome in OUTCOME_ORDER if score.outcome_percent(outcome) < threshold]


def topics_at_or_above(topics: Iterable[TopicAggregate], threshold: float) -> List[TopicAggregate]:
    return [topic for topic in topics if topic.percent >= threshold]


def topics_below(topics: Iterable[TopicAggregate], threshold: float) -> List[TopicAggregate]:
    return [topic for topic in topics if topic.percent < threshold]
