"""
Build structured per-student reports from quiz responses and the roster.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from .class_stats import ClassStatistics, class_scores, compute_class_statistics, latest_by_email
from .errors import NotFoundError
from .responses import normalize_responses
from .roster import RosterEntry, email_key, lookup
from .scoring import (
    OUTCOME_LABELS,
    OUTCOME_ORDER,
    StudentScore,
    TopicAggregate,
    aggregate_topics,
    letter_grade,
    outcomes_at_or_above,
    outcomes_below,
    score_responses,
    topics_at_or_above,
    topics_below,
)
from .store import DocumentStore
from .utils import format_date

logger = logging.getLogger(__name__)

STRENGTH_THRESHOLD = 70.0
WEAKNESS_THRESHOLD = 50.0
MAX_SUMMARY_TOPICS = 3
DEFAULT_STUDENT_NAME = "Student"
DEFAULT_RESPONSES_COLLECTION = "responses"

STRENGTH_NOTES: Dict[str, str] = {
    "KU": "Shows secure knowledge and understanding of the scientific concepts covered.",
    "PS": "Applies problem-solving skills effectively to analyse data and scientific situations.",
    "CM": "Interprets and communicates scientific information accurately.",
}

ERROR_TYPES: Dict[str, str] = {
    "KU": "Gaps in recalling or understanding key scientific concepts and terms.",
    "PCE": "Difficulty planning, conducting or evaluating investigations (variables, fair tests, equipment).",
    "PS": "Errors analysing data or reasoning through unfamiliar problems.",
    "CM": "Misreading questions, diagrams or scientific vocabulary.",
}

RECOMMENDED_SKILLS: Dict[str, str] = {
    "KU": "Review key concepts and vocabulary with summary notes and self-quizzing.",
    "PCE": "Practise identifying variables and designing fair tests for simple investigations.",
    "PS": "Work through data-analysis questions step by step, writing down each part of the reasoning.",
    "CM": "Highlight key words in each question and practise explaining answers in scientific language.",
}

PERSONALISED_NOTES: Dict[str, str] = {
    "A": "Outstanding work. Extend yourself with challenge questions on the topics covered.",
    "B": "Strong result. Target the few topics below your best to move into the top band.",
    "C": "A sound result. Regular revision of the priority topics will lift your score.",
    "D": "You have a basic grasp of the work. Focus on the priority topics and ask for help early.",
    "E": "This task was challenging. Work through the priority topics with your teacher's support.",
}


@dataclass(frozen=True)
class ReportHeader:
    student_name: str
    class_name: str
    task_name: str
    date_completed: str
    overall_percent: float
    overall_grade: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "studentName": self.student_name,
            "className": self.class_name,
            "taskName": self.task_name,
            "dateCompleted": self.date_completed,
            "overallPercent": self.overall_percent,
            "overallGrade": self.overall_grade,
        }


@dataclass(frozen=True)
class StudentReport:
    """Everything needed to render one student's report."""

    quiz_id: str
    email: str
    header: ReportHeader
    score: StudentScore
    class_stats: ClassStatistics
    topics: List[TopicAggregate]
    strength_outcomes: List[str]
    strength_topics: List[TopicAggregate]
    strength_skills: List[str]
    weak_outcomes: List[str]
    weak_topics: List[TopicAggregate]
    error_types: List[str]
    priority_topics: List[TopicAggregate]
    recommended_skills: List[str]
    personalised_note: str
    summary_text: str
    roster_entry: Optional[RosterEntry] = field(default=None, compare=False)

    def to_dict(self) -> Dict[str, Any]:
        """Serialise to the field layout consumed by renderers and API clients."""
        return {
            "header": self.header.to_dict(),
            "rawMarks": {
                "overallRaw": self.score.overall.to_dict(),
                "outcomeRaw": {
                    outcome: self.score.outcomes[outcome].to_dict() for outcome in OUTCOME_ORDER
                },
            },
            "outcomes": {
                "outcomePercentages": self.score.outcome_percentages(),
                "order": list(OUTCOME_ORDER),
            },
            "stats": {
                "classStats": self.class_stats.to_dict(),
                "boxPlot": self.class_stats.box_plot(),
            },
            "topics": [topic.to_dict() for topic in self.topics],
            "strengths": {
                "strengthOutcomes": list(self.strength_outcomes),
                "strengthTopics": [topic.to_dict() for topic in self.strength_topics],
                "strengthSkills": list(self.strength_skills),
            },
            "weaknesses": {
                "weakOutcomes": list(self.weak_outcomes),
                "weakTopics": [topic.to_dict() for topic in self.weak_topics],
                "errorTypes": list(self.error_types),
            },
            "advice": {
                "priorityTopics": [topic.to_dict() for topic in self.priority_topics],
                "recommendedSkills": list(self.recommended_skills),
                "personalisedNote": self.personalised_note,
            },
            "summaryText": self.summary_text,
        }


def load_quiz_documents(
    store: DocumentStore,
    quiz_id: str,
    *,
    collection: str = DEFAULT_RESPONSES_COLLECTION,
) -> Dict[str, Dict[str, Any]]:
    """Return every response document for ``quiz_id``; NotFoundError if there are none."""
    documents = store.where(collection, "quizId", quiz_id)
    if not documents:
        raise NotFoundError(f"No responses recorded for quiz {quiz_id}.")
    return documents


def find_student_document(
    documents: Mapping[str, Mapping[str, Any]],
    email: str,
) -> Mapping[str, Any]:
    document = latest_by_email(documents).get(email_key(email))
    if document is None:
        raise NotFoundError(f"No responses found for {email}.")
    return document


def build_student_report(
    store: DocumentStore,
    roster: Mapping[str, RosterEntry],
    quiz_id: str,
    email: str,
    class_label: Optional[str] = None,
    *,
    collection: str = DEFAULT_RESPONSES_COLLECTION,
    documents: Optional[Mapping[str, Mapping[str, Any]]] = None,
) -> StudentReport:
    """
    Build the report model for one student on one quiz.

    ``documents`` may carry the quiz's response documents when the caller has
    already fetched them, as batch generation does.

    Raises
    ------
    NotFoundError
        If the quiz has no responses or the student has no response document.
    """
    if documents is None:
        documents = load_quiz_documents(store, quiz_id, collection=collection)
    document = find_student_document(documents, email)

    responses = normalize_responses(document)
    score = score_responses(responses)
    topics = aggregate_topics(responses)

    distribution = class_scores(documents, roster, class_label)
    class_stats = compute_class_statistics(list(distribution.values()), score.overall_percent)

    strength_outcomes = outcomes_at_or_above(score, STRENGTH_THRESHOLD)
    strength_topics = topics_at_or_above(topics, STRENGTH_THRESHOLD)
    strength_skills = [STRENGTH_NOTES[outcome] for outcome in strength_outcomes if outcome in STRENGTH_NOTES]

    weak_outcomes = outcomes_below(score, WEAKNESS_THRESHOLD)
    weak_topics = topics_below(topics, WEAKNESS_THRESHOLD)
    error_types = [ERROR_TYPES[outcome] for outcome in weak_outcomes]

    priority_topics = sorted(weak_topics, key=lambda topic: topic.percent)
    recommended_skills = [RECOMMENDED_SKILLS[outcome] for outcome in weak_outcomes]

    entry = lookup(roster, email)
    header = _build_header(document, entry, quiz_id, class_label, score.overall_percent)

    return StudentReport(
        quiz_id=quiz_id,
        email=str(document.get("email") or email),
        header=header,
        score=score,
        class_stats=class_stats,
        topics=topics,
        strength_outcomes=strength_outcomes,
        strength_topics=strength_topics,
        strength_skills=strength_skills,
        weak_outcomes=weak_outcomes,
        weak_topics=weak_topics,
        error_types=error_types,
        priority_topics=priority_topics,
        recommended_skills=recommended_skills,
        personalised_note=PERSONALISED_NOTES[header.overall_grade],
        summary_text=_build_summary(header, strength_outcomes, weak_outcomes, priority_topics),
        roster_entry=entry,
    )


def build_class_reports(
    store: DocumentStore,
    roster: Mapping[str, RosterEntry],
    quiz_id: str,
    class_label: str,
    *,
    collection: str = DEFAULT_RESPONSES_COLLECTION,
) -> List[StudentReport]:
    """
    Build reports for every rostered student of ``class_label``.

    Students are ordered by family name then given name. A student without a
    response document is logged and skipped; NotFoundError is raised only when
    no report could be built at all.
    """
    documents = load_quiz_documents(store, quiz_id, collection=collection)
    students = sorted(
        (entry for entry in roster.values() if entry.in_class(class_label)),
        key=RosterEntry.sort_key,
    )

    reports: List[StudentReport] = []
    for entry in students:
        try:
            reports.append(
                build_student_report(
                    store,
                    roster,
                    quiz_id,
                    entry.email,
                    class_label,
                    collection=collection,
                    documents=documents,
                )
            )
        except NotFoundError as exc:
            logger.info("Skipping %s in %s: %s", entry.email, class_label, exc)

    if not reports:
        raise NotFoundError(f"No reports could be built for class {class_label} on quiz {quiz_id}.")
    logger.info("Built %d report(s) for class %s on quiz %s", len(reports), class_label, quiz_id)
    return reports


def _build_header(
    document: Mapping[str, Any],
    entry: Optional[RosterEntry],
    quiz_id: str,
    class_label: Optional[str],
    overall: float,
) -> ReportHeader:
    student_name = entry.display_name() if entry else ""
    if not student_name:
        student_name = str(document.get("studentName") or "").strip() or DEFAULT_STUDENT_NAME

    class_name = class_label or (entry.class_label if entry else "") or ""
    task_name = str(document.get("quizName") or "").strip() or quiz_id
    date_completed = format_date(document.get("lastUpdated")) or format_date(document.get("timestamp"))

    return ReportHeader(
        student_name=student_name,
        class_name=class_name,
        task_name=task_name,
        date_completed=date_completed,
        overall_percent=overall,
        overall_grade=letter_grade(overall),
    )


def _outcome_list(outcomes: List[str]) -> str:
    return ", ".join(f"{OUTCOME_LABELS[outcome]} ({outcome})" for outcome in outcomes)


def _build_summary(
    header: ReportHeader,
    strength_outcomes: List[str],
    weak_outcomes: List[str],
    priority_topics: List[TopicAggregate],
) -> str:
    sentences = [
        f"{header.student_name} scored {header.overall_percent:.1f}% (grade {header.overall_grade}) "
        f"on {header.task_name}."
    ]
    if strength_outcomes:
        sentences.append(f"The strongest outcome areas were {_outcome_list(strength_outcomes)}.")
    else:
        sentences.append(
            "No outcome area has reached the 70% benchmark yet, so building secure "
            "foundations across all areas is the next step."
        )
    if weak_outcomes:
        sentences.append(f"The outcome areas needing the most attention are {_outcome_list(weak_outcomes)}.")
    if priority_topics:
        topics = ", ".join(
            f"{topic.topic_name} ({topic.percent:.0f}%)" for topic in priority_topics[:MAX_SUMMARY_TOPICS]
        )
        sentences.append(f"Priority topics for revision: {topics}.")
    return " ".join(sentences)
