"""
Class-level score distribution for one quiz.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Sequence

from .responses import normalize_responses
from .roster import RosterEntry, email_key, lookup
from .scoring import overall_percent
from .stats import mean, percentile_rank, quartiles, std_dev
from .utils import parse_timestamp

logger = logging.getLogger(__name__)

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


@dataclass(frozen=True)
class ClassStatistics:
    """Distribution of overall percentages and one student's place in it."""

    count: int
    minimum: float
    maximum: float
    mean: float
    std_dev: float
    q1: float
    median: float
    q3: float
    percentile: float
    student_score: float

    def to_dict(self) -> Dict[str, float]:
        return {
            "count": self.count,
            "min": self.minimum,
            "max": self.maximum,
            "mean": self.mean,
            "stdDev": self.std_dev,
            "percentile": self.percentile,
            "studentScore": self.student_score,
        }

    def box_plot(self) -> Dict[str, float]:
        return {
            "min": self.minimum,
            "q1": self.q1,
            "median": self.median,
            "q3": self.q3,
            "max": self.maximum,
            "student": self.student_score,
        }


def document_updated_at(document: Mapping[str, Any]) -> Optional[datetime]:
    return parse_timestamp(document.get("lastUpdated")) or parse_timestamp(document.get("timestamp"))


def latest_by_email(documents: Mapping[str, Mapping[str, Any]]) -> Dict[str, Mapping[str, Any]]:
    """
    Keep one response document per lower-cased email.

    When a student owns several documents for the same quiz, the most
    recently updated one wins; documents without an email are dropped.
    """
    chosen: Dict[str, Mapping[str, Any]] = {}
    for doc_id in sorted(documents):
        document = documents[doc_id]
        key = email_key(document.get("email"))
        if not key:
            logger.debug("Response document %s has no email; skipped", doc_id)
            continue
        current = chosen.get(key)
        if current is None or (document_updated_at(document) or _EPOCH) > (
            document_updated_at(current) or _EPOCH
        ):
            chosen[key] = document
    return chosen


def class_scores(
    documents: Mapping[str, Mapping[str, Any]],
    roster: Mapping[str, RosterEntry],
    class_label: Optional[str] = None,
) -> Dict[str, float]:
    """
    Overall percentage per student email for the roster-matched documents.

    Students missing from the roster, or outside ``class_label`` when one is
    given, are left out of the distribution.
    """
    scores: Dict[str, float] = {}
    for key, document in latest_by_email(documents).items():
        entry = lookup(roster, key)
        if entry is None:
            logger.debug("No roster entry for %s; excluded from class statistics", key)
            continue
        if not entry.in_class(class_label):
            continue
        scores[key] = overall_percent(normalize_responses(document))
    return scores


def compute_class_statistics(scores: Sequence[float], student_score: float) -> ClassStatistics:
    """Summarise ``scores``; an empty distribution reports only the student's score."""
    values: List[float] = list(scores)
    if not values:
        return ClassStatistics(
            count=0,
            minimum=0.0,
            maximum=0.0,
            mean=0.0,
            std_dev=0.0,
            q1=0.0,
            median=0.0,
            q3=0.0,
            percentile=0.0,
            student_score=student_score,
        )

    spread = quartiles(values)
    return ClassStatistics(
        count=len(values),
        minimum=min(values),
        maximum=max(values),
        mean=mean(values),
        std_dev=std_dev(values),
        q1=spread.q1,
        median=spread.median,
        q3=spread.q3,
        percentile=percentile_rank(values, student_score),
        student_score=student_score,
    )
