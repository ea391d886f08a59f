"""
Spreadsheet exports of quiz responses joined with the student roster.
"""

from __future__ import annotations

import csv
import io
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, List, Mapping, Optional

from openpyxl import Workbook
from openpyxl.styles import Font

from .class_stats import latest_by_email
from .errors import NotFoundError
from .report import DEFAULT_RESPONSES_COLLECTION, load_quiz_documents
from .responses import QuestionResponse, normalize_responses
from .roster import RosterEntry, lookup
from .scoring import OUTCOME_ORDER, letter_grade, score_responses
from .store import DocumentStore
from .utils import format_date

logger = logging.getLogger(__name__)

BASE_HEADER = [
    "Student Code",
    "Family Name",
    "Given Name",
    "Email",
    "Year",
    "Class",
    "Quiz",
    "Overall %",
    "Grade",
    *[f"{outcome} %" for outcome in OUTCOME_ORDER],
    "Correct",
    "Scored",
    "Completed",
]


@dataclass(frozen=True)
class ExportTable:
    """Ordered header plus one row of scalar values per student."""

    header: List[str]
    rows: List[List[Any]]


def question_sort_key(question_id: str) -> tuple:
    """Natural ordering so that ``q2`` precedes ``q10``."""
    return tuple(
        (0, int(part), "") if part.isdigit() else (1, 0, part.casefold())
        for part in re.split(r"(\d+)", question_id)
        if part
    )


def build_export_rows(
    store: DocumentStore,
    roster: Mapping[str, RosterEntry],
    quiz_id: str,
    class_label: Optional[str] = None,
    *,
    collection: str = DEFAULT_RESPONSES_COLLECTION,
) -> ExportTable:
    """
    Join the quiz's response documents with the roster into a flat table.

    Raises
    ------
    NotFoundError
        If the quiz has no responses or no rostered student matches.
    """
    documents = load_quiz_documents(store, quiz_id, collection=collection)

    joined: List[tuple[RosterEntry, Mapping[str, Any], dict[str, QuestionResponse]]] = []
    question_ids: set[str] = set()
    for key, document in latest_by_email(documents).items():
        entry = lookup(roster, key)
        if entry is None or not entry.in_class(class_label):
            continue
        responses = normalize_responses(document)
        question_ids.update(responses)
        joined.append((entry, document, responses))

    if not joined:
        scope = f" in class {class_label}" if class_label else ""
        raise NotFoundError(f"No rostered responses for quiz {quiz_id}{scope}.")

    ordered_questions = sorted(question_ids, key=question_sort_key)
    joined.sort(key=lambda item: (item[0].class_label.casefold(), *item[0].sort_key()))

    rows: List[List[Any]] = []
    for entry, document, responses in joined:
        score = score_responses(responses)
        row: List[Any] = [
            entry.student_code,
            entry.family_name,
            entry.given_name,
            entry.email,
            entry.year_level,
            entry.class_label,
            quiz_id,
            round(score.overall_percent, 1),
            letter_grade(score.overall_percent),
            *[round(score.outcome_percent(outcome), 1) for outcome in OUTCOME_ORDER],
            score.overall.correct,
            score.overall.total,
            format_date(document.get("lastUpdated")) or format_date(document.get("timestamp")),
        ]
        for question_id in ordered_questions:
            response = responses.get(question_id)
            row.append(response.answer if response else None)
        rows.append(row)

    logger.info("Exporting %d student row(s) for quiz %s", len(rows), quiz_id)
    return ExportTable(header=BASE_HEADER + ordered_questions, rows=rows)


def xlsx_bytes(table: ExportTable, *, title: str = "Responses") -> bytes:
    wb = Workbook()
    ws = wb.active
    ws.title = title[:31]
    ws.append(table.header)
    for cell in ws[1]:
        cell.font = Font(bold=True)
    for row in table.rows:
        ws.append(row)
    ws.freeze_panes = "A2"

    buf = io.BytesIO()
    wb.save(buf)
    return buf.getvalue()


def csv_text(table: ExportTable) -> str:
    handle = io.StringIO()
    writer = csv.writer(handle)
    writer.writerow(table.header)
    for row in table.rows:
        writer.writerow(["" if value is None else value for value in row])
    return handle.getvalue()


def write_xlsx(table: ExportTable, out_path: Path, *, title: str = "Responses") -> Path:
    out_path.write_bytes(xlsx_bytes(table, title=title))
    return out_path


def write_csv(table: ExportTable, out_path: Path) -> Path:
    with out_path.open("w", newline="", encoding="utf-8") as handle:
        handle.write(csv_text(table))
    return out_path
