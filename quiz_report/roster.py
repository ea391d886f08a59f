"""
Utility helpers to load the student roster and join it to response documents.
"""

from __future__ import annotations

import csv
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional

from openpyxl import load_workbook

from .errors import QuizReportError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RosterEntry:
    """Normalised representation of a student entry."""

    student_code: str
    email: str
    given_name: str
    family_name: str
    year_level: Optional[int] = None
    class_label: str = ""

    def display_name(self) -> str:
        return f"{self.given_name} {self.family_name}".strip()

    def sort_key(self) -> tuple[str, str]:
        return (self.family_name.casefold(), self.given_name.casefold())

    def in_class(self, class_label: Optional[str]) -> bool:
        if class_label is None:
            return True
        return self.class_label.strip().casefold() == class_label.strip().casefold()


class RosterError(QuizReportError):
    """Raised when the roster cannot be parsed."""


_CODE_KEYS = {"studentcode", "code", "studentid", "studentnumber", "srn"}
_EMAIL_KEYS = {"email", "emailaddress", "mail"}
_GIVEN_NAME_KEYS = {"givenname", "firstname", "preferredname", "given"}
_FAMILY_NAME_KEYS = {"familyname", "lastname", "surname", "family"}
_YEAR_KEYS = {"yearlevel", "year", "grade", "schoolyear"}
_CLASS_KEYS = {"classlabel", "class", "classname", "classcode", "rollclass"}


def email_key(email: Optional[str]) -> str:
    """Case-insensitive join key for student emails."""
    return (email or "").strip().casefold()


def load_roster(path: Path) -> List[RosterEntry]:
    """
    Load a roster file (CSV or XLSX) and return a list of roster entries.

    Raises
    ------
    RosterError
        If the file cannot be parsed or contains no usable student entries.
    """
    if not path.exists():
        raise RosterError(f"Roster file not found: {path}")

    suffix = path.suffix.lower()
    rows: List[Dict[str, Any]]
    if suffix in {".csv", ".tsv"}:
        rows = _read_csv_rows(path)
    elif suffix in {".xlsx", ".xlsm", ".xltx", ".xltm"}:
        rows = _read_xlsx_rows(path)
    else:
        raise RosterError(f"Unsupported roster format (expected CSV or XLSX): {path}")

    entries = [entry for entry in (row_to_entry(row) for row in rows) if entry]
    if not entries:
        raise RosterError(f"No student entries found in roster: {path}")
    return entries


def roster_from_documents(documents: Mapping[str, Mapping[str, Any]]) -> List[RosterEntry]:
    """Build roster entries from the documents of the roster collection."""
    entries: List[RosterEntry] = []
    for doc_id, document in documents.items():
        entry = row_to_entry(document)
        if entry is None:
            logger.debug("Ignoring roster document %s without an email", doc_id)
            continue
        entries.append(entry)
    return entries


def resolve_roster(
    store: Any,
    collection: str = "students",
    roster_path: Optional[Path] = None,
) -> Dict[str, RosterEntry]:
    """
    Index the roster from ``roster_path`` when given, else from the store collection.
    """
    if roster_path is not None:
        entries = load_roster(roster_path)
    else:
        entries = roster_from_documents(store.all(collection))
    return index_roster(entries)


def index_roster(entries: Iterable[RosterEntry]) -> Dict[str, RosterEntry]:
    """Map lower-cased email to roster entry; the first entry for an email wins."""
    index: Dict[str, RosterEntry] = {}
    for entry in entries:
        key = email_key(entry.email)
        if not key:
            continue
        if key in index:
            logger.warning("Duplicate roster email %s ignored", entry.email)
            continue
        index[key] = entry
    return index


def lookup(roster: Mapping[str, RosterEntry], email: Optional[str]) -> Optional[RosterEntry]:
    return roster.get(email_key(email))


def row_to_entry(row: Mapping[str, Any]) -> Optional[RosterEntry]:
    if not row:
        return None

    def _lookup(keys: Iterable[str]) -> str:
        for column, value in row.items():
            if not column:
                continue
            if _normalize_key(str(column)) in keys:
                return "" if value is None else str(value).strip()
        return ""

    email = _lookup(_EMAIL_KEYS)
    if not email:
        return None

    return RosterEntry(
        student_code=_lookup(_CODE_KEYS),
        email=email,
        given_name=_collapse_spaces(_lookup(_GIVEN_NAME_KEYS)),
        family_name=_collapse_spaces(_lookup(_FAMILY_NAME_KEYS)),
        year_level=_parse_year(_lookup(_YEAR_KEYS)),
        class_label=_collapse_spaces(_lookup(_CLASS_KEYS)),
    )


def _normalize_key(value: str) -> str:
    return re.sub(r"[^0-9a-z]", "", value.casefold())


def _collapse_spaces(value: str) -> str:
    return re.sub(r"\s+", " ", value).strip()


def _parse_year(value: str) -> Optional[int]:
    match = re.search(r"\d+", value or "")
    if not match:
        return None
    return int(match.group(0))


def _read_csv_rows(path: Path) -> List[Dict[str, str]]:
    with path.open("r", encoding="utf-8-sig", newline="") as handle:
        sample = handle.read(2048)
        handle.seek(0)
        delimiter = _detect_delimiter(sample)
        reader = csv.DictReader(handle, delimiter=delimiter)
        return [
            _clean_row(row)
            for row in reader
            if any((value or "").strip() for value in row.values() if isinstance(value, str))
        ]


def _detect_delimiter(sample: str) -> str:
    try:
        dialect = csv.Sniffer().sniff(sample, delimiters=";,\t")
        return dialect.delimiter
    except csv.Error:
        return ";" if sample.count(";") > sample.count(",") else ","


def _read_xlsx_rows(path: Path) -> List[Dict[str, str]]:
    try:
        workbook = load_workbook(path, read_only=True, data_only=True)
    except (OSError, ValueError, KeyError) as exc:
        raise RosterError(f"Unable to read roster workbook {path}: {exc}") from exc
    try:
        sheet = workbook.active
        headers: List[str] = []
        rows: List[Dict[str, str]] = []
        for index, row in enumerate(sheet.iter_rows(values_only=True)):
            values = [("" if cell is None else str(cell)).strip() for cell in row]
            if index == 0:
                headers = values
                continue
            if not headers:
                continue
            row_dict = {headers[i]: values[i] for i in range(min(len(headers), len(values)))}
            if any(value for value in row_dict.values()):
                rows.append(_clean_row(row_dict))
        return rows
    finally:
        workbook.close()


def _clean_row(row: Mapping[Optional[str], Optional[str]]) -> Dict[str, str]:
    return {
        key: (value or "").strip()
        for key, value in row.items()
        if key and isinstance(value, (str, type(None)))
    }
