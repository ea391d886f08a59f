"""
Tests for roster loading and indexing.
"""
import pytest
from openpyxl import Workbook

from quiz_report.roster import (
    RosterEntry,
    RosterError,
    index_roster,
    load_roster,
    lookup,
    resolve_roster,
    row_to_entry,
)
from quiz_report.store import MemoryDocumentStore


class TestLoadRoster:
    """CSV and XLSX roster files."""

    def test_csv_with_semicolons(self, tmp_path):
        path = tmp_path / "roster.csv"
        path.write_text(
            "Student Code;Email;First Name;Surname;Year;Class\n"
            "S010;kai.lee@student.example.edu;Kai;Lee;Year 8;8Sci2\n"
            ";;;;;\n"
            "S011;ana.silva@student.example.edu;Ana; Silva ;8;8Sci2\n",
            encoding="utf-8",
        )
        entries = load_roster(path)
        assert entries == [
            RosterEntry("S010", "kai.lee@student.example.edu", "Kai", "Lee", 8, "8Sci2"),
            RosterEntry("S011", "ana.silva@student.example.edu", "Ana", "Silva", 8, "8Sci2"),
        ]

    def test_xlsx(self, tmp_path):
        path = tmp_path / "roster.xlsx"
        workbook = Workbook()
        sheet = workbook.active
        sheet.append(["email", "given_name", "family_name", "class_label", "year_level"])
        sheet.append(["kai.lee@student.example.edu", "Kai", "Lee", "8Sci2", 8])
        sheet.append([None, None, None, None, None])
        workbook.save(path)

        entries = load_roster(path)
        assert len(entries) == 1
        assert entries[0].display_name() == "Kai Lee"
        assert entries[0].year_level == 8

    def test_missing_file(self, tmp_path):
        with pytest.raises(RosterError):
            load_roster(tmp_path / "nope.csv")

    def test_unsupported_format(self, tmp_path):
        path = tmp_path / "roster.txt"
        path.write_text("email\n", encoding="utf-8")
        with pytest.raises(RosterError):
            load_roster(path)

    def test_rows_without_email_are_rejected(self, tmp_path):
        path = tmp_path / "roster.csv"
        path.write_text("Name,Class\nKai Lee,8Sci2\n", encoding="utf-8")
        with pytest.raises(RosterError):
            load_roster(path)


class TestRosterIndex:
    """Email keyed lookups."""

    def test_lookup_is_case_insensitive(self):
        roster = index_roster([RosterEntry("S1", "Kai.Lee@School.edu", "Kai", "Lee")])
        assert lookup(roster, " kai.lee@school.EDU ").student_code == "S1"
        assert lookup(roster, None) is None

    def test_first_duplicate_wins(self):
        roster = index_roster(
            [
                RosterEntry("S1", "kai@school.edu", "Kai", "Lee"),
                RosterEntry("S2", "KAI@school.edu", "Kai", "Duplicate"),
            ]
        )
        assert len(roster) == 1
        assert roster["kai@school.edu"].student_code == "S1"

    def test_row_to_entry_requires_email(self):
        assert row_to_entry({"givenName": "Kai"}) is None

    def test_in_class(self):
        entry = RosterEntry("S1", "kai@school.edu", "Kai", "Lee", class_label="8Sci2")
        assert entry.in_class(None)
        assert entry.in_class(" 8SCI2 ")
        assert not entry.in_class("8Sci1")


class TestResolveRoster:
    """Store collection versus roster file."""

    def test_from_store(self, store):
        roster = resolve_roster(store)
        assert len(roster) == 6

    def test_file_overrides_store(self, store, tmp_path):
        path = tmp_path / "roster.csv"
        path.write_text("email,given name,family name\nkai@school.edu,Kai,Lee\n", encoding="utf-8")
        assert list(resolve_roster(store, roster_path=path)) == ["kai@school.edu"]

    def test_empty_collection(self):
        assert resolve_roster(MemoryDocumentStore()) == {}
