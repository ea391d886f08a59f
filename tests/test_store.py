"""
Tests for the document stores and answer recording.
"""
import json

import pytest

from quiz_report.errors import ValidationError
from quiz_report.responses import normalize_responses
from quiz_report.store import JsonDocumentStore, MemoryDocumentStore, record_answer


class TestMemoryDocumentStore:
    """Query semantics."""

    def test_missing_versus_empty_document(self):
        store = MemoryDocumentStore({"responses": {"empty": {}}})
        assert store.get("responses", "empty") == {}
        assert store.get("responses", "absent") is None

    def test_where_matches_on_equality(self, store):
        matched = store.where("responses", "quizId", "task2_2025")
        assert list(matched) == ["uid-adams-t2"]

    def test_get_many(self, store):
        found = store.get_many("students", ["S001", "S999"])
        assert found["S001"]["givenName"] == "Zara"
        assert found["S999"] is None

    def test_returned_documents_are_copies(self, store):
        document = store.get("students", "S001")
        document["givenName"] = "Changed"
        assert store.get("students", "S001")["givenName"] == "Zara"

    def test_set_replaces_without_merge(self):
        store = MemoryDocumentStore({"c": {"k": {"a": 1, "b": 2}}})
        store.set("c", "k", {"a": 3})
        assert store.get("c", "k") == {"a": 3}

    def test_set_merges_top_level_fields(self):
        store = MemoryDocumentStore({"c": {"k": {"a": 1, "b": 2}}})
        store.set("c", "k", {"a": 3}, merge=True)
        assert store.get("c", "k") == {"a": 3, "b": 2}

    def test_collections(self, store):
        assert store.collections() == ["responses", "students"]


class TestJsonDocumentStore:
    """One JSON file per collection."""

    def test_loads_and_persists(self, tmp_path):
        (tmp_path / "students.json").write_text(
            json.dumps({"S1": {"email": "kai@school.edu"}}), encoding="utf-8"
        )
        store = JsonDocumentStore(tmp_path)
        assert store.get("students", "S1") == {"email": "kai@school.edu"}

        store.set("responses", "u1", {"quizId": "t1"})
        saved = json.loads((tmp_path / "responses.json").read_text(encoding="utf-8"))
        assert saved == {"u1": {"quizId": "t1"}}

    def test_rejects_non_object_files(self, tmp_path):
        (tmp_path / "students.json").write_text("[]", encoding="utf-8")
        with pytest.raises(ValidationError):
            JsonDocumentStore(tmp_path)

    def test_missing_directory_is_empty(self, tmp_path):
        assert JsonDocumentStore(tmp_path / "missing").collections() == []


class TestRecordAnswer:
    """Client-style answer upserts."""

    def test_answers_accumulate_in_one_document(self):
        store = MemoryDocumentStore()
        common = dict(uid="u1", email="kai@school.edu", quiz_id="t1")
        record_answer(store, question_id="q1", answer="A", correct_answer="A", outcome="KU", **common)
        record_answer(store, question_id="q2", answer="C", correct_answer="B", topic="forces", **common)

        document = store.get("responses", "u1")
        assert document["quizId"] == "t1"
        assert "lastUpdated" in document
        responses = normalize_responses(document)
        assert responses["q1"].correct
        assert not responses["q2"].correct
        assert responses["q2"].topic_id == "forces"

    def test_survey_question_has_no_correctness(self):
        store = MemoryDocumentStore()
        payload = record_answer(store, uid="u1", email="e", quiz_id="t1", question_id="q9", answer="D")
        entry = payload["responses.q9"]
        assert entry["correctAnswer"] is None
        assert entry["isCorrect"] is None

    def test_rerecording_replaces_the_answer(self):
        store = MemoryDocumentStore()
        for answer in ("A", "B"):
            record_answer(
                store, uid="u1", email="e", quiz_id="t1", question_id="q1", answer=answer, correct_answer="B"
            )
        assert normalize_responses(store.get("responses", "u1"))["q1"].correct

    def test_requires_identifiers(self):
        with pytest.raises(ValidationError):
            record_answer(MemoryDocumentStore(), uid="", email="e", quiz_id="t1", question_id="q1", answer="A")
