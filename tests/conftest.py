"""
Pytest configuration and shared fixtures for testing.
"""
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import pytest
from jose import jwt

from quiz_report.roster import index_roster, roster_from_documents
from quiz_report.store import MemoryDocumentStore

QUIZ_ID = "task1_2025"
CLASS_LABEL = "7Sci3"

SECRET = "test-secret"
TEACHER = "j.smith@education.nsw.gov.au"

# (question id, correct answer, outcome, topic id, topic name)
QUESTIONS = [
    ("q1", "A", "KU", "cells", "Cells & Organisation"),
    ("q2", "B", "KU", "cells", "Cells & Organisation"),
    ("q3", "C", "PCE", "forces", "Forces"),
    ("q4", "D", "PS", "forces", "Forces"),
    ("q5", "A", "CM", "energy", "Energy"),
]

ROSTER_DOCUMENTS: Dict[str, Dict[str, Any]] = {
    "S001": {
        "studentCode": "S001",
        "email": "zara.adams@student.example.edu",
        "givenName": "Zara",
        "familyName": "Adams",
        "yearLevel": 7,
        "classLabel": CLASS_LABEL,
    },
    "S002": {
        "studentCode": "S002",
        "email": "liam.baker@student.example.edu",
        "givenName": "Liam",
        "familyName": "Baker",
        "yearLevel": 7,
        "classLabel": CLASS_LABEL,
    },
    "S003": {
        "studentCode": "S003",
        "email": "mia.chen@student.example.edu",
        "givenName": "Mia",
        "familyName": "Chen",
        "yearLevel": 7,
        "classLabel": CLASS_LABEL,
    },
    "S004": {
        "studentCode": "S004",
        "email": "oscar.dunn@student.example.edu",
        "givenName": "Oscar",
        "familyName": "Dunn",
        "yearLevel": 7,
        "classLabel": CLASS_LABEL,
    },
    "S005": {
        "studentCode": "S005",
        "email": "ruby.evans@student.example.edu",
        "givenName": "Ruby",
        "familyName": "Evans",
        "yearLevel": 7,
        "classLabel": CLASS_LABEL,
    },
    "S006": {
        "studentCode": "S006",
        "email": "noah.fox@student.example.edu",
        "givenName": "Noah",
        "familyName": "Fox",
        "yearLevel": 7,
        "classLabel": "7Sci1",
    },
}


def question_entry(question_id: str, answer: str) -> Dict[str, Any]:
    for qid, correct, outcome, topic_id, topic_name in QUESTIONS:
        if qid == question_id:
            return {
                "answer": answer,
                "correctAnswer": correct,
                "isCorrect": answer == correct,
                "outcome": outcome,
                "topicId": topic_id,
                "topicName": topic_name,
            }
    raise KeyError(question_id)


def make_document(
    uid: str,
    email: str,
    answers: List[str],
    *,
    flattened: bool = False,
    last_updated: Optional[str] = "2025-03-14T09:30:00Z",
    **extra: Any,
) -> Dict[str, Any]:
    """Response document answering q1..qN in order, nested or flattened."""
    entries = {
        question_id: question_entry(question_id, answer)
        for (question_id, *_), answer in zip(QUESTIONS, answers)
    }
    document: Dict[str, Any] = {"uid": uid, "email": email, "quizId": QUIZ_ID}
    if flattened:
        document.update({f"responses.{qid}": entry for qid, entry in entries.items()})
    else:
        document["responses"] = entries
    if last_updated is not None:
        document["lastUpdated"] = last_updated
    document.update(extra)
    return document


def response_documents() -> Dict[str, Dict[str, Any]]:
    return {
        # 4/5 correct -> 80%
        "uid-adams": make_document(
            "uid-adams",
            "Zara.Adams@student.example.edu",
            ["A", "B", "C", "D", "B"],
            quizName="Task 1 - Living Things",
        ),
        # 3/5 correct -> 60%
        "uid-baker": make_document(
            "uid-baker",
            "liam.baker@student.example.edu",
            ["A", "B", "C", "A", "B"],
            flattened=True,
        ),
        # Other class, 5/5
        "uid-fox": make_document("uid-fox", "noah.fox@student.example.edu", ["A", "B", "C", "D", "A"]),
        # Not on the roster
        "uid-visitor": make_document("uid-visitor", "visitor@example.com", ["B", "B", "B", "B", "B"]),
        # Another quiz entirely
        "uid-adams-t2": {
            "uid": "uid-adams-t2",
            "email": "zara.adams@student.example.edu",
            "quizId": "task2_2025",
            "responses": {"q1": {"answer": "A", "correctAnswer": "A", "outcome": "KU"}},
        },
    }


@pytest.fixture
def store() -> MemoryDocumentStore:
    return MemoryDocumentStore({"students": ROSTER_DOCUMENTS, "responses": response_documents()})


@pytest.fixture
def roster(store):
    return index_roster(roster_from_documents(store.all("students")))


@pytest.fixture
def batch_store(store) -> MemoryDocumentStore:
    """Five rostered 7Sci3 students, three of whom answered the quiz."""
    store.set(
        "responses",
        "uid-evans",
        make_document("uid-evans", "ruby.evans@student.example.edu", ["A", "C", "C", "D", "A"]),
    )
    return store


def make_token(claims=None, *, expires_in=timedelta(minutes=5), key=SECRET):
    """HS256 bearer token for ``TEACHER`` unless ``claims`` override it."""
    payload = {"email": TEACHER, "exp": datetime.now(timezone.utc) + expires_in}
    payload.update(claims or {})
    return jwt.encode(payload, key, algorithm="HS256")
