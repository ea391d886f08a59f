"""
Document store contract and the local implementations used by the backend.

The production platform keeps quiz responses in a hosted document database;
the report pipeline only relies on the small read/write surface described by
:class:`DocumentStore`.
"""

from __future__ import annotations

import copy
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Protocol

from .errors import ValidationError
from .responses import FLATTENED_PREFIX
from .utils import ensure_directory, read_json, utc_now, write_json

logger = logging.getLogger(__name__)

Document = Dict[str, Any]


class DocumentStore(Protocol):
    """Read/write surface of the document database."""

    def collections(self) -> List[str]: ...

    def all(self, collection: str) -> Dict[str, Document]: ...

    def get(self, collection: str, key: str) -> Optional[Document]: ...

    def where(self, collection: str, field: str, value: Any) -> Dict[str, Document]: ...

    def get_many(self, collection: str, keys: Iterable[str]) -> Dict[str, Optional[Document]]: ...

    def set(self, collection: str, key: str, data: Mapping[str, Any], *, merge: bool = False) -> None: ...


class MemoryDocumentStore:
    """
    Dictionary-backed store.

    Documents are copied on the way in and out so callers never share state
    with the store. ``set(..., merge=True)`` updates top-level fields only,
    keeping dotted field names literal as the quiz client writes them.
    """

    def __init__(self, data: Optional[Mapping[str, Mapping[str, Mapping[str, Any]]]] = None) -> None:
        self._data: Dict[str, Dict[str, Document]] = {}
        for collection, documents in (data or {}).items():
            self._data[collection] = {
                str(key): copy.deepcopy(dict(document)) for key, document in documents.items()
            }

    def collections(self) -> List[str]:
        return sorted(self._data)

    def all(self, collection: str) -> Dict[str, Document]:
        return copy.deepcopy(self._data.get(collection, {}))

    def get(self, collection: str, key: str) -> Optional[Document]:
        document = self._data.get(collection, {}).get(key)
        return copy.deepcopy(document) if document is not None else None

    def where(self, collection: str, field: str, value: Any) -> Dict[str, Document]:
        return {
            key: copy.deepcopy(document)
            for key, document in self._data.get(collection, {}).items()
            if field in document and document[field] == value
        }

    def get_many(self, collection: str, keys: Iterable[str]) -> Dict[str, Optional[Document]]:
        return {key: self.get(collection, key) for key in keys}

    def set(self, collection: str, key: str, data: Mapping[str, Any], *, merge: bool = False) -> None:
        documents = self._data.setdefault(collection, {})
        incoming = copy.deepcopy(dict(data))
        if merge and key in documents:
            documents[key].update(incoming)
        else:
            documents[key] = incoming


class JsonDocumentStore(MemoryDocumentStore):
    """
    Store persisted as one ``<collection>.json`` file per collection.

    Each file holds a mapping of document id to document, the same shape as a
    database export. Writes are flushed to disk immediately.
    """

    def __init__(self, root: Path) -> None:
        super().__init__()
        self.root = root
        if root.exists():
            for path in sorted(root.glob("*.json")):
                payload = read_json(path)
                if not isinstance(payload, dict):
                    raise ValidationError(f"Collection file must contain a JSON object: {path}")
                self._data[path.stem] = {
                    str(key): dict(document)
                    for key, document in payload.items()
                    if isinstance(document, dict)
                }
                logger.debug("Loaded %d document(s) from %s", len(self._data[path.stem]), path)

    def set(self, collection: str, key: str, data: Mapping[str, Any], *, merge: bool = False) -> None:
        super().set(collection, key, data, merge=merge)
        ensure_directory(self.root)
        write_json(self.root / f"{collection}.json", self._data[collection])


def record_answer(
    store: DocumentStore,
    *,
    uid: str,
    email: str,
    quiz_id: str,
    question_id: str,
    answer: str,
    correct_answer: Optional[str] = None,
    outcome: Optional[str] = None,
    topic: Optional[str] = None,
    grade_level: Optional[str] = None,
    collection: str = "responses",
) -> Document:
    """
    Upsert one answered question into the student's response document.

    Mirrors the quiz client: one document per student keyed by ``uid``,
    merged on every answer, with the question stored under a flattened
    ``responses.<question_id>`` field.
    """
    if not uid or not quiz_id or not question_id:
        raise ValidationError("uid, quiz_id and question_id are required to record an answer.")

    now = utc_now()
    has_key = isinstance(correct_answer, str) and correct_answer != ""
    payload: Document = {
        "uid": uid,
        "email": email,
        "quizId": quiz_id,
        f"{FLATTENED_PREFIX}{question_id}": {
            "answer": answer,
            "correctAnswer": correct_answer if has_key else None,
            "isCorrect": (answer == correct_answer) if has_key else None,
            "outcome": outcome or None,
            "topic": topic or None,
            "gradeLevel": grade_level or None,
            "ts": now.isoformat(),
        },
        "lastUpdated": now.isoformat(),
    }
    store.set(collection, uid, payload, merge=True)
    return payload
