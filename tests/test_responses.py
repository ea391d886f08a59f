"""
Tests for response document normalisation.
"""
from quiz_report.responses import QuestionResponse, normalize_responses


class TestNormalizeResponses:
    """Merging nested and flattened question fields."""

    def test_flattened_entry_wins_over_nested(self):
        document = {
            "responses": {"q1": {"answer": "A", "correctAnswer": "A"}},
            "responses.q1": {"answer": "B", "correctAnswer": "A"},
        }
        merged = normalize_responses(document)
        assert merged["q1"].answer == "B"

    def test_nested_and_flattened_are_combined(self):
        document = {
            "responses": {"q1": {"answer": "A"}},
            "responses.q2": {"answer": "C"},
        }
        assert sorted(normalize_responses(document)) == ["q1", "q2"]

    def test_non_mapping_flattened_values_are_dropped(self):
        document = {
            "responses.q1": "A",
            "responses.q2": None,
            "responses.q3": {"answer": "D"},
        }
        assert list(normalize_responses(document)) == ["q3"]

    def test_unrelated_fields_are_ignored(self):
        document = {"uid": "u1", "email": "a@b.c", "responsesCount": 3, "quizId": "t"}
        assert normalize_responses(document) == {}

    def test_nested_field_that_is_not_a_mapping(self):
        assert normalize_responses({"responses": ["q1"]}) == {}


class TestQuestionResponse:
    """Field extraction and correctness."""

    def test_topic_falls_back_to_legacy_field(self):
        response = QuestionResponse.from_mapping("q1", {"topic": "forces"})
        assert response.topic_id == "forces"

    def test_topic_id_preferred_over_legacy_field(self):
        response = QuestionResponse.from_mapping("q1", {"topicId": "cells", "topic": "forces"})
        assert response.topic_id == "cells"

    def test_no_topic_at_all(self):
        assert QuestionResponse.from_mapping("q1", {"answer": "A"}).topic_id is None

    def test_outcome_is_upper_cased(self):
        assert QuestionResponse.from_mapping("q1", {"outcome": "pce"}).outcome == "PCE"

    def test_empty_correct_answer_is_not_scored(self):
        response = QuestionResponse.from_mapping("q1", {"answer": "A", "correctAnswer": ""})
        assert not response.is_scored
        assert not response.correct

    def test_is_correct_flag_takes_precedence(self):
        response = QuestionResponse.from_mapping(
            "q1", {"answer": "B", "correctAnswer": "A", "isCorrect": True}
        )
        assert response.correct

    def test_missing_flag_compares_answers(self):
        right = QuestionResponse.from_mapping("q1", {"answer": "A", "correctAnswer": "A"})
        wrong = QuestionResponse.from_mapping("q2", {"answer": "C", "correctAnswer": "A"})
        assert right.correct
        assert not wrong.correct
