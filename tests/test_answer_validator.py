# tests/test_answer_validator.py

"""
Answer Validation Tests - per-type rules and normalization
"""

import pytest

from assessment_engine.core.exceptions import AnswerValidationError
from assessment_engine.models.questionnaire import (
    LongTextQuestion,
    MultipleChoiceQuestion,
    RatingQuestion,
    ShortTextQuestion,
    SingleChoiceQuestion,
)
from assessment_engine.questionnaire.answer_validator import collect_errors, validate_answer


OPTIONS = [{"value": "a", "label": "A"}, {"value": "b", "label": "B"}, {"value": "c", "label": "C"}]


class TestRequired:

    def test_required_question_rejects_blank(self):
        question = ShortTextQuestion(id="q1", text="Name")
        with pytest.raises(AnswerValidationError) as exc:
            validate_answer(question, "   ")
        assert exc.value.errors == ["An answer is required"]
        assert exc.value.details["question_id"] == "q1"

    def test_optional_question_skip_returns_none(self):
        question = ShortTextQuestion(id="q1", text="Name", required=False)
        assert validate_answer(question, None) is None
        assert validate_answer(question, "") is None


class TestChoice:

    def test_single_choice_accepts_known_option(self):
        question = SingleChoiceQuestion(id="q", text="Pick", options=OPTIONS)
        assert validate_answer(question, "b") == "b"

    def test_single_choice_rejects_unknown_option(self):
        question = SingleChoiceQuestion(id="q", text="Pick", options=OPTIONS)
        assert collect_errors(question, "z") == ["'z' is not one of the allowed options"]

    def test_single_choice_rejects_list(self):
        question = SingleChoiceQuestion(id="q", text="Pick", options=OPTIONS)
        assert collect_errors(question, ["a"]) == ["Expected a single option value"]

    def test_multiple_choice_bounds_and_duplicates(self):
        question = MultipleChoiceQuestion(id="q", text="Pick", options=OPTIONS, min_selections=2, max_selections=2)
        assert validate_answer(question, ["a", "c"]) == ["a", "c"]
        assert "Select at least 2 options" in collect_errors(question, ["a"])
        assert "Select at most 2 options" in collect_errors(question, ["a", "b", "c"])
        assert "Duplicate selections are not allowed" in collect_errors(question, ["a", "a"])

    def test_multiple_choice_reports_invalid_values(self):
        question = MultipleChoiceQuestion(id="q", text="Pick", options=OPTIONS)
        assert collect_errors(question, ["a", "x"]) == ["Not allowed option values: x"]


class TestRating:

    def test_rating_in_range_is_stored_as_int(self):
        question = RatingQuestion(id="r", text="Rate")
        assert validate_answer(question, 4.0) == 4
        assert isinstance(validate_answer(question, 4.0), int)

    @pytest.mark.parametrize("value", [0, 6, 2.5, True, "3"])
    def test_rating_rejects_bad_values(self, value):
        question = RatingQuestion(id="r", text="Rate")
        with pytest.raises(AnswerValidationError):
            validate_answer(question, value)

    def test_custom_scale(self):
        question = RatingQuestion(id="r", text="Rate", scale={"min": 1, "max": 7})
        assert validate_answer(question, 7) == 7
        assert collect_errors(question, 8) == ["Rating must be between 1 and 7"]


class TestText:

    def test_text_is_stripped(self):
        question = LongTextQuestion(id="t", text="Tell us")
        assert validate_answer(question, "  hello  ") == "hello"

    def test_length_limits(self):
        question = ShortTextQuestion(id="t", text="Code", min_length=3, max_length=5)
        assert collect_errors(question, "ab") == ["Answer must be at least 3 characters"]
        assert collect_errors(question, "abcdef") == ["Answer must be at most 5 characters"]

    def test_pattern(self):
        question = ShortTextQuestion(id="t", text="Email", pattern=r"^[^@]+@[^@]+$")
        assert validate_answer(question, "a@b") == "a@b"
        assert collect_errors(question, "nope") == ["Answer has invalid format"]

    def test_text_question_rejects_number(self):
        question = ShortTextQuestion(id="t", text="Name")
        assert collect_errors(question, 5) == ["Expected a text answer"]
