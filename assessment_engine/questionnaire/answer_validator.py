"""
Answer Validation - Assessment Engine
assessment_engine/questionnaire/answer_validator.py

Checks a submitted value against its question before any branch resolution.
"""

import re
from typing import Any, List, Optional

from assessment_engine.core.exceptions import AnswerValidationError
from assessment_engine.models.questionnaire import (
    MultipleChoiceQuestion,
    Question,
    RatingQuestion,
    SingleChoiceQuestion,
    TextQuestion,
)


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    if isinstance(value, list):
        return len(value) == 0
    return False


def collect_errors(question: Question, value: Any) -> List[str]:
    """Return every rule the value breaks; empty when valid."""
    errors: List[str] = []

    if _is_empty(value):
        if question.required:
            errors.append("An answer is required")
        return errors

    if isinstance(question, SingleChoiceQuestion):
        if not isinstance(value, str):
            errors.append("Expected a single option value")
        elif question.option_for(value) is None:
            errors.append(f"'{value}' is not one of the allowed options")

    elif isinstance(question, MultipleChoiceQuestion):
        if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
            errors.append("Expected a list of option values")
            return errors
        invalid = [v for v in value if question.option_for(v) is None]
        if invalid:
            errors.append(f"Not allowed option values: {', '.join(invalid)}")
        if len(set(value)) != len(value):
            errors.append("Duplicate selections are not allowed")
        if question.min_selections is not None and len(value) < question.min_selections:
            errors.append(f"Select at least {question.min_selections} options")
        if question.max_selections is not None and len(value) > question.max_selections:
            errors.append(f"Select at most {question.max_selections} options")

    elif isinstance(question, RatingQuestion):
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            errors.append("Expected a numeric rating")
        elif isinstance(value, float) and not value.is_integer():
            errors.append("Rating must be a whole number")
        elif not question.scale.min <= value <= question.scale.max:
            errors.append(f"Rating must be between {question.scale.min} and {question.scale.max}")

    elif isinstance(question, TextQuestion):
        if not isinstance(value, str):
            errors.append("Expected a text answer")
            return errors
        length = len(value.strip())
        if question.min_length is not None and length < question.min_length:
            errors.append(f"Answer must be at least {question.min_length} characters")
        if question.max_length is not None and length > question.max_length:
            errors.append(f"Answer must be at most {question.max_length} characters")
        if question.pattern and not re.search(question.pattern, value):
            errors.append("Answer has invalid format")

    return errors


def validate_answer(question: Question, value: Any) -> Optional[Any]:
    """
    Validate and normalize an answer.

    Returns:
        The value to store, or None when an optional question was skipped

    Raises:
        AnswerValidationError: if any rule fails
    """
    errors = collect_errors(question, value)
    if errors:
        raise AnswerValidationError(question.id, errors)

    if _is_empty(value):
        return None
    if isinstance(question, RatingQuestion):
        return int(value)
    if isinstance(question, TextQuestion):
        return value.strip()
    return value
