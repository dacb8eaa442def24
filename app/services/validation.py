"""Answer validation service for survey questions.

This module validates answers against question types and rules, normalizes
values, generates error messages, and turns validated values into answer rows.
"""

import re
from dataclasses import dataclass
from datetime import date
from typing import Any, Optional, Sequence

from app.models.survey import Question, QuestionOption
from app.schemas.survey import QuestionType
from app.logging_config import get_logger

logger = get_logger(__name__)

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

YES_NO_VALUES = {"yes": "yes", "y": "yes", "true": "yes", "no": "no", "n": "no", "false": "no"}


@dataclass
class ValidationResult:
    """Result of answer validation.

    Attributes:
        is_valid: Whether the answer passed validation
        normalized_value: Cleaned value (str, int or list of option values)
        error_message: Error message if validation failed
    """
    is_valid: bool
    normalized_value: Any
    error_message: Optional[str]


def _ok(value: Any) -> ValidationResult:
    return ValidationResult(is_valid=True, normalized_value=value, error_message=None)


def _fail(message: str) -> ValidationResult:
    return ValidationResult(is_valid=False, normalized_value=None, error_message=message)


class AnswerValidator:
    """Service for validating answers against question rules."""

    @staticmethod
    def validate(
        question: Question,
        value: Any,
        options: Optional[Sequence[QuestionOption]] = None,
    ) -> ValidationResult:
        """Validate an answer.

        Handles every question type:
        - short_text/long_text: min_length, max_length
        - email: address shape
        - number: integer, min, max
        - rating: integer within min..max
        - date: ISO date (YYYY-MM-DD)
        - yes_no: yes/no (also y/n/true/false)
        - single_choice/dropdown: one option value
        - multiple_choice: list of option values

        Args:
            question: Question being answered
            value: Raw answer value
            options: Allowed options, when narrower than the question's own
                (GM and adventure dropdowns after filtering)

        Returns:
            ValidationResult with validation status and normalized value

        Example:
            >>> result = AnswerValidator.validate(rating_question, "4")
            >>> result.normalized_value
            4
        """
        if value is None or (isinstance(value, str) and not value.strip()):
            return _fail("Please enter a response.")

        question_type = question.question_type

        if question_type in (QuestionType.SHORT_TEXT, QuestionType.LONG_TEXT):
            return AnswerValidator._validate_text(question, value)
        elif question_type == QuestionType.EMAIL:
            return AnswerValidator._validate_email(value)
        elif question_type in (QuestionType.NUMBER, QuestionType.RATING):
            return AnswerValidator._validate_number(question, value)
        elif question_type == QuestionType.DATE:
            return AnswerValidator._validate_date(value)
        elif question_type == QuestionType.YES_NO:
            return AnswerValidator._validate_yes_no(value)
        elif question_type in (QuestionType.SINGLE_CHOICE, QuestionType.DROPDOWN):
            return AnswerValidator._validate_choice(question, value, options)
        elif question_type == QuestionType.MULTIPLE_CHOICE:
            return AnswerValidator._validate_multiple(question, value, options)
        else:
            logger.error(f"Unknown question type: {question_type}")
            return _fail("Internal error: invalid question type")

    @staticmethod
    def _validate_text(question: Question, value: Any) -> ValidationResult:
        if not isinstance(value, str):
            return _fail("Please enter text.")

        normalized = value.strip()
        rules = question.rules

        min_length = rules.get("min_length")
        if min_length is not None and len(normalized) < min_length:
            return _fail(f"Please enter at least {min_length} characters.")

        max_length = rules.get("max_length")
        if max_length is not None and len(normalized) > max_length:
            return _fail(f"Please enter no more than {max_length} characters.")

        return _ok(normalized)

    @staticmethod
    def _validate_email(value: Any) -> ValidationResult:
        if not isinstance(value, str) or not EMAIL_PATTERN.match(value.strip()):
            return _fail("Please enter a valid email address.")
        return _ok(value.strip())

    @staticmethod
    def _validate_number(question: Question, value: Any) -> ValidationResult:
        if isinstance(value, bool):
            return _fail("Please enter a whole number.")
        if isinstance(value, int):
            number = value
        elif isinstance(value, str) and re.fullmatch(r"-?\d+", value.strip()):
            number = int(value.strip())
        else:
            return _fail("Please enter a whole number.")

        rules = question.rules
        low, high = rules.get("min"), rules.get("max")
        if (low is not None and number < low) or (high is not None and number > high):
            if low is not None and high is not None:
                return _fail(f"Please choose a value from {low} to {high}.")
            if low is not None:
                return _fail(f"Please enter a value of at least {low}.")
            return _fail(f"Please enter a value of at most {high}.")

        return _ok(number)

    @staticmethod
    def _validate_date(value: Any) -> ValidationResult:
        if not isinstance(value, str):
            return _fail("Please enter a date (YYYY-MM-DD).")
        try:
            parsed = date.fromisoformat(value.strip())
        except ValueError:
            return _fail("Please enter a date (YYYY-MM-DD).")
        return _ok(parsed.isoformat())

    @staticmethod
    def _validate_yes_no(value: Any) -> ValidationResult:
        if isinstance(value, str) and value.strip().lower() in YES_NO_VALUES:
            return _ok(YES_NO_VALUES[value.strip().lower()])
        return _fail("Please answer yes or no.")

    @staticmethod
    def _match_option(value: Any, options: Sequence[QuestionOption]) -> Optional[QuestionOption]:
        if not isinstance(value, str):
            return None
        needle = value.strip().lower()
        for option in options:
            if option.stored_value.lower() == needle:
                return option
        for option in options:
            if option.option_text.lower() == needle:
                return option
        return None

    @staticmethod
    def _validate_choice(
        question: Question,
        value: Any,
        options: Optional[Sequence[QuestionOption]],
    ) -> ValidationResult:
        allowed = question.options if options is None else options
        if not allowed:
            return _fail("No options are available for this question.")

        option = AnswerValidator._match_option(value, allowed)
        if option is None:
            valid = ", ".join(o.option_text for o in allowed)
            return _fail(f"Please choose one of: {valid}")

        return _ok(option.stored_value)

    @staticmethod
    def _validate_multiple(
        question: Question,
        value: Any,
        options: Optional[Sequence[QuestionOption]],
    ) -> ValidationResult:
        allowed = question.options if options is None else options
        values = value if isinstance(value, list) else [value]
        if not values:
            return _fail("Please choose at least one option.")

        selected: list[str] = []
        for item in values:
            option = AnswerValidator._match_option(item, allowed)
            if option is None:
                return _fail(f"'{item}' is not one of the available options.")
            if option.stored_value not in selected:
                selected.append(option.stored_value)

        return _ok(selected)


def answer_rows(question: Question, value: Any) -> list[dict]:
    """Turn a validated value into answer rows.

    Choice answers store the option value with its display text; numbers
    store the value only; free text stores the text only. Multiple choice
    produces one row per selected option.

    Args:
        question: Question answered
        value: Normalized value from AnswerValidator

    Returns:
        List of dicts with question_id, answer_text and answer_value
    """
    def option_text(stored: str) -> str:
        option = question.find_option(stored)
        return option.option_text if option else stored

    if question.question_type == QuestionType.MULTIPLE_CHOICE:
        items = value if isinstance(value, list) else [value]
        return [
            {"question_id": question.id, "answer_text": option_text(v), "answer_value": v}
            for v in items
        ]

    if question.question_type in (QuestionType.SINGLE_CHOICE, QuestionType.DROPDOWN):
        return [{"question_id": question.id, "answer_text": option_text(value), "answer_value": value}]

    if question.question_type in (QuestionType.NUMBER, QuestionType.RATING, QuestionType.YES_NO):
        return [{"question_id": question.id, "answer_text": None, "answer_value": str(value)}]

    return [{"question_id": question.id, "answer_text": str(value), "answer_value": None}]
