"""Unit tests for answer validation service.

Tests validation logic for all question types.
"""

import pytest

from app.models.survey import Question, QuestionOption
from app.schemas.survey import QuestionType
from app.services.validation import AnswerValidator, ValidationResult, answer_rows


def make_question(question_type, rules=None, options=None, key="q", question_id=1):
    question = Question(
        id=question_id,
        key=key,
        question_text="Question?",
        question_type=question_type,
        is_required=True,
        display_order=1,
        validation_rules=rules,
    )
    for order, (text, value) in enumerate(options or [], start=1):
        question.options.append(
            QuestionOption(option_text=text, option_value=value, display_order=order)
        )
    return question


@pytest.fixture
def convention_question():
    return make_question(
        QuestionType.DROPDOWN,
        options=[("Gen Con", "gen_con"), ("Origins Game Fair", "origins")],
        key="convention",
    )


class TestEmptyAnswers:
    """Tests for missing answers."""

    @pytest.mark.parametrize("value", [None, "", "   "])
    def test_empty_rejected(self, value):
        """Test that empty answers are rejected for every type."""
        result = AnswerValidator.validate(make_question(QuestionType.SHORT_TEXT), value)
        assert not result.is_valid
        assert "enter a response" in result.error_message.lower()


class TestTextValidation:
    """Tests for short_text and long_text questions."""

    def test_text_no_rules(self):
        """Test text validation with no rules (accepts non-empty)."""
        result = AnswerValidator.validate(make_question(QuestionType.SHORT_TEXT), "  Alice ")
        assert result.is_valid
        assert result.normalized_value == "Alice"

    def test_text_min_length(self):
        """Test text validation with minimum length."""
        question = make_question(QuestionType.LONG_TEXT, {"min_length": 3})

        result = AnswerValidator.validate(question, "Al")
        assert not result.is_valid
        assert "3 characters" in result.error_message

        assert AnswerValidator.validate(question, "Bob").is_valid

    def test_text_max_length(self):
        """Test text validation with maximum length."""
        question = make_question(QuestionType.SHORT_TEXT, {"max_length": 5})

        result = AnswerValidator.validate(question, "Alexander")
        assert not result.is_valid
        assert "5 characters" in result.error_message

    def test_text_rejects_non_string(self):
        """Test that lists are not accepted as text."""
        result = AnswerValidator.validate(make_question(QuestionType.SHORT_TEXT), ["a"])
        assert not result.is_valid


class TestEmailValidation:
    """Tests for email questions."""

    def test_valid_email(self):
        result = AnswerValidator.validate(make_question(QuestionType.EMAIL), " gm@example.com ")
        assert result.is_valid
        assert result.normalized_value == "gm@example.com"

    @pytest.mark.parametrize("value", ["gm", "gm@", "gm@example", "g m@example.com"])
    def test_invalid_email(self, value):
        result = AnswerValidator.validate(make_question(QuestionType.EMAIL), value)
        assert not result.is_valid
        assert "valid email" in result.error_message


class TestNumberValidation:
    """Tests for rating and number questions."""

    def test_rating_accepts_string_and_int(self):
        """Test that ratings arrive as strings or ints."""
        question = make_question(QuestionType.RATING, {"min": 1, "max": 5})

        assert AnswerValidator.validate(question, "4").normalized_value == 4
        assert AnswerValidator.validate(question, 5).normalized_value == 5

    def test_rating_out_of_range(self):
        """Test range error message names both bounds."""
        question = make_question(QuestionType.RATING, {"min": 1, "max": 10})

        result = AnswerValidator.validate(question, "11")
        assert not result.is_valid
        assert result.error_message == "Please choose a value from 1 to 10."

        assert not AnswerValidator.validate(question, 0).is_valid

    def test_number_single_bound(self):
        """Test messages when only one bound is set."""
        question = make_question(QuestionType.NUMBER, {"min": 18})
        result = AnswerValidator.validate(question, "17")
        assert "at least 18" in result.error_message

        question = make_question(QuestionType.NUMBER, {"max": 3})
        result = AnswerValidator.validate(question, "4")
        assert "at most 3" in result.error_message

    @pytest.mark.parametrize("value", ["abc", "4.5", True, ["4"]])
    def test_not_a_whole_number(self, value):
        question = make_question(QuestionType.NUMBER)
        result = AnswerValidator.validate(question, value)
        assert not result.is_valid
        assert "whole number" in result.error_message

    def test_negative_number(self):
        result = AnswerValidator.validate(make_question(QuestionType.NUMBER), "-3")
        assert result.normalized_value == -3


class TestDateValidation:
    """Tests for date questions."""

    def test_iso_date(self):
        result = AnswerValidator.validate(make_question(QuestionType.DATE), "2024-08-01")
        assert result.is_valid
        assert result.normalized_value == "2024-08-01"

    def test_invalid_date(self):
        result = AnswerValidator.validate(make_question(QuestionType.DATE), "08/01/2024")
        assert not result.is_valid
        assert "YYYY-MM-DD" in result.error_message


class TestYesNoValidation:
    """Tests for yes_no questions."""

    @pytest.mark.parametrize("value,expected", [
        ("yes", "yes"), ("Y", "yes"), ("true", "yes"),
        ("no", "no"), ("N", "no"), ("FALSE", "no"),
    ])
    def test_accepted_forms(self, value, expected):
        result = AnswerValidator.validate(make_question(QuestionType.YES_NO), value)
        assert result.is_valid
        assert result.normalized_value == expected

    def test_rejects_other_values(self):
        result = AnswerValidator.validate(make_question(QuestionType.YES_NO), "maybe")
        assert not result.is_valid
        assert "yes or no" in result.error_message


class TestChoiceValidation:
    """Tests for dropdown, single_choice and multiple_choice questions."""

    def test_match_by_value(self, convention_question):
        result = AnswerValidator.validate(convention_question, "gen_con")
        assert result.is_valid
        assert result.normalized_value == "gen_con"

    def test_match_by_text_case_insensitive(self, convention_question):
        """Test that display text is accepted and normalized to the value."""
        result = AnswerValidator.validate(convention_question, "origins game fair")
        assert result.normalized_value == "origins"

    def test_unknown_option(self, convention_question):
        result = AnswerValidator.validate(convention_question, "Dragon Con")
        assert not result.is_valid
        assert result.error_message == "Please choose one of: Gen Con, Origins Game Fair"

    def test_narrowed_options_restrict_choice(self, convention_question):
        """Test that a narrowed option list overrides the question's own."""
        narrowed = [convention_question.options[1]]

        assert not AnswerValidator.validate(convention_question, "gen_con", narrowed).is_valid
        assert AnswerValidator.validate(convention_question, "origins", narrowed).is_valid

    def test_empty_narrowed_options(self, convention_question):
        result = AnswerValidator.validate(convention_question, "gen_con", [])
        assert not result.is_valid
        assert "No options" in result.error_message

    def test_multiple_choice(self):
        question = make_question(
            QuestionType.MULTIPLE_CHOICE,
            options=[("Dice", "dice"), ("Cards", "cards"), ("Minis", "minis")],
        )

        result = AnswerValidator.validate(question, ["Dice", "minis", "dice"])
        assert result.is_valid
        assert result.normalized_value == ["dice", "minis"]

        result = AnswerValidator.validate(question, ["dice", "chess"])
        assert not result.is_valid
        assert "'chess'" in result.error_message

        assert not AnswerValidator.validate(question, []).is_valid


class TestAnswerRows:
    """Tests for turning validated values into answer rows."""

    def test_choice_row_has_value_and_text(self, convention_question):
        rows = answer_rows(convention_question, "origins")
        assert rows == [{"question_id": 1, "answer_text": "Origins Game Fair", "answer_value": "origins"}]

    def test_rating_row_has_value_only(self):
        rows = answer_rows(make_question(QuestionType.RATING), 4)
        assert rows == [{"question_id": 1, "answer_text": None, "answer_value": "4"}]

    def test_text_row_has_text_only(self):
        rows = answer_rows(make_question(QuestionType.SHORT_TEXT), "Alex")
        assert rows == [{"question_id": 1, "answer_text": "Alex", "answer_value": None}]

    def test_multiple_choice_one_row_per_option(self):
        question = make_question(
            QuestionType.MULTIPLE_CHOICE,
            options=[("Dice", "dice"), ("Cards", "cards")],
        )
        rows = answer_rows(question, ["dice", "cards"])
        assert [row["answer_text"] for row in rows] == ["Dice", "Cards"]
        assert [row["answer_value"] for row in rows] == ["dice", "cards"]


def test_validation_result_fields():
    """Test ValidationResult is a plain record."""
    result = ValidationResult(is_valid=False, normalized_value=None, error_message="nope")
    assert result.error_message == "nope"
