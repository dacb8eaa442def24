"""Unit tests for question visibility logic.

Tests safe expression evaluation with simpleeval and the visible question
computation built on it.
"""

import pytest

from app.models.survey import Question
from app.schemas.survey import QuestionType
from app.services.branching import BranchingService, BranchingError


class TestEvaluateCondition:
    """Tests for BranchingService.evaluate_condition."""

    def test_string_equality(self):
        """Test the condition the volunteer questions use."""
        assert BranchingService.evaluate_condition(
            "learn_gm == 'yes'",
            {"learn_gm": "yes"}
        ) is True

        assert BranchingService.evaluate_condition(
            "learn_gm == 'yes'",
            {"learn_gm": "no"}
        ) is False

    def test_numeric_comparisons(self):
        """Test numeric comparison operators against ratings."""
        context = {"recommendation": 9, "gm_rating": 3}

        assert BranchingService.evaluate_condition("recommendation >= 9", context) is True
        assert BranchingService.evaluate_condition("recommendation > 9", context) is False
        assert BranchingService.evaluate_condition("gm_rating < 4", context) is True
        assert BranchingService.evaluate_condition("gm_rating != 3", context) is False

    def test_boolean_operators(self):
        """Test and/or/not with parentheses."""
        context = {"learn_gm": "yes", "recommendation": 6}

        assert BranchingService.evaluate_condition(
            "learn_gm == 'yes' and recommendation > 5",
            context
        ) is True
        assert BranchingService.evaluate_condition(
            "learn_gm == 'no' or recommendation > 8",
            context
        ) is False
        assert BranchingService.evaluate_condition(
            "not (learn_gm == 'no')",
            context
        ) is True

    def test_string_comparisons_case_sensitive(self):
        """Answers are normalized before storage, so comparisons are exact."""
        assert BranchingService.evaluate_condition(
            "learn_gm == 'yes'",
            {"learn_gm": "Yes"}
        ) is False

    def test_non_boolean_result_converted(self):
        assert BranchingService.evaluate_condition("gm_rating", {"gm_rating": 4}) is True
        assert BranchingService.evaluate_condition("gm_rating", {"gm_rating": 0}) is False

    def test_unanswered_comparison_is_false(self):
        """Test that comparing an unanswered (None) value is not an error."""
        assert BranchingService.evaluate_condition(
            "recommendation >= 9",
            {"recommendation": None}
        ) is False

    def test_undefined_variable_raises_error(self):
        with pytest.raises(BranchingError):
            BranchingService.evaluate_condition("unknown_key == 'yes'", {})

    def test_invalid_expression_raises_error(self):
        with pytest.raises(BranchingError):
            BranchingService.evaluate_condition("learn_gm === 'yes'", {"learn_gm": "yes"})

    def test_safe_evaluation_no_code_execution(self):
        """Test that simpleeval prevents code execution."""
        dangerous_expressions = [
            "__import__('os').system('ls')",
            "exec('print(1)')",
            "eval('1+1')",
        ]

        for expr in dangerous_expressions:
            with pytest.raises(BranchingError):
                BranchingService.evaluate_condition(expr, {})


def make_questions():
    specs = [
        (1, "convention", "main", None),
        (2, "gm", "main", None),
        (3, "learn_gm", "main", None),
        (4, "gm_first_name", "gm_contact", "learn_gm == 'yes'"),
        (5, "gm_email", "gm_contact", "learn_gm == 'yes'"),
        (6, "notes", "gm_contact", None),
    ]
    return [
        Question(
            id=qid,
            key=key,
            question_text=key,
            question_type=QuestionType.SHORT_TEXT,
            is_required=True,
            display_order=qid,
            section=section,
            visible_when=condition,
        )
        for qid, key, section, condition in specs
    ]


class TestVisibleQuestions:
    """Tests for computing the questions a form shows."""

    def test_build_context_keys_by_question_key(self):
        """Test that answers keyed by id become a key -> answer context."""
        context = BranchingService.build_context(make_questions(), {"1": "gen_con", 3: "no"})

        assert context["convention"] == "gen_con"
        assert context["learn_gm"] == "no"
        assert context["gm"] is None

    def test_conditional_questions_hidden_until_condition_holds(self):
        questions = make_questions()

        shown = BranchingService.visible_questions(questions, {"3": "no"}, "gm_contact")
        assert [q.key for q in shown] == ["convention", "gm", "learn_gm"]

        shown = BranchingService.visible_questions(questions, {"3": "yes"}, "gm_contact")
        assert [q.key for q in shown] == [
            "convention", "gm", "learn_gm", "gm_first_name", "gm_email"
        ]

    def test_unconditional_volunteer_question_hidden_in_main_flow(self):
        """Test that section questions without a condition only show when volunteering."""
        shown = BranchingService.visible_questions(make_questions(), {"3": "yes"}, "gm_contact")
        assert "notes" not in [q.key for q in shown]

    def test_volunteering_shows_only_volunteer_section(self):
        shown = BranchingService.visible_questions(
            make_questions(), {}, "gm_contact", volunteering=True
        )
        assert [q.key for q in shown] == ["gm_first_name", "gm_email", "notes"]

    def test_hidden_question_id(self):
        """Test that a preselected convention hides the convention question."""
        shown = BranchingService.visible_questions(
            make_questions(), {}, "gm_contact", hidden_question_id=1
        )
        assert [q.key for q in shown] == ["gm", "learn_gm"]

    def test_invalid_condition_hides_question(self):
        question = make_questions()[3]
        question.visible_when = "learn_gm === 'yes'"

        assert BranchingService.is_visible(question, {"learn_gm": "yes"}) is False
