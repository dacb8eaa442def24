"""Question visibility logic using simpleeval for safe expression evaluation.

This module evaluates the ``visible_when`` conditions of survey questions
against the answers given so far, and computes which questions the form
currently shows.
"""

from typing import Any, Iterable, Optional
from simpleeval import simple_eval, InvalidExpression

from app.models.survey import Question
from app.schemas.survey import MAIN_SECTION
from app.logging_config import get_logger

logger = get_logger(__name__)


class BranchingError(Exception):
    """Raised when condition evaluation fails."""
    pass


class BranchingService:
    """Service for evaluating conditional question visibility."""

    @staticmethod
    def evaluate_condition(condition: str, context: dict) -> bool:
        """Evaluate a conditional expression safely.

        Uses simpleeval library to safely evaluate Python expressions without
        arbitrary code execution risks.

        Supported operators:
        - Comparison: ==, !=, >, <, >=, <=
        - Boolean: and, or, not
        - Parentheses for grouping

        Args:
            condition: Python expression string
            context: Dictionary of variables (question key -> answer)

        Returns:
            Boolean result of expression

        Raises:
            BranchingError: If expression is invalid or evaluation fails

        Example:
            >>> BranchingService.evaluate_condition("learn_gm == 'yes'", {"learn_gm": "yes"})
            True
            >>> BranchingService.evaluate_condition("recommendation >= 9", {"recommendation": 7})
            False
        """
        try:
            result = simple_eval(condition, names=context)

            if not isinstance(result, bool):
                logger.warning(f"Condition '{condition}' did not return boolean: {result}")
                return bool(result)

            logger.debug(f"Evaluated condition '{condition}' = {result}")
            return result
        except InvalidExpression as e:
            logger.error(f"Invalid expression '{condition}': {e}")
            raise BranchingError(f"Invalid condition expression: {e}")
        except TypeError as e:
            # e.g. comparing an unanswered (None) rating with a number
            logger.debug(f"Condition '{condition}' not comparable yet: {e}")
            return False
        except Exception as e:
            logger.error(f"Error evaluating condition '{condition}': {e}")
            raise BranchingError(f"Error evaluating condition: {e}")

    @staticmethod
    def build_context(questions: Iterable[Question], answers: dict) -> dict[str, Any]:
        """Map question keys to answers for condition evaluation.

        Unanswered questions are present with value None so conditions can
        reference any question of the survey.

        Args:
            questions: Questions of the survey
            answers: Answers keyed by question id (int or str)

        Returns:
            Dictionary of question key -> answer
        """
        context: dict[str, Any] = {}
        for question in questions:
            value = answers.get(str(question.id), answers.get(question.id))
            context[question.key] = value
        return context

    @staticmethod
    def is_visible(question: Question, context: dict) -> bool:
        """Whether a question's condition currently holds.

        Questions without a condition are visible in the main section and
        hidden elsewhere; invalid conditions hide the question.
        """
        if not question.visible_when:
            return question.section == MAIN_SECTION

        try:
            return BranchingService.evaluate_condition(question.visible_when, context)
        except BranchingError:
            logger.warning(f"Hiding question {question.key}: invalid condition {question.visible_when!r}")
            return False

    @staticmethod
    def visible_questions(
        questions: list[Question],
        answers: dict,
        volunteer_section: str,
        volunteering: bool = False,
        hidden_question_id: Optional[int] = None,
    ) -> list[Question]:
        """Questions the form shows, in display order.

        Args:
            questions: All questions of the survey, in display order
            answers: Answers keyed by question id
            volunteer_section: Section reused by the volunteer sub-flow
            volunteering: Only the volunteer section is shown when True
            hidden_question_id: Question to hide regardless of conditions
                (the convention question when the link preselects one)

        Returns:
            Visible questions

        Example:
            With learn_gm answered "no", the gm_contact questions are hidden;
            in volunteering mode only the gm_contact questions are shown.
        """
        if volunteering:
            return [q for q in questions if q.section == volunteer_section]

        context = BranchingService.build_context(questions, answers)
        return [
            q for q in questions
            if q.id != hidden_question_id and BranchingService.is_visible(q, context)
        ]
