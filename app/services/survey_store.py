"""Survey store: surveys, responses, answers and option management.

This module reads surveys for rendering (narrowing the GM and adventure
dropdowns through the association service), writes responses and their
answers, and manages the dropdown options staff edit from the admin panel.
"""

from typing import Any, Iterable, Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.orm import Session, selectinload

from app.models.coupon import CouponDelivery
from app.models.gm import GMInterest
from app.models.response import Answer, Response
from app.models.session import SurveySession
from app.models.survey import Question, QuestionOption, Survey
from app.schemas.api import OptionOut, QuestionOut, SurveyOut
from app.schemas.survey import slugify_option
from app.services.associations import (
    ADVENTURE_KEY,
    GM_KEY,
    AssociationService,
    OptionNotFoundError,
)
from app.logging_config import get_logger

logger = get_logger(__name__)


class SurveyNotFoundError(Exception):
    """Raised when a survey does not exist in the database."""
    pass


class ResponseNotFoundError(Exception):
    """Raised when a response does not exist."""
    pass


class QuestionNotFoundError(Exception):
    """Raised when a question does not exist."""
    pass


class InvalidAnswerError(Exception):
    """Raised when an answer references a question outside the survey."""
    pass


def _field(answer: Any, name: str) -> Any:
    """Read a field from an answer given as a dict or a model."""
    if isinstance(answer, dict):
        return answer.get(name)
    return getattr(answer, name, None)


class SurveyStore:
    """Service for survey reads, response writes and option management."""

    def __init__(self, db: Session):
        """Initialize survey store.

        Args:
            db: SQLAlchemy database session
        """
        self.db = db

    # Surveys

    def get_survey(self, survey_id: int) -> Survey:
        """Load a survey with its questions and options.

        Raises:
            SurveyNotFoundError: If the survey does not exist
        """
        survey = self.db.execute(
            select(Survey)
            .where(Survey.id == survey_id)
            .options(selectinload(Survey.questions).selectinload(Question.options))
        ).scalar_one_or_none()
        if survey is None:
            raise SurveyNotFoundError(f"Survey {survey_id} not found")
        return survey

    def get_survey_with_questions(
        self,
        survey_id: int,
        convention: Optional[str] = None,
        gm: Optional[str] = None,
        gm_id: Optional[int] = None,
    ) -> SurveyOut:
        """Survey for rendering, with dropdowns narrowed by earlier choices.

        Args:
            survey_id: Survey to render
            convention: Convention from the survey link or the form
            gm: Chosen GM value
            gm_id: Chosen GM option id

        Returns:
            SurveyOut with ordered questions; choice questions carry options

        Raises:
            SurveyNotFoundError: If the survey does not exist

        Example:
            >>> store.get_survey_with_questions(1, convention="gen_con")
            GM options are limited to GMs assigned to Gen Con.
        """
        survey = self.get_survey(survey_id)
        associations = AssociationService(self.db, survey_id)

        display_name = None
        convention_value = None
        if convention:
            match = associations.match_convention(convention)
            display_name = match.display_name
            convention_value = match.value or convention

        questions = []
        for question in survey.questions:
            item = QuestionOut.model_validate(question)
            if not question.question_type.has_options:
                item.options = None
            elif question.key == GM_KEY and convention_value:
                filtered = associations.filter_gms(convention_value)
                item.options = [OptionOut.model_validate(o) for o in filtered.options]
                item.empty_options_message = filtered.empty_message
            elif question.key == ADVENTURE_KEY and (gm or gm_id):
                filtered = associations.filter_adventures(
                    gm=gm, convention=convention_value, gm_option_id=gm_id
                )
                item.options = [OptionOut.model_validate(o) for o in filtered.options]
                item.empty_options_message = filtered.empty_message
            questions.append(item)

        return SurveyOut(
            id=survey.id,
            slug=survey.slug,
            title=survey.title,
            description=survey.description,
            is_active=survey.is_active,
            questions=questions,
            convention_display_name=display_name,
            preselected_convention_value=convention_value if display_name else None,
        )

    # Responses

    def _question_ids(self, survey_id: int) -> set[int]:
        return set(self.db.execute(
            select(Question.id).where(Question.survey_id == survey_id)
        ).scalars().all())

    def _answer_models(
        self,
        survey_id: int,
        answers: Iterable[Any],
        skip_question_ids: Optional[set[int]] = None,
    ) -> list[Answer]:
        valid_ids = self._question_ids(survey_id)
        skip = skip_question_ids or set()
        models = []
        for answer in answers:
            question_id = _field(answer, "question_id")
            if question_id not in valid_ids:
                raise InvalidAnswerError(
                    f"Question {question_id} does not belong to survey {survey_id}"
                )
            text, value = _field(answer, "answer_text"), _field(answer, "answer_value")
            if question_id in skip or (not text and not value):
                continue
            models.append(Answer(question_id=question_id, answer_text=text or None, answer_value=value or None))
        return models

    def create_response(
        self,
        survey_id: int,
        answers: Iterable[Any],
        respondent_email: Optional[str] = None,
        respondent_name: Optional[str] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        extra: Optional[dict] = None,
    ) -> Response:
        """Create a response and its answers in one transaction.

        Args:
            survey_id: Survey answered
            answers: Answer rows (dicts or AnswerIn) with question_id,
                answer_text and answer_value

        Returns:
            The stored Response

        Raises:
            SurveyNotFoundError: If the survey does not exist
            InvalidAnswerError: If an answer references another survey's question
        """
        if self.db.get(Survey, survey_id) is None:
            raise SurveyNotFoundError(f"Survey {survey_id} not found")

        try:
            response = Response(
                survey_id=survey_id,
                respondent_email=respondent_email,
                respondent_name=respondent_name,
                ip_address=ip_address,
                user_agent=user_agent,
                extra=extra,
            )
            response.answers = self._answer_models(survey_id, answers)
            self.db.add(response)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"Created response {response.id} with {len(response.answers)} answers")
        return response

    def add_answers(self, survey_id: int, response_id: int, answers: Iterable[Any]) -> int:
        """Attach answers to an existing response.

        Questions already answered on the response are skipped, so sending
        the same answers twice changes nothing.

        Returns:
            Number of answers added

        Raises:
            ResponseNotFoundError: If the response does not exist for the survey
            InvalidAnswerError: If an answer references another survey's question
        """
        response = self.db.get(Response, response_id)
        if response is None or response.survey_id != survey_id:
            raise ResponseNotFoundError(f"Response {response_id} not found")

        try:
            models = self._answer_models(survey_id, answers, response.answered_question_ids())
            response.answers.extend(models)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"Added {len(models)} answers to response {response_id}")
        return len(models)

    def list_responses(self, survey_id: int, limit: int = 1000) -> list[dict]:
        """Latest responses with their answers, newest first."""
        responses = self.db.execute(
            select(Response)
            .where(Response.survey_id == survey_id)
            .options(selectinload(Response.answers).selectinload(Answer.question))
            .order_by(Response.submitted_at.desc(), Response.id.desc())
            .limit(limit)
        ).scalars().all()

        return [
            {
                "id": response.id,
                "submitted_at": response.submitted_at,
                "respondent_email": response.respondent_email,
                "respondent_name": response.respondent_name,
                "answers": [
                    {
                        "question_id": answer.question_id,
                        "question_key": answer.question.key,
                        "question_text": answer.question.question_text,
                        "answer_text": answer.answer_text,
                        "answer_value": answer.answer_value,
                    }
                    for answer in sorted(
                        response.answers,
                        key=lambda a: (a.question.display_order, a.id),
                    )
                ],
            }
            for response in responses
        ]

    def clear_responses(self) -> dict:
        """Delete every response and what hangs off it.

        Coupon codes stay in the pool; their response link is cleared by the
        foreign key.
        """
        try:
            gm_interest = self.db.execute(delete(GMInterest)).rowcount
            deliveries = self.db.execute(delete(CouponDelivery)).rowcount
            self.db.execute(
                update(SurveySession)
                .where(SurveySession.response_id.is_not(None))
                .values(response_id=None)
            )
            answers = self.db.execute(delete(Answer)).rowcount
            responses = self.db.execute(delete(Response)).rowcount
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.warning(f"Cleared {responses} responses and {answers} answers")
        return {
            "responses": responses,
            "answers": answers,
            "gm_interest": gm_interest,
            "coupon_deliveries": deliveries,
        }

    # Options

    def list_questions(self, survey_id: int) -> list[Question]:
        """Questions with options, in display order."""
        return self.get_survey(survey_id).questions

    def add_option(self, question_id: int, option_text: str) -> QuestionOption:
        """Append an option to a question.

        The stored value is the text lowercased with whitespace runs
        replaced by underscores.

        Raises:
            QuestionNotFoundError: If the question does not exist
        """
        question = self.db.get(Question, question_id)
        if question is None:
            raise QuestionNotFoundError(f"Question {question_id} not found")

        text = option_text.strip()
        max_order = self.db.execute(
            select(func.coalesce(func.max(QuestionOption.display_order), 0))
            .where(QuestionOption.question_id == question_id)
        ).scalar_one()

        option = QuestionOption(
            option_text=text,
            option_value=slugify_option(text),
            display_order=max_order + 1,
        )
        question.options.append(option)
        self.db.commit()

        logger.info(f"Added option {option.option_value!r} to question {question.key}")
        return option

    def update_option_text(self, option_id: int, option_text: str) -> QuestionOption:
        """Rename an option. The stored value never changes.

        Raises:
            OptionNotFoundError: If the option does not exist
        """
        option = self.db.get(QuestionOption, option_id)
        if option is None:
            raise OptionNotFoundError(f"Option {option_id} not found")

        option.option_text = option_text.strip()
        self.db.commit()

        logger.info(f"Renamed option {option_id} (value {option.option_value!r})")
        return option

    def delete_option(self, option_id: int) -> None:
        """Delete an option and its GM/adventure assignments.

        Raises:
            OptionNotFoundError: If the option does not exist
        """
        option = self.db.get(QuestionOption, option_id)
        if option is None:
            raise OptionNotFoundError(f"Option {option_id} not found")

        # delete-orphan removes the row and keeps the loaded collection current
        option.question.options.remove(option)
        self.db.commit()
        logger.info(f"Deleted option {option_id}")
