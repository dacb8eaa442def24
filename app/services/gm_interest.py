"""GM interest: contact details of respondents who want to run games.

The contact questions live in the survey's volunteer section. Their answers
are stored as a ``gm_interest`` row keyed by response, so staff can list
and export volunteers without digging through answers.
"""

from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from app.config import get_settings
from app.models.gm import GMInterest
from app.models.response import Answer, Response
from app.models.survey import Question, Survey
from app.services.survey_store import ResponseNotFoundError, SurveyNotFoundError
from app.logging_config import get_logger

logger = get_logger(__name__)

# question key -> gm_interest column
CONTACT_FIELDS = {
    "gm_first_name": "first_name",
    "gm_last_name": "last_name",
    "gm_email": "email",
}


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


class GMInterestService:
    """Service for GM interest records."""

    def __init__(self, db: Session):
        """Initialize GM interest service.

        Args:
            db: SQLAlchemy database session
        """
        self.db = db

    def submit(
        self,
        response_id: int,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
        email: Optional[str] = None,
    ) -> GMInterest:
        """Create or replace the GM interest row of a response.

        Raises:
            ResponseNotFoundError: If the response does not exist
        """
        if self.db.get(Response, response_id) is None:
            raise ResponseNotFoundError(f"Response {response_id} not found")

        record = self.db.execute(
            select(GMInterest).where(GMInterest.response_id == response_id)
        ).scalar_one_or_none()
        if record is None:
            record = GMInterest(response_id=response_id)
            self.db.add(record)

        record.first_name = _clean(first_name)
        record.last_name = _clean(last_name)
        record.email = _clean(email)
        self.db.commit()

        logger.info(f"Stored GM interest for response {response_id}")
        return record

    def submit_from_answers(self, response_id: int, answers_by_key: dict) -> Optional[GMInterest]:
        """Store contact answers given by question key.

        Nothing is stored when none of the contact questions was answered.
        """
        values = {
            column: _clean(answers_by_key.get(key))
            for key, column in CONTACT_FIELDS.items()
        }
        if not any(values.values()):
            return None
        return self.submit(response_id, **values)

    def list(self) -> list[dict]:
        """GM interest rows ordered by last name, first name."""
        rows = self.db.execute(
            select(GMInterest, Response.submitted_at)
            .join(Response, GMInterest.response_id == Response.id)
            .order_by(GMInterest.last_name, GMInterest.first_name, GMInterest.id)
        ).all()
        return [
            {
                "id": record.id,
                "response_id": record.response_id,
                "first_name": record.first_name,
                "last_name": record.last_name,
                "email": record.email,
                "submitted_at": record.submitted_at,
                "response_submitted_at": response_submitted_at,
            }
            for record, response_submitted_at in rows
        ]

    def _contact_questions(self, survey_id: int) -> dict[int, str]:
        survey = self.db.get(Survey, survey_id)
        if survey is None:
            raise SurveyNotFoundError(f"Survey {survey_id} not found")

        questions = self.db.execute(
            select(Question).where(
                Question.survey_id == survey_id,
                Question.key.in_(list(CONTACT_FIELDS)),
            )
        ).scalars().all()
        return {q.id: CONTACT_FIELDS[q.key] for q in questions}

    def reprocess(self, survey_id: Optional[int] = None) -> dict:
        """Rebuild GM interest rows from contact answers.

        Existing rows keep values the answers do not provide. Each response
        is committed on its own so one failure does not stop the rest.

        Returns:
            Dict with processed and error counts, total responses and error
            details
        """
        survey_id = survey_id or get_settings().default_survey_id
        questions = self._contact_questions(survey_id)
        if not questions:
            logger.warning(f"Survey {survey_id} has no GM contact questions")
            return {"processed": 0, "errors": 0, "total_responses": 0, "error_details": []}

        answers = self.db.execute(
            select(Answer)
            .where(Answer.question_id.in_(list(questions)))
            .order_by(Answer.response_id, Answer.id)
        ).scalars().all()

        by_response: dict[int, dict[str, Optional[str]]] = {}
        for answer in answers:
            fields = by_response.setdefault(answer.response_id, {})
            fields[questions[answer.question_id]] = _clean(answer.answer_text or answer.answer_value)

        processed = 0
        error_details = []
        for response_id, fields in by_response.items():
            if not any(fields.values()):
                continue
            try:
                record = self.db.execute(
                    select(GMInterest).where(GMInterest.response_id == response_id)
                ).scalar_one_or_none()
                if record is None:
                    record = GMInterest(response_id=response_id)
                    self.db.add(record)
                for column, value in fields.items():
                    if value is not None:
                        setattr(record, column, value)
                self.db.commit()
                processed += 1
            except Exception as e:
                self.db.rollback()
                logger.error(f"Error reprocessing GM interest for response {response_id}: {e}")
                error_details.append({"response_id": response_id, "error": str(e)})

        logger.info(f"Reprocessed GM interest: {processed} processed, {len(error_details)} errors")
        return {
            "processed": processed,
            "errors": len(error_details),
            "total_responses": len(by_response),
            "error_details": error_details,
        }

    def remove_volunteer_answers(self, survey_id: Optional[int] = None) -> int:
        """Delete answers to the volunteer-section questions.

        Run after ``reprocess`` once contact details live in gm_interest.

        Returns:
            Number of answers deleted
        """
        survey_id = survey_id or get_settings().default_survey_id
        survey = self.db.get(Survey, survey_id)
        if survey is None:
            raise SurveyNotFoundError(f"Survey {survey_id} not found")

        question_ids = select(Question.id).where(
            Question.survey_id == survey_id,
            Question.section == survey.volunteer_section,
        )
        deleted = self.db.execute(
            delete(Answer)
            .where(Answer.question_id.in_(question_ids))
            .execution_options(synchronize_session=False)
        ).rowcount
        self.db.commit()

        logger.warning(f"Removed {deleted} volunteer-section answers from survey {survey_id}")
        return deleted
