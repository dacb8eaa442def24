"""Rating analytics for the admin dashboard.

Builds zero-filled rating distributions and the convention and adventure
lists used to filter them.
"""

import re
from collections import Counter
from typing import Optional

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from app.config import get_settings
from app.models.response import Answer
from app.models.survey import Question, QuestionOption
from app.services.associations import ADVENTURE_KEY, CONVENTION_KEY, title_case
from app.logging_config import get_logger

logger = get_logger(__name__)

# distribution name -> (question key, default scale)
RATING_QUESTIONS = {
    "gm_rating": ("gm_rating", 5),
    "adventure_rating": ("adventure_rating", 5),
    "recommendation_rating": ("recommendation", 10),
}

_SEPARATORS = re.compile(r"[-_\s]+")


def normalize_name(value: str) -> str:
    """Matching form of a convention name ("Gen-Con" and "gen con" -> "gen_con")."""
    return _SEPARATORS.sub("_", value.strip().lower())


class AnalyticsService:
    """Service for survey rating analytics."""

    def __init__(self, db: Session, survey_id: Optional[int] = None):
        """Initialize analytics service.

        Args:
            db: SQLAlchemy database session
            survey_id: Survey analyzed (defaults to the configured survey)
        """
        self.db = db
        self.survey_id = survey_id or get_settings().default_survey_id

    def _question(self, key: str) -> Optional[Question]:
        return self.db.execute(
            select(Question).where(Question.survey_id == self.survey_id, Question.key == key)
        ).scalar_one_or_none()

    def _responses_at(self, convention: str, question: Question):
        """Subquery of response ids whose convention answer matches."""
        needle = convention.strip().lower()
        return select(Answer.response_id).where(
            Answer.question_id == question.id,
            or_(
                func.lower(Answer.answer_value) == needle,
                func.lower(Answer.answer_text) == needle,
            ),
        )

    def rating_data(self, convention: Optional[str] = None) -> dict[str, list[dict]]:
        """Rating distributions, zero-filled from 1 to the scale maximum.

        Args:
            convention: Only count responses from this convention (value or
                display text, case-insensitive); "all" or None counts all

        Returns:
            Dict of distribution name -> [{"rating": n, "count": c}, ...]

        Example:
            >>> analytics.rating_data()["gm_rating"][4]
            {'rating': 5, 'count': 12}
        """
        convention_filter = None
        if convention and convention.lower() != "all":
            convention_question = self._question(CONVENTION_KEY)
            if convention_question is not None:
                convention_filter = self._responses_at(convention, convention_question)

        data: dict[str, list[dict]] = {}
        for name, (key, default_max) in RATING_QUESTIONS.items():
            question = self._question(key)
            scale = question.rules.get("max", default_max) if question else default_max
            counts: Counter = Counter()

            if question is not None:
                stmt = select(Answer.answer_value).where(
                    Answer.question_id == question.id,
                    Answer.answer_value.is_not(None),
                )
                if convention_filter is not None:
                    stmt = stmt.where(Answer.response_id.in_(convention_filter))
                for value in self.db.execute(stmt).scalars():
                    if value.isdigit():
                        counts[int(value)] += 1

            data[name] = [{"rating": r, "count": counts.get(r, 0)} for r in range(1, scale + 1)]

        logger.debug(f"Built rating data (convention={convention})")
        return data

    def conventions(self) -> list[dict]:
        """Conventions that appear in answers, with display names.

        Answers are matched to convention options ignoring case and
        separators; unmatched answers are shown title-cased.

        Returns:
            [{"value": ..., "display": ...}] sorted by display name
        """
        question = self._question(CONVENTION_KEY)
        if question is None:
            return []

        lookup: dict[str, str] = {}
        for option in question.options:
            for candidate in (option.option_value, option.option_text):
                if candidate:
                    lookup.setdefault(candidate.lower(), option.option_text)
                    lookup.setdefault(normalize_name(candidate), option.option_text)

        rows = self.db.execute(
            select(Answer.answer_value, Answer.answer_text)
            .where(Answer.question_id == question.id)
            .distinct()
        ).all()

        found: dict[str, dict] = {}
        for answer_value, answer_text in rows:
            candidates = [c for c in (answer_value, answer_text) if c]
            if not candidates:
                continue
            value = candidates[0]
            display = None
            for candidate in candidates:
                display = lookup.get(candidate.lower()) or lookup.get(normalize_name(candidate))
                if display:
                    break
            found.setdefault(normalize_name(value), {
                "value": value,
                "display": display or title_case(value),
            })

        return sorted(found.values(), key=lambda item: item["display"].lower())

    def adventures(self) -> list[str]:
        """Adventure names from the options and from answers, de-duplicated."""
        question = self._question(ADVENTURE_KEY)
        if question is None:
            return []

        names = [
            option.option_text or option.option_value
            for option in self.db.execute(
                select(QuestionOption).where(QuestionOption.question_id == question.id)
            ).scalars()
        ]
        for answer_text, answer_value in self.db.execute(
            select(Answer.answer_text, Answer.answer_value)
            .where(Answer.question_id == question.id)
            .distinct()
        ).all():
            names.append(answer_text or answer_value)

        unique = {name for name in names if name}
        return sorted(unique, key=str.lower)
