"""GM / convention / adventure associations.

GMs, conventions and adventures are options of the ``gm``, ``convention``
and ``adventure`` questions. Staff assign GMs to conventions and adventures
to (GM, convention) pairs; the survey form uses those assignments to narrow
the GM and adventure dropdowns.
"""

from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.config import get_settings
from app.models.gm import GMAdventure, GMConvention
from app.models.survey import Question, QuestionOption
from app.logging_config import get_logger

logger = get_logger(__name__)

CONVENTION_KEY = "convention"
GM_KEY = "gm"
ADVENTURE_KEY = "adventure"

NO_GMS_MESSAGE = "No GMs are assigned to this convention"
NO_ADVENTURES_MESSAGE = "No adventures found for this GM"


class OptionNotFoundError(Exception):
    """Raised when an option does not exist."""
    pass


class AssociationError(Exception):
    """Raised when an assignment is inconsistent (wrong question, missing pair)."""
    pass


class AssociationExistsError(Exception):
    """Raised when an assignment already exists."""
    pass


class AssociationNotFoundError(Exception):
    """Raised when an assignment to delete does not exist."""
    pass


@dataclass
class FilteredOptions:
    """Options left after narrowing a dropdown.

    ``empty_message`` is set only when narrowing applied and nothing matched;
    the form shows it as a disabled placeholder.
    """
    options: list[QuestionOption] = field(default_factory=list)
    empty_message: Optional[str] = None
    narrowed: bool = False


@dataclass
class ConventionMatch:
    """A convention from a survey link matched against the options."""
    option: Optional[QuestionOption]
    display_name: str

    @property
    def value(self) -> Optional[str]:
        return self.option.stored_value if self.option else None


def title_case(value: str) -> str:
    """Display form for a value with no matching option ("gen-con" -> "Gen Con")."""
    words = value.replace("-", " ").replace("_", " ").split()
    return " ".join(word[:1].upper() + word[1:].lower() for word in words)


class AssociationService:
    """Service for option lookup, dropdown narrowing and assignment CRUD."""

    def __init__(self, db: Session, survey_id: Optional[int] = None):
        """Initialize association service.

        Args:
            db: SQLAlchemy database session
            survey_id: Survey whose gm/convention/adventure questions are used
                (defaults to the configured survey)
        """
        self.db = db
        self.survey_id = survey_id or get_settings().default_survey_id

    # Lookup

    def question(self, key: str) -> Optional[Question]:
        """Question of the survey with the given key."""
        return self.db.execute(
            select(Question).where(Question.survey_id == self.survey_id, Question.key == key)
        ).scalar_one_or_none()

    def resolve_option(
        self,
        question_key: str,
        option_id: Optional[int] = None,
        value: Optional[str] = None,
    ) -> Optional[QuestionOption]:
        """Find an option of the keyed question.

        Args:
            question_key: gm, convention or adventure
            option_id: Option primary key
            value: Option value or text, case-insensitive

        Returns:
            The option, or None when it does not exist or belongs to
            another question
        """
        question = self.question(question_key)
        if question is None:
            return None

        if option_id is not None:
            option = self.db.get(QuestionOption, option_id)
            if option is None or option.question_id != question.id:
                return None
            return option

        if value:
            return question.find_option(value)

        return None

    def match_convention(self, value: str) -> ConventionMatch:
        """Match a convention passed in a survey link.

        Tries exact value, exact text, then partial value and partial text
        (case-insensitive). When nothing matches, the display name is the
        value title-cased.

        Example:
            >>> service.match_convention("gen con").display_name
            'Gen Con'
        """
        needle = value.strip().lower()
        question = self.question(CONVENTION_KEY)
        options = question.options if question else []

        matchers = (
            lambda o: o.stored_value.lower() == needle,
            lambda o: o.option_text.lower() == needle,
            lambda o: needle in o.stored_value.lower(),
            lambda o: needle in o.option_text.lower(),
        )
        if needle:
            for matcher in matchers:
                for option in options:
                    if matcher(option):
                        logger.debug(f"Matched convention {value!r} to option {option.id}")
                        return ConventionMatch(option=option, display_name=option.option_text)

        logger.info(f"No convention option matches {value!r}")
        return ConventionMatch(option=None, display_name=title_case(value))

    # Narrowing

    def gms_for_convention(self, convention_option_id: int) -> list[QuestionOption]:
        """GM options assigned to a convention, in display order."""
        stmt = (
            select(QuestionOption)
            .join(GMConvention, GMConvention.gm_option_id == QuestionOption.id)
            .where(GMConvention.convention_option_id == convention_option_id)
            .order_by(QuestionOption.display_order, QuestionOption.id)
        )
        return list(self.db.execute(stmt).scalars().all())

    def adventures_for_gm(
        self,
        gm_option_id: int,
        convention_option_id: Optional[int] = None,
    ) -> list[QuestionOption]:
        """Adventure options a GM runs.

        Args:
            gm_option_id: GM option
            convention_option_id: Restrict to this convention; all
                conventions when None

        Returns:
            Distinct adventure options in display order
        """
        stmt = (
            select(QuestionOption)
            .join(GMAdventure, GMAdventure.adventure_option_id == QuestionOption.id)
            .where(GMAdventure.gm_option_id == gm_option_id)
        )
        if convention_option_id is not None:
            stmt = stmt.where(GMAdventure.convention_option_id == convention_option_id)
        stmt = stmt.distinct().order_by(QuestionOption.display_order, QuestionOption.id)
        return list(self.db.execute(stmt).scalars().all())

    def filter_gms(self, convention: Optional[str]) -> FilteredOptions:
        """GM dropdown options for a convention value.

        No convention means no narrowing. A convention that does not resolve
        or has no GMs gives an empty list with a placeholder message.
        """
        gm_question = self.question(GM_KEY)
        if gm_question is None:
            return FilteredOptions()
        if not convention:
            return FilteredOptions(options=list(gm_question.options))

        option = self.resolve_option(CONVENTION_KEY, value=convention)
        gms = self.gms_for_convention(option.id) if option else []
        return FilteredOptions(
            options=gms,
            empty_message=None if gms else NO_GMS_MESSAGE,
            narrowed=True,
        )

    def filter_adventures(
        self,
        gm: Optional[str] = None,
        convention: Optional[str] = None,
        gm_option_id: Optional[int] = None,
    ) -> FilteredOptions:
        """Adventure dropdown options for a GM (and convention).

        The GM is given by option id or by value. Without a GM there is no
        narrowing. The result is never padded with unrelated adventures.
        """
        adventure_question = self.question(ADVENTURE_KEY)
        if adventure_question is None:
            return FilteredOptions()
        if gm_option_id is None and not gm:
            return FilteredOptions(options=list(adventure_question.options))

        gm_option = self.resolve_option(GM_KEY, option_id=gm_option_id, value=gm)
        if gm_option is None:
            return FilteredOptions(empty_message=NO_ADVENTURES_MESSAGE, narrowed=True)

        convention_option_id = None
        if convention:
            convention_option = self.resolve_option(CONVENTION_KEY, value=convention)
            if convention_option is None:
                return FilteredOptions(empty_message=NO_ADVENTURES_MESSAGE, narrowed=True)
            convention_option_id = convention_option.id

        adventures = self.adventures_for_gm(gm_option.id, convention_option_id)
        return FilteredOptions(
            options=adventures,
            empty_message=None if adventures else NO_ADVENTURES_MESSAGE,
            narrowed=True,
        )

    # Admin CRUD

    def _require_option(self, option_id: int, question_key: str) -> QuestionOption:
        option = self.db.get(QuestionOption, option_id)
        if option is None:
            raise OptionNotFoundError(f"Option {option_id} not found")
        question = self.question(question_key)
        if question is None or option.question_id != question.id:
            raise AssociationError(f"Option {option_id} is not a {question_key} option")
        return option

    def list_gm_conventions(self) -> list[dict]:
        """All GM-convention pairs, ordered by GM then convention."""
        rows = self.db.execute(select(GMConvention)).scalars().all()
        items = [
            {
                "id": row.id,
                "gm_option_id": row.gm_option_id,
                "gm": row.gm.option_text,
                "convention_option_id": row.convention_option_id,
                "convention": row.convention.option_text,
                "created_at": row.created_at,
            }
            for row in rows
        ]
        return sorted(items, key=lambda item: (item["gm"].lower(), item["convention"].lower()))

    def create_gm_convention(self, gm_option_id: int, convention_option_id: int) -> GMConvention:
        """Assign a GM to a convention.

        Raises:
            OptionNotFoundError: If either option does not exist
            AssociationError: If an option belongs to the wrong question
            AssociationExistsError: If the pair already exists
        """
        self._require_option(gm_option_id, GM_KEY)
        self._require_option(convention_option_id, CONVENTION_KEY)

        existing = self.db.execute(
            select(GMConvention).where(
                GMConvention.gm_option_id == gm_option_id,
                GMConvention.convention_option_id == convention_option_id,
            )
        ).scalar_one_or_none()
        if existing is not None:
            raise AssociationExistsError("This GM is already associated with this convention")

        pair = GMConvention(gm_option_id=gm_option_id, convention_option_id=convention_option_id)
        self.db.add(pair)
        try:
            self.db.commit()
        except IntegrityError:
            # lost a race with an identical insert
            self.db.rollback()
            raise AssociationExistsError("This GM is already associated with this convention")

        logger.info(f"Assigned GM option {gm_option_id} to convention option {convention_option_id}")
        return pair

    def delete_gm_convention(self, association_id: int) -> None:
        """Remove a GM-convention pair and the adventures assigned under it."""
        pair = self.db.get(GMConvention, association_id)
        if pair is None:
            raise AssociationNotFoundError(f"Association {association_id} not found")

        # explicit so the cascade also holds where FK enforcement is off
        self.db.query(GMAdventure).filter(
            GMAdventure.gm_option_id == pair.gm_option_id,
            GMAdventure.convention_option_id == pair.convention_option_id,
        ).delete(synchronize_session=False)
        self.db.delete(pair)
        self.db.commit()
        logger.info(f"Deleted GM-convention association {association_id}")

    def list_gm_adventures(
        self,
        gm_option_id: Optional[int] = None,
        convention_option_id: Optional[int] = None,
    ) -> list[dict]:
        """GM-adventure triples, optionally filtered by GM and convention."""
        stmt = select(GMAdventure)
        if gm_option_id is not None:
            stmt = stmt.where(GMAdventure.gm_option_id == gm_option_id)
        if convention_option_id is not None:
            stmt = stmt.where(GMAdventure.convention_option_id == convention_option_id)

        rows = self.db.execute(stmt).scalars().all()
        texts = self._option_texts(
            {r.gm_option_id for r in rows} | {r.convention_option_id for r in rows}
        )
        items = [
            {
                "id": row.id,
                "gm_option_id": row.gm_option_id,
                "gm": texts.get(row.gm_option_id, ""),
                "convention_option_id": row.convention_option_id,
                "convention": texts.get(row.convention_option_id, ""),
                "adventure_option_id": row.adventure_option_id,
                "adventure": row.adventure.option_text,
                "created_at": row.created_at,
            }
            for row in rows
        ]
        return sorted(
            items,
            key=lambda item: (item["gm"].lower(), item["convention"].lower(), item["adventure"].lower()),
        )

    def create_gm_adventure(
        self,
        gm_option_id: int,
        convention_option_id: int,
        adventure_option_id: int,
    ) -> GMAdventure:
        """Assign an adventure to a GM at a convention.

        Raises:
            OptionNotFoundError: If an option does not exist
            AssociationError: If the GM is not assigned to the convention,
                or an option belongs to the wrong question
            AssociationExistsError: If the triple already exists
        """
        self._require_option(gm_option_id, GM_KEY)
        self._require_option(convention_option_id, CONVENTION_KEY)
        self._require_option(adventure_option_id, ADVENTURE_KEY)

        pair = self.db.execute(
            select(GMConvention).where(
                GMConvention.gm_option_id == gm_option_id,
                GMConvention.convention_option_id == convention_option_id,
            )
        ).scalar_one_or_none()
        if pair is None:
            raise AssociationError("Assign the GM to this convention before adding adventures")

        existing = self.db.execute(
            select(GMAdventure).where(
                GMAdventure.gm_option_id == gm_option_id,
                GMAdventure.convention_option_id == convention_option_id,
                GMAdventure.adventure_option_id == adventure_option_id,
            )
        ).scalar_one_or_none()
        if existing is not None:
            raise AssociationExistsError("This GM already runs this adventure at this convention")

        triple = GMAdventure(
            gm_option_id=gm_option_id,
            convention_option_id=convention_option_id,
            adventure_option_id=adventure_option_id,
        )
        self.db.add(triple)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise AssociationExistsError("This GM already runs this adventure at this convention")

        logger.info(
            f"Assigned adventure option {adventure_option_id} to GM option {gm_option_id} "
            f"at convention option {convention_option_id}"
        )
        return triple

    def delete_gm_adventure(self, association_id: int) -> None:
        """Remove a GM-adventure triple."""
        triple = self.db.get(GMAdventure, association_id)
        if triple is None:
            raise AssociationNotFoundError(f"Association {association_id} not found")
        self.db.delete(triple)
        self.db.commit()
        logger.info(f"Deleted GM-adventure association {association_id}")

    def _option_texts(self, option_ids: set[int]) -> dict[int, str]:
        if not option_ids:
            return {}
        rows = self.db.execute(
            select(QuestionOption.id, QuestionOption.option_text).where(QuestionOption.id.in_(sorted(option_ids)))
        ).all()
        return {row.id: row.option_text for row in rows}
