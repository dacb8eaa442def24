"""Survey, Question and QuestionOption models.

These models hold the questionnaire itself: the ordered questions of each
survey and the dropdown/choice options staff can edit from the admin panel.
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    JSON,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.database import Base
from app.schemas.survey import MAIN_SECTION, QuestionType


class Survey(Base):
    """A questionnaire.

    Attributes:
        id: Primary key
        slug: Identifier of the YAML definition the survey was seeded from
        title: Survey title
        description: Survey description
        version: Definition version at seeding time
        is_active: Whether the survey accepts responses
        settings: Flow settings (submit_after, volunteer_section)
    """

    __tablename__ = "surveys"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    slug: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        unique=True,
        comment="Survey definition identifier"
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    version: Mapped[str] = mapped_column(String(20), nullable=False, default="1.0.0")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    settings: Mapped[dict] = mapped_column(
        JSON,
        nullable=False,
        default=dict,
        comment="Flow settings such as submit_after and volunteer_section"
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    questions: Mapped[list["Question"]] = relationship(
        "Question",
        back_populates="survey",
        cascade="all, delete-orphan",
        order_by="Question.display_order",
    )

    @property
    def submit_after(self) -> Optional[str]:
        """Key of the question after which the first submission happens."""
        return (self.settings or {}).get("submit_after")

    @property
    def volunteer_section(self) -> str:
        """Section reused by the volunteer sub-flow."""
        return (self.settings or {}).get("volunteer_section", "gm_contact")

    def question_by_key(self, key: str) -> Optional["Question"]:
        """Find a question of this survey by its key."""
        for question in self.questions:
            if question.key == key:
                return question
        return None

    def __repr__(self) -> str:
        """String representation for debugging."""
        return f"<Survey(id={self.id}, slug={self.slug})>"


class Question(Base):
    """A single question of a survey.

    Attributes:
        id: Primary key
        survey_id: Foreign key to surveys table
        key: Stable identifier unique within the survey
        question_text: Text shown to respondents
        question_type: One of QuestionType
        is_required: Whether an answer is needed to move on
        display_order: Position within the survey
        placeholder_text: Placeholder for free-text inputs
        validation_rules: Type-specific rules (min, max, min_length, max_length)
        section: "main" or the volunteer section name
        visible_when: Optional visibility condition over earlier answers
    """

    __tablename__ = "questions"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    survey_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("surveys.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    key: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        comment="Stable question identifier within the survey"
    )
    question_text: Mapped[str] = mapped_column(Text, nullable=False)
    question_type: Mapped[QuestionType] = mapped_column(
        Enum(
            QuestionType,
            name="question_type",
            values_callable=lambda enum: [member.value for member in enum],
        ),
        nullable=False,
    )
    is_required: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    display_order: Mapped[int] = mapped_column(Integer, nullable=False)
    placeholder_text: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    validation_rules: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    section: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        default=MAIN_SECTION,
        server_default=MAIN_SECTION,
    )
    visible_when: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        comment="Condition expression evaluated against earlier answers"
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    survey: Mapped["Survey"] = relationship("Survey", back_populates="questions")
    options: Mapped[list["QuestionOption"]] = relationship(
        "QuestionOption",
        back_populates="question",
        cascade="all, delete-orphan",
        order_by="QuestionOption.display_order",
    )

    __table_args__ = (
        UniqueConstraint("survey_id", "key", name="uq_questions_survey_key"),
        Index("idx_questions_survey_order", "survey_id", "display_order"),
    )

    @property
    def rules(self) -> dict:
        """Validation rules, never None."""
        return self.validation_rules or {}

    def find_option(self, value: str) -> Optional["QuestionOption"]:
        """Find an option by stored value or display text (case-insensitive)."""
        needle = value.strip().lower()
        for option in self.options:
            if option.option_value and option.option_value.lower() == needle:
                return option
        for option in self.options:
            if option.option_text.lower() == needle:
                return option
        return None

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"<Question(id={self.id}, key={self.key}, "
            f"type={self.question_type.value}, order={self.display_order})>"
        )


class QuestionOption(Base):
    """A selectable option of a choice-type question.

    ``option_value`` is what answers store; admin edits only ever change
    ``option_text`` so historical answers keep matching.
    """

    __tablename__ = "question_options"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    question_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("questions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    option_text: Mapped[str] = mapped_column(String(255), nullable=False)
    option_value: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    display_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    question: Mapped["Question"] = relationship("Question", back_populates="options")

    @property
    def stored_value(self) -> str:
        """Value written to answers for this option."""
        return self.option_value or self.option_text

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"<QuestionOption(id={self.id}, question_id={self.question_id}, "
            f"value={self.option_value})>"
        )
