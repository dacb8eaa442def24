"""Response and Answer models for storing submitted surveys.

A response is one respondent's submission; each answer belongs to exactly
one response and one question. Answers are deleted with their response.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import (
    DateTime,
    ForeignKey,
    Index,
    Integer,
    JSON,
    String,
    Text,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.database import Base


class Response(Base):
    """Model for a submitted survey.

    Attributes:
        id: Primary key
        survey_id: Foreign key to surveys table
        respondent_email: Optional respondent email
        respondent_name: Optional respondent name
        submitted_at: When the response was first submitted
        ip_address: Client address, when known
        user_agent: Client user agent, when known
        extra: Free-form JSON metadata (column name "metadata")
        answers: Relationship to Answer rows
    """

    __tablename__ = "responses"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    survey_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("surveys.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    respondent_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    respondent_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    submitted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
        comment="When the response was submitted"
    )
    ip_address: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    user_agent: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    # "metadata" is reserved on declarative classes
    extra: Mapped[Optional[dict]] = mapped_column("metadata", JSON, nullable=True)

    answers: Mapped[list["Answer"]] = relationship(
        "Answer",
        back_populates="response",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def answered_question_ids(self) -> set[int]:
        """IDs of questions that already have an answer on this response."""
        return {answer.question_id for answer in self.answers}

    def __repr__(self) -> str:
        """String representation for debugging."""
        return f"<Response(id={self.id}, survey_id={self.survey_id})>"


class Answer(Base):
    """Model for a single answer of a response.

    Multiple-choice questions produce one row per selected option.

    Attributes:
        id: Primary key
        response_id: Foreign key to responses table
        question_id: Foreign key to questions table
        answer_text: Free text, or the display text of a chosen option
        answer_value: Stored option value or numeric value
        created_at: When the answer was recorded
    """

    __tablename__ = "answers"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    response_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("responses.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    question_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("questions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    answer_text: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    answer_value: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    response: Mapped["Response"] = relationship("Response", back_populates="answers")
    question: Mapped["Question"] = relationship("Question")

    __table_args__ = (
        Index("idx_answers_response_question", "response_id", "question_id"),
    )

    @property
    def display(self) -> str:
        """Human-readable answer, preferring text over stored value."""
        return self.answer_text or self.answer_value or ""

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"<Answer(id={self.id}, response_id={self.response_id}, "
            f"question_id={self.question_id})>"
        )
