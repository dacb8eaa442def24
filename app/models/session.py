"""SurveySession model for tracking multi-step form state.

This module defines the SurveySession model which maintains a respondent's
progress through the questionnaire: the current mode, the position within
the visible questions, the answers given so far, and the response and
coupon produced by the first submission.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Any

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    JSON,
    String,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from app.models.database import Base


class FlowMode(str, Enum):
    """Modes of the survey form.

    answering: stepping through the visible questions
    coupon: first submission done, coupon shown
    volunteering: answering the volunteer section only
    submitted: finished, no further changes
    """
    ANSWERING = "answering"
    COUPON = "coupon"
    VOLUNTEERING = "volunteering"
    SUBMITTED = "submitted"


class SurveySession(Base):
    """Model for tracking survey form state.

    Attributes:
        id: Primary key
        survey_id: Survey being answered
        mode: Current FlowMode value
        current_index: Position within the currently visible questions
        answers: JSON mapping of question id (as string) to answer value
        preselected_convention: Convention passed in the survey link
        response_id: Response created by the first submission
        coupon_code: Code shown to the respondent
        coupon_is_placeholder: Whether the code is a non-persisted placeholder
        started_at: When the session started
        updated_at: Last update timestamp
        completed_at: When the survey was submitted (NULL while active)
    """

    __tablename__ = "survey_sessions"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)

    survey_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("surveys.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # Current State
    mode: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=FlowMode.ANSWERING.value,
        comment="Current form mode"
    )
    current_index: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        comment="Index into the visible questions"
    )
    answers: Mapped[dict] = mapped_column(
        JSON,
        nullable=False,
        default=dict,
        comment="Answers keyed by question id"
    )
    preselected_convention: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
        comment="Convention from the survey link"
    )

    # Submission Results
    response_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        ForeignKey("responses.id", ondelete="SET NULL"),
        nullable=True,
    )
    coupon_code: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    coupon_is_placeholder: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        comment="Placeholder codes are not backed by the coupon pool"
    )

    # Timestamps
    started_at: Mapped[datetime] = mapped_column(
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
    completed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="When the survey was submitted (NULL for active sessions)"
    )

    __table_args__ = (
        Index("idx_survey_sessions_completed_at", "completed_at"),
    )

    @property
    def flow_mode(self) -> FlowMode:
        """Current mode as a FlowMode."""
        return FlowMode(self.mode)

    def set_mode(self, mode: FlowMode) -> None:
        """Switch mode."""
        self.mode = mode.value

    def get_answer(self, question_id: int) -> Any:
        """Answer given to a question, or None."""
        return (self.answers or {}).get(str(question_id))

    def set_answer(self, question_id: int, value: Any) -> None:
        """Store an answer.

        Note:
            A new dict is assigned so SQLAlchemy detects the JSON change.
        """
        new_answers = dict(self.answers or {})
        new_answers[str(question_id)] = value
        self.answers = new_answers

    def clear_answers(self, question_ids) -> list[int]:
        """Drop answers for the given questions.

        Returns:
            IDs of questions whose answers were actually removed
        """
        current = dict(self.answers or {})
        removed = [qid for qid in question_ids if current.pop(str(qid), None) is not None]
        if removed:
            self.answers = current
        return removed

    def move_to(self, index: int) -> None:
        """Move to a position within the visible questions."""
        self.current_index = max(0, index)

    def mark_completed(self) -> None:
        """Mark the session as submitted.

        Sets completed_at to current UTC time.
        """
        self.set_mode(FlowMode.SUBMITTED)
        self.completed_at = datetime.now(timezone.utc)

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"<SurveySession(id={self.id}, "
            f"survey_id={self.survey_id}, "
            f"mode={self.mode}, "
            f"current_index={self.current_index}, "
            f"completed={self.completed_at is not None})>"
        )
