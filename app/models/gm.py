"""GM interest and GM/convention/adventure assignment models.

GMs, conventions and adventures are all dropdown options
(``question_options`` rows of the gm, convention and adventure questions).
``gm_conventions`` says which GMs run games at which convention;
``gm_adventures`` says which adventures a GM runs at that convention and
references its ``gm_conventions`` pair through a composite foreign key.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import (
    DateTime,
    ForeignKey,
    ForeignKeyConstraint,
    Index,
    Integer,
    String,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.database import Base


class GMInterest(Base):
    """Contact details of a respondent who wants to become a GM.

    Exactly one row per response; resubmitting updates it in place.
    """

    __tablename__ = "gm_interest"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    response_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("responses.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    first_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    last_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    submitted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    response: Mapped["Response"] = relationship("Response")

    @property
    def full_name(self) -> str:
        """First and last name joined, skipping blanks."""
        return " ".join(part for part in (self.first_name, self.last_name) if part)

    def __repr__(self) -> str:
        """String representation for debugging."""
        return f"<GMInterest(id={self.id}, response_id={self.response_id})>"


class GMConvention(Base):
    """A GM assigned to a convention."""

    __tablename__ = "gm_conventions"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    gm_option_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("question_options.id", ondelete="CASCADE"),
        nullable=False,
    )
    convention_option_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("question_options.id", ondelete="CASCADE"),
        nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    gm: Mapped["QuestionOption"] = relationship("QuestionOption", foreign_keys=[gm_option_id])
    convention: Mapped["QuestionOption"] = relationship(
        "QuestionOption", foreign_keys=[convention_option_id]
    )

    __table_args__ = (
        UniqueConstraint("gm_option_id", "convention_option_id", name="uq_gm_conventions_pair"),
        Index("idx_gm_conventions_gm_option_id", "gm_option_id"),
        Index("idx_gm_conventions_convention_option_id", "convention_option_id"),
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"<GMConvention(gm_option_id={self.gm_option_id}, "
            f"convention_option_id={self.convention_option_id})>"
        )


class GMAdventure(Base):
    """An adventure a GM runs at a convention.

    The (gm_option_id, convention_option_id) pair must exist in
    ``gm_conventions``; removing that pair removes these rows.
    """

    __tablename__ = "gm_adventures"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    gm_option_id: Mapped[int] = mapped_column(Integer, nullable=False)
    convention_option_id: Mapped[int] = mapped_column(Integer, nullable=False)
    adventure_option_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("question_options.id", ondelete="CASCADE"),
        nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    adventure: Mapped["QuestionOption"] = relationship(
        "QuestionOption", foreign_keys=[adventure_option_id]
    )

    __table_args__ = (
        ForeignKeyConstraint(
            ["gm_option_id", "convention_option_id"],
            ["gm_conventions.gm_option_id", "gm_conventions.convention_option_id"],
            ondelete="CASCADE",
            name="fk_gm_adventures_gm_convention",
        ),
        UniqueConstraint(
            "gm_option_id",
            "convention_option_id",
            "adventure_option_id",
            name="uq_gm_adventures_triple",
        ),
        Index("idx_gm_adventures_gm_convention", "gm_option_id", "convention_option_id"),
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"<GMAdventure(gm_option_id={self.gm_option_id}, "
            f"convention_option_id={self.convention_option_id}, "
            f"adventure_option_id={self.adventure_option_id})>"
        )
