"""Questionnaire, Question and junction models.

A questionnaire row with a negative id is a staging row: it holds a pending
import awaiting admin review rather than a published questionnaire. Staging
rows created for an update to an existing questionnaire carry the
``PENDING_SUFFIX`` on their name and point at the live row through
``pending_target_id``.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
    select,
    text,
)
from sqlalchemy.orm import Mapped, Session, mapped_column, relationship

from intake_api.models.database import Base

PENDING_SUFFIX = " (PENDING UPDATE)"

QUESTION_TYPES = ("text", "multiple_choice")


def strip_pending_suffix(name: str) -> str:
    """Remove the pending-update marker from a questionnaire name."""
    return name.replace(PENDING_SUFFIX, "")


def next_negative_id(db: Session, column) -> int:
    """Return an id strictly below every negative id currently in ``column``.

    Args:
        db: Database session
        column: Integer primary key column (e.g. ``Questionnaire.id``)

    Returns:
        -1 when the column holds no negative ids, otherwise ``min(id) - 1``
    """
    min_id = db.execute(
        select(func.min(column)).where(column < 0)
    ).scalar()
    return (min_id or 0) - 1


class Questionnaire(Base):
    """Model for questionnaires, live or staged.

    Attributes:
        id: Primary key; negative ids are staging rows
        name: Display name
        description: Optional description
        is_pending: Whether the row is awaiting admin approval
        pending_target_id: Live questionnaire a staged update applies to
        created_at: Creation timestamp
        updated_at: Last content change (set explicitly, not on every write)
        questions: Junction rows ordered by priority
    """

    __tablename__ = "questionnaires"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)

    name: Mapped[str] = mapped_column(
        String(200),
        nullable=False,
    )
    description: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )
    is_pending: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        comment="Awaiting admin approval"
    )
    pending_target_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True,
        comment="Live questionnaire id a staged update applies to"
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
    )

    questions: Mapped[list["QuestionnaireQuestion"]] = relationship(
        "QuestionnaireQuestion",
        back_populates="questionnaire",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="[QuestionnaireQuestion.priority, QuestionnaireQuestion.question_id]",
    )

    __table_args__ = (
        Index("idx_questionnaires_pending", "is_pending"),
    )

    @property
    def is_staging(self) -> bool:
        """True for negative-id rows holding a pending import."""
        return self.id < 0

    @property
    def target_id(self) -> Optional[int]:
        """Live questionnaire id this staging row would update."""
        if not self.is_staging:
            return None
        if self.pending_target_id is not None:
            return self.pending_target_id
        return abs(self.id)

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"<Questionnaire(id={self.id}, name={self.name!r}, "
            f"is_pending={self.is_pending})>"
        )


class Question(Base):
    """Model for a single question.

    Attributes:
        id: Primary key; negative ids belong to staged questionnaires
        text: Question text
        type: ``text`` or ``multiple_choice``
        options: JSON array of choices (multiple_choice only)
        source_question_id: Imported id a staged question stands in for
    """

    __tablename__ = "questions"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)

    text: Mapped[str] = mapped_column(
        Text,
        nullable=False,
    )
    type: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
    )
    options: Mapped[Optional[list]] = mapped_column(
        JSON,
        nullable=True,
        comment="JSON array of choices for multiple_choice questions"
    )
    source_question_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True,
        comment="Imported question id a staged question replaces"
    )

    __table_args__ = (
        CheckConstraint(
            "type IN ('text', 'multiple_choice')",
            name="ck_questions_type",
        ),
    )

    @property
    def target_id(self) -> int:
        """Question id this row is published under once approved."""
        if self.id >= 0:
            return self.id
        if self.source_question_id is not None:
            return self.source_question_id
        return abs(self.id)

    def __repr__(self) -> str:
        """String representation for debugging."""
        return f"<Question(id={self.id}, type={self.type}, text={self.text[:30]!r})>"


class QuestionnaireQuestion(Base):
    """Junction between questionnaires and questions.

    Attributes:
        id: Primary key
        questionnaire_id: Foreign key to questionnaires (CASCADE)
        question_id: Foreign key to questions (CASCADE)
        priority: Display order, ascending
    """

    __tablename__ = "questionnaire_questions"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)

    questionnaire_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("questionnaires.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    question_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("questions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    priority: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
    )

    questionnaire: Mapped["Questionnaire"] = relationship(
        "Questionnaire",
        back_populates="questions",
    )
    question: Mapped["Question"] = relationship("Question", lazy="joined")

    __table_args__ = (
        UniqueConstraint("questionnaire_id", "question_id", name="uq_questionnaire_question"),
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"<QuestionnaireQuestion(questionnaire_id={self.questionnaire_id}, "
            f"question_id={self.question_id}, priority={self.priority})>"
        )
