"""UserResponse model for storing answers to questionnaire questions.

One row per (user, questionnaire, question); resubmitting an answer updates
the existing row in place.
"""

from datetime import datetime, timezone

from sqlalchemy import (
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from intake_api.models.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UserResponse(Base):
    """Model for a user's answer to one question of one questionnaire.

    Attributes:
        id: Primary key
        user_id: Foreign key to users (CASCADE)
        questionnaire_id: Foreign key to questionnaires (CASCADE)
        question_id: Foreign key to questions (CASCADE)
        response_text: Answer text; a JSON array for multiple_choice questions
        created_at: When the answer was first recorded
        updated_at: When the answer was last changed
        question: Relationship to the answered Question
    """

    __tablename__ = "user_responses"

    # Primary Key
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)

    user_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    questionnaire_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("questionnaires.id", ondelete="CASCADE"),
        nullable=False,
    )
    question_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("questions.id", ondelete="CASCADE"),
        nullable=False,
    )

    response_text: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        comment="Answer text; JSON-encoded array for multiple_choice"
    )

    # Set in Python so ordering by created_at has sub-second resolution
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
    )

    question: Mapped["Question"] = relationship("Question")  # noqa: F821

    __table_args__ = (
        UniqueConstraint(
            "user_id", "questionnaire_id", "question_id",
            name="uq_user_response",
        ),
        Index("idx_user_responses_user_questionnaire", "user_id", "questionnaire_id"),
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"<UserResponse(id={self.id}, user_id={self.user_id}, "
            f"questionnaire_id={self.questionnaire_id}, question_id={self.question_id})>"
        )
