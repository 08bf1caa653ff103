"""QuestionnaireCompletion model marking a questionnaire as done for a user."""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    DateTime,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
    select,
)
from sqlalchemy.orm import Mapped, Session, mapped_column

from intake_api.models.database import Base


class QuestionnaireCompletion(Base):
    """Model for a completed questionnaire.

    Attributes:
        id: Primary key
        user_id: Foreign key to users (CASCADE)
        questionnaire_id: Foreign key to questionnaires (CASCADE)
        completed_at: Last submission time
        timezone_name: IANA timezone reported by the client
        timezone_offset: UTC offset reported by the client, e.g. ``-05:00``
    """

    __tablename__ = "questionnaire_completions"

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
        index=True,
    )
    completed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    timezone_name: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        comment="Client timezone, e.g. America/New_York"
    )
    timezone_offset: Mapped[str] = mapped_column(
        String(6),
        nullable=False,
        comment="Client UTC offset, e.g. -05:00"
    )

    __table_args__ = (
        UniqueConstraint("user_id", "questionnaire_id", name="uq_questionnaire_completion"),
    )

    @classmethod
    def get(
        cls, db: Session, user_id: int, questionnaire_id: int
    ) -> Optional["QuestionnaireCompletion"]:
        """Fetch the completion row for a user and questionnaire, if any."""
        return db.execute(
            select(cls).where(
                cls.user_id == user_id,
                cls.questionnaire_id == questionnaire_id,
            )
        ).scalar_one_or_none()

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"<QuestionnaireCompletion(user_id={self.user_id}, "
            f"questionnaire_id={self.questionnaire_id}, completed_at={self.completed_at})>"
        )
