"""Read-side queries for questionnaires and their questions."""

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from intake_api.errors import QuestionnaireNotFoundError
from intake_api.models.questionnaire import Questionnaire, QuestionnaireQuestion
from intake_api.schemas.questionnaire import (
    QuestionnaireDetail,
    QuestionnaireSummary,
    QuestionOut,
)


class QuestionnaireCatalog:
    """Lists questionnaires and loads one with its ordered questions."""

    def __init__(self, db: Session):
        self.db = db

    def list_questionnaires(self, include_pending: bool = False) -> list[QuestionnaireSummary]:
        """Questionnaires ordered by id; live ones only unless asked otherwise."""
        query = select(Questionnaire).order_by(Questionnaire.id)
        if not include_pending:
            query = query.where(Questionnaire.is_pending.is_(False), Questionnaire.id > 0)
        return [
            QuestionnaireSummary.model_validate(q)
            for q in self.db.execute(query).scalars()
        ]

    def list_with_counts(self) -> list[dict]:
        """Every questionnaire, staging rows included, with its question count."""
        rows = self.db.execute(
            select(Questionnaire, func.count(QuestionnaireQuestion.id))
            .outerjoin(QuestionnaireQuestion, QuestionnaireQuestion.questionnaire_id == Questionnaire.id)
            .group_by(Questionnaire.id)
            .order_by(Questionnaire.id)
        ).all()
        return [
            {
                **QuestionnaireSummary.model_validate(questionnaire).model_dump(),
                "question_count": count,
            }
            for questionnaire, count in rows
        ]

    def get_detail(self, questionnaire_id: int) -> QuestionnaireDetail:
        """Load a questionnaire with its questions in priority order.

        Raises:
            QuestionnaireNotFoundError: If the id is unknown
        """
        questionnaire = self.db.get(Questionnaire, questionnaire_id)
        if questionnaire is None:
            raise QuestionnaireNotFoundError(
                "Questionnaire not found",
                details={"questionnaire_id": questionnaire_id},
            )

        links = self.db.execute(
            select(QuestionnaireQuestion)
            .where(QuestionnaireQuestion.questionnaire_id == questionnaire_id)
            .order_by(QuestionnaireQuestion.priority, QuestionnaireQuestion.question_id)
        ).scalars().all()

        summary = QuestionnaireSummary.model_validate(questionnaire)
        return QuestionnaireDetail(
            **summary.model_dump(),
            questions=[
                QuestionOut(
                    id=link.question.id,
                    text=link.question.text,
                    type=link.question.type,
                    options=link.question.options,
                    priority=link.priority,
                )
                for link in links
            ],
        )
