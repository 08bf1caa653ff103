"""Questionnaire listing and detail endpoints for logged-in users."""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from intake_api.errors import QuestionnaireNotFoundError
from intake_api.middleware.auth import AuthenticatedUser, get_current_user
from intake_api.models.database import get_db
from intake_api.schemas.questionnaire import QuestionnaireDetail, QuestionnaireSummary
from intake_api.services.catalog import QuestionnaireCatalog

router = APIRouter(prefix="/api/questionnaires")


@router.get("", response_model=list[QuestionnaireSummary])
async def list_questionnaires(
    include_pending: bool = False,
    user: AuthenticatedUser = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[QuestionnaireSummary]:
    """List live questionnaires; admins may add ``include_pending=true``."""
    return QuestionnaireCatalog(db).list_questionnaires(
        include_pending=include_pending and user.is_admin
    )


@router.get("/{questionnaire_id}", response_model=QuestionnaireDetail)
async def get_questionnaire(
    questionnaire_id: int,
    user: AuthenticatedUser = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> QuestionnaireDetail:
    """Questionnaire with its questions in priority order.

    Pending questionnaires are only visible to admins.
    """
    detail = QuestionnaireCatalog(db).get_detail(questionnaire_id)
    if detail.is_pending and not user.is_admin:
        raise QuestionnaireNotFoundError(
            "Questionnaire not found",
            details={"questionnaire_id": questionnaire_id},
        )
    return detail
