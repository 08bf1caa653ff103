"""Endpoints for submitting, prefilling and deleting a user's answers."""

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from intake_api.logging_config import get_logger
from intake_api.middleware.auth import (
    AuthenticatedUser,
    ensure_self_or_admin,
    get_current_user,
)
from intake_api.models.database import get_db
from intake_api.schemas.response import (
    CompletedQuestionnaire,
    DeleteResponsesRequest,
    DeleteResult,
    PrefillResult,
    SubmitRequest,
    SubmitResult,
)
from intake_api.services.prefill import PrefillResolver
from intake_api.services.responses import ResponseService

logger = get_logger(__name__)

router = APIRouter(prefix="/api/responses")


@router.post("/submit", response_model=SubmitResult)
async def submit(
    body: SubmitRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> SubmitResult:
    """Save the caller's answers and mark the questionnaire completed."""
    result = ResponseService(db).submit_responses(
        user.id,
        body.questionnaire_id,
        body.responses,
        body.timezone,
        include_pending=user.is_admin,
    )
    return SubmitResult(
        questionnaire_id=result.questionnaire_id,
        saved=result.saved,
        completed_at=result.completed_at,
    )


@router.delete("/delete", response_model=DeleteResult)
async def delete_own_responses(
    body: DeleteResponsesRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> DeleteResult:
    """Delete the caller's own answers to one questionnaire.

    Raises:
        HTTPException(403): If ``userId`` is not the caller
    """
    if body.user_id != user.id:
        logger.warning(
            f"User {user.id} tried to delete responses of user {body.user_id}",
            extra={"user_id": user.id},
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You can only delete your own responses",
        )

    result = ResponseService(db).delete_responses(user.id, body.questionnaire_id)
    return DeleteResult(
        responses_deleted=result.responses_deleted,
        completion_deleted=result.completion_deleted,
    )


@router.get(
    "/user/{user_id}/questionnaire/{questionnaire_id}",
    response_model=PrefillResult,
)
async def prefill(
    user_id: int,
    questionnaire_id: int,
    user: AuthenticatedUser = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> PrefillResult:
    """Questions of a questionnaire with the user's best prior answers."""
    ensure_self_or_admin(user, user_id)
    return PrefillResolver(db).resolve(
        user_id, questionnaire_id, include_pending=user.is_admin
    )


@router.get("/user/{user_id}/completed", response_model=list[CompletedQuestionnaire])
async def completed(
    user_id: int,
    user: AuthenticatedUser = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[CompletedQuestionnaire]:
    """Questionnaires the user has completed, most recent first."""
    ensure_self_or_admin(user, user_id)
    return [
        CompletedQuestionnaire(**entry)
        for entry in ResponseService(db).list_completed(user_id)
    ]
