"""Admin endpoints: imports, review, resets, reporting and exports.

Every route here requires an access token with ``is_admin = true``.
"""

from typing import Optional

from fastapi import APIRouter, Depends, File, Request, Response, UploadFile, status
from sqlalchemy.orm import Session

from intake_api.logging_config import get_logger
from intake_api.middleware.auth import AuthenticatedUser, require_admin
from intake_api.models.database import get_db
from intake_api.schemas.questionnaire import (
    ApproveRequest,
    PendingQuestionnaire,
    QuestionnaireDetail,
    QuestionnaireImport,
    ResetRequest,
)
from intake_api.schemas.response import DeleteResponsesRequest, DeleteResult
from intake_api.services.catalog import QuestionnaireCatalog
from intake_api.services.questionnaire_csv import parse_questionnaire_csv
from intake_api.services.questionnaire_import import (
    ImportSummary,
    QuestionnaireImportService,
)
from intake_api.services.reporting import ReportingService
from intake_api.services.responses import ResponseService

logger = get_logger(__name__)

router = APIRouter(prefix="/api/admin", dependencies=[Depends(require_admin)])


def _csv_response(content: str, filename: str) -> Response:
    return Response(
        content=content,
        media_type="text/csv",
        headers={
            "Content-Disposition": f'attachment; filename="{filename}"',
            "Cache-Control": "no-store, max-age=0",
        },
    )


def _import_body(summary: ImportSummary, warnings: Optional[list[str]] = None) -> dict:
    body = {
        "success": True,
        "message": (
            f"Imported {len(summary.imported)} questionnaires successfully. "
            f"They have been marked as pending for review."
        ),
        "imported": [
            {
                "source_id": item.source_id,
                "stored_id": item.stored_id,
                "name": item.name,
                "state": item.state.value,
                "question_count": item.question_count,
            }
            for item in summary.imported
        ],
        "similarQuestionnaires": summary.similar or None,
    }
    if warnings is not None:
        body["warnings"] = warnings
    return body


@router.get("/dashboard-stats")
async def dashboard_stats(db: Session = Depends(get_db)) -> dict:
    """Completion statistics for the admin dashboard."""
    return ReportingService(db).dashboard_stats()


@router.get("/user-responses")
async def user_responses(db: Session = Depends(get_db)) -> list[dict]:
    """Every user with their completion count."""
    return ReportingService(db).list_users_with_completion()


@router.get("/user-responses/{user_id}")
async def user_response_detail(
    user_id: int,
    request: Request,
    format: Optional[str] = None,
    db: Session = Depends(get_db),
):
    """One user's answers, as JSON or as CSV.

    CSV is returned when the ``Accept`` header includes ``text/csv`` or when
    ``format=csv`` is passed.
    """
    service = ReportingService(db)
    detail = service.user_response_detail(user_id)

    wants_csv = format == "csv" or "text/csv" in request.headers.get("accept", "")
    if wants_csv:
        return _csv_response(
            service.user_responses_csv(detail),
            f"user_{detail['user']['username']}_responses.csv",
        )
    return detail


@router.post("/import-questionnaires", status_code=status.HTTP_201_CREATED)
async def import_questionnaires(
    payload: list[QuestionnaireImport],
    admin: AuthenticatedUser = Depends(require_admin),
    db: Session = Depends(get_db),
) -> dict:
    """Import a JSON array of questionnaires for review."""
    logger.info(f"Admin {admin.username} importing {len(payload)} questionnaires",
                extra={"user_id": admin.id})
    summary = QuestionnaireImportService(db).import_questionnaires(payload)
    return _import_body(summary)


@router.post("/import-questionnaires/csv", status_code=status.HTTP_201_CREATED)
async def import_questionnaires_csv(
    questionnaires: UploadFile = File(...),
    questions: UploadFile = File(...),
    junctions: UploadFile = File(...),
    admin: AuthenticatedUser = Depends(require_admin),
    db: Session = Depends(get_db),
) -> dict:
    """Import questionnaires from the three CSV export files."""
    contents = []
    for upload in (questionnaires, questions, junctions):
        try:
            contents.append(await upload.read())
        finally:
            await upload.close()

    parsed = parse_questionnaire_csv(*contents)
    logger.info(f"Admin {admin.username} importing {len(parsed.questionnaires)} questionnaires from CSV",
                extra={"user_id": admin.id})
    summary = QuestionnaireImportService(db).import_questionnaires(parsed.questionnaires)
    return _import_body(summary, warnings=parsed.warnings)


@router.post("/approve-questionnaire")
async def approve_questionnaire(body: ApproveRequest, db: Session = Depends(get_db)) -> dict:
    """Approve or reject a pending questionnaire."""
    return QuestionnaireImportService(db).approve_questionnaire(
        body.questionnaire_id, body.approve
    )


@router.post("/reset-questionnaire")
async def reset_questionnaire(body: ResetRequest, db: Session = Depends(get_db)) -> dict:
    """Detach a questionnaire's questions, optionally keeping responses."""
    return QuestionnaireImportService(db).reset_questionnaire(
        body.questionnaire_id,
        preserve_responses=body.preserve_responses,
        delete_pending_updates=body.delete_pending_updates,
    )


@router.get("/pending-questionnaires", response_model=list[PendingQuestionnaire])
async def pending_questionnaires(db: Session = Depends(get_db)) -> list[dict]:
    """Questionnaires awaiting review."""
    return QuestionnaireImportService(db).list_pending()


@router.get("/questionnaires")
async def all_questionnaires(db: Session = Depends(get_db)) -> list[dict]:
    """Every questionnaire, staging rows included, with question counts."""
    return QuestionnaireCatalog(db).list_with_counts()


@router.get("/questionnaire/{questionnaire_id}", response_model=QuestionnaireDetail)
async def questionnaire_detail(questionnaire_id: int, db: Session = Depends(get_db)) -> QuestionnaireDetail:
    """Any questionnaire, pending or staged, with its questions."""
    return QuestionnaireCatalog(db).get_detail(questionnaire_id)


@router.delete("/delete-responses", response_model=DeleteResult)
async def delete_responses(
    body: DeleteResponsesRequest,
    admin: AuthenticatedUser = Depends(require_admin),
    db: Session = Depends(get_db),
) -> DeleteResult:
    """Delete one user's answers to one questionnaire."""
    logger.info(
        f"Admin {admin.username} deleting responses of user {body.user_id}",
        extra={"user_id": admin.id, "questionnaire_id": body.questionnaire_id},
    )
    result = ResponseService(db).delete_responses(body.user_id, body.questionnaire_id)
    return DeleteResult(
        responses_deleted=result.responses_deleted,
        completion_deleted=result.completion_deleted,
    )


@router.get("/export/{questionnaire_id}")
async def export_questionnaire(questionnaire_id: int, db: Session = Depends(get_db)) -> Response:
    """All users' answers to a questionnaire as CSV."""
    content = ReportingService(db).questionnaire_responses_csv(questionnaire_id)
    return _csv_response(content, f"questionnaire_{questionnaire_id}_responses.csv")
