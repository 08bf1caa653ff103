"""Pydantic schemas for data validation.

This package contains the request, response and import models.
"""

from intake_api.schemas.auth import LoginRequest, LoginResponse, UserOut
from intake_api.schemas.questionnaire import (
    ApproveRequest,
    PendingQuestionnaire,
    QuestionImport,
    QuestionnaireDetail,
    QuestionnaireImport,
    QuestionnaireSummary,
    QuestionOut,
    QuestionType,
    ResetRequest,
)
from intake_api.schemas.response import (
    AnswerIn,
    CompletedQuestionnaire,
    DeleteResponsesRequest,
    DeleteResult,
    PrefilledQuestion,
    PrefillResult,
    SubmitRequest,
    SubmitResult,
    TimezoneInfo,
)

__all__ = [
    "LoginRequest",
    "LoginResponse",
    "UserOut",
    "ApproveRequest",
    "PendingQuestionnaire",
    "QuestionImport",
    "QuestionnaireDetail",
    "QuestionnaireImport",
    "QuestionnaireSummary",
    "QuestionOut",
    "QuestionType",
    "ResetRequest",
    "AnswerIn",
    "CompletedQuestionnaire",
    "DeleteResponsesRequest",
    "DeleteResult",
    "PrefilledQuestion",
    "PrefillResult",
    "SubmitRequest",
    "SubmitResult",
    "TimezoneInfo",
]
