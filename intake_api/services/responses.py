"""Response submission and deletion.

Answers are stored as text. Multiple-choice answers are stored as a JSON array
so the selected options round-trip in order; ``encode_answer`` and
``decode_answer`` are the only places that know the format.
"""

import json
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from intake_api.config import get_settings
from intake_api.errors import (
    QuestionnaireNotFoundError,
    QuestionNotFoundError,
    ValidationFailedError,
)
from intake_api.logging_config import get_logger
from intake_api.models.completion import QuestionnaireCompletion
from intake_api.models.database import transaction
from intake_api.models.questionnaire import Question, Questionnaire, QuestionnaireQuestion
from intake_api.models.response import UserResponse
from intake_api.schemas.response import AnswerIn, TimezoneInfo

logger = get_logger(__name__)


def encode_answer(question_type: str, answer: Any) -> str:
    """Serialize an answer for storage.

    Args:
        question_type: ``text`` or ``multiple_choice``
        answer: Value posted by the client

    Returns:
        JSON array text for multiple-choice lists, otherwise plain text

    Example:
        >>> encode_answer("multiple_choice", ["Red", "Blue"])
        '["Red", "Blue"]'
        >>> encode_answer("text", ["a", "b"])
        'a, b'
    """
    if answer is None:
        return ""
    if isinstance(answer, (list, tuple)):
        if question_type == "multiple_choice":
            return json.dumps([str(item) for item in answer])
        return ", ".join(str(item) for item in answer)
    return str(answer)


def decode_answer(question_type: str, stored: Optional[str]) -> Any:
    """Turn a stored answer back into the value shown to the user.

    Multiple-choice answers are decoded from JSON into a list of strings;
    anything that does not decode to a list is returned as the stored string.
    """
    if stored is None or question_type != "multiple_choice":
        return stored
    try:
        value = json.loads(stored)
    except ValueError:
        return stored
    if not isinstance(value, list):
        return stored
    return [item if isinstance(item, str) else json.dumps(item) for item in value]


@dataclass
class SubmissionResult:
    """Outcome of ``submit_responses``."""
    questionnaire_id: int
    saved: int
    completed_at: datetime


@dataclass
class DeletionResult:
    """Outcome of ``delete_responses``."""
    responses_deleted: int
    completion_deleted: bool


class ResponseService:
    """Stores and removes a user's answers.

    Example:
        >>> service = ResponseService(db)
        >>> service.submit_responses(user_id, 3, answers, timezone=None)
    """

    def __init__(self, db: Session):
        """Initialize the service.

        Args:
            db: SQLAlchemy database session
        """
        self.db = db

    def submit_responses(
        self,
        user_id: int,
        questionnaire_id: int,
        answers: list[AnswerIn],
        timezone_info: Optional[TimezoneInfo] = None,
        include_pending: bool = False,
    ) -> SubmissionResult:
        """Save answers and mark the questionnaire completed, atomically.

        Args:
            user_id: Submitting user
            questionnaire_id: Questionnaire being answered
            answers: One entry per answered question; a repeated question id
                keeps the last answer
            timezone_info: Client timezone; configured defaults fill gaps
            include_pending: Accept answers to questionnaires still pending review

        Returns:
            SubmissionResult with the number of answers saved

        Raises:
            ValidationFailedError: If no answers were sent
            QuestionnaireNotFoundError: If the questionnaire does not exist, or is
                pending and ``include_pending`` is False
            QuestionNotFoundError: If a question is not part of the questionnaire
        """
        if not answers:
            raise ValidationFailedError(
                "No responses provided",
                details={"field": "responses"},
            )

        settings = get_settings()
        tz_name = (timezone_info.name if timezone_info else None) or settings.default_timezone_name
        tz_offset = (timezone_info.offset if timezone_info else None) or settings.default_timezone_offset

        by_question = {answer.question_id: answer.answer for answer in answers}

        with transaction(self.db):
            questionnaire = self.db.get(Questionnaire, questionnaire_id)
            if questionnaire is None or (questionnaire.is_pending and not include_pending):
                raise QuestionnaireNotFoundError(
                    "Questionnaire not found",
                    details={"questionnaire_id": questionnaire_id},
                )

            questions = {
                question.id: question
                for question in self.db.execute(
                    select(Question)
                    .join(QuestionnaireQuestion, QuestionnaireQuestion.question_id == Question.id)
                    .where(QuestionnaireQuestion.questionnaire_id == questionnaire_id)
                ).scalars()
            }

            existing = {
                response.question_id: response
                for response in self.db.execute(
                    select(UserResponse).where(
                        UserResponse.user_id == user_id,
                        UserResponse.questionnaire_id == questionnaire_id,
                    )
                ).scalars()
            }

            for question_id, answer in by_question.items():
                question = questions.get(question_id)
                if question is None:
                    raise QuestionNotFoundError(
                        f"Question with ID {question_id} not found in questionnaire {questionnaire_id}",
                        details={"question_id": question_id},
                    )

                text = encode_answer(question.type, answer)
                response = existing.get(question_id)
                if response is None:
                    self.db.add(UserResponse(
                        user_id=user_id,
                        questionnaire_id=questionnaire_id,
                        question_id=question_id,
                        response_text=text,
                    ))
                else:
                    response.response_text = text

            completed_at = datetime.now(timezone.utc)
            completion = QuestionnaireCompletion.get(self.db, user_id, questionnaire_id)
            if completion is None:
                self.db.add(QuestionnaireCompletion(
                    user_id=user_id,
                    questionnaire_id=questionnaire_id,
                    completed_at=completed_at,
                    timezone_name=tz_name,
                    timezone_offset=tz_offset,
                ))
            else:
                completion.completed_at = completed_at
                completion.timezone_name = tz_name
                completion.timezone_offset = tz_offset

        logger.info(
            f"Saved {len(by_question)} responses",
            extra={"user_id": user_id, "questionnaire_id": questionnaire_id},
        )
        return SubmissionResult(
            questionnaire_id=questionnaire_id,
            saved=len(by_question),
            completed_at=completed_at,
        )

    def delete_responses(self, user_id: int, questionnaire_id: int) -> DeletionResult:
        """Remove a user's answers and completion for one questionnaire.

        Answers to other questionnaires are left alone.
        """
        with transaction(self.db):
            removed = self.db.execute(
                delete(UserResponse).where(
                    UserResponse.user_id == user_id,
                    UserResponse.questionnaire_id == questionnaire_id,
                )
            ).rowcount
            completions = self.db.execute(
                delete(QuestionnaireCompletion).where(
                    QuestionnaireCompletion.user_id == user_id,
                    QuestionnaireCompletion.questionnaire_id == questionnaire_id,
                )
            ).rowcount

        logger.info(
            f"Deleted {removed} responses",
            extra={"user_id": user_id, "questionnaire_id": questionnaire_id},
        )
        return DeletionResult(responses_deleted=removed, completion_deleted=completions > 0)

    def list_completed(self, user_id: int) -> list[dict]:
        """Questionnaires the user has completed, most recent first."""
        rows = self.db.execute(
            select(QuestionnaireCompletion, Questionnaire.name)
            .join(Questionnaire, Questionnaire.id == QuestionnaireCompletion.questionnaire_id)
            .where(QuestionnaireCompletion.user_id == user_id)
            .order_by(QuestionnaireCompletion.completed_at.desc())
        ).all()
        return [
            {
                "questionnaire_id": completion.questionnaire_id,
                "name": name,
                "completed_at": completion.completed_at,
                "timezone_name": completion.timezone_name,
                "timezone_offset": completion.timezone_offset,
            }
            for completion, name in rows
        ]
