"""Prefill answers from what a user has already told us.

For each question of a questionnaire the resolver picks, in order:

1. the user's own answer to that question in this questionnaire
2. the most recent answer the user gave in another questionnaire to a
   question with the same text (compared case-insensitively)
3. nothing
"""

from sqlalchemy import select
from sqlalchemy.orm import Session

from intake_api.errors import QuestionnaireNotFoundError
from intake_api.logging_config import get_logger
from intake_api.models.completion import QuestionnaireCompletion
from intake_api.models.questionnaire import Question, Questionnaire, QuestionnaireQuestion
from intake_api.models.response import UserResponse
from intake_api.schemas.response import PrefilledQuestion, PrefillResult
from intake_api.services.responses import decode_answer

logger = get_logger(__name__)


def _text_key(text: str) -> str:
    return text.strip().lower()


class PrefillResolver:
    """Resolves prefilled answers for one user and questionnaire."""

    def __init__(self, db: Session):
        self.db = db

    def resolve(
        self, user_id: int, questionnaire_id: int, include_pending: bool = False
    ) -> PrefillResult:
        """Pair every question with the user's best prior answer.

        Args:
            user_id: User starting the questionnaire
            questionnaire_id: Questionnaire being started
            include_pending: Resolve questionnaires still pending review

        Returns:
            PrefillResult with questions in priority order

        Raises:
            QuestionnaireNotFoundError: If the questionnaire does not exist, is
                pending and ``include_pending`` is False, or has no questions
        """
        questionnaire = self.db.get(Questionnaire, questionnaire_id)
        if questionnaire is None or (questionnaire.is_pending and not include_pending):
            raise QuestionnaireNotFoundError(
                "Questionnaire not found",
                details={"questionnaire_id": questionnaire_id},
            )

        links = self.db.execute(
            select(QuestionnaireQuestion)
            .where(QuestionnaireQuestion.questionnaire_id == questionnaire_id)
            .order_by(QuestionnaireQuestion.priority, QuestionnaireQuestion.question_id)
        ).scalars().all()
        if not links:
            raise QuestionnaireNotFoundError(
                "Questionnaire has no questions",
                details={"questionnaire_id": questionnaire_id},
            )

        direct = {
            response.question_id: response
            for response in self.db.execute(
                select(UserResponse).where(
                    UserResponse.user_id == user_id,
                    UserResponse.questionnaire_id == questionnaire_id,
                )
            ).scalars()
        }

        missing = {_text_key(link.question.text) for link in links if link.question_id not in direct}
        elsewhere = self._latest_by_text(user_id, questionnaire_id, missing) if missing else {}

        questions = []
        for link in links:
            question = link.question
            answer = None
            from_other = False

            response = direct.get(question.id)
            if response is not None:
                answer = decode_answer(question.type, response.response_text)
            else:
                match = elsewhere.get(_text_key(question.text))
                if match is not None:
                    source_type, stored = match
                    answer = decode_answer(source_type, stored)
                    from_other = True

            questions.append(PrefilledQuestion(
                question_id=question.id,
                question_text=question.text,
                type=question.type,
                options=question.options,
                priority=link.priority,
                answer=answer,
                from_other_questionnaire=from_other,
            ))

        has_completed = QuestionnaireCompletion.get(self.db, user_id, questionnaire_id) is not None

        logger.debug(
            f"Prefilled {sum(1 for q in questions if q.answer is not None)}/{len(questions)} questions",
            extra={"user_id": user_id, "questionnaire_id": questionnaire_id},
        )
        return PrefillResult(
            questionnaire_id=questionnaire_id,
            has_responses=bool(direct),
            has_completed_questionnaire=has_completed,
            questions=questions,
        )

    def _latest_by_text(self, user_id: int, questionnaire_id: int, wanted: set[str]) -> dict:
        """Most recent answer per question text from other questionnaires.

        Returns:
            dict of lower-cased text -> (question type, stored answer)
        """
        rows = self.db.execute(
            select(Question.text, Question.type, UserResponse.response_text)
            .join(UserResponse, UserResponse.question_id == Question.id)
            .where(
                UserResponse.user_id == user_id,
                UserResponse.questionnaire_id != questionnaire_id,
            )
            .order_by(UserResponse.created_at.desc(), UserResponse.id.desc())
        ).all()

        latest: dict = {}
        for text, question_type, stored in rows:
            key = _text_key(text)
            if key in wanted and key not in latest:
                latest[key] = (question_type, stored)
        return latest
