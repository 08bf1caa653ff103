"""Questionnaire import and approval workflow.

Imports never change a live questionnaire directly. An imported id that is not
in the database yet is inserted as a pending questionnaire (state ``NEW``). An
id that already exists gets a *staging* copy instead: a row with a negative
id, a name ending in ``" (PENDING UPDATE)"`` and ``pending_target_id`` set to
the live id (state ``PENDING_UPDATE``). Its questions get negative ids too, so
nothing a user sees changes until an admin approves.

Approval of a staged update merges the staging questions into the live ids and
drops the staging rows. Every operation runs in one transaction.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from sqlalchemy import and_, delete, func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import FlushError

from intake_api.errors import (
    PendingIdCollisionError,
    QuestionnaireNotFoundError,
    QuestionNotFoundError,
    ValidationFailedError,
)
from intake_api.logging_config import get_logger
from intake_api.models.completion import QuestionnaireCompletion
from intake_api.models.database import transaction
from intake_api.models.questionnaire import (
    PENDING_SUFFIX,
    Question,
    Questionnaire,
    QuestionnaireQuestion,
    next_negative_id,
    strip_pending_suffix,
)
from intake_api.models.response import UserResponse
from intake_api.schemas.questionnaire import QuestionnaireImport

logger = get_logger(__name__)

# How much further down a staging id moves after a duplicate-key error
STAGING_ID_RETRY_STEP = 1000


class ImportState(str, Enum):
    """Review state of a pending questionnaire."""
    NEW = "NEW"
    PENDING_UPDATE = "PENDING_UPDATE"


def state_of(questionnaire: Questionnaire) -> ImportState:
    """Negative ids are staged updates; anything else is a new questionnaire."""
    return ImportState.PENDING_UPDATE if questionnaire.id < 0 else ImportState.NEW


@dataclass
class ImportedQuestionnaire:
    """Where one imported questionnaire ended up."""
    source_id: int
    stored_id: int
    name: str
    state: ImportState
    question_count: int


@dataclass
class ImportSummary:
    """Result of an import batch.

    Attributes:
        imported: One entry per questionnaire in the payload
        similar: Name clashes with other questionnaires, as
            ``{"importName", "existingName", "existingId"}`` dicts
    """
    imported: list[ImportedQuestionnaire] = field(default_factory=list)
    similar: list[dict] = field(default_factory=list)


def insert_with_staging_id(db: Session, model, candidate_id: int, **values):
    """Insert a row under a negative id, moving further down once on collision.

    The insert runs in a SAVEPOINT so a duplicate key only rolls back this
    row, not the surrounding import.

    Args:
        db: Session inside an open transaction
        model: ``Questionnaire`` or ``Question``
        candidate_id: First id to try
        **values: Column values for the new row

    Returns:
        The inserted row

    Raises:
        PendingIdCollisionError: If the retry id is taken as well
    """
    attempts = (candidate_id, candidate_id - STAGING_ID_RETRY_STEP)
    for attempt_id in attempts:
        row = model(id=attempt_id, **values)
        try:
            with db.begin_nested():
                db.add(row)
                db.flush()
        except (IntegrityError, FlushError):
            logger.warning(f"Staging id {attempt_id} already used in {model.__tablename__}")
            continue
        return row

    raise PendingIdCollisionError(
        f"Could not allocate a staging id in {model.__tablename__}",
        details={"tried": list(attempts)},
        code="staging_id_collision",
    )


class QuestionnaireImportService:
    """Imports questionnaires and moves them through review.

    Example:
        >>> service = QuestionnaireImportService(db)
        >>> summary = service.import_questionnaires(payload)
        >>> service.approve_questionnaire(summary.imported[0].stored_id, approve=True)
    """

    def __init__(self, db: Session):
        """Initialize the service.

        Args:
            db: SQLAlchemy database session
        """
        self.db = db

    # ------------------------------------------------------------------
    # Import
    # ------------------------------------------------------------------

    def import_questionnaires(
        self,
        payload: list[QuestionnaireImport],
        pending: bool = True,
    ) -> ImportSummary:
        """Stage a batch of questionnaires for review.

        Args:
            payload: Validated questionnaires (from JSON or the CSV parser)
            pending: Insert new questionnaires as pending; False publishes
                them immediately (seed data). Existing ids are always staged.

        Returns:
            ImportSummary describing where each questionnaire was stored

        Raises:
            ValidationFailedError: If the payload is empty
            QuestionNotFoundError: If a reference-only question does not exist
            PendingIdCollisionError: If a staging id cannot be allocated
            DatabaseOperationError: If the database rejects the import
        """
        if not payload:
            raise ValidationFailedError(
                "Expected a non-empty array of questionnaires",
                details={"field": "questionnaires"},
            )

        summary = ImportSummary()
        with transaction(self.db):
            for item in payload:
                similar = self._find_similar_name(item)
                if similar is not None:
                    summary.similar.append(similar)

                existing = self.db.get(Questionnaire, item.id)
                if existing is None:
                    stored = self._import_new(item, pending)
                else:
                    stored = self._stage_update(item)
                summary.imported.append(stored)

        logger.info(
            f"Imported {len(payload)} questionnaires "
            f"({sum(1 for i in summary.imported if i.state == ImportState.NEW)} new, "
            f"{sum(1 for i in summary.imported if i.state == ImportState.PENDING_UPDATE)} staged updates)"
        )
        return summary

    def _find_similar_name(self, item: QuestionnaireImport) -> Optional[dict]:
        match = self.db.execute(
            select(Questionnaire)
            .where(
                func.lower(Questionnaire.name) == item.name.lower(),
                Questionnaire.id != item.id,
            )
            .order_by(Questionnaire.id)
            .limit(1)
        ).scalar_one_or_none()
        if match is None:
            return None
        logger.info(f"Imported questionnaire '{item.name}' resembles existing id {match.id}")
        return {"importName": item.name, "existingName": match.name, "existingId": match.id}

    def _import_new(self, item: QuestionnaireImport, pending: bool) -> ImportedQuestionnaire:
        questionnaire = Questionnaire(
            id=item.id,
            name=item.name,
            description=item.description,
            is_pending=pending,
        )
        self.db.add(questionnaire)
        self.db.flush()

        for question in item.questions:
            if question.is_reference:
                question_id = self._require_question(question.id).id
            else:
                question_id = self._upsert_question(
                    question.id, question.text, question.type.value, question.options
                ).id
            self._link(questionnaire.id, question_id, question.priority)

        logger.debug(f"Created questionnaire {questionnaire.id} (pending={pending})")
        return ImportedQuestionnaire(
            source_id=item.id,
            stored_id=questionnaire.id,
            name=questionnaire.name,
            state=ImportState.NEW,
            question_count=len(item.questions),
        )

    def _stage_update(self, item: QuestionnaireImport) -> ImportedQuestionnaire:
        shadow = insert_with_staging_id(
            self.db,
            Questionnaire,
            next_negative_id(self.db, Questionnaire.id),
            name=f"{item.name}{PENDING_SUFFIX}",
            description=item.description,
            is_pending=True,
            pending_target_id=item.id,
        )

        for question in item.questions:
            if question.is_reference:
                question_id = self._require_question(question.id).id
            else:
                staged = insert_with_staging_id(
                    self.db,
                    Question,
                    next_negative_id(self.db, Question.id) - question.id,
                    text=question.text,
                    type=question.type.value,
                    options=question.options,
                    source_question_id=question.id,
                )
                question_id = staged.id
            self._link(shadow.id, question_id, question.priority)

        logger.info(f"Staged update of questionnaire {item.id} as {shadow.id}")
        return ImportedQuestionnaire(
            source_id=item.id,
            stored_id=shadow.id,
            name=shadow.name,
            state=ImportState.PENDING_UPDATE,
            question_count=len(item.questions),
        )

    # ------------------------------------------------------------------
    # Approval
    # ------------------------------------------------------------------

    def approve_questionnaire(self, questionnaire_id: int, approve: bool) -> dict:
        """Approve or reject a pending questionnaire.

        The pending row is locked for the duration of the transaction, so a
        second admin acting on the same row waits and then finds it gone
        (404) or already live.

        Args:
            questionnaire_id: Id of the pending questionnaire (negative for
                staged updates)
            approve: True to publish, False to discard

        Returns:
            dict with ``success``, ``message``, ``state`` and ``questionnaire_id``
            (the live id after approval)

        Raises:
            QuestionnaireNotFoundError: If the id is unknown
            ValidationFailedError: If the questionnaire is not pending
        """
        with transaction(self.db):
            pending = self.db.execute(
                select(Questionnaire)
                .where(Questionnaire.id == questionnaire_id)
                .with_for_update()
            ).scalar_one_or_none()
            if pending is None:
                raise QuestionnaireNotFoundError(
                    "Questionnaire not found",
                    details={"questionnaire_id": questionnaire_id},
                )
            if not pending.is_pending:
                raise ValidationFailedError(
                    f"Questionnaire {questionnaire_id} is not pending review",
                    details={"questionnaire_id": questionnaire_id},
                )

            state = state_of(pending)
            name = pending.name

            if state == ImportState.NEW:
                if approve:
                    pending.is_pending = False
                    live_id = pending.id
                    message = f"Questionnaire '{name}' has been approved."
                else:
                    self._delete_questionnaires([pending.id])
                    live_id = None
                    message = f"Questionnaire '{name}' has been rejected and removed."
            else:
                target_id = pending.target_id
                if approve:
                    live_id = self._merge_staged_update(pending)
                    message = f"Questionnaire '{name}' updates have been approved."
                else:
                    self._delete_questionnaires([pending.id])
                    live_id = target_id
                    message = (
                        f"Updates to questionnaire ID {target_id} have been rejected. "
                        f"Original questionnaire preserved."
                    )

        logger.info(
            f"Questionnaire {questionnaire_id} ({state.value}) "
            f"{'approved' if approve else 'rejected'}",
            extra={"questionnaire_id": questionnaire_id},
        )
        return {
            "success": True,
            "message": message,
            "state": state.value,
            "questionnaire_id": live_id,
        }

    def _merge_staged_update(self, shadow: Questionnaire) -> int:
        """Copy a staged update onto its live questionnaire and drop it."""
        target_id = shadow.target_id
        original = self.db.execute(
            select(Questionnaire)
            .where(Questionnaire.id == target_id)
            .with_for_update()
        ).scalar_one_or_none()

        if original is None:
            # Live row removed since the import; publish the update under its id
            original = Questionnaire(id=target_id, name=shadow.name, is_pending=False)
            self.db.add(original)
            self.db.flush()

        links = self.db.execute(
            select(QuestionnaireQuestion)
            .where(QuestionnaireQuestion.questionnaire_id == shadow.id)
            .order_by(QuestionnaireQuestion.priority, QuestionnaireQuestion.question_id)
        ).scalars().all()

        for link in links:
            staged = link.question
            live_question_id = staged.target_id
            if staged.id != live_question_id:
                self._upsert_question(
                    live_question_id, staged.text, staged.type, staged.options
                )
            self._link(target_id, live_question_id, link.priority)

        original.name = strip_pending_suffix(shadow.name)
        original.description = shadow.description
        original.is_pending = False
        original.updated_at = datetime.now(timezone.utc)

        self._delete_questionnaires([shadow.id])
        self.db.flush()
        return target_id

    # ------------------------------------------------------------------
    # Reset
    # ------------------------------------------------------------------

    def reset_questionnaire(
        self,
        questionnaire_id: int,
        preserve_responses: bool = False,
        delete_pending_updates: bool = True,
    ) -> dict:
        """Detach all questions from a questionnaire so it can be re-imported.

        Args:
            questionnaire_id: Questionnaire to reset
            preserve_responses: Keep users' responses and completions
            delete_pending_updates: Also drop staged updates targeting it

        Returns:
            dict with ``success``, ``message``, ``reset_questionnaire_id``,
            ``question_count``, ``responses_deleted`` and
            ``pending_updates_removed``

        Raises:
            QuestionnaireNotFoundError: If the id is unknown
        """
        with transaction(self.db):
            questionnaire = self.db.execute(
                select(Questionnaire)
                .where(Questionnaire.id == questionnaire_id)
                .with_for_update()
            ).scalar_one_or_none()
            if questionnaire is None:
                raise QuestionnaireNotFoundError(
                    "Questionnaire not found",
                    details={"questionnaire_id": questionnaire_id},
                )

            question_count = self.db.execute(
                select(func.count())
                .select_from(QuestionnaireQuestion)
                .where(QuestionnaireQuestion.questionnaire_id == questionnaire_id)
            ).scalar_one()

            self.db.execute(
                delete(QuestionnaireQuestion)
                .where(QuestionnaireQuestion.questionnaire_id == questionnaire_id)
            )

            responses_deleted = 0
            if not preserve_responses:
                responses_deleted = self.db.execute(
                    delete(UserResponse)
                    .where(UserResponse.questionnaire_id == questionnaire_id)
                ).rowcount
                self.db.execute(
                    delete(QuestionnaireCompletion)
                    .where(QuestionnaireCompletion.questionnaire_id == questionnaire_id)
                )

            questionnaire.is_pending = False

            pending_removed = 0
            if delete_pending_updates:
                shadow_ids = self._find_staged_updates(questionnaire)
                if shadow_ids:
                    self._delete_questionnaires(shadow_ids)
                pending_removed = len(shadow_ids)

            self._delete_orphan_staging_questions()
            name = questionnaire.name

        logger.info(
            f"Reset questionnaire {questionnaire_id}: {question_count} questions detached, "
            f"{responses_deleted} responses deleted, {pending_removed} staged updates removed",
            extra={"questionnaire_id": questionnaire_id},
        )
        return {
            "success": True,
            "message": f"Questionnaire '{name}' has been reset.",
            "reset_questionnaire_id": questionnaire_id,
            "question_count": question_count,
            "responses_deleted": responses_deleted,
            "pending_updates_removed": pending_removed,
        }

    def _find_staged_updates(self, questionnaire: Questionnaire) -> list[int]:
        """Ids of staging rows that target ``questionnaire``."""
        base_name = strip_pending_suffix(questionnaire.name).lower()
        return list(self.db.execute(
            select(Questionnaire.id).where(
                Questionnaire.id < 0,
                Questionnaire.id != questionnaire.id,
                Questionnaire.is_pending.is_(True),
                or_(
                    Questionnaire.pending_target_id == questionnaire.id,
                    and_(
                        Questionnaire.pending_target_id.is_(None),
                        Questionnaire.id == -questionnaire.id,
                    ),
                    and_(
                        Questionnaire.pending_target_id.is_(None),
                        func.lower(func.replace(Questionnaire.name, PENDING_SUFFIX, "")) == base_name,
                    ),
                ),
            )
        ).scalars().all())

    # ------------------------------------------------------------------
    # Review listing
    # ------------------------------------------------------------------

    def list_pending(self) -> list[dict]:
        """Pending questionnaires with their review state.

        Returns:
            list of dicts with questionnaire fields plus ``state``,
            ``target_id`` and ``question_count``
        """
        counts = (
            select(
                QuestionnaireQuestion.questionnaire_id,
                func.count().label("question_count"),
            )
            .group_by(QuestionnaireQuestion.questionnaire_id)
            .subquery()
        )
        rows = self.db.execute(
            select(Questionnaire, func.coalesce(counts.c.question_count, 0))
            .outerjoin(counts, counts.c.questionnaire_id == Questionnaire.id)
            .where(Questionnaire.is_pending.is_(True))
            .order_by(Questionnaire.id)
        ).all()

        return [
            {
                "id": questionnaire.id,
                "name": questionnaire.name,
                "description": questionnaire.description,
                "is_pending": questionnaire.is_pending,
                "created_at": questionnaire.created_at,
                "updated_at": questionnaire.updated_at,
                "state": state_of(questionnaire).value,
                "target_id": questionnaire.target_id,
                "question_count": question_count,
            }
            for questionnaire, question_count in rows
        ]

    # ------------------------------------------------------------------
    # Row helpers
    # ------------------------------------------------------------------

    def _require_question(self, question_id: int) -> Question:
        question = self.db.get(Question, question_id)
        if question is None:
            raise QuestionNotFoundError(
                f"Question {question_id} referenced by the import does not exist",
                details={"question_id": question_id},
            )
        return question

    def _upsert_question(
        self,
        question_id: int,
        text: str,
        question_type: str,
        options: Optional[list[str]],
    ) -> Question:
        question = self.db.get(Question, question_id)
        if question_type != "multiple_choice":
            options = None
        if question is None:
            question = Question(id=question_id, text=text, type=question_type, options=options)
            self.db.add(question)
        else:
            question.text = text
            question.type = question_type
            question.options = options
        self.db.flush()
        return question

    def _link(self, questionnaire_id: int, question_id: int, priority: int) -> None:
        link = self.db.execute(
            select(QuestionnaireQuestion).where(
                QuestionnaireQuestion.questionnaire_id == questionnaire_id,
                QuestionnaireQuestion.question_id == question_id,
            )
        ).scalar_one_or_none()
        if link is None:
            self.db.add(QuestionnaireQuestion(
                questionnaire_id=questionnaire_id,
                question_id=question_id,
                priority=priority,
            ))
        else:
            link.priority = priority
        self.db.flush()

    def _delete_questionnaires(self, questionnaire_ids: list[int]) -> None:
        """Delete questionnaires, their junction rows and orphaned staging questions."""
        self.db.execute(
            delete(QuestionnaireQuestion)
            .where(QuestionnaireQuestion.questionnaire_id.in_(questionnaire_ids))
        )
        self.db.execute(
            delete(Questionnaire).where(Questionnaire.id.in_(questionnaire_ids))
        )
        self._delete_orphan_staging_questions()

    def _delete_orphan_staging_questions(self) -> int:
        linked = select(QuestionnaireQuestion.question_id)
        removed = self.db.execute(
            delete(Question).where(Question.id < 0, Question.id.not_in(linked))
        ).rowcount
        if removed:
            logger.debug(f"Removed {removed} orphaned staging questions")
        return removed
