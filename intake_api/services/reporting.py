"""Admin reporting: dashboard statistics, per-user detail and CSV exports."""

import csv
import io
from collections import defaultdict
from datetime import date, datetime, timedelta, timezone
from typing import Any, Optional

from sqlalchemy import func, inspect, select
from sqlalchemy.orm import Session

from intake_api.errors import QuestionnaireNotFoundError, UserNotFoundError
from intake_api.logging_config import get_logger
from intake_api.models.completion import QuestionnaireCompletion
from intake_api.models.questionnaire import Question, Questionnaire, QuestionnaireQuestion
from intake_api.models.response import UserResponse
from intake_api.models.user import User
from intake_api.services.responses import decode_answer

logger = get_logger(__name__)

USER_RESPONSES_CSV_HEADER = ["User ID", "Username", "Questionnaire", "Question", "Response", "Date"]

TIME_SERIES_DAYS = 7
ACTIVE_USER_DAYS = 30


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes (SQLite drops the offset)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _display_answer(value: Any) -> str:
    if isinstance(value, list):
        return ", ".join(str(item) for item in value)
    return "" if value is None else str(value)


def _write_csv(rows: list[list[Any]]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerows(rows)
    return buffer.getvalue()


def empty_dashboard() -> dict:
    """Dashboard payload used before any completion has been recorded."""
    return {
        "questionnaireStats": [],
        "timeSeriesData": [],
        "userEngagement": {"totalUsers": 0, "activeUsers": 0, "completionRate": 0},
        "questionnaires": [],
        "pendingQuestionnairesCount": 0,
        "nonPendingStats": [],
    }


class ReportingService:
    """Read-only queries behind the admin dashboard and exports."""

    def __init__(self, db: Session):
        """Initialize the service.

        Args:
            db: SQLAlchemy database session
        """
        self.db = db

    def dashboard_stats(self, now: Optional[datetime] = None) -> dict:
        """Aggregate completion statistics for the admin dashboard.

        Args:
            now: Reference time for the rolling windows (defaults to now, UTC)

        Returns:
            dict with ``questionnaireStats``, ``timeSeriesData``,
            ``userEngagement``, ``questionnaires``,
            ``pendingQuestionnairesCount`` and ``nonPendingStats``
        """
        if not inspect(self.db.connection()).has_table(QuestionnaireCompletion.__tablename__):
            logger.info("Completions table missing, returning empty dashboard")
            return empty_dashboard()

        now = _as_utc(now or datetime.now(timezone.utc))

        questionnaires = self.db.execute(select(Questionnaire)).scalars().all()
        completions = self.db.execute(select(QuestionnaireCompletion)).scalars().all()
        question_counts = dict(self.db.execute(
            select(QuestionnaireQuestion.questionnaire_id, func.count())
            .group_by(QuestionnaireQuestion.questionnaire_id)
        ).all())

        # (questionnaire, user) -> (response count, first response time)
        response_rows = self.db.execute(
            select(
                UserResponse.questionnaire_id,
                UserResponse.user_id,
                func.count(),
                func.min(UserResponse.created_at),
            ).group_by(UserResponse.questionnaire_id, UserResponse.user_id)
        ).all()
        responses_by_pair = {
            (qid, uid): (count, _as_utc(first)) for qid, uid, count, first in response_rows
        }

        completions_by_questionnaire: dict[int, list[QuestionnaireCompletion]] = defaultdict(list)
        for completion in completions:
            completions_by_questionnaire[completion.questionnaire_id].append(completion)

        stats = []
        for questionnaire in questionnaires:
            done = completions_by_questionnaire.get(questionnaire.id, [])
            completed_at = [_as_utc(c.completed_at) for c in done]
            users = {uid for (qid, uid) in responses_by_pair if qid == questionnaire.id}
            total_responses = sum(
                count for (qid, _), (count, _) in responses_by_pair.items() if qid == questionnaire.id
            )

            durations = []
            for completion in done:
                pair = responses_by_pair.get((questionnaire.id, completion.user_id))
                if pair is not None and pair[1] is not None:
                    minutes = (_as_utc(completion.completed_at) - pair[1]).total_seconds() / 60
                    durations.append(max(minutes, 0.0))

            total_questions = question_counts.get(questionnaire.id, 0)
            expected = total_questions * len(done)
            answered = sum(
                responses_by_pair.get((questionnaire.id, c.user_id), (0, None))[0] for c in done
            )

            stats.append({
                "id": questionnaire.id,
                "name": questionnaire.name,
                "completions": len(done),
                "unique_users": len(users),
                "first_completion": min(completed_at) if completed_at else None,
                "last_completion": max(completed_at) if completed_at else None,
                "avg_completion_time_minutes": (
                    round(sum(durations) / len(durations), 2) if durations else 0
                ),
                "total_responses": total_responses,
                "total_questions": total_questions,
                "completion_rate": round(min(answered / expected, 1.0) * 100, 1) if expected else 0,
                "is_pending": questionnaire.is_pending,
            })
        stats.sort(key=lambda s: s["completions"], reverse=True)

        today = now.date()
        days = [today - timedelta(days=offset) for offset in range(TIME_SERIES_DAYS - 1, -1, -1)]
        per_day: dict[date, int] = defaultdict(int)
        for completion in completions:
            per_day[_as_utc(completion.completed_at).date()] += 1
        time_series = [{"date": day.isoformat(), "count": per_day.get(day, 0)} for day in days]

        total_users = self.db.execute(select(func.count()).select_from(User)).scalar_one()
        cutoff = now - timedelta(days=ACTIVE_USER_DAYS)
        active_users = len({
            c.user_id for c in completions if _as_utc(c.completed_at) > cutoff
        })

        overview = sorted(
            (
                {
                    "id": q.id,
                    "name": q.name,
                    "is_pending": q.is_pending,
                    "completions": len(completions_by_questionnaire.get(q.id, [])),
                }
                for q in questionnaires
            ),
            key=lambda q: (not q["is_pending"], -q["completions"]),
        )

        return {
            "questionnaireStats": stats,
            "timeSeriesData": time_series,
            "userEngagement": {
                "totalUsers": total_users,
                "activeUsers": active_users,
                "completionRate": round(active_users / total_users * 100, 1) if total_users else 0,
            },
            "questionnaires": overview,
            "pendingQuestionnairesCount": sum(1 for q in questionnaires if q.is_pending),
            "nonPendingStats": [s for s in stats if not s["is_pending"]],
        }

    def list_users_with_completion(self) -> list[dict]:
        """Every user with the number of questionnaires they completed."""
        total_live = self.db.execute(
            select(func.count()).select_from(Questionnaire).where(Questionnaire.is_pending.is_(False))
        ).scalar_one()
        rows = self.db.execute(
            select(User, func.count(func.distinct(QuestionnaireCompletion.questionnaire_id)))
            .outerjoin(QuestionnaireCompletion, QuestionnaireCompletion.user_id == User.id)
            .group_by(User.id)
            .order_by(User.username)
        ).all()
        return [
            {
                "id": user.id,
                "username": user.username,
                "email": user.email,
                "is_admin": user.is_admin,
                "completed_questionnaires": completed,
                "total_questionnaires": total_live,
            }
            for user, completed in rows
        ]

    def user_response_detail(self, user_id: int) -> dict:
        """A user's completions and every answer they gave.

        Raises:
            UserNotFoundError: If the user does not exist
        """
        user = self.db.get(User, user_id)
        if user is None:
            raise UserNotFoundError("User not found", details={"user_id": user_id})

        completion_rows = self.db.execute(
            select(QuestionnaireCompletion, Questionnaire.name)
            .join(Questionnaire, Questionnaire.id == QuestionnaireCompletion.questionnaire_id)
            .where(QuestionnaireCompletion.user_id == user_id)
            .order_by(QuestionnaireCompletion.completed_at.desc())
        ).all()
        timezones = {
            completion.questionnaire_id: (completion.timezone_name, completion.timezone_offset)
            for completion, _ in completion_rows
        }

        response_rows = self.db.execute(
            select(UserResponse, Question, Questionnaire.name)
            .join(Question, Question.id == UserResponse.question_id)
            .join(Questionnaire, Questionnaire.id == UserResponse.questionnaire_id)
            .where(UserResponse.user_id == user_id)
            .order_by(UserResponse.questionnaire_id, Question.id)
        ).all()

        responses = []
        for response, question, questionnaire_name in response_rows:
            tz_name, tz_offset = timezones.get(response.questionnaire_id, (None, None))
            responses.append({
                "questionnaire_id": response.questionnaire_id,
                "questionnaire_name": questionnaire_name,
                "question_id": question.id,
                "question_text": question.text,
                "question_type": question.type,
                "response_text": decode_answer(question.type, response.response_text),
                "created_at": response.created_at,
                "timezone_name": tz_name,
                "timezone_offset": tz_offset,
            })

        return {
            "user": {"id": user.id, "username": user.username, "email": user.email},
            "completedQuestionnaires": [
                {
                    "id": completion.questionnaire_id,
                    "name": name,
                    "completed_at": completion.completed_at,
                    "timezone_name": completion.timezone_name,
                    "timezone_offset": completion.timezone_offset,
                }
                for completion, name in completion_rows
            ],
            "responses": responses,
        }

    @staticmethod
    def user_responses_csv(detail: dict) -> str:
        """Render ``user_response_detail`` output as CSV.

        Columns: User ID, Username, Questionnaire, Question, Response, Date.
        Multiple-choice answers are joined with ``", "``; dates are YYYY-MM-DD.
        """
        user = detail["user"]
        rows: list[list[Any]] = [USER_RESPONSES_CSV_HEADER]
        for response in detail["responses"]:
            created = _as_utc(response["created_at"])
            rows.append([
                user["id"],
                user["username"],
                response["questionnaire_name"],
                response["question_text"],
                _display_answer(response["response_text"]),
                created.date().isoformat() if created else "",
            ])
        return _write_csv(rows)

    def questionnaire_responses_csv(self, questionnaire_id: int) -> str:
        """One row per responding user, one column per question in priority order.

        Raises:
            QuestionnaireNotFoundError: If the questionnaire does not exist
        """
        if self.db.get(Questionnaire, questionnaire_id) is None:
            raise QuestionnaireNotFoundError(
                "Questionnaire not found",
                details={"questionnaire_id": questionnaire_id},
            )

        questions = self.db.execute(
            select(Question)
            .join(QuestionnaireQuestion, QuestionnaireQuestion.question_id == Question.id)
            .where(QuestionnaireQuestion.questionnaire_id == questionnaire_id)
            .order_by(QuestionnaireQuestion.priority, Question.id)
        ).scalars().all()

        response_rows = self.db.execute(
            select(UserResponse, User.username)
            .join(User, User.id == UserResponse.user_id)
            .where(UserResponse.questionnaire_id == questionnaire_id)
            .order_by(UserResponse.user_id, UserResponse.question_id)
        ).all()

        types = {question.id: question.type for question in questions}
        by_user: dict[int, dict] = {}
        for response, username in response_rows:
            entry = by_user.setdefault(response.user_id, {"username": username, "answers": {}})
            value = decode_answer(types.get(response.question_id, "text"), response.response_text)
            entry["answers"][response.question_id] = _display_answer(value)

        rows: list[list[Any]] = [["User ID", "Username"] + [q.text for q in questions]]
        for user_id, entry in by_user.items():
            rows.append(
                [user_id, entry["username"]]
                + [entry["answers"].get(q.id, "") for q in questions]
            )

        logger.info(
            f"Exported {len(by_user)} users' responses",
            extra={"questionnaire_id": questionnaire_id},
        )
        return _write_csv(rows)
