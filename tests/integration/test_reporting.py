"""Integration tests for admin reporting and CSV exports."""

import csv
import io

import pytest

from intake_api.errors import QuestionnaireNotFoundError, UserNotFoundError
from intake_api.models import QuestionnaireCompletion, User
from intake_api.schemas.response import AnswerIn, TimezoneInfo
from intake_api.services.reporting import (
    TIME_SERIES_DAYS,
    USER_RESPONSES_CSV_HEADER,
    ReportingService,
)
from intake_api.services.responses import ResponseService


@pytest.fixture
def users(db_session) -> dict[str, User]:
    alice = User(username="alice", password_hash="x", email="alice@example.org")
    bob = User(username="bob", password_hash="x")
    db_session.add_all([alice, bob])
    db_session.commit()
    return {"alice": alice, "bob": bob}


@pytest.fixture
def answered(db_session, users, create_questionnaire):
    """Alice completed questionnaire 1; questionnaire 2 is pending."""
    create_questionnaire(
        db_session,
        1,
        "Medical History",
        [
            (10, "Allergies?", "multiple_choice", ["Food", "Pollen"], 2),
            (11, "Medications", "text", None, 1),
        ],
    )
    create_questionnaire(db_session, 2, "Draft", [(20, "Draft?", "text", None, 1)], is_pending=True)
    ResponseService(db_session).submit_responses(
        users["alice"].id,
        1,
        [
            AnswerIn(question_id=10, answer=["Pollen", "Food"]),
            AnswerIn(question_id=11, answer="None"),
        ],
        TimezoneInfo(name="Europe/Paris", offset="+01:00"),
    )
    return users


def parse_csv(content: str) -> list[list[str]]:
    return list(csv.reader(io.StringIO(content)))


class TestDashboardStats:
    """Tests for ReportingService.dashboard_stats."""

    def test_statistics(self, db_session, answered):
        stats = ReportingService(db_session).dashboard_stats()

        by_id = {s["id"]: s for s in stats["questionnaireStats"]}
        medical = by_id[1]
        assert medical["completions"] == 1
        assert medical["unique_users"] == 1
        assert medical["total_responses"] == 2
        assert medical["total_questions"] == 2
        assert medical["completion_rate"] == 100.0
        assert medical["first_completion"] is not None
        assert by_id[2]["completions"] == 0
        assert by_id[2]["completion_rate"] == 0

        assert stats["pendingQuestionnairesCount"] == 1
        assert [s["id"] for s in stats["nonPendingStats"]] == [1]
        assert stats["userEngagement"] == {"totalUsers": 2, "activeUsers": 1, "completionRate": 50.0}

    def test_time_series_zero_filled(self, db_session, answered):
        series = ReportingService(db_session).dashboard_stats()["timeSeriesData"]

        assert len(series) == TIME_SERIES_DAYS
        assert sum(day["count"] for day in series) == 1
        assert series[-1]["count"] == 1
        assert series[0]["count"] == 0

    def test_pending_listed_first(self, db_session, answered):
        overview = ReportingService(db_session).dashboard_stats()["questionnaires"]
        assert [q["id"] for q in overview] == [2, 1]

    def test_missing_completions_table(self, database, db_session):
        """Test that the dashboard is empty before completions exist."""
        QuestionnaireCompletion.__table__.drop(database.engine)

        stats = ReportingService(db_session).dashboard_stats()

        assert stats["questionnaireStats"] == []
        assert stats["userEngagement"]["totalUsers"] == 0


class TestUserResponses:
    """Tests for per-user listings and exports."""

    def test_users_with_completion_counts(self, db_session, answered):
        users = {u["username"]: u for u in ReportingService(db_session).list_users_with_completion()}

        assert users["alice"]["completed_questionnaires"] == 1
        assert users["bob"]["completed_questionnaires"] == 0
        assert users["alice"]["total_questionnaires"] == 1

    def test_user_response_detail(self, db_session, answered):
        detail = ReportingService(db_session).user_response_detail(answered["alice"].id)

        assert detail["user"]["username"] == "alice"
        assert detail["completedQuestionnaires"][0]["name"] == "Medical History"
        assert detail["completedQuestionnaires"][0]["timezone_name"] == "Europe/Paris"
        answers = {r["question_id"]: r["response_text"] for r in detail["responses"]}
        assert answers == {10: ["Pollen", "Food"], 11: "None"}

    def test_unknown_user(self, db_session):
        with pytest.raises(UserNotFoundError):
            ReportingService(db_session).user_response_detail(404)

    def test_user_responses_csv(self, db_session, answered):
        service = ReportingService(db_session)
        detail = service.user_response_detail(answered["alice"].id)

        rows = parse_csv(service.user_responses_csv(detail))

        assert rows[0] == USER_RESPONSES_CSV_HEADER
        assert len(rows) == 3
        allergies = next(row for row in rows if row[3] == "Allergies?")
        assert allergies[0] == str(answered["alice"].id)
        assert allergies[1] == "alice"
        assert allergies[2] == "Medical History"
        assert allergies[4] == "Pollen, Food"
        assert len(allergies[5]) == len("YYYY-MM-DD")

    def test_questionnaire_export(self, db_session, answered):
        rows = parse_csv(ReportingService(db_session).questionnaire_responses_csv(1))

        assert rows[0] == ["User ID", "Username", "Medications", "Allergies?"]
        assert rows[1] == [str(answered["alice"].id), "alice", "None", "Pollen, Food"]
        assert len(rows) == 2

    def test_export_unknown_questionnaire(self, db_session):
        with pytest.raises(QuestionnaireNotFoundError):
            ReportingService(db_session).questionnaire_responses_csv(404)
