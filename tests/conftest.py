"""Pytest configuration and shared fixtures.

This module provides fixtures and configuration used across all tests.
"""

import os
from typing import Callable, Generator, Optional

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

# Set required environment variables for tests BEFORE importing app modules
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("JWT_SECRET", "test_jwt_secret_for_testing_only")
os.environ.setdefault("ENVIRONMENT", "development")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from intake_api.main import create_app
from intake_api.models.database import Database
from intake_api.models.questionnaire import Question, Questionnaire, QuestionnaireQuestion
from intake_api.models.user import User
from intake_api.services.auth_service import create_access_token, hash_password

# bcrypt is slow, so every user fixture shares one hash
_PASSWORD_HASH = hash_password("secret-password")


@pytest.fixture(scope="function")
def database() -> Generator[Database, None, None]:
    """Create a fresh in-memory SQLite database.

    Yields:
        Database: access object with all tables created

    Note:
        Uses a single shared connection with foreign keys and SAVEPOINTs
        enabled. Only one session may hold an open transaction at a time,
        so tests commit or close their setup sessions before calling the API.
    """
    db = Database("sqlite:///:memory:")
    db.create_all()

    yield db

    db.drop_all()
    db.dispose()


@pytest.fixture(scope="function")
def db_session(database) -> Generator[Session, None, None]:
    """Create a test database session.

    Args:
        database: Test database fixture

    Yields:
        Session: SQLAlchemy session for testing
    """
    session = database.session()

    yield session

    # Rollback any uncommitted changes
    session.rollback()
    session.close()


@pytest.fixture
def make_user(database) -> Callable[..., User]:
    """Factory creating committed users.

    Returns:
        Callable taking ``username`` and ``is_admin``
    """

    def _make(username: str, is_admin: bool = False, email: Optional[str] = None) -> User:
        with database.session() as session:
            user = User(
                username=username,
                password_hash=_PASSWORD_HASH,
                email=email,
                is_admin=is_admin,
            )
            session.add(user)
            session.commit()
            return user

    return _make


@pytest.fixture
def admin_user(make_user) -> User:
    """An admin user (password ``secret-password``)."""
    return make_user("admin", is_admin=True, email="admin@example.org")


@pytest.fixture
def patient_user(make_user) -> User:
    """A regular user (password ``secret-password``)."""
    return make_user("patient", email="patient@example.org")


def _auth_headers(user: User) -> dict:
    """Authorization header carrying a fresh token for ``user``."""
    return {"Authorization": f"Bearer {create_access_token(user)}"}


def _create_questionnaire(
    session: Session,
    questionnaire_id: int,
    name: str,
    questions: list,
    is_pending: bool = False,
    description: Optional[str] = None,
) -> Questionnaire:
    """Insert a questionnaire with its questions and commit.

    Args:
        session: Session to write with
        questionnaire_id: Questionnaire id
        name: Questionnaire name
        questions: ``(id, text, type, options, priority)`` tuples; an existing
            question id is linked without being redefined
        is_pending: Pending flag
        description: Optional description
    """
    questionnaire = Questionnaire(
        id=questionnaire_id,
        name=name,
        description=description,
        is_pending=is_pending,
    )
    session.add(questionnaire)
    session.flush()

    for question_id, text, question_type, options, priority in questions:
        if session.get(Question, question_id) is None:
            session.add(Question(id=question_id, text=text, type=question_type, options=options))
            session.flush()
        session.add(QuestionnaireQuestion(
            questionnaire_id=questionnaire_id,
            question_id=question_id,
            priority=priority,
        ))
    session.commit()
    return questionnaire


@pytest.fixture
def medical_history(database) -> int:
    """Live questionnaire 1 "Medical History" with three questions."""
    with database.session() as session:
        _create_questionnaire(
            session,
            1,
            "Medical History",
            [
                (10, "Do you have any allergies?", "multiple_choice", ["None", "Food", "Medication"], 1),
                (11, "Current medications", "text", None, 2),
                (12, "Date of birth", "text", None, 0),
            ],
            description="Past conditions and medications",
        )
    return 1


@pytest.fixture
def client(database) -> Generator[TestClient, None, None]:
    """API client bound to the test database."""
    with TestClient(create_app(database)) as test_client:
        yield test_client


@pytest.fixture
def auth_headers() -> Callable[[User], dict]:
    """Build an ``Authorization: Bearer`` header for a user."""
    return _auth_headers


@pytest.fixture
def create_questionnaire() -> Callable[..., Questionnaire]:
    """Insert a questionnaire with questions; see ``_create_questionnaire``."""
    return _create_questionnaire
