"""Database models and session management.

This package contains all SQLAlchemy ORM models and database utilities.
"""

from intake_api.models.database import Base, Database, get_db, transaction
from intake_api.models.user import User
from intake_api.models.questionnaire import Question, Questionnaire, QuestionnaireQuestion
from intake_api.models.response import UserResponse
from intake_api.models.completion import QuestionnaireCompletion

__all__ = [
    "Base",
    "Database",
    "get_db",
    "transaction",
    "User",
    "Questionnaire",
    "Question",
    "QuestionnaireQuestion",
    "UserResponse",
    "QuestionnaireCompletion",
]
