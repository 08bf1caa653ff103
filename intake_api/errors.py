"""Domain exceptions shared by services and routes.

Each exception carries the HTTP status it maps to; ``main`` renders them as
``{"error": ..., "details": ..., "code": ...}``.
"""

from typing import Any, Optional


class IntakeError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code = 500

    def __init__(
        self,
        message: str,
        details: Any = None,
        code: Optional[str] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(message)
        self.message = message
        self.details = details
        self.code = code
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self) -> dict:
        """Serialize for a JSON error response."""
        body = {"error": self.message}
        if self.details is not None:
            body["details"] = self.details
        if self.code is not None:
            body["code"] = self.code
        return body


class ValidationFailedError(IntakeError):
    """Raised when request or import data is missing or malformed."""

    status_code = 400


class NotFoundError(IntakeError):
    """Raised when a referenced record does not exist."""

    status_code = 404


class QuestionnaireNotFoundError(NotFoundError):
    """Raised when a questionnaire id is unknown."""


class QuestionNotFoundError(NotFoundError):
    """Raised when a question id is unknown."""


class UserNotFoundError(NotFoundError):
    """Raised when a user id is unknown."""


class DatabaseOperationError(IntakeError):
    """Raised when a transaction fails inside the database driver."""

    status_code = 500


class PendingIdCollisionError(DatabaseOperationError):
    """Raised when a staging id still collides after the retry."""
