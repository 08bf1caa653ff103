"""Pydantic schemas for response submission and prefill.

Request and response bodies use camelCase keys on the wire; Python code uses
the snake_case attribute names.
"""

from datetime import datetime
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

# A single answer as posted by the client
AnswerValue = Union[list[str], str, int, float, bool, None]


class CamelModel(BaseModel):
    """Base model reading and writing camelCase keys."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class AnswerIn(CamelModel):
    """One answered question."""
    question_id: int
    answer: AnswerValue = None


class TimezoneInfo(CamelModel):
    """Client timezone reported with a submission."""
    name: Optional[str] = None
    offset: Optional[str] = None


class SubmitRequest(CamelModel):
    """Body of ``POST /api/responses/submit``."""
    questionnaire_id: int
    responses: list[AnswerIn] = Field(default_factory=list)
    timezone: Optional[TimezoneInfo] = None


class SubmitResult(CamelModel):
    """Outcome of a submission."""
    success: bool = True
    questionnaire_id: int
    saved: int
    completed_at: datetime


class DeleteResponsesRequest(CamelModel):
    """Body of the delete-responses endpoints."""
    user_id: int
    questionnaire_id: int


class DeleteResult(CamelModel):
    """Counts of rows removed by a delete."""
    success: bool = True
    responses_deleted: int
    completion_deleted: bool


class PrefilledQuestion(CamelModel):
    """A question paired with the user's best prior answer."""
    question_id: int
    question_text: str
    type: str
    options: Optional[list[str]] = None
    priority: int = 0
    answer: AnswerValue = None
    from_other_questionnaire: bool = False


class PrefillResult(CamelModel):
    """All questions of a questionnaire with prefilled answers."""
    questionnaire_id: int
    has_responses: bool
    has_completed_questionnaire: bool
    questions: list[PrefilledQuestion]


class CompletedQuestionnaire(CamelModel):
    """A questionnaire the user has completed."""
    questionnaire_id: int
    name: str
    completed_at: datetime
    timezone_name: str
    timezone_offset: str
