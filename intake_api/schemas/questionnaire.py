"""Pydantic schemas for questionnaire import, approval and display.

Import payloads arrive either as a JSON array posted by an admin or as the
output of the CSV parser; both are validated through ``QuestionnaireImport``.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

# Legacy type names still found in older import files
TYPE_ALIASES = {
    "mcq": "multiple_choice",
    "multiple-choice": "multiple_choice",
    "input": "text",
}


class QuestionType(str, Enum):
    """Valid question types."""
    TEXT = "text"
    MULTIPLE_CHOICE = "multiple_choice"


def parse_options(value: Any) -> Optional[list[str]]:
    """Normalize an options value into a list of strings.

    Strings are read as a JSON array when possible, otherwise split on commas.

    Args:
        value: None, a list, or a string from a CSV cell / JSON payload

    Returns:
        List of option strings, or None when no options were given

    Example:
        >>> parse_options('["Yes", "No"]')
        ['Yes', 'No']
        >>> parse_options("Yes, No")
        ['Yes', 'No']
    """
    if value is None:
        return None
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            return None
        try:
            parsed = json.loads(stripped)
        except ValueError:
            parsed = None
        if isinstance(parsed, list):
            value = parsed
        else:
            return [part.strip() for part in stripped.split(",") if part.strip()]
    if isinstance(value, (list, tuple)):
        return [str(item) for item in value]
    raise ValueError("options must be a list or a string")


class QuestionImport(BaseModel):
    """A question inside an imported questionnaire.

    A question with no ``text`` is reference-only: it links an existing
    question by id without redefining it.

    Attributes:
        id: Question id from the import source
        text: Question text (None for reference-only entries)
        type: Question type; ``mcq`` and ``input`` are accepted as aliases
        options: Choices for multiple_choice questions
        priority: Display order within the questionnaire
    """
    id: int = Field(..., gt=0, description="Question id")
    text: Optional[str] = Field(None, description="Question text")
    type: Optional[QuestionType] = Field(None, description="Question type")
    options: Optional[list[str]] = Field(None, description="Choices for multiple_choice")
    priority: int = Field(default=0, description="Display order, ascending")

    @field_validator("type", mode="before")
    @classmethod
    def normalize_type(cls, v):
        """Map legacy type names onto the canonical ones."""
        if isinstance(v, str):
            v = v.strip().lower()
            if not v:
                return None
            return TYPE_ALIASES.get(v, v)
        return v

    @field_validator("options", mode="before")
    @classmethod
    def normalize_options(cls, v):
        """Accept options as a list, a JSON string or a comma list."""
        return parse_options(v)

    @field_validator("text")
    @classmethod
    def strip_text(cls, v):
        """Treat blank text as missing."""
        if v is None:
            return None
        v = v.strip()
        return v or None

    @model_validator(mode="after")
    def validate_options_for_type(self):
        """Options are required for multiple_choice and dropped for text."""
        if self.text is None:
            return self

        if self.type is None:
            self.type = QuestionType.TEXT

        if self.type == QuestionType.MULTIPLE_CHOICE:
            if not self.options:
                raise ValueError(
                    f"Question {self.id} is multiple_choice and must have options"
                )
        else:
            self.options = None

        return self

    @property
    def is_reference(self) -> bool:
        """True when this entry only links an existing question."""
        return self.text is None


class QuestionnaireImport(BaseModel):
    """A questionnaire in an import batch.

    Attributes:
        id: Questionnaire id from the import source
        name: Display name
        description: Optional description
        questions: Questions in the questionnaire
    """
    id: int = Field(..., gt=0, description="Questionnaire id")
    name: str = Field(..., min_length=1, description="Questionnaire name")
    description: Optional[str] = Field(None, description="Questionnaire description")
    questions: list[QuestionImport] = Field(default_factory=list)

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("name must not be blank")
        return v

    @model_validator(mode="after")
    def unique_question_ids(self):
        """Reject a questionnaire that lists the same question twice."""
        seen = set()
        for question in self.questions:
            if question.id in seen:
                raise ValueError(
                    f"Question {question.id} appears more than once in questionnaire {self.id}"
                )
            seen.add(question.id)
        return self


class ApproveRequest(BaseModel):
    """Body of ``POST /admin/approve-questionnaire``."""
    questionnaire_id: int
    approve: bool = True


class ResetRequest(BaseModel):
    """Body of ``POST /admin/reset-questionnaire``."""
    questionnaire_id: int
    preserve_responses: bool = False
    delete_pending_updates: bool = True


class QuestionOut(BaseModel):
    """A question as shown inside a questionnaire."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    text: str
    type: QuestionType
    options: Optional[list[str]] = None
    priority: int = 0


class QuestionnaireSummary(BaseModel):
    """A questionnaire without its questions."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    description: Optional[str] = None
    is_pending: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class QuestionnaireDetail(QuestionnaireSummary):
    """A questionnaire with its questions in priority order."""
    questions: list[QuestionOut] = Field(default_factory=list)


class PendingQuestionnaire(QuestionnaireSummary):
    """A staged questionnaire awaiting review."""
    state: str
    target_id: Optional[int] = None
    question_count: int = 0
