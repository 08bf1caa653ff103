"""CSV parser turning three export files into questionnaire import payloads.

An import consists of three CSV files:

- questionnaires: one row per questionnaire (id, name, description)
- questions: one row per question, either as flat columns or with the whole
  definition embedded as a JSON object in a ``question`` column
- junctions: questionnaire_id, question_id and priority linking the two

Column names have varied across export revisions, so every canonical field is
looked up through ``FIELD_ALIASES``.
"""

import csv
import io
import json
from dataclasses import dataclass, field
from typing import Optional, Union

from pydantic import ValidationError

from intake_api.errors import ValidationFailedError
from intake_api.logging_config import get_logger
from intake_api.schemas.questionnaire import QuestionnaireImport

logger = get_logger(__name__)

CsvSource = Union[str, bytes]

# {entity: {canonical field: accepted column names, first match wins}}
FIELD_ALIASES: dict[str, dict[str, tuple[str, ...]]] = {
    "questionnaire": {
        "id": ("id", "questionnaire_id"),
        "name": ("name", "questionnaire_name"),
        "description": ("description", "questionnaire_description"),
    },
    "question": {
        "id": ("id", "question_id"),
        "text": ("text", "question_text", "question"),
        "type": ("type", "question_type"),
        "options": ("options", "question_options"),
    },
    "junction": {
        "questionnaire_id": ("questionnaire_id", "questionnaireid"),
        "question_id": ("question_id", "questionid"),
        "priority": ("priority", "order", "sequence"),
    },
}

REQUIRED_FIELDS: dict[str, tuple[str, ...]] = {
    "questionnaire": ("id", "name"),
    "question": ("id", "text", "type"),
    "junction": ("questionnaire_id", "question_id"),
}


class CsvImportError(ValidationFailedError):
    """Raised when an import CSV is empty or a row lacks a required field."""


@dataclass
class CsvImportResult:
    """Parsed import batch.

    Attributes:
        questionnaires: Questionnaires with their questions in priority order
        warnings: Non-fatal problems found while cross-referencing rows
    """
    questionnaires: list[QuestionnaireImport]
    warnings: list[str] = field(default_factory=list)


def decode_csv_bytes(raw: bytes) -> str:
    """Decode an uploaded file, stripping a UTF-8 BOM.

    Falls back to latin-1 for files saved by older spreadsheet tools.
    """
    try:
        return raw.decode("utf-8-sig")
    except UnicodeDecodeError:
        return raw.decode("latin-1")


def read_rows(content: CsvSource, source: str) -> list[dict[str, str]]:
    """Read CSV content into dicts keyed by trimmed lower-case headers.

    Args:
        content: CSV text or raw bytes
        source: Name used in error messages (e.g. "Questions")

    Returns:
        Non-blank rows with trimmed values

    Raises:
        CsvImportError: If the file has no data rows
    """
    if isinstance(content, bytes):
        content = decode_csv_bytes(content)

    reader = csv.DictReader(io.StringIO(content))
    rows = []
    for raw_row in reader:
        row = {
            (key or "").strip().lower(): (value or "").strip()
            for key, value in raw_row.items()
            if key is not None and not isinstance(value, list)
        }
        if not any(row.values()):
            continue
        rows.append(row)

    if not rows:
        raise CsvImportError(
            f"{source} CSV contains no records",
            details={"file": source.lower()},
        )
    return rows


def canonicalize(row: dict[str, str], entity: str, source: str, line: int) -> dict[str, Optional[str]]:
    """Map a raw row onto the canonical fields of ``entity``.

    Args:
        row: Row from ``read_rows``
        entity: Key of ``FIELD_ALIASES``
        source: File name used in error messages
        line: 1-based data row number used in error messages

    Returns:
        dict of canonical field -> value (None when absent)

    Raises:
        CsvImportError: If a required field has no value under any alias
    """
    record: dict[str, Optional[str]] = {}
    for canonical, aliases in FIELD_ALIASES[entity].items():
        record[canonical] = next((row[a] for a in aliases if row.get(a)), None)

    for required in REQUIRED_FIELDS[entity]:
        if record.get(required) is None:
            aliases = FIELD_ALIASES[entity][required]
            raise CsvImportError(
                f"{source} CSV row {line} is missing required field '{required}' "
                f"(accepted columns: {', '.join(aliases)})",
                details={"file": source.lower(), "row": line, "field": required},
            )
    return record


def _parse_int(value: str, field_name: str, source: str, line: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise CsvImportError(
            f"{source} CSV row {line} has a non-numeric {field_name}: {value!r}",
            details={"file": source.lower(), "row": line, "field": field_name},
        ) from None


def _embedded_definition(row: dict[str, str]) -> Optional[dict]:
    """Return the JSON object in a ``question`` column, if there is one."""
    raw = row.get("question", "")
    if not raw.startswith("{"):
        return None
    try:
        parsed = json.loads(raw)
    except ValueError:
        logger.debug(f"Question column is not valid JSON, using flat columns: {raw[:60]!r}")
        return None
    return parsed if isinstance(parsed, dict) else None


def parse_question_rows(rows: list[dict[str, str]], warnings: list[str]) -> dict[int, dict]:
    """Normalize question rows into ``{id: definition}``.

    Args:
        rows: Rows from the questions CSV
        warnings: List collecting non-fatal problems

    Returns:
        dict of question id -> {"id", "text", "type", "options"}
    """
    questions: dict[int, dict] = {}
    for line, row in enumerate(rows, start=1):
        embedded = _embedded_definition(row)
        if embedded is not None:
            raw_id = next(
                (row[a] for a in FIELD_ALIASES["question"]["id"] if row.get(a)), None
            )
            if raw_id is None:
                raise CsvImportError(
                    f"Questions CSV row {line} is missing required field 'id' "
                    f"(accepted columns: {', '.join(FIELD_ALIASES['question']['id'])})",
                    details={"file": "questions", "row": line, "field": "id"},
                )
            definition = {
                "text": embedded.get("question_text") or embedded.get("question"),
                "type": embedded.get("type"),
                "options": embedded.get("options"),
            }
            if not definition["text"]:
                raise CsvImportError(
                    f"Questions CSV row {line} has embedded JSON without question text",
                    details={"file": "questions", "row": line, "field": "text"},
                )
        else:
            record = canonicalize(row, "question", "Questions", line)
            raw_id = record["id"]
            definition = {
                "text": record["text"],
                "type": record["type"],
                "options": record["options"],
            }

        question_id = _parse_int(raw_id, "id", "Questions", line)
        if question_id in questions:
            warnings.append(f"Question {question_id} is defined more than once; using row {line}")
        definition["id"] = question_id
        questions[question_id] = definition

    return questions


def _build(model, data: dict, label: str):
    try:
        return model.model_validate(data)
    except ValidationError as e:
        first = e.errors(include_url=False, include_context=False)[0]
        field_path = ".".join(str(part) for part in first.get("loc", ())) or "value"
        raise CsvImportError(
            f"{label} is invalid: {first.get('msg')} ({field_path})",
            details=e.errors(include_url=False, include_context=False, include_input=False),
        ) from e


def parse_questionnaire_csv(
    questionnaires_csv: CsvSource,
    questions_csv: CsvSource,
    junctions_csv: CsvSource,
) -> CsvImportResult:
    """Parse the three import CSVs into questionnaire payloads.

    Junction rows that point at a question missing from the questions CSV are
    kept as reference-only entries that link an existing question. Rows that
    point at a questionnaire missing from the questionnaires CSV are skipped.
    Both cases are reported in ``warnings``.

    Args:
        questionnaires_csv: Questionnaires file content
        questions_csv: Questions file content
        junctions_csv: Junctions file content

    Returns:
        CsvImportResult with validated ``QuestionnaireImport`` objects

    Raises:
        CsvImportError: If a file is empty or a row is malformed
    """
    warnings: list[str] = []

    questionnaire_rows = read_rows(questionnaires_csv, "Questionnaires")
    question_rows = read_rows(questions_csv, "Questions")
    junction_rows = read_rows(junctions_csv, "Junctions")

    questionnaires: dict[int, dict] = {}
    for line, row in enumerate(questionnaire_rows, start=1):
        record = canonicalize(row, "questionnaire", "Questionnaires", line)
        questionnaire_id = _parse_int(record["id"], "id", "Questionnaires", line)
        if questionnaire_id in questionnaires:
            warnings.append(
                f"Questionnaire {questionnaire_id} is defined more than once; using row {line}"
            )
        questionnaires[questionnaire_id] = {
            "id": questionnaire_id,
            "name": record["name"],
            "description": record["description"],
            "questions": [],
        }

    questions = parse_question_rows(question_rows, warnings)

    for line, row in enumerate(junction_rows, start=1):
        record = canonicalize(row, "junction", "Junctions", line)
        questionnaire_id = _parse_int(record["questionnaire_id"], "questionnaire_id", "Junctions", line)
        question_id = _parse_int(record["question_id"], "question_id", "Junctions", line)
        priority = _parse_int(record["priority"] or "0", "priority", "Junctions", line)

        target = questionnaires.get(questionnaire_id)
        if target is None:
            warnings.append(
                f"Junction row {line} references questionnaire {questionnaire_id} "
                f"which isn't in the questionnaires CSV; skipped"
            )
            continue

        if any(q["id"] == question_id for q in target["questions"]):
            warnings.append(
                f"Junction row {line} links question {question_id} to questionnaire "
                f"{questionnaire_id} again; skipped"
            )
            continue

        definition = questions.get(question_id)
        if definition is None:
            warnings.append(
                f"Junction row {line} references question {question_id} which isn't in "
                f"the questions CSV; it must already exist"
            )
            target["questions"].append({"id": question_id, "priority": priority})
        else:
            target["questions"].append({**definition, "priority": priority})

    result = []
    for data in questionnaires.values():
        data["questions"].sort(key=lambda q: (q["priority"], q["id"]))
        result.append(_build(QuestionnaireImport, data, f"Questionnaire {data['id']}"))

    for warning in warnings:
        logger.warning(warning)

    logger.info(
        f"Parsed import CSVs: {len(result)} questionnaires, {len(questions)} questions, "
        f"{len(junction_rows)} junctions, {len(warnings)} warnings"
    )
    return CsvImportResult(questionnaires=result, warnings=warnings)
