"""Unit tests for the questionnaire CSV import parser."""

import pytest

from intake_api.errors import ValidationFailedError
from intake_api.schemas.questionnaire import QuestionType
from intake_api.services.questionnaire_csv import (
    CsvImportError,
    canonicalize,
    decode_csv_bytes,
    parse_questionnaire_csv,
    read_rows,
)

QUESTIONNAIRES = "id,name,description\n1,Intake,First visit\n"
QUESTIONS = (
    "id,text,type,options\n"
    '10,Any allergies?,multiple_choice,"[""Yes"", ""No""]"\n'
    "11,Anything else?,text,\n"
)
JUNCTIONS = "questionnaire_id,question_id,priority\n1,11,2\n1,10,1\n"


class TestReadRows:
    """Tests for raw row reading."""

    def test_headers_are_trimmed_and_lowercased(self):
        """Test that header names are normalized."""
        rows = read_rows(" ID , Name \n1, Intake \n", "Questionnaires")
        assert rows == [{"id": "1", "name": "Intake"}]

    def test_blank_rows_skipped(self):
        """Test that rows with only empty cells are ignored."""
        rows = read_rows("id,name\n,\n1,Intake\n\n", "Questionnaires")
        assert len(rows) == 1

    def test_empty_csv_fails(self):
        """Test that a file without data rows is rejected."""
        with pytest.raises(CsvImportError) as exc_info:
            read_rows("id,name\n", "Questionnaires")
        assert "Questionnaires CSV contains no records" in str(exc_info.value)

    def test_bytes_with_bom_decoded(self):
        """Test that a UTF-8 BOM does not end up in the first header."""
        rows = read_rows(b"\xef\xbb\xbfid,name\n1,Intake\n", "Questionnaires")
        assert rows[0]["id"] == "1"

    def test_latin1_fallback(self):
        """Test that non-UTF-8 uploads are still readable."""
        assert decode_csv_bytes("Café".encode("latin-1")) == "Café"


class TestCanonicalize:
    """Tests for alias resolution."""

    def test_alias_columns_resolved(self):
        """Test that alternate column names map onto canonical fields."""
        record = canonicalize(
            {"question_id": "5", "question_text": "Age?", "question_type": "text"},
            "question",
            "Questions",
            1,
        )
        assert record == {"id": "5", "text": "Age?", "type": "text", "options": None}

    def test_missing_required_field_names_aliases(self):
        """Test that the error names the field and every accepted column."""
        with pytest.raises(CsvImportError) as exc_info:
            canonicalize({"id": "5", "type": "text"}, "question", "Questions", 3)

        message = str(exc_info.value)
        assert "row 3" in message
        assert "'text'" in message
        assert "question_text" in message
        assert exc_info.value.details["field"] == "text"

    def test_csv_error_is_a_validation_error(self):
        """Test that parser errors map to HTTP 400."""
        assert issubclass(CsvImportError, ValidationFailedError)
        assert CsvImportError("bad").status_code == 400


class TestParseQuestionnaireCsv:
    """Tests for the full three-file parse."""

    def test_flat_format(self):
        """Test parsing flat-column CSVs into ordered questionnaires."""
        result = parse_questionnaire_csv(QUESTIONNAIRES, QUESTIONS, JUNCTIONS)

        assert result.warnings == []
        assert len(result.questionnaires) == 1
        questionnaire = result.questionnaires[0]
        assert questionnaire.id == 1
        assert questionnaire.name == "Intake"
        assert questionnaire.description == "First visit"
        assert [q.id for q in questionnaire.questions] == [10, 11]
        assert questionnaire.questions[0].type == QuestionType.MULTIPLE_CHOICE
        assert questionnaire.questions[0].options == ["Yes", "No"]
        assert questionnaire.questions[1].options is None

    def test_aliased_columns_and_comma_options(self):
        """Test older exports with prefixed column names and comma options."""
        result = parse_questionnaire_csv(
            "questionnaire_id,questionnaire_name\n2,Follow-up\n",
            "question_id,question_text,question_type,question_options\n20,Colour?,mcq,\"Red, Green\"\n",
            "questionnaireid,questionid,order\n2,20,1\n",
        )

        question = result.questionnaires[0].questions[0]
        assert question.type == QuestionType.MULTIPLE_CHOICE
        assert question.options == ["Red", "Green"]
        assert question.priority == 1

    def test_embedded_json_definition(self):
        """Test a question defined as JSON inside the question column."""
        questions = (
            "id,question\n"
            '30,"{""type"": ""multiple_choice"", ""question"": ""Pick one"", ""options"": [""A"", ""B""]}"\n'
        )
        result = parse_questionnaire_csv(
            QUESTIONNAIRES, questions, "questionnaire_id,question_id,priority\n1,30,0\n"
        )

        question = result.questionnaires[0].questions[0]
        assert question.text == "Pick one"
        assert question.type == QuestionType.MULTIPLE_CHOICE
        assert question.options == ["A", "B"]

    def test_malformed_embedded_json_falls_back_to_flat(self):
        """Test that invalid JSON in the question column is read as text."""
        questions = "id,question,type\n31,{not json,text\n"
        result = parse_questionnaire_csv(
            QUESTIONNAIRES, questions, "questionnaire_id,question_id\n1,31\n"
        )

        question = result.questionnaires[0].questions[0]
        assert question.text == "{not json"
        assert question.type == QuestionType.TEXT

    def test_unknown_question_kept_as_reference(self):
        """Test that a junction to an undefined question links by id."""
        junctions = JUNCTIONS + "1,99,3\n"
        result = parse_questionnaire_csv(QUESTIONNAIRES, QUESTIONS, junctions)

        questions = result.questionnaires[0].questions
        assert [q.id for q in questions] == [10, 11, 99]
        assert questions[2].is_reference
        assert any("question 99" in w for w in result.warnings)

    def test_unknown_questionnaire_skipped_with_warning(self):
        """Test that a junction to an undefined questionnaire is not fatal."""
        junctions = JUNCTIONS + "7,10,1\n"
        result = parse_questionnaire_csv(QUESTIONNAIRES, QUESTIONS, junctions)

        assert len(result.questionnaires) == 1
        assert len(result.questionnaires[0].questions) == 2
        assert any("questionnaire 7" in w for w in result.warnings)

    def test_duplicate_junction_skipped(self):
        """Test that linking the same question twice keeps the first row."""
        junctions = JUNCTIONS + "1,10,9\n"
        result = parse_questionnaire_csv(QUESTIONNAIRES, QUESTIONS, junctions)

        priorities = {q.id: q.priority for q in result.questionnaires[0].questions}
        assert priorities[10] == 1
        assert len(result.warnings) == 1

    def test_non_numeric_id_rejected(self):
        """Test that a non-numeric id names the file, row and field."""
        with pytest.raises(CsvImportError) as exc_info:
            parse_questionnaire_csv("id,name\nabc,Intake\n", QUESTIONS, JUNCTIONS)
        assert "Questionnaires CSV row 1" in str(exc_info.value)
        assert "non-numeric id" in str(exc_info.value)

    def test_multiple_choice_without_options_rejected(self):
        """Test that schema validation errors surface as CsvImportError."""
        questions = "id,text,type\n10,Pick,multiple_choice\n"
        with pytest.raises(CsvImportError) as exc_info:
            parse_questionnaire_csv(QUESTIONNAIRES, questions, "questionnaire_id,question_id\n1,10\n")
        assert "Questionnaire 1 is invalid" in str(exc_info.value)

    def test_empty_junctions_file_rejected(self):
        """Test that every one of the three files must have rows."""
        with pytest.raises(CsvImportError) as exc_info:
            parse_questionnaire_csv(QUESTIONNAIRES, QUESTIONS, "questionnaire_id,question_id\n")
        assert "Junctions CSV contains no records" in str(exc_info.value)

    def test_bytes_input(self):
        """Test that uploaded bytes parse the same as text."""
        result = parse_questionnaire_csv(
            QUESTIONNAIRES.encode(), QUESTIONS.encode(), JUNCTIONS.encode()
        )
        assert result.questionnaires[0].name == "Intake"
