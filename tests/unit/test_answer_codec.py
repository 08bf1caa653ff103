"""Unit tests for stored answer encoding."""

from intake_api.services.responses import decode_answer, encode_answer


class TestEncodeAnswer:
    """Tests for encode_answer."""

    def test_multiple_choice_list_is_json(self):
        assert encode_answer("multiple_choice", ["Red", "Blue"]) == '["Red", "Blue"]'

    def test_text_list_is_joined(self):
        assert encode_answer("text", ["a", "b"]) == "a, b"

    def test_scalars_stringified(self):
        assert encode_answer("text", 42) == "42"
        assert encode_answer("text", True) == "True"
        assert encode_answer("multiple_choice", "Red") == "Red"

    def test_none_is_empty(self):
        assert encode_answer("text", None) == ""


class TestDecodeAnswer:
    """Tests for decode_answer."""

    def test_multiple_choice_round_trip_preserves_order(self):
        """Test that stored multiple-choice arrays decode in their original order."""
        answer = ["Medication", "Food", "Pollen"]
        assert decode_answer("multiple_choice", encode_answer("multiple_choice", answer)) == answer

    def test_unparsable_value_returned_as_string(self):
        """Test that legacy non-JSON answers do not raise."""
        assert decode_answer("multiple_choice", "Food, Pollen") == "Food, Pollen"

    def test_json_non_list_returned_as_string(self):
        assert decode_answer("multiple_choice", '"Food"') == '"Food"'

    def test_non_string_items_become_strings(self):
        """Test that legacy arrays of numbers decode to a list of strings."""
        assert decode_answer("multiple_choice", "[1, 2]") == ["1", "2"]
        assert decode_answer("multiple_choice", '["Food", 3.5, true]') == ["Food", "3.5", "true"]

    def test_text_never_decoded(self):
        assert decode_answer("text", '["a"]') == '["a"]'

    def test_none_passthrough(self):
        assert decode_answer("multiple_choice", None) is None
