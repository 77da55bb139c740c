import pytest

from reqforge.utils.validator import validate_context, validate_input


class TestValidateInput:
    def test_valid_input(self):
        assert validate_input("Build a password reset flow") == "Build a password reset flow"

    def test_strips_whitespace(self):
        assert validate_input("  Build a password reset flow  ") == "Build a password reset flow"

    def test_empty_string(self):
        with pytest.raises(ValueError, match="non-empty"):
            validate_input("")

    def test_whitespace_only(self):
        with pytest.raises(ValueError, match="non-empty"):
            validate_input("   \n\t  ")

    def test_none_input(self):
        with pytest.raises(ValueError, match="non-empty"):
            validate_input(None)

    def test_non_string_input(self):
        with pytest.raises(ValueError, match="non-empty"):
            validate_input(123)

    def test_too_short(self):
        with pytest.raises(ValueError, match="at least 10"):
            validate_input("  short  ")

    def test_exactly_minimum(self):
        assert validate_input("0123456789") == "0123456789"

    def test_exceeds_max_length(self):
        with pytest.raises(ValueError, match="200k"):
            validate_input("x" * 200_001)

    def test_at_max_length(self):
        text = "x" * 200_000
        assert validate_input(text) == text


class TestValidateContext:
    def test_none_is_empty(self):
        assert validate_context(None) == ""

    def test_strips(self):
        assert validate_context("  existing REST API  ") == "existing REST API"

    def test_non_string(self):
        with pytest.raises(ValueError, match="string"):
            validate_context(["docs"])

    def test_too_long(self):
        with pytest.raises(ValueError, match="200k"):
            validate_context("x" * 200_001)
