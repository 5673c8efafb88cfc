"""Unit tests for answer-parsing helpers and domain validation."""

import pytest

from core.domain import (
    ChatMessage, CompletionOptions, CompletionRequest, ErrorKind, GatewayResult, Role, as_vector,
)
from core.exceptions import (
    DimensionMismatchError, GatewayError, InvalidInputError, StreamInterruptedError,
)
from utils.helpers import extract_section, parse_json_object, split_key_points, truncate


class TestExtractSection:

    def test_reads_to_end_of_line(self):
        content = "SUMMARY: short one\nSENTIMENT: positive"
        assert extract_section(content, "SUMMARY:") == "short one"
        assert extract_section(content, "SENTIMENT:") == "positive"

    def test_missing_marker(self):
        assert extract_section("nothing here", "SUMMARY:") == ""


class TestSplitKeyPoints:

    def test_strips_brackets_and_blanks(self):
        assert split_key_points("[a] | [b]|| c ") == ["a", "b", "c"]

    def test_empty(self):
        assert split_key_points("") == []


class TestParseJsonObject:

    @pytest.mark.parametrize("text", [
        '{"a": 1}',
        '  {"a": 1}\n',
        '```json\n{"a": 1}\n```',
        '```\n{"a": 1}\n```',
    ])
    def test_objects(self, text):
        assert parse_json_object(text) == {"a": 1}

    @pytest.mark.parametrize("text", ["[1, 2]", "not json", '"a string"', ""])
    def test_non_objects(self, text):
        assert parse_json_object(text) is None


def test_truncate():
    assert truncate("abcdef", 3) == "abc..."
    assert truncate("abc", 3) == "abc"


class TestDomainValidation:

    def test_message_role_coerced(self):
        assert ChatMessage("user", "hi").role == Role.USER

    def test_unknown_role(self):
        with pytest.raises(InvalidInputError):
            ChatMessage("robot", "hi")

    def test_blank_content(self):
        with pytest.raises(InvalidInputError):
            ChatMessage(Role.USER, "  ")

    def test_request_needs_messages(self):
        with pytest.raises(InvalidInputError):
            CompletionRequest(messages=())

    def test_from_prompt_without_system(self):
        request = CompletionRequest.from_prompt("hi")
        assert request.message_dicts() == [{"role": "user", "content": "hi"}]

    @pytest.mark.parametrize("kwargs", [
        {"temperature": -0.1}, {"temperature": 2.5}, {"max_tokens": 0}, {"top_p": 0.0}, {"top_p": 1.5},
    ])
    def test_option_ranges(self, kwargs):
        with pytest.raises(InvalidInputError):
            CompletionOptions(**kwargs)

    def test_as_vector(self):
        assert as_vector([1, 2]) == (1.0, 2.0)
        with pytest.raises(InvalidInputError):
            as_vector([float("inf")])
        with pytest.raises(InvalidInputError):
            as_vector(["x"])


class TestErrors:

    def test_kinds(self):
        assert DimensionMismatchError(3, 4).kind == ErrorKind.DIMENSION_MISMATCH
        assert StreamInterruptedError("cut", partial_text="ab").kind == ErrorKind.BACKEND_UNAVAILABLE

    def test_str_includes_kind(self):
        assert str(InvalidInputError("empty")) == "[InvalidInput] empty"

    def test_result_unwrap(self):
        assert GatewayResult.success(5).unwrap() == 5
        failed = GatewayResult.failure(ErrorKind.TIMEOUT, "late", partial_text=None)
        with pytest.raises(GatewayError) as exc_info:
            failed.unwrap()
        assert exc_info.value.kind == ErrorKind.TIMEOUT
