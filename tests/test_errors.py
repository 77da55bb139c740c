"""Tests for mapping provider exceptions onto ErrorKind."""

import asyncio
import json

import httpx
import pytest

from reqforge.errors import ErrorKind, RefinementError, classify_error


def _status_error(code):
    request = httpx.Request("POST", "https://api.example.com/v1/chat")
    response = httpx.Response(code, request=request)
    return httpx.HTTPStatusError(f"HTTP {code}", request=request, response=response)


class ClientError(Exception):
    """Shape of SDK errors that carry a status_code attribute."""

    def __init__(self, message, status_code):
        super().__init__(message)
        self.status_code = status_code


class TestClassifyError:
    @pytest.mark.parametrize("code,kind", [
        (429, ErrorKind.RATE_LIMITED),
        (401, ErrorKind.UNAUTHORIZED),
        (403, ErrorKind.FORBIDDEN),
        (500, ErrorKind.UNKNOWN),
    ])
    def test_http_status(self, code, kind):
        assert classify_error(_status_error(code)).kind is kind

    def test_status_code_attribute(self):
        assert classify_error(ClientError("denied", 401)).kind is ErrorKind.UNAUTHORIZED

    def test_quota_message_is_rate_limited(self):
        error = classify_error(RuntimeError("429 RESOURCE_EXHAUSTED: quota exceeded"))
        assert error.kind is ErrorKind.RATE_LIMITED

    def test_connect_error(self):
        error = classify_error(httpx.ConnectError("refused"), provider="openai")
        assert error.kind is ErrorKind.NETWORK_ERROR
        assert error.provider == "openai"
        assert "check your connection" in str(error)

    def test_builtin_connection_error(self):
        assert classify_error(ConnectionResetError()).kind is ErrorKind.NETWORK_ERROR

    def test_timeouts(self):
        assert classify_error(asyncio.TimeoutError()).kind is ErrorKind.TIMEOUT
        assert classify_error(httpx.ReadTimeout("slow")).kind is ErrorKind.TIMEOUT

    def test_json_decode_error(self):
        with pytest.raises(json.JSONDecodeError) as exc_info:
            json.loads("{oops")
        assert classify_error(exc_info.value).kind is ErrorKind.PARSE_ERROR

    def test_unknown(self):
        error = classify_error(RuntimeError("something odd"))
        assert error.kind is ErrorKind.UNKNOWN
        assert str(error) == "something odd"

    def test_empty_message_uses_class_name(self):
        assert str(classify_error(RuntimeError())) == "RuntimeError"

    def test_refinement_error_passes_through(self):
        original = RefinementError("bad", ErrorKind.PARSE_ERROR)
        result = classify_error(original, provider="gemini")
        assert result is original
        assert result.provider == "gemini"

    def test_existing_provider_is_kept(self):
        original = RefinementError("bad", ErrorKind.PARSE_ERROR, provider="openai")
        assert classify_error(original, provider="gemini").provider == "openai"

    def test_repr_includes_kind(self):
        error = RefinementError("nope", ErrorKind.FORBIDDEN, "gemini")
        assert repr(error) == "RefinementError('nope', kind=forbidden, provider=gemini)"
