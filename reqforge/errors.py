"""Failure surface of the refinement collaborator.

Every failure that leaves an LLM call is a RefinementError carrying an
ErrorKind. The engine treats them all as "refinement failed"; the kind is
kept for the caller's logging and retry UI.
"""

import asyncio
import json
from enum import Enum

import httpx


class ErrorKind(str, Enum):
    RATE_LIMITED = "rate_limited"
    UNAUTHORIZED = "unauthorized"
    FORBIDDEN = "forbidden"
    NETWORK_ERROR = "network_error"
    PARSE_ERROR = "parse_error"
    TIMEOUT = "timeout"
    UNKNOWN = "unknown"


_STATUS_KINDS = {
    429: ErrorKind.RATE_LIMITED,
    401: ErrorKind.UNAUTHORIZED,
    403: ErrorKind.FORBIDDEN,
}


class RefinementError(Exception):
    """An analysis or refinement call failed."""

    def __init__(self, message: str, kind: ErrorKind = ErrorKind.UNKNOWN, provider: str | None = None):
        super().__init__(message)
        self.kind = kind
        self.provider = provider

    def __repr__(self) -> str:
        return f"RefinementError({str(self)!r}, kind={self.kind.value}, provider={self.provider})"


def _status_code(exc: BaseException) -> int | None:
    """Dig an HTTP status code out of httpx, OpenAI or Google client exceptions."""
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code
    for attr in ("status_code", "code", "status"):
        value = getattr(exc, attr, None)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
    return None


def classify_error(exc: BaseException, provider: str | None = None) -> RefinementError:
    """Translate any exception raised by a provider call into a RefinementError."""
    if isinstance(exc, RefinementError):
        if exc.provider is None:
            exc.provider = provider
        return exc

    message = str(exc) or exc.__class__.__name__

    if isinstance(exc, (asyncio.TimeoutError, httpx.TimeoutException)):
        return RefinementError(f"Request timed out: {message}", ErrorKind.TIMEOUT, provider)
    if isinstance(exc, (httpx.ConnectError, httpx.NetworkError, ConnectionError)):
        return RefinementError(
            "Network error. Please check your connection.", ErrorKind.NETWORK_ERROR, provider
        )
    if isinstance(exc, json.JSONDecodeError):
        return RefinementError(f"Invalid JSON response: {message}", ErrorKind.PARSE_ERROR, provider)

    status = _status_code(exc)
    if status in _STATUS_KINDS:
        return RefinementError(message, _STATUS_KINDS[status], provider)

    lowered = message.lower()
    if "insufficient_quota" in lowered or "resource_exhausted" in lowered or "quota" in lowered:
        return RefinementError(message, ErrorKind.RATE_LIMITED, provider)
    if "network" in lowered:
        return RefinementError(message, ErrorKind.NETWORK_ERROR, provider)

    return RefinementError(message, ErrorKind.UNKNOWN, provider)
