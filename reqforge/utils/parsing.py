"""Shared parsing and LLM utilities for provider responses."""

import json
import re
import sys

import httpx
from tenacity import AsyncRetrying, retry_if_exception, stop_after_attempt, wait_exponential

_FENCE_RE = re.compile(r"```(?:json)?\s*\n?(.*?)\n?\s*```", re.DOTALL)
_OBJECT_RE = re.compile(r"\{.*\}", re.DOTALL)

TRANSIENT_STATUS_CODES = (429, 500, 502, 503)


def strip_fences(text: str) -> str:
    """Strip markdown code fences from LLM output if present."""
    match = _FENCE_RE.search(text)
    return match.group(1).strip() if match else text.strip()


def extract_json_object(text: str) -> dict:
    """Parse a JSON object from LLM output.

    Tries the fence-stripped text first, then the outermost ``{...}`` block.
    Raises json.JSONDecodeError if neither parses, ValueError if the payload
    is valid JSON but not an object.
    """
    content = strip_fences(text)
    try:
        data = json.loads(content)
    except json.JSONDecodeError:
        match = _OBJECT_RE.search(content)
        if not match:
            raise
        data = json.loads(match.group(0))

    if not isinstance(data, dict):
        raise ValueError(f"Expected a JSON object, got {type(data).__name__}.")
    return data


def _is_transient(exc: BaseException) -> bool:
    """Return True if the exception is a transient HTTP/network error worth retrying."""
    if isinstance(exc, httpx.TimeoutException):
        return True
    if isinstance(exc, httpx.ConnectError):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code in TRANSIENT_STATUS_CODES
    # OpenAI / Google SDK errors expose the status directly
    status = getattr(exc, "status_code", None)
    if isinstance(status, int):
        return status in TRANSIENT_STATUS_CODES and "insufficient_quota" not in str(exc)
    return False


async def invoke_with_retry(llm, messages, max_retries: int = 3):
    """Await llm.ainvoke(messages) with exponential backoff on transient errors.

    Retries on HTTP 429/500/502/503, connection errors, and timeouts.
    Non-transient errors (auth failures, quota, schema issues) are raised immediately.
    """
    from reqforge.config import get_config

    config = get_config()
    retries = config.get("llm_max_retries", max_retries)

    async for attempt in AsyncRetrying(
        stop=stop_after_attempt(retries + 1),  # +1 because first attempt counts
        wait=wait_exponential(multiplier=1, min=2, max=16),
        retry=retry_if_exception(_is_transient),
        reraise=True,
        before_sleep=lambda state: print(
            f"[RF] Transient error: {state.outcome.exception()!r}. "
            f"Retrying in {state.next_action.sleep:.0f}s "
            f"(attempt {state.attempt_number}/{retries})...",
            file=sys.stderr,
        ),
    ):
        with attempt:
            return await llm.ainvoke(messages)
