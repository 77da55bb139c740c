"""Shared fixtures for the ReqForge test suite."""

import asyncio
from unittest.mock import patch

import pytest

from reqforge.store import InMemoryKeyValueStore, IterationStore


def make_analysis(goals=None, **overrides):
    """Minimal valid Analysis with optional overrides."""
    analysis = {
        "goals": list(goals) if goals is not None else ["Users can reset their password"],
        "constraints": ["Must use the existing SMTP relay"],
        "dependencies": ["Email service"],
        "edge_cases": ["Expired reset token"],
        "acceptance_criteria": ["Given a valid token, when the user submits, then the password changes"],
        "questions": [
            {"id": "q1", "text": "How long should tokens live?", "priority": "critical", "answer": None},
        ],
        "assumptions": [
            {"id": "a1", "text": "Users have a verified email", "confidence": 0.8, "accepted": True},
        ],
    }
    analysis.update(overrides)
    return analysis


class FakeRefiner:
    """Scripted refinement collaborator.

    Each call pops the next scripted outcome: an Analysis dict is returned,
    an exception instance is raised. When ``gate`` is set the call waits on
    it first, so tests can hold a refinement in flight.
    """

    def __init__(self, outcomes=None, gate: asyncio.Event | None = None):
        self.outcomes = list(outcomes or [])
        self.gate = gate
        self.requests = []

    async def __call__(self, request):
        self.requests.append(request)
        if self.gate is not None:
            await self.gate.wait()
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


class FakeProvider:
    """LLMProvider stand-in with scripted structured and text responses."""

    name = "fake"

    def __init__(self, structured=None, text=None):
        self.structured = list(structured or [])
        self.text = list(text or [])
        self.prompts = []

    async def generate_response(self, prompt):
        self.prompts.append(prompt)
        outcome = self.text.pop(0)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    async def generate_structured_response(self, prompt, schema=None):
        self.prompts.append(prompt)
        outcome = self.structured.pop(0)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


@pytest.fixture
def sample_analysis():
    return make_analysis()


@pytest.fixture
def kv():
    return InMemoryKeyValueStore()


@pytest.fixture
def store(kv):
    return IterationStore(kv)


@pytest.fixture
def mock_config():
    """Patch the config singleton with test-friendly values."""
    test_config = {
        "provider": "gemini",
        "gemini_model": "gemini-test",
        "openai_model": "gpt-test",
        "llm_max_retries": 2,
        "refinement_timeout_seconds": 5,
        "context_summary_threshold": 100,
        "rate_limit_max_requests": 10,
        "rate_limit_window_seconds": 60,
        "prompt_version": "test",
        "prompt_mode": "stable",
    }
    with patch("reqforge.config._config", test_config):
        yield test_config
