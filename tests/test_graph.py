"""Tests for the analysis graph: routing, prompts and the analyst node."""

import asyncio
from unittest.mock import patch

import pytest

from conftest import FakeProvider, make_analysis
from reqforge.agents.analyst import REPAIR_MESSAGE, analyst_node, build_prompt, summarize_node
from reqforge.errors import ErrorKind, RefinementError
from reqforge.graph import route_after_prepare, run_analysis


def _state(**overrides):
    state = {
        "requirement": "Add a password reset flow to the web app",
        "context": "",
        "form_data": None,
        "previous_analysis": None,
        "iteration_number": 1,
    }
    state.update(overrides)
    return state


def _config(provider):
    return {"configurable": {"provider": provider}}


class TestRouteAfterPrepare:
    @patch("reqforge.graph.get_config", return_value={"context_summary_threshold": 10})
    def test_short_context_goes_to_analyst(self, _mock_gc):
        assert route_after_prepare(_state(context="short")) == "analyst"

    @patch("reqforge.graph.get_config", return_value={"context_summary_threshold": 10})
    def test_long_context_is_summarized(self, _mock_gc):
        assert route_after_prepare(_state(context="x" * 11)) == "summarize"

    @patch("reqforge.graph.get_config", return_value={})
    def test_default_threshold(self, _mock_gc):
        assert route_after_prepare(_state(context="x" * 16000)) == "analyst"
        assert route_after_prepare(_state(context="x" * 16001)) == "summarize"


class TestBuildPrompt:
    def test_initial_prompt(self, mock_config):
        prompt = build_prompt(_state(context="Flask app"))
        assert "[TASK: ANALYSIS]" in prompt
        assert "REQUIREMENT:\nAdd a password reset flow" in prompt
        assert "CONTEXT:\nFlask app" in prompt
        assert "Version: test (stable)" in prompt

    def test_initial_prompt_without_context(self, mock_config):
        assert "CONTEXT:\n(none)" in build_prompt(_state())

    def test_iteration_prompt(self, mock_config, sample_analysis):
        prompt = build_prompt(_state(
            previous_analysis=sample_analysis,
            user_edits=make_analysis(goals=["Edited goal"]),
            user_feedback="Cover rate limiting",
            iteration_number=3,
        ))
        assert "ITERATION 3" in prompt
        assert "ORIGINAL REQUIREMENT:" in prompt
        assert "PREVIOUS ANALYSIS (Iteration 2):" in prompt
        assert "How long should tokens live? (Unanswered)" in prompt
        assert "Users have a verified email (Accepted, Confidence: 80%)" in prompt
        assert "USER EDITS:\nGoals: Edited goal" in prompt
        assert "USER FEEDBACK:\nCover rate limiting" in prompt

    def test_iteration_prompt_omits_empty_sections(self, mock_config, sample_analysis):
        prompt = build_prompt(_state(previous_analysis=sample_analysis, iteration_number=2))
        assert "USER EDITS" not in prompt
        assert "USER FEEDBACK" not in prompt

    def test_structured_requirement_preferred(self, mock_config):
        prompt = build_prompt(_state(structured_requirement="Add reset\n\nStructured Details:\nGoal: Fewer tickets"))
        assert "Structured Details:\nGoal: Fewer tickets" in prompt


class TestAnalystNode:
    def test_returns_normalized_analysis(self, mock_config):
        provider = FakeProvider(structured=[{"goals": [" G "], "questions": ["Why?"]}])
        result = asyncio.run(analyst_node(_state(), _config(provider)))

        assert result["repair_attempts"] == 0
        assert result["analysis"]["goals"] == ["G"]
        assert result["analysis"]["questions"][0]["id"] == "q1"
        assert result["analysis"]["constraints"] == []

    def test_iteration_ids_are_prefixed(self, mock_config, sample_analysis):
        provider = FakeProvider(structured=[{"questions": [{"text": "New?"}]}])
        state = _state(previous_analysis=sample_analysis, iteration_number=2)
        result = asyncio.run(analyst_node(state, _config(provider)))
        assert result["analysis"]["questions"][0]["id"] == "iter2_q1"

    def test_repairs_once_on_parse_error(self, mock_config, sample_analysis):
        provider = FakeProvider(structured=[
            RefinementError("bad json", ErrorKind.PARSE_ERROR),
            sample_analysis,
        ])
        result = asyncio.run(analyst_node(_state(), _config(provider)))

        assert result["repair_attempts"] == 1
        assert result["analysis"] == sample_analysis
        assert provider.prompts[1].endswith(REPAIR_MESSAGE)

    def test_repairs_once_on_schema_mismatch(self, mock_config, sample_analysis):
        provider = FakeProvider(structured=[{"goals": "not a list"}, sample_analysis])
        result = asyncio.run(analyst_node(_state(), _config(provider)))
        assert result["repair_attempts"] == 1

    def test_second_schema_failure_is_parse_error(self, mock_config):
        provider = FakeProvider(structured=[{"goals": "nope"}, {"goals": "still nope"}])
        with pytest.raises(RefinementError) as exc_info:
            asyncio.run(analyst_node(_state(), _config(provider)))
        assert exc_info.value.kind is ErrorKind.PARSE_ERROR

    def test_non_parse_errors_are_not_retried(self, mock_config):
        provider = FakeProvider(structured=[RefinementError("denied", ErrorKind.UNAUTHORIZED)])
        with pytest.raises(RefinementError) as exc_info:
            asyncio.run(analyst_node(_state(), _config(provider)))
        assert exc_info.value.kind is ErrorKind.UNAUTHORIZED
        assert len(provider.prompts) == 1

    def test_logs_telemetry(self, mock_config, sample_analysis, capsys):
        provider = FakeProvider(structured=[sample_analysis])
        asyncio.run(analyst_node(_state(previous_analysis=sample_analysis, iteration_number=2), _config(provider)))
        err = capsys.readouterr().err
        assert "telemetry prompt_usage" in err
        assert '"template": "analysis_iteration_2"' in err


class TestSummarizeNode:
    def test_replaces_context(self, mock_config):
        provider = FakeProvider(text=["Short brief"])
        result = asyncio.run(summarize_node(_state(context="long docs"), _config(provider)))
        assert result == {"context": "Short brief"}

    def test_failure_keeps_raw_context(self, mock_config):
        provider = FakeProvider(text=[RefinementError("down", ErrorKind.NETWORK_ERROR)])
        result = asyncio.run(summarize_node(_state(context="long docs"), _config(provider)))
        assert result == {"context": "long docs"}


class TestRunAnalysis:
    def test_runs_analyst_only_for_short_context(self, mock_config, sample_analysis):
        provider = FakeProvider(structured=[sample_analysis])
        analysis = asyncio.run(run_analysis(_state(context="short"), provider))
        assert analysis == sample_analysis
        assert len(provider.prompts) == 1

    def test_summarizes_long_context_first(self, mock_config, sample_analysis):
        provider = FakeProvider(structured=[sample_analysis], text=["Condensed brief"])
        asyncio.run(run_analysis(_state(context="x" * 101), provider))

        assert len(provider.prompts) == 2
        assert "INPUT CONTEXT:" in provider.prompts[0]
        assert "CONTEXT:\nCondensed brief" in provider.prompts[1]

    def test_form_data_reaches_prompt(self, mock_config, sample_analysis):
        provider = FakeProvider(structured=[sample_analysis])
        asyncio.run(run_analysis(_state(form_data={"task_type": "feature"}), provider))
        assert "Structured Details:\nTask Type: feature" in provider.prompts[0]
