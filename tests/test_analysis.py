"""Tests for analysis normalization and iteration record validation."""

import math

import pytest

from conftest import make_analysis
from reqforge.analysis import (
    ALL_FIELDS,
    build_structured_requirement,
    clamp_confidence,
    count_items,
    empty_analysis,
    normalize_analysis,
    validate_iteration_data,
)


class TestClampConfidence:
    @pytest.mark.parametrize("raw,expected", [
        (0.8, 0.8),
        (1.7, 1.0),
        (-0.2, 0.0),
        (0, 0.0),
        (1, 1.0),
        ("0.3", 0.3),
    ])
    def test_clamps_into_unit_range(self, raw, expected):
        assert clamp_confidence(raw) == expected

    @pytest.mark.parametrize("raw", [None, "high", True, math.nan, [0.5]])
    def test_non_numeric_defaults_to_half(self, raw):
        assert clamp_confidence(raw) == 0.5


class TestNormalizeAnalysis:
    def test_valid_analysis_passes_through(self, sample_analysis):
        assert normalize_analysis(sample_analysis) == sample_analysis

    def test_missing_fields_default_to_empty(self):
        result = normalize_analysis({"goals": ["Only goals"]})
        assert set(result) == set(ALL_FIELDS)
        assert result["goals"] == ["Only goals"]
        assert result["questions"] == []

    def test_rejects_non_mapping(self):
        with pytest.raises(ValueError, match="must be an object"):
            normalize_analysis(["goals"])

    def test_rejects_non_list_field(self):
        with pytest.raises(ValueError, match="'constraints' must be a list"):
            normalize_analysis({"constraints": "one constraint"})

    def test_strips_and_drops_blank_strings(self):
        result = normalize_analysis({"goals": ["  A  ", "", "   ", None, 42]})
        assert result["goals"] == ["A", "42"]

    def test_string_question_becomes_object(self):
        result = normalize_analysis({"questions": ["What is the SLA?"]})
        assert result["questions"] == [
            {"id": "q1", "text": "What is the SLA?", "priority": "important", "answer": None},
        ]

    def test_question_without_text_is_skipped(self):
        result = normalize_analysis({"questions": [{"id": "q1", "text": "  "}, {"text": "Real"}]})
        assert [q["text"] for q in result["questions"]] == ["Real"]

    def test_rejects_non_object_question(self):
        with pytest.raises(ValueError, match="Question 0"):
            normalize_analysis({"questions": [3]})

    @pytest.mark.parametrize("raw,expected", [
        ("critical", "critical"),
        ("HIGH", "critical"),
        ("medium", "important"),
        ("Nice to have", "nice-to-have"),
        ("low", "nice-to-have"),
        ("whenever", "important"),
        (None, "important"),
    ])
    def test_priority_aliases(self, raw, expected):
        result = normalize_analysis({"questions": [{"text": "Q", "priority": raw}]})
        assert result["questions"][0]["priority"] == expected

    def test_blank_answer_becomes_none(self):
        result = normalize_analysis({"questions": [{"text": "Q", "answer": "   "}, {"text": "R", "answer": " 24h "}]})
        assert result["questions"][0]["answer"] is None
        assert result["questions"][1]["answer"] == "24h"

    def test_generated_ids_use_prefix(self):
        result = normalize_analysis(
            {"questions": [{"text": "Q"}], "assumptions": [{"text": "A"}]},
            id_prefix="iter3_",
        )
        assert result["questions"][0]["id"] == "iter3_q1"
        assert result["assumptions"][0]["id"] == "iter3_a1"

    def test_duplicate_ids_get_suffix(self):
        result = normalize_analysis({"questions": [
            {"id": "q1", "text": "First"},
            {"id": "q1", "text": "Second"},
            {"id": "q1", "text": "Third"},
        ]})
        assert [q["id"] for q in result["questions"]] == ["q1", "q1_2", "q1_3"]

    def test_assumption_defaults(self):
        result = normalize_analysis({"assumptions": ["Users are logged in"]})
        assert result["assumptions"] == [
            {"id": "a1", "text": "Users are logged in", "confidence": 0.5, "accepted": True},
        ]

    def test_assumption_only_false_rejects(self):
        result = normalize_analysis({"assumptions": [
            {"text": "A", "accepted": False},
            {"text": "B", "accepted": None},
        ]})
        assert [a["accepted"] for a in result["assumptions"]] == [False, True]

    def test_does_not_mutate_input(self, sample_analysis):
        raw = make_analysis(goals=["  padded  "])
        normalize_analysis(raw)
        assert raw["goals"] == ["  padded  "]


class TestCountItems:
    def test_counts_only_list_fields(self, sample_analysis):
        assert count_items(sample_analysis) == 5

    def test_empty(self):
        assert count_items(empty_analysis()) == 0


class TestValidateIterationData:
    def _record(self, **overrides):
        record = {
            "id": "iter_1_1700000000000",
            "timestamp": "2025-01-01T00:00:00+00:00",
            "analysis": make_analysis(),
            "iteration_number": 1,
            "is_user_satisfied": False,
        }
        record.update(overrides)
        return record

    def test_valid_record(self):
        assert validate_iteration_data(self._record()) is True

    @pytest.mark.parametrize("field", ["id", "timestamp", "analysis"])
    def test_missing_required_field(self, field):
        record = self._record()
        del record[field]
        assert validate_iteration_data(record) is False

    def test_non_integer_number(self):
        assert validate_iteration_data(self._record(iteration_number="1")) is False

    def test_bool_number(self):
        assert validate_iteration_data(self._record(iteration_number=True)) is False

    def test_missing_satisfaction_flag(self):
        record = self._record()
        del record["is_user_satisfied"]
        assert validate_iteration_data(record) is False

    def test_non_bool_satisfaction_flag(self):
        assert validate_iteration_data(self._record(is_user_satisfied="yes")) is False

    def test_analysis_field_not_list(self):
        analysis = make_analysis()
        analysis["goals"] = "x"
        assert validate_iteration_data(self._record(analysis=analysis)) is False

    def test_analysis_missing_field(self):
        analysis = make_analysis()
        del analysis["assumptions"]
        assert validate_iteration_data(self._record(analysis=analysis)) is False

    def test_not_a_mapping(self):
        assert validate_iteration_data("iteration") is False


class TestBuildStructuredRequirement:
    def test_without_form_data(self):
        assert build_structured_requirement("Add login", None) == "Add login"

    def test_appends_details(self):
        result = build_structured_requirement("Add login", {
            "task_type": "feature",
            "components": ["auth.py", "views.py"],
            "outputs": "A session cookie",
        })
        assert result == (
            "Add login\n\nStructured Details:\n"
            "Task Type: feature\n"
            "Components/Files Affected: auth.py, views.py\n"
            "Expected Outputs: A session cookie"
        )

    def test_empty_form_fields_are_ignored(self):
        assert build_structured_requirement("Add login", {"goal": "", "components": []}) == "Add login"

    def test_form_only(self):
        assert build_structured_requirement("", {"goal": "Faster builds"}) == "Goal: Faster builds"
