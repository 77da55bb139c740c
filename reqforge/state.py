"""Typed shapes for the analysis being refined and its iteration history.

Everything here is a plain dict at runtime so it serializes to JSON as-is.
"""

from typing import Literal, TypedDict

Priority = Literal["critical", "important", "nice-to-have"]


class Question(TypedDict):
    id: str  # Unique within one analysis. Stable across edits.
    text: str
    priority: Priority
    answer: str | None


class Assumption(TypedDict):
    id: str  # Unique within one analysis.
    text: str
    confidence: float  # Always within [0.0, 1.0].
    accepted: bool


class Analysis(TypedDict):
    goals: list[str]
    constraints: list[str]
    dependencies: list[str]
    edge_cases: list[str]
    acceptance_criteria: list[str]
    questions: list[Question]
    assumptions: list[Assumption]


class _IterationRequired(TypedDict):
    id: str
    timestamp: str  # ISO-8601, UTC.
    analysis: Analysis
    iteration_number: int  # 1-based. Never reassigned.
    is_user_satisfied: bool  # One-way: False -> True.


class Iteration(_IterationRequired, total=False):
    user_edits: Analysis  # Full overlay written by save_current_iteration.
    user_feedback: str  # Guidance that produced this iteration.


class RequirementFormData(TypedDict, total=False):
    task_type: str
    goal: str
    components: list[str]
    inputs: str
    outputs: str
    reference_urls: list[str]
    reference_files: list[str]  # File names only.
    requirement: str
    context: str


class RefinementRequest(TypedDict, total=False):
    requirement: str
    previous_analysis: Analysis
    user_edits: Analysis | None
    user_feedback: str | None
    iteration_number: int
    context: str
    context_summary: str | None
    form_data: RequirementFormData | None


class RefinementState(TypedDict, total=False):
    """State passed through the analysis graph for a single LLM round."""

    requirement: str  # Raw requirement text. Immutable after init.
    structured_requirement: str  # Requirement plus form details.
    context: str  # Supplemental context, summarized when oversized.
    form_data: RequirementFormData | None
    previous_analysis: Analysis | None  # None for the initial analysis.
    user_edits: Analysis | None
    user_feedback: str | None
    iteration_number: int
    analysis: Analysis  # Output of the analyst node.
    repair_attempts: int
