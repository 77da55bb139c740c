"""Structural diffs between analysis snapshots and history metrics.

Matching is exact string equality (case- and whitespace-sensitive). A list
item whose text changed is reported as one removed plus one added item; there
is no item-level "modified". Questions and assumptions are matched by text,
not id.
"""

from typing import Literal, TypedDict

from reqforge.analysis import LIST_FIELDS, count_items, satisfied_count
from reqforge.state import Analysis, Iteration

DiffKind = Literal["added", "removed", "unchanged"]
ChangeType = Literal["added", "removed", "modified", "unchanged"]
Trend = Literal["increasing", "decreasing", "stable"]

TREND_MIN_ITERATIONS = 4
TREND_UP_RATIO = 1.1
TREND_DOWN_RATIO = 0.9


class DiffEntry(TypedDict):
    text: str
    kind: DiffKind


class FieldComparison(TypedDict):
    field: str
    old_value: list[str]
    new_value: list[str]
    change_type: ChangeType
    diff: list[DiffEntry]
    added: int
    removed: int


class CountComparison(TypedDict):
    added: int
    removed: int
    total: int


class IterationComparison(TypedDict):
    goals: FieldComparison
    constraints: FieldComparison
    dependencies: FieldComparison
    edge_cases: FieldComparison
    acceptance_criteria: FieldComparison
    questions: CountComparison
    assumptions: CountComparison


class IterationMetrics(TypedDict):
    total_iterations: int
    satisfied_iterations: int
    average_items_per_iteration: float
    trend: Trend


def diff_lists(before: list[str], after: list[str]) -> list[DiffEntry]:
    """Classify every item of ``before`` and ``after``.

    Output order: removed items in ``before`` order, then the items of
    ``after`` in ``after`` order, each tagged added or unchanged. Repeated
    values are reported once, at their first position.
    """
    before_set = set(before)
    after_set = set(after)

    removed: list[DiffEntry] = []
    for item in dict.fromkeys(before):
        if item not in after_set:
            removed.append({"text": item, "kind": "removed"})

    rest: list[DiffEntry] = []
    for item in dict.fromkeys(after):
        rest.append({"text": item, "kind": "unchanged" if item in before_set else "added"})

    return removed + rest


def _change_type(added: int, removed: int) -> ChangeType:
    if added and removed:
        return "modified"
    if added:
        return "added"
    if removed:
        return "removed"
    return "unchanged"


def _compare_field(before: list[str], after: list[str], field: str) -> FieldComparison:
    diff = diff_lists(before, after)
    added = sum(1 for entry in diff if entry["kind"] == "added")
    removed = sum(1 for entry in diff if entry["kind"] == "removed")
    return {
        "field": field,
        "old_value": list(before),
        "new_value": list(after),
        "change_type": _change_type(added, removed),
        "diff": diff,
        "added": added,
        "removed": removed,
    }


def _compare_by_text(before: list[dict], after: list[dict]) -> CountComparison:
    before_texts = {item["text"] for item in before}
    after_texts = {item["text"] for item in after}
    return {
        "added": sum(1 for item in after if item["text"] not in before_texts),
        "removed": sum(1 for item in before if item["text"] not in after_texts),
        "total": len(after),
    }


def compare_analyses(before: Analysis, after: Analysis) -> IterationComparison:
    """Per-field diff summary between two analyses."""
    comparison = {field: _compare_field(before[field], after[field], field) for field in LIST_FIELDS}
    comparison["questions"] = _compare_by_text(before["questions"], after["questions"])
    comparison["assumptions"] = _compare_by_text(before["assumptions"], after["assumptions"])
    return comparison


def get_iteration_summary(iteration: Iteration) -> str:
    """One-line description, e.g. '12 analysis items, 3 questions, 2 assumptions (1 accepted)'."""
    analysis = iteration["analysis"]
    total_items = count_items(analysis)

    questions = analysis["questions"]
    questions_summary = f"{len(questions)} questions" if questions else "no questions"

    assumptions = analysis["assumptions"]
    if assumptions:
        accepted = sum(1 for a in assumptions if a["accepted"])
        assumptions_summary = f"{len(assumptions)} assumptions ({accepted} accepted)"
    else:
        assumptions_summary = "no assumptions"

    return f"{total_items} analysis items, {questions_summary}, {assumptions_summary}"


def _mean(values: list[int]) -> float:
    return sum(values) / len(values)


def calculate_iteration_metrics(iterations: list[Iteration]) -> IterationMetrics:
    """Aggregate size metrics over a history.

    trend compares the mean item count of the second half against the first
    half (midpoint = len // 2); fewer than four iterations are always stable.
    """
    if not iterations:
        return {
            "total_iterations": 0,
            "satisfied_iterations": 0,
            "average_items_per_iteration": 0.0,
            "trend": "stable",
        }

    item_counts = [count_items(it["analysis"]) for it in iterations]

    trend: Trend = "stable"
    if len(item_counts) >= TREND_MIN_ITERATIONS:
        midpoint = len(item_counts) // 2
        first_half = _mean(item_counts[:midpoint])
        second_half = _mean(item_counts[midpoint:])
        if second_half > first_half * TREND_UP_RATIO:
            trend = "increasing"
        elif second_half < first_half * TREND_DOWN_RATIO:
            trend = "decreasing"

    return {
        "total_iterations": len(iterations),
        "satisfied_iterations": satisfied_count(iterations),
        "average_items_per_iteration": round(_mean(item_counts), 1),
        "trend": trend,
    }
