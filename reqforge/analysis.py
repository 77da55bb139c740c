"""Normalizes analyses coming from the LLM, the user, or disk.

Every external analysis goes through normalize_analysis before it is stored,
so downstream code can rely on all seven fields being present, ids being
unique per collection and confidences being clamped to [0, 1].
"""

from collections.abc import Mapping

from reqforge.state import Analysis, Assumption, Iteration, Question, RequirementFormData

LIST_FIELDS = ("goals", "constraints", "dependencies", "edge_cases", "acceptance_criteria")
ALL_FIELDS = LIST_FIELDS + ("questions", "assumptions")

VALID_PRIORITIES = {"critical", "important", "nice-to-have"}
DEFAULT_PRIORITY = "important"
DEFAULT_CONFIDENCE = 0.5

# Map common LLM priority deviations to valid priorities
_PRIORITY_ALIASES = {
    "high": "critical",
    "blocker": "critical",
    "must": "critical",
    "medium": "important",
    "normal": "important",
    "should": "important",
    "low": "nice-to-have",
    "nice to have": "nice-to-have",
    "nice_to_have": "nice-to-have",
    "nicetohave": "nice-to-have",
    "optional": "nice-to-have",
    "could": "nice-to-have",
}


def empty_analysis() -> Analysis:
    """Return an analysis with every field present and empty."""
    return {field: [] for field in ALL_FIELDS}


def _require_list(raw: Mapping, field: str) -> list:
    value = raw.get(field)
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValueError(f"Analysis field '{field}' must be a list, got {type(value).__name__}.")
    return value


def _coerce_strings(items: list) -> list[str]:
    result = []
    for item in items:
        if item is None:
            continue
        text = str(item).strip()
        if text:
            result.append(text)
    return result


def _normalize_priority(value) -> str:
    if not isinstance(value, str):
        return DEFAULT_PRIORITY
    lowered = value.strip().lower()
    if lowered in VALID_PRIORITIES:
        return lowered
    return _PRIORITY_ALIASES.get(lowered, DEFAULT_PRIORITY)


def clamp_confidence(value) -> float:
    """Clamp a confidence to [0, 1]; missing or non-numeric values become 0.5."""
    if isinstance(value, bool):
        return DEFAULT_CONFIDENCE
    try:
        number = float(value)
    except (TypeError, ValueError):
        return DEFAULT_CONFIDENCE
    if number != number:  # NaN
        return DEFAULT_CONFIDENCE
    return max(0.0, min(1.0, number))


def _unique_id(candidate: str, seen: set[str]) -> str:
    if candidate not in seen:
        seen.add(candidate)
        return candidate
    suffix = 2
    while f"{candidate}_{suffix}" in seen:
        suffix += 1
    unique = f"{candidate}_{suffix}"
    seen.add(unique)
    return unique


def _normalize_questions(items: list, id_prefix: str) -> list[Question]:
    questions: list[Question] = []
    seen: set[str] = set()
    for i, item in enumerate(items):
        if isinstance(item, str):
            item = {"text": item}
        if not isinstance(item, Mapping):
            raise ValueError(f"Question {i} must be an object, got {type(item).__name__}.")
        text = str(item.get("text") or "").strip()
        if not text:
            continue
        raw_id = str(item.get("id") or "").strip() or f"{id_prefix}q{i + 1}"
        answer = item.get("answer")
        questions.append({
            "id": _unique_id(raw_id, seen),
            "text": text,
            "priority": _normalize_priority(item.get("priority")),
            "answer": (answer.strip() or None) if isinstance(answer, str) else None,
        })
    return questions


def _normalize_assumptions(items: list, id_prefix: str) -> list[Assumption]:
    assumptions: list[Assumption] = []
    seen: set[str] = set()
    for i, item in enumerate(items):
        if isinstance(item, str):
            item = {"text": item}
        if not isinstance(item, Mapping):
            raise ValueError(f"Assumption {i} must be an object, got {type(item).__name__}.")
        text = str(item.get("text") or "").strip()
        if not text:
            continue
        raw_id = str(item.get("id") or "").strip() or f"{id_prefix}a{i + 1}"
        assumptions.append({
            "id": _unique_id(raw_id, seen),
            "text": text,
            "confidence": clamp_confidence(item.get("confidence")),
            "accepted": item.get("accepted") is not False,
        })
    return assumptions


def normalize_analysis(raw, id_prefix: str = "") -> Analysis:
    """Validate and normalize an analysis from any external source.

    Missing fields default to empty lists, question priorities are mapped onto
    the three valid values, missing ids are generated as ``{id_prefix}q{n}`` /
    ``{id_prefix}a{n}`` and duplicated ids get a numeric suffix.

    Raises ValueError if ``raw`` is not a mapping or a field has the wrong shape.
    """
    if not isinstance(raw, Mapping):
        raise ValueError(f"Analysis must be an object, got {type(raw).__name__}.")

    analysis: Analysis = {field: _coerce_strings(_require_list(raw, field)) for field in LIST_FIELDS}
    analysis["questions"] = _normalize_questions(_require_list(raw, "questions"), id_prefix)
    analysis["assumptions"] = _normalize_assumptions(_require_list(raw, "assumptions"), id_prefix)
    return analysis


def count_items(analysis: Analysis) -> int:
    """Sum of the five string-list field lengths."""
    return sum(len(analysis.get(field, [])) for field in LIST_FIELDS)


def validate_iteration_data(iteration) -> bool:
    """Return True if a persisted iteration record has the required structure."""
    if not isinstance(iteration, Mapping):
        return False
    if not iteration.get("id") or not iteration.get("timestamp") or not iteration.get("analysis"):
        return False
    number = iteration.get("iteration_number")
    if not isinstance(number, int) or isinstance(number, bool):
        return False
    if not isinstance(iteration.get("is_user_satisfied"), bool):
        return False

    analysis = iteration["analysis"]
    if not isinstance(analysis, Mapping):
        return False
    return all(isinstance(analysis.get(field), list) for field in ALL_FIELDS)


def answered_questions(analysis: Analysis) -> list[Question]:
    return [q for q in analysis["questions"] if q.get("answer")]


def satisfied_count(iterations: list[Iteration]) -> int:
    return sum(1 for it in iterations if it.get("is_user_satisfied"))


def build_structured_requirement(requirement: str, form_data: RequirementFormData | None) -> str:
    """Append the structured intake details to the free-text requirement."""
    if not form_data:
        return requirement

    parts = []
    if form_data.get("task_type"):
        parts.append(f"Task Type: {form_data['task_type']}")
    if form_data.get("goal"):
        parts.append(f"Goal: {form_data['goal']}")
    if form_data.get("components"):
        parts.append(f"Components/Files Affected: {', '.join(form_data['components'])}")
    if form_data.get("inputs"):
        parts.append(f"Expected Inputs: {form_data['inputs']}")
    if form_data.get("outputs"):
        parts.append(f"Expected Outputs: {form_data['outputs']}")
    if form_data.get("reference_urls"):
        parts.append(f"Reference URLs: {', '.join(form_data['reference_urls'])}")
    if form_data.get("reference_files"):
        parts.append(f"Reference Files: {', '.join(form_data['reference_files'])}")

    if not parts:
        return requirement

    structured = "\n".join(parts)
    if requirement:
        return f"{requirement}\n\nStructured Details:\n{structured}"
    return structured
