"""Analyst Agent — turns a requirement (and, when refining, the previous analysis
plus the user's edits and feedback) into a structured analysis.

The Analyst outputs JSON with: goals, constraints, dependencies, edge_cases,
acceptance_criteria, questions (id/text/priority) and assumptions
(id/text/confidence/accepted). The response is normalized before it leaves
the node, so callers always get all seven fields.
"""

import json
import sys
import time

from langchain_core.runnables import RunnableConfig

from reqforge.analysis import normalize_analysis
from reqforge.config import get_config
from reqforge.errors import ErrorKind, RefinementError
from reqforge.state import Analysis, RefinementState
from reqforge.utils.telemetry import log_prompt_usage

ANALYSIS_SCHEMA = """\
{
  "goals": ["string"],
  "constraints": ["string"],
  "dependencies": ["string"],
  "edge_cases": ["string"],
  "acceptance_criteria": ["string"],
  "questions": [{"id": "string", "text": "string", "priority": "critical|important|nice-to-have"}],
  "assumptions": [{"id": "string", "text": "string", "confidence": 0.0, "accepted": true}]
}"""

QUESTIONS_SCHEMA = '{"questions": [{"id": "string", "text": "string", "priority": "critical|important|nice-to-have"}]}'


def system_rules() -> str:
    config = get_config()
    return f"""\
[SYSTEM]
Role: You are an expert software requirements analyst and software architect.
Rules:
- Use only the provided information; do not invent facts.
- If information is missing, ask targeted questions (avoid yes/no; request examples/constraints).
- In conflicts, REQUIREMENT takes precedence over CONTEXT unless the requirement defers to legacy behavior.
- Never reveal chain-of-thought or internal reasoning. When structured output is requested, respond with JSON only.
- Be specific, concise, and testable in your outputs.
- Avoid PII; do not include secrets or keys.
Version: {config.get("prompt_version", "")} ({config.get("prompt_mode", "stable")})
"""


ANALYSIS_INSTRUCT = """\
[TASK: ANALYSIS]
Analyze REQUIREMENT + CONTEXT and produce structured JSON:
- goals (3-5) measurable and outcome-focused
- constraints (2-4) technical/business/regulatory
- dependencies (2-4) systems/libraries/prereqs
- edge_cases (3-5)
- acceptance_criteria (3-6) using Given/When/Then
- questions (2-4) with priority: critical|important|nice-to-have
- assumptions (2-4) with confidence 0.0-1.0
Rules: no duplicates; IDs stable/deterministic; JSON only.
"""

ITERATION_INSTRUCT = """\
[TASK: REFINE ITERATION {n}]
This is ITERATION {n} of an analysis refinement process. Create an improved analysis based on:
1. The original requirement
2. Previous analysis results
3. User edits and feedback
4. Context information

Focus on:
- Incorporating user feedback and edits
- Addressing gaps or issues from the previous iteration
- Refining and improving the analysis quality
- Adding new insights while preserving valuable previous work
- Generating better questions and assumptions
Do not regress items the user added or accepted. Keep the ids of questions and assumptions you keep.
"""

REPAIR_MESSAGE = (
    "Your response did not match the required JSON schema. "
    "Please try again with ONLY the raw JSON object — "
    "no markdown fences, no commentary."
)


def _format_previous_analysis(analysis: Analysis, iteration_number: int) -> str:
    questions = ", ".join(
        f"{q['text']} " + (f"(Answered: {q['answer']})" if q.get("answer") else "(Unanswered)")
        for q in analysis["questions"]
    )
    assumptions = ", ".join(
        f"{a['text']} ({'Accepted' if a['accepted'] else 'Rejected'}, "
        f"Confidence: {round(a['confidence'] * 100)}%)"
        for a in analysis["assumptions"]
    )
    return (
        f"PREVIOUS ANALYSIS (Iteration {iteration_number - 1}):\n"
        f"Goals: {', '.join(analysis['goals'])}\n"
        f"Constraints: {', '.join(analysis['constraints'])}\n"
        f"Dependencies: {', '.join(analysis['dependencies'])}\n"
        f"Edge Cases: {', '.join(analysis['edge_cases'])}\n"
        f"Acceptance Criteria: {', '.join(analysis['acceptance_criteria'])}\n"
        f"Questions: {questions}\n"
        f"Assumptions: {assumptions}"
    )


def _format_user_edits(edits: Analysis | None) -> str:
    if not edits:
        return ""
    labels = (
        ("goals", "Goals"),
        ("constraints", "Constraints"),
        ("dependencies", "Dependencies"),
        ("edge_cases", "Edge Cases"),
        ("acceptance_criteria", "Acceptance Criteria"),
    )
    parts = [f"{label}: {', '.join(edits[key])}" for key, label in labels if edits.get(key)]
    if edits.get("questions"):
        parts.append(f"Questions: {', '.join(q['text'] for q in edits['questions'])}")
    if edits.get("assumptions"):
        parts.append(f"Assumptions: {', '.join(a['text'] for a in edits['assumptions'])}")
    if not parts:
        return ""
    return "USER EDITS:\n" + "\n".join(parts)


def build_prompt(state: RefinementState) -> str:
    """Construct the analysis or iteration prompt from graph state."""
    requirement = state.get("structured_requirement") or state["requirement"]
    context = (state.get("context") or "").strip() or "(none)"
    previous = state.get("previous_analysis")

    if previous is None:
        return (
            f"{system_rules()}\n{ANALYSIS_INSTRUCT}\n"
            f"REQUIREMENT:\n{requirement}\n\n"
            f"CONTEXT:\n{context}\n\n"
            f"SCHEMA:\n{ANALYSIS_SCHEMA}\n\n"
            "Respond with valid JSON only, matching the schema exactly."
        )

    n = state["iteration_number"]
    parts = [
        system_rules(),
        ITERATION_INSTRUCT.format(n=n),
        f"ORIGINAL REQUIREMENT:\n{requirement}",
        f"CONTEXT:\n{context}",
        _format_previous_analysis(previous, n),
    ]
    edits = _format_user_edits(state.get("user_edits"))
    if edits:
        parts.append(edits)
    if state.get("user_feedback"):
        parts.append(f"USER FEEDBACK:\n{state['user_feedback']}")
    parts.append(f"SCHEMA:\n{ANALYSIS_SCHEMA}")
    parts.append(
        "Respond with valid JSON only, matching the schema exactly. "
        "Make this iteration meaningfully better than the previous one."
    )
    return "\n\n".join(parts)


def build_questions_prompt(requirement: str, analysis: Analysis, answered: list[dict]) -> str:
    answered_text = "\n\n".join(f"Q: {q['text']}\nA: {q.get('answer', '')}" for q in answered)
    return (
        f"{system_rules()}\n"
        "[TASK: QUESTIONS]\n"
        "Generate 1-3 high-value clarifying questions that reduce risk/ambiguity.\n"
        "Prioritize impact on design, data, UX, and constraints. Avoid overlaps with answered ones.\n\n"
        f"REQUIREMENT:\n{requirement}\n\n"
        "CURRENT ANALYSIS:\n"
        f"Goals: {', '.join(analysis['goals'])}\n"
        f"Constraints: {', '.join(analysis['constraints'])}\n"
        f"Dependencies: {', '.join(analysis['dependencies'])}\n\n"
        f"ANSWERED QUESTIONS:\n{answered_text or '(none)'}\n\n"
        f"SCHEMA:\n{QUESTIONS_SCHEMA}\n\n"
        "Respond with valid JSON only, matching the schema exactly."
    )


def build_summary_prompt(context: str) -> str:
    return (
        "You are an expert software architect. Summarize the following repository or product "
        "documentation into a concise implementation context.\n\n"
        "Focus on:\n"
        "- Primary goals and user-facing features\n"
        "- Tech stack, architecture notes, key modules\n"
        "- APIs/endpoints, data models, integrations\n"
        "- Constraints, non-functional requirements, security/compliance\n"
        "- Notable edge cases and assumptions\n\n"
        "Write a clear, structured brief (bulleted where helpful) in under 2500 words. "
        "Preserve important details; omit marketing fluff.\n\n"
        f"INPUT CONTEXT:\n{context}"
    )


def _provider(config: RunnableConfig):
    return config["configurable"]["provider"]


async def summarize_node(state: RefinementState, config: RunnableConfig) -> dict:
    """Condense oversized context. Keeps the raw context if summarization fails."""
    provider = _provider(config)
    try:
        summary = await provider.generate_response(build_summary_prompt(state["context"]))
    except RefinementError as exc:
        print(f"[RF] Context summarization failed ({exc.kind.value}); using raw context.", file=sys.stderr)
        return {"context": state["context"]}
    return {"context": summary}


async def analyst_node(state: RefinementState, config: RunnableConfig) -> dict:
    """Analyst node for the LangGraph StateGraph.

    Builds the initial or iteration prompt, calls the provider for structured
    JSON, re-prompts once when the response does not parse, and returns the
    normalized analysis.
    """
    provider = _provider(config)
    prompt = build_prompt(state)
    previous = state.get("previous_analysis")
    iteration_number = state.get("iteration_number", 1)
    id_prefix = f"iter{iteration_number}_" if previous is not None else ""
    template = f"analysis_iteration_{iteration_number}" if previous is not None else "analysis"

    t0 = time.monotonic()
    repair_attempts = 0
    try:
        data = await provider.generate_structured_response(prompt, ANALYSIS_SCHEMA)
        analysis = normalize_analysis(data, id_prefix=id_prefix)
    except (RefinementError, ValueError) as exc:
        if isinstance(exc, RefinementError) and exc.kind is not ErrorKind.PARSE_ERROR:
            raise
        # Re-prompt once before raising
        repair_attempts = 1
        print(f"[RF] Analyst response did not match schema: {exc}. Re-prompting once.", file=sys.stderr)
        try:
            data = await provider.generate_structured_response(f"{prompt}\n\n{REPAIR_MESSAGE}", ANALYSIS_SCHEMA)
            analysis = normalize_analysis(data, id_prefix=id_prefix)
        except ValueError as retry_exc:
            raise RefinementError(
                f"Analysis response failed validation: {retry_exc}", ErrorKind.PARSE_ERROR
            ) from retry_exc

    log_prompt_usage(
        template=template,
        input_chars=len(prompt),
        output_chars=len(json.dumps(data)),
        latency_ms=round((time.monotonic() - t0) * 1000),
        parse_ok=True,
        repair_attempts=repair_attempts,
    )
    return {"analysis": analysis, "repair_attempts": repair_attempts}
