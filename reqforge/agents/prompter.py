"""Prompter Agent: turns a finished analysis into implementation prompts for coding IDEs.

One plain-text prompt is built per IDE target. Only answered questions and
accepted assumptions are carried into the prompt.
"""

from reqforge.state import Analysis

IDE_TARGETS = {
    "cursor": ("Cursor IDE", "Cursor"),
    "copilot": ("GitHub Copilot", "Copilot"),
    "warp": ("Warp terminal", "Warp"),
    "windsurf": ("Windsurf IDE", "Windsurf"),
}

CODE_QUALITY_INSTRUCTION = """\
CODE QUALITY:
- Follow the conventions already present in the codebase (naming, layout, error handling).
- Keep changes small and focused; do not refactor unrelated code.
- Handle the listed edge cases explicitly and validate inputs at boundaries.
- Add or update tests that cover the acceptance criteria.
- Never hard-code secrets, keys or credentials."""


def _clarifications(analysis: Analysis) -> str:
    answered = [q for q in analysis["questions"] if (q.get("answer") or "").strip()]
    if not answered:
        return ""
    return "\n\nCLARIFICATIONS:\n" + "\n\n".join(f"Q: {q['text']}\nA: {q['answer']}" for q in answered)


def _accepted_assumptions(analysis: Analysis, with_confidence: bool) -> str:
    accepted = [a for a in analysis["assumptions"] if a["accepted"]]
    if not accepted:
        return ""
    if with_confidence:
        lines = [f"- {a['text']} ({round(a['confidence'] * 100)}% confidence)" for a in accepted]
    else:
        lines = [f"- {a['text']}" for a in accepted]
    return "\n\nACCEPTED ASSUMPTIONS:\n" + "\n".join(lines)


def build_ide_prompt(ide: str, requirement: str, analysis: Analysis) -> str:
    """Meta-prompt asking the model to write a prompt for one IDE. Raises KeyError for unknown IDEs."""
    label, name = IDE_TARGETS[ide]
    return (
        f"Create a {label} prompt optimized for code generation. {name} works best with concise, "
        "specific instructions and clear technical requirements.\n\n"
        f"{CODE_QUALITY_INSTRUCTION}\n\n"
        f"ORIGINAL REQUIREMENT:\n{requirement}\n\n"
        "ANALYSIS RESULTS:\n"
        f"• Goals: {', '.join(analysis['goals'])}\n"
        f"• Constraints: {', '.join(analysis['constraints'])}\n"
        f"• Dependencies: {', '.join(analysis['dependencies'])}\n"
        f"• Edge Cases: {', '.join(analysis['edge_cases'])}\n"
        f"• Acceptance Criteria: {', '.join(analysis['acceptance_criteria'])}"
        f"{_clarifications(analysis)}"
        f"{_accepted_assumptions(analysis, with_confidence=ide == 'cursor')}\n\n"
        f"Generate a {name}-optimized prompt that includes:\n"
        "1. Concise goal statement\n"
        "2. Technical specifications\n"
        "3. Implementation steps\n"
        "4. Key constraints and requirements\n"
        "5. Expected behavior description\n"
        "6. Code generation guidance\n\n"
        f"Format as a direct, actionable prompt that will help {name} generate accurate code "
        "suggestions. Keep it focused and specific."
    )


def build_improve_prompt(
    original_prompt: str,
    ide: str,
    instructions: str,
    requirement: str | None = None,
    analysis: Analysis | None = None,
) -> str:
    context = ""
    if requirement and analysis:
        context = (
            "\n\nORIGINAL CONTEXT:\n"
            f"Requirement: {requirement}\n"
            f"Goals: {', '.join(analysis['goals'])}\n"
            f"Constraints: {', '.join(analysis['constraints'])}\n"
            f"Dependencies: {', '.join(analysis['dependencies'])}"
        )
    return (
        f"Improve the following {ide} IDE prompt based on the user's feedback and instructions.\n\n"
        f"ORIGINAL PROMPT:\n{original_prompt}\n\n"
        f"USER IMPROVEMENT INSTRUCTIONS:\n{instructions}{context}\n\n"
        "Generate an improved version of the prompt that:\n"
        "1. Addresses the user's specific feedback\n"
        "2. Maintains the original intent and structure\n"
        "3. Enhances clarity and effectiveness\n"
        f"4. Remains optimized for {ide} IDE\n"
        "5. Incorporates best practices for prompt engineering\n\n"
        "Return only the improved prompt without additional commentary."
    )
