"""Input validation. Checks requirement and context text before any LLM call."""

MIN_REQUIREMENT_CHARS = 10
MAX_INPUT_CHARS = 200_000


def validate_input(requirement: str) -> str:
    """Validate that the requirement is a usable non-empty string.

    Returns the stripped input on success.
    Raises ValueError if input is not a string, shorter than 10 characters
    after stripping, or longer than 200k characters.
    """
    if not isinstance(requirement, str) or not requirement.strip():
        raise ValueError("Requirement must be a non-empty string.")
    stripped = requirement.strip()
    if len(stripped) < MIN_REQUIREMENT_CHARS:
        raise ValueError(f"Requirement must be at least {MIN_REQUIREMENT_CHARS} characters.")
    if len(stripped) > MAX_INPUT_CHARS:
        raise ValueError("Requirement must be less than 200k characters.")
    return stripped


def validate_context(context: str | None) -> str:
    """Validate optional supplemental context. None and empty are allowed."""
    if context is None:
        return ""
    if not isinstance(context, str):
        raise ValueError("Context must be a string.")
    if len(context) > MAX_INPUT_CHARS:
        raise ValueError("Context must be less than 200k characters.")
    return context.strip()
