"""Output Formatter — JSON export of the iteration history and a Markdown report."""

import json
from datetime import datetime, timezone
from pathlib import Path

from reqforge.state import Analysis, Iteration, RequirementFormData
from reqforge.utils.comparison import get_iteration_summary

_SECTIONS = (
    ("goals", "Goals"),
    ("constraints", "Constraints"),
    ("dependencies", "Dependencies"),
    ("edge_cases", "Edge Cases"),
    ("acceptance_criteria", "Acceptance Criteria"),
)


def export_iteration_history(
    iterations: list[Iteration],
    requirement: str = "",
    form_data: RequirementFormData | None = None,
) -> str:
    """Serialize the full history as one JSON document, stamped with the export time."""
    export_data = {
        "exported_at": datetime.now(timezone.utc).isoformat(),
        "requirement": requirement,
        "form_data": form_data or {},
        "total_iterations": len(iterations),
        "iterations": [
            {
                "id": it["id"],
                "iteration_number": it["iteration_number"],
                "timestamp": it["timestamp"],
                "is_user_satisfied": it["is_user_satisfied"],
                "user_feedback": it.get("user_feedback"),
                "user_edits": it.get("user_edits"),
                "summary": get_iteration_summary(it),
                "analysis": it["analysis"],
            }
            for it in iterations
        ],
    }
    return json.dumps(export_data, indent=2)


def render_analysis_markdown(analysis: Analysis, requirement: str = "", title: str = "Requirement Analysis") -> str:
    """Convert an analysis into a Markdown report."""
    lines = [f"# {title}", ""]

    if requirement:
        lines.append("## Requirement")
        lines.append("")
        lines.append(requirement)
        lines.append("")

    for key, heading in _SECTIONS:
        items = analysis.get(key, [])
        if not items:
            continue
        lines.append(f"## {heading}")
        lines.append("")
        for item in items:
            lines.append(f"- {item}")
        lines.append("")

    questions = analysis.get("questions", [])
    if questions:
        lines.append("## Clarifying Questions")
        lines.append("")
        lines.append("| # | Priority | Question | Answer |")
        lines.append("|---|----------|----------|--------|")
        for i, q in enumerate(questions, 1):
            text = q["text"].replace("|", "\\|")
            answer = (q.get("answer") or "*unanswered*").replace("|", "\\|")
            lines.append(f"| {i} | {q['priority']} | {text} | {answer} |")
        lines.append("")

    assumptions = analysis.get("assumptions", [])
    if assumptions:
        lines.append("## Assumptions")
        lines.append("")
        for a in assumptions:
            mark = "x" if a["accepted"] else " "
            lines.append(f"- [{mark}] {a['text']} *(confidence {round(a['confidence'] * 100)}%)*")
        lines.append("")

    return "\n".join(lines)


def _free_path(output_dir: Path, stem: str, suffix: str) -> Path:
    path = output_dir / f"{stem}{suffix}"
    counter = 1
    while path.exists():
        counter += 1
        path = output_dir / f"{stem} ({counter}){suffix}"
    return path


def write_export(engine, stem: str = "analysis") -> tuple[Path, Path]:
    """Write the JSON history and a Markdown report of the current analysis.

    Files land in the configured output_dir and never overwrite existing ones.
    Returns (json_path, markdown_path).
    """
    from reqforge.config import get_config

    config = get_config()
    output_dir = Path(__file__).resolve().parent.parent.parent / config["output_dir"]
    output_dir.mkdir(parents=True, exist_ok=True)

    json_path = _free_path(output_dir, stem, ".json")
    json_path.write_text(engine.export(), encoding="utf-8")

    current = engine.get_current_iteration()
    if current is not None:
        status = "satisfied" if current["is_user_satisfied"] else "in progress"
        title = f"Requirement Analysis — Iteration {current['iteration_number']} ({status})"
        content = render_analysis_markdown(current["analysis"], engine.requirement, title)
    else:
        content = render_analysis_markdown({}, engine.requirement)

    md_path = _free_path(output_dir, stem, ".md")
    md_path.write_text(content, encoding="utf-8")
    return json_path, md_path


def write_prompts(prompts: dict[str, str], stem: str = "prompt") -> list[Path]:
    """Write one Markdown file per IDE prompt into the configured output_dir."""
    from reqforge.config import get_config

    config = get_config()
    output_dir = Path(__file__).resolve().parent.parent.parent / config["output_dir"]
    output_dir.mkdir(parents=True, exist_ok=True)

    paths = []
    for ide, text in prompts.items():
        path = _free_path(output_dir, f"{stem}-{ide}", ".md")
        path.write_text(text, encoding="utf-8")
        paths.append(path)
    return paths
