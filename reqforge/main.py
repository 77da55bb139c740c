"""Entry point: analyzes a requirement, then runs the interactive refinement loop."""

import asyncio
import sys
from pathlib import Path

from reqforge.config import get_config
from reqforge.engine import IterationEngine
from reqforge.errors import RefinementError
from reqforge.providers import PROVIDERS
from reqforge.service import AnalysisService
from reqforge.store import IterationStore, JsonFileKeyValueStore
from reqforge.utils.comparison import get_iteration_summary
from reqforge.utils.formatter import render_analysis_markdown, write_export, write_prompts
from reqforge.utils.session import SESSION_KEYS, get_session_data, set_session_data
from reqforge.utils.validator import validate_input

HELP = """\
Commands:
  r [feedback]   refine into a new iteration (optional free-text feedback)
  a <n> <text>   answer question n of the current iteration
  m              ask for more clarifying questions
  s              mark the current iteration as satisfied
  p              generate IDE prompts (cursor, copilot, warp, windsurf) from the current iteration
  i <ide> <text> improve the last generated prompt for an IDE
  g <n>          go to iteration n
  c <i> <j>      compare iteration i with iteration j
  t              show iteration stats and metrics
  x              export history (JSON) and report (Markdown)
  q              quit
"""


def _open_kv():
    config = get_config()
    path = Path(__file__).resolve().parent.parent / config["storage_path"]
    return JsonFileKeyValueStore(path)


def _print_current(engine: IterationEngine) -> None:
    current = engine.get_current_iteration()
    if current is None:
        print("No iterations yet.")
        return
    stats = engine.get_iteration_stats()
    status = "satisfied" if current["is_user_satisfied"] else "open"
    print(f"\n=== Iteration {current['iteration_number']} of {stats['total']} ({status}) ===")
    print(get_iteration_summary(current))
    print()
    print(render_analysis_markdown(current["analysis"]))


def _print_comparison(engine: IterationEngine, i: int, j: int) -> None:
    comparison = engine.compare(i - 1, j - 1)
    print(f"\n--- Iteration {i} -> {j} ---")
    for field in ("goals", "constraints", "dependencies", "edge_cases", "acceptance_criteria"):
        entry = comparison[field]
        print(f"{field} ({entry['change_type']}, +{entry['added']} -{entry['removed']})")
        for item in entry["diff"]:
            marker = {"added": "+", "removed": "-", "unchanged": " "}[item["kind"]]
            print(f"  {marker} {item['text']}")
    for field in ("questions", "assumptions"):
        counts = comparison[field]
        print(f"{field}: +{counts['added']} -{counts['removed']} (total {counts['total']})")


def _answer_question(engine: IterationEngine, number: int, text: str) -> None:
    analysis = engine.get_current_analysis()
    if analysis is None or not 1 <= number <= len(analysis["questions"]):
        print("No such question.")
        return
    analysis["questions"][number - 1]["answer"] = text
    engine.save_current_iteration(analysis)
    print(f"Answer recorded for question {number}.")


async def _ask_more_questions(engine: IterationEngine, service: AnalysisService) -> int:
    """Append provider-suggested questions to the current iteration. Returns how many were added."""
    analysis = engine.get_current_analysis()
    if analysis is None:
        return 0
    questions = await service.generate_additional_questions(engine.requirement, analysis)
    if questions:
        analysis["questions"].extend(questions)
        engine.save_current_iteration(analysis)
    return len(questions)


async def _generate_prompts(engine: IterationEngine, service: AnalysisService) -> dict[str, str]:
    analysis = engine.get_current_analysis()
    if analysis is None:
        return {}
    return await service.generate_prompts(engine.requirement, analysis, engine.form_data)


async def _improve_prompt(
    engine: IterationEngine,
    service: AnalysisService,
    prompts: dict[str, str],
    ide: str,
    instructions: str,
) -> str:
    """Rewrite ``prompts[ide]`` in place. Raises ValueError if nothing was generated for ``ide``."""
    if ide not in prompts:
        raise ValueError(f"No prompt generated for '{ide}' yet. Run 'p' first.")
    improved = await service.improve_prompt(
        prompts[ide], ide, instructions, engine.requirement, engine.get_current_analysis()
    )
    prompts[ide] = improved
    return improved


async def _interactive_loop(engine: IterationEngine, service: AnalysisService) -> None:
    _print_current(engine)
    print(HELP)
    prompts: dict[str, str] = {}

    while True:
        try:
            line = input("reqforge> ").strip()
        except EOFError:
            break
        if not line:
            continue

        command, _, rest = line.partition(" ")
        rest = rest.strip()

        try:
            if command == "q":
                break
            elif command == "r":
                if not engine.can_iterate():
                    print("Cannot refine: the current iteration is satisfied. Select another one first.")
                    continue
                if rest:
                    engine.set_user_feedback(rest)
                print("Refining...")
                if await engine.create_iteration():
                    _print_current(engine)
                else:
                    error = engine.last_error
                    kind = error.kind.value if error else "unknown"
                    print(f"Refinement failed ({kind}): {error}. Your feedback was kept; try again with 'r'.")
            elif command == "a":
                number, _, text = rest.partition(" ")
                _answer_question(engine, int(number), text.strip())
            elif command == "m":
                added = await _ask_more_questions(engine, service)
                if added:
                    print(f"Added {added} question(s).")
                    _print_current(engine)
                else:
                    print("No new questions.")
            elif command == "s":
                engine.mark_satisfied()
                print("Marked as satisfied.")
            elif command == "p":
                print("Generating prompts...")
                prompts = await _generate_prompts(engine, service)
                for path in write_prompts(prompts):
                    print(f"Wrote {path}")
            elif command == "i":
                ide, _, instructions = rest.partition(" ")
                improved = await _improve_prompt(engine, service, prompts, ide, instructions)
                path = write_prompts({ide: improved})[0]
                print(f"\n{improved}\n\nWrote {path}")
            elif command == "g":
                engine.select_iteration(int(rest) - 1)
                _print_current(engine)
            elif command == "c":
                i, j = (int(part) for part in rest.split())
                _print_comparison(engine, i, j)
            elif command == "t":
                print(engine.get_iteration_stats())
                print(engine.get_iteration_metrics())
            elif command == "x":
                json_path, md_path = write_export(engine)
                print(f"Exported to {json_path} and {md_path}")
            else:
                print(HELP)
        except (ValueError, IndexError) as exc:
            print(f"Invalid input: {exc}")
        except RefinementError as exc:
            print(f"Request failed ({exc.kind.value}): {exc}")


async def _start(requirement: str | None, provider: str | None, reset: bool) -> None:
    kv = _open_kv()

    if provider is None and not reset:
        provider = get_session_data(kv, SESSION_KEYS["provider"])
    service = AnalysisService()
    if provider:
        service.set_provider(provider)
    set_session_data(kv, SESSION_KEYS["provider"], service.provider.name)

    saved_requirement = None if reset else get_session_data(kv, SESSION_KEYS["requirement"])
    if requirement is None:
        if not saved_requirement:
            print("Enter your requirement (Ctrl+D / Ctrl+Z to submit):")
            requirement = sys.stdin.read()
        else:
            requirement = saved_requirement
            print("[RF] Resuming saved session.", file=sys.stderr)

    requirement = validate_input(requirement)
    set_session_data(kv, SESSION_KEYS["requirement"], requirement)

    engine = IterationEngine(IterationStore(kv), service.create_iteration, requirement)
    if reset or (saved_requirement and requirement != saved_requirement):
        # A new requirement starts a new history
        engine.reset()

    if engine.state == "empty":
        print(f"[RF] Analyzing requirement with {service.provider.name}...", file=sys.stderr)
        try:
            analysis = await service.analyze_requirement(requirement)
        except RefinementError as exc:
            print(f"Analysis failed ({exc.kind.value}): {exc}")
            sys.exit(1)
        engine.seed(analysis)

    await _interactive_loop(engine, service)


def main() -> None:
    """CLI entry point — accepts the requirement as arguments or from stdin."""
    args = sys.argv[1:]
    provider = None
    reset = False

    if "--reset" in args:
        reset = True
        args.remove("--reset")

    for arg in list(args):
        if arg.startswith("--provider="):
            provider = arg.split("=", 1)[1]
            if provider not in PROVIDERS:
                print(f"Unknown provider '{provider}'. Choose one of: {', '.join(PROVIDERS)}")
                sys.exit(2)
            args.remove(arg)

    requirement = " ".join(args) if args else None

    try:
        asyncio.run(_start(requirement, provider, reset))
    except ValueError as exc:
        print(f"Invalid input: {exc}")
        sys.exit(2)


if __name__ == "__main__":
    main()
