"""Streamlit UI for iterating on a requirement analysis."""

import sys
from pathlib import Path

# Add project root to path so 'reqforge' package is importable
sys.path.insert(0, str(Path(__file__).resolve().parent.parent.parent))

import asyncio

import streamlit as st

from reqforge.agents.prompter import IDE_TARGETS
from reqforge.config import get_config
from reqforge.engine import IterationEngine
from reqforge.errors import RefinementError
from reqforge.providers import PROVIDERS, provider_display_name
from reqforge.service import AnalysisService
from reqforge.store import IterationStore, JsonFileKeyValueStore
from reqforge.utils.comparison import get_iteration_summary
from reqforge.utils.session import SESSION_KEYS, clear_all_session_data, get_session_data, set_session_data
from reqforge.utils.validator import validate_input

st.set_page_config(page_title="ReqForge: Requirement Analysis", layout="wide")
st.title("ReqForge: Requirement Analysis")
st.markdown(
    "Breaks a software requirement into goals, constraints, dependencies, edge cases, "
    "acceptance criteria, clarifying questions and assumptions, then lets you refine "
    "that analysis over as many iterations as you need."
)

st.divider()

_LIST_SECTIONS = (
    ("goals", "Goals"),
    ("constraints", "Constraints"),
    ("dependencies", "Dependencies"),
    ("edge_cases", "Edge Cases"),
    ("acceptance_criteria", "Acceptance Criteria"),
)


@st.cache_resource
def _kv() -> JsonFileKeyValueStore:
    config = get_config()
    return JsonFileKeyValueStore(Path(__file__).resolve().parent.parent.parent / config["storage_path"])


def _service(provider: str) -> AnalysisService:
    service = st.session_state.get("service")
    if service is None:
        service = AnalysisService()
        st.session_state["service"] = service
    if service.provider.name != provider:
        service.set_provider(provider)
    return service


def _engine(requirement: str, service: AnalysisService) -> IterationEngine:
    engine = st.session_state.get("engine")
    if engine is None or engine.requirement != requirement:
        context = get_session_data(_kv(), SESSION_KEYS["context"]) or ""
        engine = IterationEngine(IterationStore(_kv()), service.create_iteration, requirement, context=context)
        st.session_state["engine"] = engine
    engine.refiner = service.create_iteration
    return engine


# ---------------------------------------------------------------------------
# Helper renderers
# ---------------------------------------------------------------------------


def _render_diff(engine: IterationEngine, before: int, after: int) -> None:
    comparison = engine.compare(before, after)
    for key, heading in _LIST_SECTIONS:
        entry = comparison[key]
        st.markdown(f"**{heading}** — {entry['change_type']} (+{entry['added']} / -{entry['removed']})")
        lines = []
        for item in entry["diff"]:
            if item["kind"] == "added":
                lines.append(f"- :green[+ {item['text']}]")
            elif item["kind"] == "removed":
                lines.append(f"- :red[~~{item['text']}~~]")
            else:
                lines.append(f"- {item['text']}")
        st.markdown("\n".join(lines) or "*empty*")
    for key in ("questions", "assumptions"):
        counts = comparison[key]
        st.caption(f"{key.title()}: +{counts['added']} / -{counts['removed']} (now {counts['total']})")


def _render_timeline(engine: IterationEngine) -> None:
    history = engine.get_history()
    labels = [
        f"#{it['iteration_number']}{' ✓' if it['is_user_satisfied'] else ''} — {get_iteration_summary(it)}"
        for it in history
    ]
    selected = st.radio(
        "Iterations",
        range(len(history)),
        index=engine.current_index,
        format_func=lambda i: labels[i],
        key="timeline",
    )
    if selected != engine.current_index:
        engine.select_iteration(selected)
        st.rerun()


def _render_editor(engine: IterationEngine, service: AnalysisService) -> None:
    """Editable form for the current analysis. Submitting saves it as user edits."""
    analysis = engine.get_current_analysis()
    current = engine.get_current_iteration()

    with st.form(f"edit_{current['id']}"):
        edited = {}
        for key, heading in _LIST_SECTIONS:
            text = st.text_area(
                f"{heading} (one per line)",
                value="\n".join(analysis[key]),
                key=f"{current['id']}_{key}",
            )
            edited[key] = [line for line in text.splitlines() if line.strip()]

        st.markdown("#### Clarifying Questions")
        questions = []
        for q in analysis["questions"]:
            answer = st.text_input(
                f"[{q['priority']}] {q['text']}",
                value=q.get("answer") or "",
                key=f"{current['id']}_{q['id']}",
            )
            questions.append({**q, "answer": answer.strip() or None})
        edited["questions"] = questions

        st.markdown("#### Assumptions")
        assumptions = []
        for a in analysis["assumptions"]:
            accepted = st.checkbox(
                f"{a['text']} (confidence {round(a['confidence'] * 100)}%)",
                value=a["accepted"],
                key=f"{current['id']}_{a['id']}",
            )
            assumptions.append({**a, "accepted": accepted})
        edited["assumptions"] = assumptions

        if st.form_submit_button("Save edits"):
            engine.save_current_iteration(edited)
            st.success("Edits saved to this iteration.")
            st.rerun()

    if st.button("Suggest more questions"):
        with st.spinner("Asking for more clarifying questions..."):
            questions = asyncio.run(service.generate_additional_questions(engine.requirement, analysis))
        if questions:
            analysis["questions"].extend(questions)
            engine.save_current_iteration(analysis)
            st.rerun()
        st.info("No new questions were suggested.")


def _render_refine(engine: IterationEngine) -> None:
    st.markdown("#### Refine")
    feedback = st.text_area(
        "Feedback for the next iteration",
        value=engine.user_feedback,
        placeholder="What should change? Missing goals, wrong assumptions, scope...",
        key="feedback",
    )
    engine.set_user_feedback(feedback)

    col_refine, col_done = st.columns(2)
    with col_refine:
        if st.button("Create next iteration", type="primary", disabled=not engine.can_iterate()):
            with st.spinner("Refining analysis..."):
                ok = asyncio.run(engine.create_iteration())
            if ok:
                st.rerun()
            error = engine.last_error
            st.error(
                f"Refinement failed ({error.kind.value if error else 'unknown'}): {error}. "
                "Your feedback was kept, so you can retry."
            )
    with col_done:
        current = engine.get_current_iteration()
        if st.button("Mark as satisfied", disabled=current["is_user_satisfied"]):
            engine.mark_satisfied()
            st.rerun()

    if not engine.can_iterate():
        st.caption("This iteration is marked as satisfied. Select another iteration to keep refining.")


def _render_prompts(engine: IterationEngine, service: AnalysisService) -> None:
    """Generate, edit and improve one implementation prompt per IDE."""
    st.subheader("IDE Prompts")
    analysis = engine.get_current_analysis()

    if st.button("Generate prompts from this iteration"):
        with st.spinner("Generating IDE prompts..."):
            try:
                st.session_state["prompts"] = asyncio.run(
                    service.generate_prompts(engine.requirement, analysis, engine.form_data)
                )
            except (RefinementError, ValueError) as exc:
                st.error(f"Prompt generation failed: {exc}")

    prompts = st.session_state.get("prompts")
    if not prompts:
        return

    for tab, (ide, (label, _)) in zip(st.tabs([label for label, _ in IDE_TARGETS.values()]), IDE_TARGETS.items()):
        with tab:
            prompts[ide] = st.text_area(label, value=prompts[ide], height=300, key=f"prompt_{ide}")
            instructions = st.text_input("How should this prompt change?", key=f"improve_{ide}")
            col_improve, col_download = st.columns(2)
            with col_improve:
                if st.button("Improve prompt", key=f"improve_btn_{ide}"):
                    with st.spinner(f"Improving the {label} prompt..."):
                        try:
                            prompts[ide] = asyncio.run(service.improve_prompt(
                                prompts[ide], ide, instructions, engine.requirement, analysis
                            ))
                        except (RefinementError, ValueError) as exc:
                            st.error(f"Improve failed: {exc}")
                        else:
                            st.session_state.pop(f"prompt_{ide}", None)
                            st.rerun()
            with col_download:
                st.download_button(
                    label="Download",
                    data=prompts[ide],
                    file_name=f"prompt-{ide}.md",
                    mime="text/markdown",
                    key=f"download_{ide}",
                )


def _render_observability(engine: IterationEngine) -> None:
    st.subheader("Observability")

    stats = engine.get_iteration_stats()
    metrics = engine.get_iteration_metrics()
    cols = st.columns(4)
    cols[0].metric("Iterations", stats["total"])
    cols[1].metric("Satisfied", stats["satisfied"])
    cols[2].metric("Avg items / iteration", metrics["average_items_per_iteration"])
    cols[3].metric("Trend", metrics["trend"])

    if stats["total"] >= 2:
        with st.expander("Compare iterations"):
            numbers = list(range(stats["total"]))
            col_a, col_b = st.columns(2)
            before = col_a.selectbox("From", numbers, index=stats["total"] - 2, format_func=lambda i: f"#{i + 1}")
            after = col_b.selectbox("To", numbers, index=stats["total"] - 1, format_func=lambda i: f"#{i + 1}")
            _render_diff(engine, before, after)

    st.download_button(
        label="Download iteration history (JSON)",
        data=engine.export(),
        file_name="analysis-history.json",
        mime="application/json",
    )


# ---------------------------------------------------------------------------
# Page logic
# ---------------------------------------------------------------------------

kv = _kv()
saved_provider = get_session_data(kv, SESSION_KEYS["provider"]) or get_config().get("provider", "gemini")
provider = st.radio(
    "AI provider",
    PROVIDERS,
    index=PROVIDERS.index(saved_provider) if saved_provider in PROVIDERS else 0,
    format_func=provider_display_name,
    horizontal=True,
)
set_session_data(kv, SESSION_KEYS["provider"], provider)
service = _service(provider)

saved_requirement = get_session_data(kv, SESSION_KEYS["requirement"]) or ""
requirement = st.text_area(
    "Enter your requirement:",
    value=saved_requirement,
    height=160,
    placeholder="Describe the feature or change you want to build...",
)
context = st.text_area(
    "Supplemental context (optional):",
    value=get_session_data(kv, SESSION_KEYS["context"]) or "",
    height=100,
)

if st.button("Analyze requirement", type="primary"):
    try:
        validated = validate_input(requirement)
    except ValueError as exc:
        st.error(str(exc))
        st.stop()

    clear_all_session_data(kv)
    set_session_data(kv, SESSION_KEYS["provider"], provider)
    set_session_data(kv, SESSION_KEYS["requirement"], validated)
    set_session_data(kv, SESSION_KEYS["context"], context)
    st.session_state.pop("engine", None)
    st.session_state.pop("prompts", None)

    with st.spinner(f"Analyzing with {provider_display_name(provider)}..."):
        try:
            analysis = asyncio.run(service.analyze_requirement(validated, context))
        except RefinementError as exc:
            st.error(f"Analysis failed ({exc.kind.value}): {exc}")
            st.stop()

    engine = _engine(validated, service)
    engine.seed(analysis)
    st.rerun()

if saved_requirement:
    engine = _engine(saved_requirement, service)
    if engine.state != "empty":
        st.divider()
        col_timeline, col_main = st.columns([1, 2])
        with col_timeline:
            _render_timeline(engine)
        with col_main:
            _render_editor(engine, service)
            _render_refine(engine)
        st.divider()
        _render_prompts(engine, service)
        st.divider()
        _render_observability(engine)
