"""LangGraph StateGraph definition for a single analysis or refinement round."""

from langgraph.graph import END, StateGraph

from reqforge.agents.analyst import analyst_node, summarize_node
from reqforge.analysis import build_structured_requirement
from reqforge.config import get_config
from reqforge.state import Analysis, RefinementState


def _prepare(state: RefinementState) -> dict:
    """Fold the structured intake form into the requirement text."""
    return {
        "structured_requirement": build_structured_requirement(
            state["requirement"], state.get("form_data")
        ),
        "repair_attempts": 0,
    }


def _route_after_prepare(state: RefinementState) -> str:
    """Conditional edge: summarize oversized context before analysis."""
    config = get_config()
    threshold = config.get("context_summary_threshold", 16000)
    if len(state.get("context") or "") > threshold:
        return "summarize"
    return "analyst"


# --- Build the graph ---

workflow = StateGraph(RefinementState)

workflow.add_node("prepare", _prepare)
workflow.add_node("summarize", summarize_node)
workflow.add_node("analyst", analyst_node)

workflow.set_entry_point("prepare")

workflow.add_conditional_edges(
    "prepare",
    _route_after_prepare,
    {
        "summarize": "summarize",
        "analyst": "analyst",
    },
)

workflow.add_edge("summarize", "analyst")
workflow.add_edge("analyst", END)

graph = workflow.compile()


async def run_analysis(state: RefinementState, provider) -> Analysis:
    """Run one round through the graph with ``provider`` and return the analysis."""
    final_state = await graph.ainvoke(state, config={"configurable": {"provider": provider}})
    return final_state["analysis"]


def route_after_prepare(state: RefinementState) -> str:
    """Public wrapper around _route_after_prepare."""
    return _route_after_prepare(state)
