"""Iteration Engine — manages successive refinements of an analysis.

States per engine (and its store):

    empty    no iterations yet; every mutating operation is a no-op
    ready    iterations exist; the current pointer is valid
    refining a refinement call is in flight; create_iteration is rejected

Transitions:

    empty  --seed-------------------------> ready(0)
    ready  --create_iteration (success)---> ready(len - 1)   via refining
    ready  --create_iteration (failure)---> ready(i)         history untouched
    ready  --select_iteration(j)----------> ready(j)
    ready  --mark_satisfied---------------> ready(i)         flag set on i only

The engine never raises across its public surface for collaborator failures
or precondition violations; it reports them as a boolean.
"""

import asyncio
import copy
import sys
import time
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from typing import Literal

from reqforge.analysis import normalize_analysis, satisfied_count
from reqforge.errors import ErrorKind, RefinementError, classify_error
from reqforge.state import Analysis, Iteration, RefinementRequest, RequirementFormData
from reqforge.store import IterationStore, snapshot
from reqforge.utils.comparison import (
    IterationComparison,
    IterationMetrics,
    calculate_iteration_metrics,
    compare_analyses,
)
from reqforge.utils.formatter import export_iteration_history

EngineState = Literal["empty", "ready", "refining"]
Refiner = Callable[[RefinementRequest], Awaitable[Analysis]]


def _new_iteration_id(iteration_number: int) -> str:
    # The number keeps ids unique within a session even when created in the same millisecond.
    return f"iter_{iteration_number}_{int(time.time() * 1000)}"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class IterationEngine:
    """Orchestrates refinement rounds over one IterationStore.

    Args:
        store: persistence for the history and current pointer.
        refiner: async callable producing the next Analysis from a
            RefinementRequest (usually AnalysisService.create_iteration).
        requirement: the original requirement text sent with every round.
        form_data: structured intake details sent with every round.
        context: supplemental context sent with every round.
        initial_analysis: result of the first, non-iterative analysis. Used to
            seed iteration #1 only when the store is empty.
        timeout: seconds before an in-flight refinement counts as failed.
            None reads ``refinement_timeout_seconds`` from config.
    """

    def __init__(
        self,
        store: IterationStore,
        refiner: Refiner,
        requirement: str,
        form_data: RequirementFormData | None = None,
        context: str = "",
        initial_analysis: Analysis | None = None,
        timeout: float | None = None,
    ):
        if timeout is None:
            from reqforge.config import get_config

            timeout = get_config().get("refinement_timeout_seconds", 120)

        self.store = store
        self.refiner = refiner
        self.requirement = requirement
        self.form_data = form_data
        self.context = context
        self.timeout = timeout

        self.user_feedback = ""
        self.has_unsaved_changes = False
        self.last_error: RefinementError | None = None
        self._refining = False

        self.iterations, self.current_index = store.load()
        if initial_analysis is not None:
            self.seed(initial_analysis)

    # --- state ---

    @property
    def state(self) -> EngineState:
        if self._refining:
            return "refining"
        if not self.iterations:
            return "empty"
        return "ready"

    def _current(self) -> Iteration | None:
        if not self.iterations:
            return None
        return self.iterations[self.current_index]

    def _persist(self) -> None:
        self.store.save(self.iterations, self.current_index)

    # --- operations ---

    def seed(self, initial_analysis: Analysis) -> bool:
        """Create iteration #1 from the first analysis. Only applies to an empty store."""
        if self.iterations:
            return False
        first: Iteration = {
            "id": _new_iteration_id(1),
            "timestamp": _now(),
            "analysis": normalize_analysis(initial_analysis),
            "iteration_number": 1,
            "is_user_satisfied": False,
        }
        self.iterations = [first]
        self.current_index = 0
        self._persist()
        return True

    def set_user_feedback(self, feedback: str) -> None:
        """Buffer feedback for the next create_iteration call."""
        self.user_feedback = feedback

    def mark_unsaved_changes(self) -> None:
        self.has_unsaved_changes = True

    def can_iterate(self) -> bool:
        current = self._current()
        return current is not None and not current["is_user_satisfied"] and not self._refining

    async def create_iteration(self, feedback: str | None = None) -> bool:
        """Request the next refinement from the current iteration.

        Returns True and advances to the new iteration on success. Returns
        False, leaving history and pointer untouched, when there is no
        current iteration, it is satisfied, a call is already in flight, or
        the refinement collaborator fails or times out.
        """
        if not self.can_iterate():
            return False

        # Claim the refining state before the first await so a concurrent call is rejected.
        self._refining = True
        try:
            current = self._current()
            feedback_to_use = (feedback or self.user_feedback).strip() or None
            iteration_number = len(self.iterations) + 1
            request: RefinementRequest = {
                "requirement": self.requirement,
                "previous_analysis": copy.deepcopy(current["analysis"]),
                "user_edits": copy.deepcopy(current.get("user_edits")),
                "user_feedback": feedback_to_use,
                "iteration_number": iteration_number,
                "context": self.context,
                "form_data": copy.deepcopy(self.form_data),
            }

            try:
                result = await asyncio.wait_for(self.refiner(request), timeout=self.timeout)
            except asyncio.TimeoutError:
                self.last_error = RefinementError(
                    f"Iteration {iteration_number} timed out after {self.timeout}s.", ErrorKind.TIMEOUT
                )
                print(f"[RF] Failed to create iteration: {self.last_error!r}", file=sys.stderr)
                return False
            except Exception as exc:
                self.last_error = classify_error(exc)
                print(f"[RF] Failed to create iteration: {self.last_error!r}", file=sys.stderr)
                return False

            try:
                analysis = normalize_analysis(result, id_prefix=f"iter{iteration_number}_")
            except ValueError as exc:
                self.last_error = RefinementError(
                    f"Iteration {iteration_number} returned a malformed analysis: {exc}", ErrorKind.PARSE_ERROR
                )
                print(f"[RF] Failed to create iteration: {self.last_error!r}", file=sys.stderr)
                return False

            new_iteration: Iteration = {
                "id": _new_iteration_id(iteration_number),
                "timestamp": _now(),
                "analysis": analysis,
                "iteration_number": iteration_number,
                "is_user_satisfied": False,
            }
            if feedback_to_use:
                new_iteration["user_feedback"] = feedback_to_use

            self.iterations = self.iterations + [new_iteration]
            self.current_index = len(self.iterations) - 1
            self.user_feedback = ""
            self.has_unsaved_changes = False
            self.last_error = None
            self._persist()
            return True
        finally:
            self._refining = False

    def select_iteration(self, index: int) -> None:
        """Move the current pointer. Out-of-range or unchanged indexes are ignored."""
        if 0 <= index < len(self.iterations) and index != self.current_index:
            self.current_index = index
            self.has_unsaved_changes = False
            self._persist()

    def mark_satisfied(self) -> None:
        """Flag the current iteration as satisfying the user. One-way and idempotent."""
        current = self._current()
        if current is None:
            return
        if not current["is_user_satisfied"]:
            self.iterations[self.current_index] = {**current, "is_user_satisfied": True}
        self._persist()

    def save_current_iteration(self, analysis: Analysis) -> None:
        """Overwrite the current analysis and record it as the user-edit overlay.

        Raises ValueError (before touching history) if ``analysis`` is malformed.
        """
        current = self._current()
        if current is None:
            return
        edited = normalize_analysis(analysis)
        self.iterations[self.current_index] = {
            **current,
            "analysis": edited,
            "user_edits": copy.deepcopy(edited),
        }
        self.has_unsaved_changes = False
        self._persist()

    def get_current_analysis(self) -> Analysis | None:
        current = self._current()
        return copy.deepcopy(current["analysis"]) if current is not None else None

    def get_current_iteration(self) -> Iteration | None:
        current = self._current()
        return copy.deepcopy(current) if current is not None else None

    def get_iteration_stats(self) -> dict:
        return {
            "total": len(self.iterations),
            "satisfied": satisfied_count(self.iterations),
            "current": self.current_index + 1 if self.iterations else 0,
        }

    # --- read-only projections ---

    def compare(self, before_index: int, after_index: int) -> IterationComparison:
        """Diff two stored iterations. Raises IndexError for unknown indexes."""
        if not (0 <= before_index < len(self.iterations) and 0 <= after_index < len(self.iterations)):
            raise IndexError(f"Iteration index out of range (have {len(self.iterations)}).")
        return compare_analyses(
            self.iterations[before_index]["analysis"],
            self.iterations[after_index]["analysis"],
        )

    def get_iteration_metrics(self) -> IterationMetrics:
        return calculate_iteration_metrics(self.iterations)

    def get_history(self) -> list[Iteration]:
        return snapshot(self.iterations)

    def export(self) -> str:
        return export_iteration_history(self.iterations, self.requirement, self.form_data)

    def reset(self) -> None:
        """Drop the history (new requirement). Not allowed while refining."""
        if self._refining:
            return
        self.iterations = []
        self.current_index = 0
        self.user_feedback = ""
        self.has_unsaved_changes = False
        self.last_error = None
        self.store.clear()
