"""Analysis service: the refinement collaborator consumed by the iteration engine.

Validates input, applies the rate limiter, runs the analysis graph with the
selected provider and turns every failure into a RefinementError.
"""

import asyncio
import sys
import time

from reqforge.agents.analyst import QUESTIONS_SCHEMA, build_questions_prompt
from reqforge.agents.prompter import IDE_TARGETS, build_ide_prompt, build_improve_prompt
from reqforge.analysis import answered_questions, build_structured_requirement, normalize_analysis
from reqforge.errors import ErrorKind, RefinementError, classify_error
from reqforge.graph import run_analysis
from reqforge.providers import LLMProvider, get_provider
from reqforge.state import Analysis, Question, RefinementRequest, RequirementFormData
from reqforge.utils.rate_limit import RateLimiter
from reqforge.utils.telemetry import log_prompt_usage
from reqforge.utils.validator import validate_context, validate_input


class AnalysisService:
    def __init__(self, provider: LLMProvider | None = None, rate_limiter: RateLimiter | None = None):
        self.provider = provider if provider is not None else get_provider()
        self.rate_limiter = rate_limiter if rate_limiter is not None else RateLimiter.from_config()

    def set_provider(self, provider: LLMProvider | str) -> None:
        """Switch provider between calls; accepts an instance or a configured name."""
        if isinstance(provider, str):
            provider = get_provider(provider)
        print(f"[RF] Switching provider from {self.provider.name} to {provider.name}", file=sys.stderr)
        self.provider = provider

    def _check_rate_limit(self) -> None:
        if not self.rate_limiter.can_make_request():
            raise RefinementError(
                "Too many requests. Please wait before trying again.",
                ErrorKind.RATE_LIMITED,
                self.provider.name,
            )
        self.rate_limiter.record_request()

    async def _run(self, state: dict, label: str) -> Analysis:
        self._check_rate_limit()
        t0 = time.monotonic()
        try:
            analysis = await run_analysis(state, self.provider)
        except Exception as exc:
            error = classify_error(exc, self.provider.name)
            print(
                f"[RF] {label} failed with {self.provider.name} after "
                f"{(time.monotonic() - t0) * 1000:.0f}ms: {error!r}",
                file=sys.stderr,
            )
            raise error from exc
        print(
            f"[RF] {label} completed with {self.provider.name} in "
            f"{(time.monotonic() - t0) * 1000:.0f}ms",
            file=sys.stderr,
        )
        return analysis

    async def analyze_requirement(
        self,
        requirement: str,
        context: str = "",
        form_data: RequirementFormData | None = None,
    ) -> Analysis:
        """Initial (non-iterative) analysis used to seed iteration #1.

        Raises ValueError for invalid input and RefinementError for provider failures.
        """
        state = {
            "requirement": validate_input(requirement),
            "context": validate_context(context),
            "form_data": form_data,
            "previous_analysis": None,
            "iteration_number": 1,
        }
        return await self._run(state, "Analysis")

    async def create_iteration(self, request: RefinementRequest) -> Analysis:
        """Produce the next analysis from the previous one plus user edits and feedback."""
        iteration_number = request["iteration_number"]
        state = {
            "requirement": validate_input(request["requirement"]),
            "context": validate_context(request.get("context_summary") or request.get("context")),
            "form_data": request.get("form_data"),
            "previous_analysis": normalize_analysis(request["previous_analysis"]),
            "user_edits": request.get("user_edits"),
            "user_feedback": request.get("user_feedback"),
            "iteration_number": iteration_number,
        }
        try:
            return await self._run(state, f"Iteration {iteration_number}")
        except RefinementError as exc:
            raise RefinementError(
                f"Iteration {iteration_number} failed: {exc}", exc.kind, exc.provider
            ) from exc

    async def generate_additional_questions(
        self,
        requirement: str,
        analysis: Analysis,
        answered: list[Question] | None = None,
    ) -> list[Question]:
        """Ask the provider for follow-up questions. Returns [] on any provider failure."""
        if answered is None:
            answered = answered_questions(analysis)
        prompt = build_questions_prompt(validate_input(requirement), analysis, answered)

        try:
            self._check_rate_limit()
            data = await self.provider.generate_structured_response(prompt, QUESTIONS_SCHEMA)
            questions = normalize_analysis(
                {"questions": data.get("questions", [])},
                id_prefix=f"new_{int(time.time() * 1000)}_",
            )["questions"]
        except (RefinementError, ValueError) as exc:
            print(f"[RF] Error generating additional questions: {exc!r}", file=sys.stderr)
            return []
        return questions

    async def _generate_text(self, prompt: str, template: str) -> str:
        t0 = time.monotonic()
        try:
            text = await self.provider.generate_response(prompt)
        except Exception as exc:
            error = classify_error(exc, self.provider.name)
            print(f"[RF] {template} failed with {self.provider.name}: {error!r}", file=sys.stderr)
            raise error from exc
        log_prompt_usage(
            template=template,
            input_chars=len(prompt),
            output_chars=len(text),
            latency_ms=round((time.monotonic() - t0) * 1000),
        )
        return text.strip()

    async def generate_prompts(
        self,
        requirement: str,
        analysis: Analysis,
        form_data: RequirementFormData | None = None,
    ) -> dict[str, str]:
        """Build one implementation prompt per IDE target, in parallel.

        Counts as a single request against the rate limiter. Raises ValueError
        for invalid input and RefinementError if any IDE prompt fails.
        """
        structured = build_structured_requirement(validate_input(requirement), form_data)
        analysis = normalize_analysis(analysis)
        self._check_rate_limit()
        results = await asyncio.gather(*(
            self._generate_text(build_ide_prompt(ide, structured, analysis), f"ide_prompt_{ide}")
            for ide in IDE_TARGETS
        ))
        return dict(zip(IDE_TARGETS, results))

    async def improve_prompt(
        self,
        original_prompt: str,
        ide: str,
        instructions: str,
        requirement: str | None = None,
        analysis: Analysis | None = None,
    ) -> str:
        """Rewrite one generated prompt following the user's instructions."""
        if not isinstance(original_prompt, str) or len(original_prompt.strip()) < 10:
            raise ValueError("Original prompt must be at least 10 characters.")
        if ide not in IDE_TARGETS:
            raise ValueError(f"Unknown IDE '{ide}'. Choose one of: {', '.join(IDE_TARGETS)}")
        if not isinstance(instructions, str) or len(instructions.strip()) < 5:
            raise ValueError("Improvement instructions must be at least 5 characters.")
        if analysis is not None:
            analysis = normalize_analysis(analysis)
        prompt = build_improve_prompt(original_prompt.strip(), ide, instructions.strip(), requirement, analysis)
        self._check_rate_limit()
        return await self._generate_text(prompt, f"improve_prompt_{ide}")
