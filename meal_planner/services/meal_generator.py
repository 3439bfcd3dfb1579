# meal_planner/services/meal_generator.py
"""
Meal generation orchestrator.

Flow for one plan:
  1. guard: groups exist, contexts build, something was requested
  2. per group target = requested + extra_meals; groups over the cap are
     excluded with MEAL_LIMIT_EXCEEDED, the rest continue
  3. small requests go out as one combined call, large ones as sequential
     per-group calls (a single huge reply gets truncated by the model)
  4. every call goes through the retry policy; exhausted retries become
     API_FAILURE records instead of exceptions
  5. aggregate into a MealGenerationResult (success, partial or failure);
     a group left without meals gets its own group-tagged error

Errors are accumulated, not raised. Only the job runner decides what a
partial result means for the job.
"""
from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence, Tuple

from meal_planner.config.generation import DEFAULT_GENERATION_CONFIG, GenerationConfig
from meal_planner.models.generation import (
    ErrorCode,
    GenerationContext,
    GenerationErrorRecord,
    GenerationMetadata,
    GenerationMode,
    GenerationState,
    GroupMealOptions,
    MealGenerationResponse,
    MealGenerationResult,
)
from meal_planner.models.group import Group
from meal_planner.models.meal import GeneratedMeal
from meal_planner.models.plan import Plan
from meal_planner.services.errors import GroupNotFoundError, NoValidMealsError
from meal_planner.services.llm_client import TextGenerator
from meal_planner.services.prompts import (
    SYSTEM_PROMPT,
    build_combined_prompt,
    build_group_prompt,
)
from meal_planner.services.recipe_validation import prepare_meals
from meal_planner.services.request_builder import build_group_contexts
from meal_planner.services.response_parser import (
    parse_combined_response,
    parse_meal_response,
)
from meal_planner.services.retry import RetryExhaustedError, RetryPolicy

logger = logging.getLogger(__name__)

BASE_RECIPE_SERVINGS = 4

Target = Tuple[GenerationContext, int]


@dataclass
class _Run:
    """Mutable bookkeeping for one orchestrator invocation."""

    started: float = field(default_factory=time.monotonic)
    state: GenerationState = GenerationState.NOT_STARTED
    mode: Optional[GenerationMode] = None
    api_calls: int = 0
    tokens: int = 0
    errors: List[GenerationErrorRecord] = field(default_factory=list)

    def count_attempt(self, _attempt: int) -> None:
        self.api_calls += 1

    def error(self, code: ErrorCode, message: str, group_id: Optional[str] = None, details=None) -> None:
        self.errors.append(
            GenerationErrorRecord(code=code, message=message, group_id=group_id, details=details)
        )

    def metadata(self) -> GenerationMetadata:
        return GenerationMetadata(
            api_calls_made=self.api_calls,
            total_tokens_used=self.tokens or None,
            generation_time_ms=int((time.monotonic() - self.started) * 1000),
            mode=self.mode,
            final_state=self.state,
        )


def total_servings_needed(meals: Sequence[GeneratedMeal], adult_equivalent: float) -> float:
    """Base recipes are assumed to serve 4 and scale linearly with AE."""
    servings = meals[0].servings if meals else 0
    needed = math.ceil(servings * (adult_equivalent / BASE_RECIPE_SERVINGS)) if servings else 0
    return needed or adult_equivalent


def _match_group_meals(
    by_name: Dict[str, list], group_name: str
) -> Optional[list]:
    if group_name in by_name:
        return by_name[group_name]
    wanted = group_name.strip().lower()
    for name, meals in by_name.items():
        if name.strip().lower() == wanted:
            return meals
    return None


class MealGenerator:

    def __init__(
        self,
        text_generator: TextGenerator,
        config: GenerationConfig = DEFAULT_GENERATION_CONFIG,
        retry_policy: Optional[RetryPolicy] = None,
    ):
        self.text_generator = text_generator
        self.config = config
        self.retry_policy = retry_policy or RetryPolicy(
            max_attempts=config.max_retries, base_delay=config.retry_base_delay_seconds
        )

    # --- public API ---
    async def generate_meals_for_plan(
        self, plan: Plan, available_groups: Sequence[Group]
    ) -> MealGenerationResult:
        run = _Run()
        try:
            return await self._generate(plan, available_groups, run)
        except Exception as exc:
            logger.exception("Unexpected error generating meals for plan %r: %s", plan.name, exc)
            run.state = GenerationState.FAILURE
            run.error(ErrorCode.UNEXPECTED_ERROR, f"Unexpected error during meal generation: {exc}")
            return MealGenerationResult(success=False, errors=run.errors, metadata=run.metadata())

    def select_mode(self, targets: Sequence[Target]) -> GenerationMode:
        total = sum(count for _, count in targets)
        if total > self.config.combined_max_total_meals or len(targets) > self.config.combined_max_groups:
            return GenerationMode.PER_GROUP
        return GenerationMode.COMBINED

    # --- internals ---
    def _fail(self, run: _Run, code: ErrorCode, message: str, group_id: Optional[str] = None) -> MealGenerationResult:
        run.state = GenerationState.FAILURE
        run.error(code, message, group_id=group_id)
        logger.info("Meal generation precondition failed: %s %s", code.value, message)
        return MealGenerationResult(success=False, errors=run.errors, metadata=run.metadata())

    async def _generate(
        self, plan: Plan, available_groups: Sequence[Group], run: _Run
    ) -> MealGenerationResult:
        if not available_groups:
            return self._fail(run, ErrorCode.NO_GROUPS, "No groups available for meal generation")

        run.state = GenerationState.BUILDING_CONTEXTS
        try:
            contexts = build_group_contexts(plan, available_groups)
        except GroupNotFoundError as exc:
            return self._fail(run, ErrorCode.GROUP_NOT_FOUND, str(exc), group_id=exc.group_id)

        if not contexts:
            return self._fail(run, ErrorCode.NO_GROUPS, "No groups found in plan")

        if sum(ctx.meals_requested for ctx in contexts) == 0:
            return self._fail(
                run, ErrorCode.NO_MEALS_REQUESTED, "No meals requested for any group in this plan"
            )

        targets = self._targets(contexts, run)
        if not targets:
            run.state = GenerationState.FAILURE
            return MealGenerationResult(success=False, errors=run.errors, metadata=run.metadata())

        run.mode = self.select_mode(targets)
        logger.info(
            "Generating meals for plan %r: groups=%d total_target=%d mode=%s",
            plan.name,
            len(targets),
            sum(c for _, c in targets),
            run.mode.value,
        )
        if run.mode is GenerationMode.COMBINED:
            run.state = GenerationState.COMBINED_CALL
            meals_by_group = await self._generate_combined(plan, targets, run)
        else:
            run.state = GenerationState.PER_GROUP_CALLS
            meals_by_group = await self._generate_per_group(plan, targets, run)

        run.state = GenerationState.AGGREGATING
        return self._aggregate(plan, contexts, meals_by_group, run)

    def _targets(self, contexts: Sequence[GenerationContext], run: _Run) -> List[Target]:
        targets: List[Target] = []
        for ctx in contexts:
            count = ctx.meals_requested + self.config.extra_meals
            if count > self.config.max_meals_per_group:
                run.error(
                    ErrorCode.MEAL_LIMIT_EXCEEDED,
                    f"Cannot generate {count} meals for {ctx.group_name}. "
                    f"Maximum is {self.config.max_meals_per_group}",
                    group_id=ctx.group_id,
                )
                continue
            targets.append((ctx, count))
        return targets

    async def _generate_combined(
        self, plan: Plan, targets: Sequence[Target], run: _Run
    ) -> Dict[str, List[GeneratedMeal]]:
        prompt = build_combined_prompt(plan.name, plan.week_start, targets, plan.notes)

        async def attempt() -> Dict[str, List[GeneratedMeal]]:
            completion = await self.text_generator.complete(SYSTEM_PROMPT, prompt)
            run.tokens += completion.total_tokens
            by_name = parse_combined_response(completion.content)

            results: Dict[str, List[GeneratedMeal]] = {}
            for ctx, _ in targets:
                raw = _match_group_meals(by_name, ctx.group_name)
                if raw is None:
                    logger.warning("Combined response had no entry for group %r", ctx.group_name)
                    continue
                try:
                    results[ctx.group_id] = prepare_meals(raw, ctx.group_id, self.config)
                except NoValidMealsError as exc:
                    logger.warning("Group %r: %s", ctx.group_name, exc)
            if not results:
                raise NoValidMealsError("No valid meals were generated for any group")
            return results

        try:
            return await self.retry_policy.run(
                attempt, label="combined generation", on_attempt=run.count_attempt
            )
        except RetryExhaustedError as exc:
            run.error(
                ErrorCode.API_FAILURE,
                str(exc),
                details={"last_error": str(exc.last_error), "mode": GenerationMode.COMBINED.value},
            )
            return {}

    async def _generate_per_group(
        self, plan: Plan, targets: Sequence[Target], run: _Run
    ) -> Dict[str, List[GeneratedMeal]]:
        results: Dict[str, List[GeneratedMeal]] = {}
        for ctx, count in targets:
            prompt = build_group_prompt(ctx, count, plan.week_start)

            async def attempt(ctx=ctx, prompt=prompt) -> List[GeneratedMeal]:
                completion = await self.text_generator.complete(SYSTEM_PROMPT, prompt)
                run.tokens += completion.total_tokens
                return prepare_meals(parse_meal_response(completion.content), ctx.group_id, self.config)

            try:
                results[ctx.group_id] = await self.retry_policy.run(
                    attempt, label=f"generation for group {ctx.group_name!r}", on_attempt=run.count_attempt
                )
            except RetryExhaustedError as exc:
                run.error(
                    ErrorCode.API_FAILURE,
                    str(exc),
                    group_id=ctx.group_id,
                    details={"last_error": str(exc.last_error)},
                )
            except Exception as exc:
                logger.exception("Generation for group %r raised: %s", ctx.group_name, exc)
                run.error(
                    ErrorCode.GROUP_GENERATION_FAILED,
                    f"Failed to generate meals for {ctx.group_name}: {exc}",
                    group_id=ctx.group_id,
                )
        return results

    def _aggregate(
        self,
        plan: Plan,
        contexts: Sequence[GenerationContext],
        meals_by_group: Dict[str, List[GeneratedMeal]],
        run: _Run,
    ) -> MealGenerationResult:
        options: List[GroupMealOptions] = []
        for ctx in contexts:
            meals = meals_by_group.get(ctx.group_id)
            if not meals:
                continue
            options.append(
                GroupMealOptions(
                    group_id=ctx.group_id,
                    group_name=ctx.group_name,
                    requested_count=ctx.meals_requested,
                    generated_count=len(meals),
                    meals=meals,
                    adult_equivalent=ctx.adult_equivalent,
                    total_servings_needed=total_servings_needed(meals, ctx.adult_equivalent),
                )
            )

        total = sum(o.generated_count for o in options)
        if total > 0:
            # groups dropped from an otherwise usable reply still need an error entry
            reported = {e.group_id for e in run.errors if e.group_id}
            for ctx in contexts:
                if not meals_by_group.get(ctx.group_id) and ctx.group_id not in reported:
                    run.error(
                        ErrorCode.API_FAILURE,
                        f"No valid meals generated for {ctx.group_name}",
                        group_id=ctx.group_id,
                    )
        every_group_served = all(meals_by_group.get(ctx.group_id) for ctx in contexts)
        success = total > 0 and every_group_served and not run.errors

        if total == 0:
            run.state = GenerationState.FAILURE
            if not run.errors:
                run.error(ErrorCode.API_FAILURE, "No meals were generated")
            logger.warning("Meal generation for plan %r produced no meals", plan.name)
            return MealGenerationResult(success=False, errors=run.errors, metadata=run.metadata())

        run.state = GenerationState.SUCCESS if success else GenerationState.PARTIAL_FAILURE
        metadata = run.metadata()
        response = MealGenerationResponse(
            plan_id=plan.id,
            generated_at=datetime.now(timezone.utc).isoformat(),
            total_meals_generated=total,
            group_meal_options=options,
            generation_metadata=metadata,
        )
        logger.info(
            "Meal generation for plan %r finished: state=%s meals=%d api_calls=%d errors=%d",
            plan.name,
            run.state.value,
            total,
            run.api_calls,
            len(run.errors),
        )
        return MealGenerationResult(success=success, data=response, errors=run.errors, metadata=metadata)
