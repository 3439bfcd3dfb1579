# meal_planner/services/job_runner.py
"""
Background execution of meal-generation jobs.

The HTTP handler creates a job row and calls `submit`, which schedules
`process_job` as an asyncio task and returns the task handle immediately.
`process_job` never lets an exception escape: whatever happens, the job ends
in `completed` or `failed` and the user gets a notification.
"""
from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Any, Dict, List, Optional, Sequence, Set

from meal_planner.models.generation import MealGenerationResult
from meal_planner.models.group import Group
from meal_planner.models.job import GenerationJob, JobStatus, Notification, NotificationType
from meal_planner.models.plan import Plan
from meal_planner.services.adult_equivalent import calculate_adult_equivalent
from meal_planner.services.job_tracker import JobProgressTracker
from meal_planner.services.meal_generator import MealGenerator
from meal_planner.services.storage import GenerationStore

logger = logging.getLogger(__name__)


def build_groups_data(plan: Plan, groups: Sequence[Group]) -> List[Dict[str, Any]]:
    """Snapshot of what was requested, stored on the job row for later display."""
    by_id = {g.id: g for g in groups}
    snapshot: List[Dict[str, Any]] = []
    for entry in plan.group_meals:
        group = by_id.get(entry.group_id)
        item: Dict[str, Any] = {
            "group_id": entry.group_id,
            "meal_count": entry.meal_count,
            "notes": entry.notes,
        }
        if group is not None:
            item.update(
                {
                    "group_name": group.name,
                    "demographics": group.demographics.model_dump(),
                    "dietary_restrictions": list(group.dietary_restrictions),
                    "adult_equivalent": calculate_adult_equivalent(group.demographics),
                }
            )
        snapshot.append(item)
    return snapshot


def summarize_errors(result: MealGenerationResult) -> str:
    if not result.errors:
        return "Meal generation failed"
    return "; ".join(e.message for e in result.errors)


class MealGenerationJobRunner:

    def __init__(
        self,
        store: GenerationStore,
        generator: MealGenerator,
        tracker: Optional[JobProgressTracker] = None,
    ):
        self.store = store
        self.generator = generator
        self.tracker = tracker or JobProgressTracker(store)
        self._tasks: Set[asyncio.Task] = set()

    async def create_job(
        self, plan: Plan, groups: Sequence[Group], user_id: Optional[str] = None
    ) -> GenerationJob:
        job = GenerationJob(
            id=str(uuid.uuid4()),
            plan_name=plan.name,
            week_start=plan.week_start.isoformat(),
            user_id=user_id,
            status=JobStatus.PENDING,
            progress=0,
            current_step="Queued",
            groups_data=build_groups_data(plan, groups),
            additional_notes=plan.notes,
        )
        created = await self.store.create_job(job)
        logger.info("Created generation job %s for plan %r", created.id, plan.name)
        return created

    def submit(
        self, job_id: str, plan: Plan, groups: Sequence[Group], user_id: Optional[str] = None
    ) -> asyncio.Task:
        """Schedule the job on the running loop; the task is tracked until it finishes."""
        task = asyncio.get_running_loop().create_task(
            self.process_job(job_id, plan, groups, user_id), name=f"meal-generation-{job_id}"
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    @property
    def pending_jobs(self) -> int:
        return len(self._tasks)

    async def drain(self, timeout: Optional[float] = None) -> None:
        """Wait for outstanding jobs, e.g. during application shutdown."""
        if not self._tasks:
            return
        logger.info("Waiting for %d generation job(s) to finish", len(self._tasks))
        done, pending = await asyncio.wait(set(self._tasks), timeout=timeout)
        if pending:
            logger.warning("%d generation job(s) still running after drain timeout", len(pending))

    async def process_job(
        self, job_id: str, plan: Plan, groups: Sequence[Group], user_id: Optional[str] = None
    ) -> None:
        logger.info("Processing job %s for user %s", job_id, user_id)
        try:
            if not await self.tracker.start(job_id):
                logger.info("Job %s already started or finished; skipping", job_id)
                return

            await self.tracker.mark_generating(job_id)
            result = await self.generator.generate_meals_for_plan(plan, groups)

            if result.data is None or result.data.total_meals_generated == 0:
                message = summarize_errors(result)
                await self._fail(
                    job_id,
                    plan,
                    user_id,
                    message,
                    details={
                        "error": message,
                        "errors": [e.model_dump(mode="json") for e in result.errors],
                        "api_calls_made": result.metadata.api_calls_made,
                    },
                )
                return

            await self.tracker.mark_saving(job_id)
            data = result.data
            meals = [meal for option in data.group_meal_options for meal in option.meals]
            group_names = {o.group_id: o.group_name for o in data.group_meal_options}
            await self.store.insert_generated_meals(
                job_id, meals, group_names=group_names, user_id=user_id
            )

            partial_errors = [e.model_dump(mode="json") for e in result.errors]
            await self.tracker.complete(
                job_id,
                total_meals_generated=data.total_meals_generated,
                api_calls_made=data.generation_metadata.api_calls_made,
                generation_time_ms=data.generation_metadata.generation_time_ms,
                partial_errors=partial_errors or None,
            )
            if partial_errors:
                logger.warning(
                    "Job %s completed with %d group error(s)", job_id, len(partial_errors)
                )

            await self._notify(
                user_id,
                job_id,
                NotificationType.MEAL_GENERATION_COMPLETED,
                "Meal generation completed!",
                f'{data.total_meals_generated} meals have been generated for "{plan.name}".',
            )
        except Exception as exc:
            logger.exception("Background job %s failed: %s", job_id, exc)
            await self._fail(job_id, plan, user_id, str(exc) or type(exc).__name__, details={"error": repr(exc)})

    async def _fail(
        self,
        job_id: str,
        plan: Plan,
        user_id: Optional[str],
        message: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        try:
            await self.tracker.fail(job_id, message, details=details)
        except Exception as exc:
            logger.exception("Could not mark job %s as failed: %s", job_id, exc)
        await self._notify(
            user_id,
            job_id,
            NotificationType.MEAL_GENERATION_FAILED,
            "Meal generation failed",
            f'Failed to generate meals for "{plan.name}": {message}',
        )

    async def _notify(
        self,
        user_id: Optional[str],
        job_id: str,
        kind: NotificationType,
        title: str,
        message: str,
    ) -> None:
        if not user_id:
            return
        try:
            await self.store.insert_notification(
                Notification(user_id=user_id, type=kind, title=title, message=message, job_id=job_id)
            )
        except Exception as exc:
            # notification failure must not change the job outcome
            logger.exception("Failed to insert %s notification for job %s: %s", kind.value, job_id, exc)
