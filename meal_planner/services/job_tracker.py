# meal_planner/services/job_tracker.py
"""
Progress checkpoints for a background generation job.

    pending --start--> processing (10%) --> 30% --> 80% --> completed (100%)
    pending | processing --fail--> failed

Each checkpoint is a single conditional update: it only applies while the
job is still active and its stored progress does not exceed the new value.
Anything else (terminal job, backward move, repeated trigger) is a no-op that
returns False, so at-least-once delivery of the trigger is harmless.
"""
from __future__ import annotations

import logging
import math
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from meal_planner.models.job import ACTIVE_STATUSES, GenerationJob, JobStatus
from meal_planner.services.storage import GenerationStore

logger = logging.getLogger(__name__)

STEP_PREPARING = "Preparing AI request..."
STEP_GENERATING = "Generating meals with AI..."
STEP_SAVING = "Saving generated meals..."
STEP_COMPLETED = "Completed"
DEFAULT_STEP = "Processing..."

PROGRESS_PREPARING = 10
PROGRESS_GENERATING = 30
PROGRESS_SAVING = 80
PROGRESS_COMPLETED = 100

# Minutes a job typically spends in each step.
STAGE_ESTIMATES_MINUTES = {
    STEP_PREPARING: 0.5,
    STEP_GENERATING: 3,
    STEP_SAVING: 1,
}
DEFAULT_STAGE_ESTIMATE_MINUTES = 2


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class JobProgressTracker:

    def __init__(self, store: GenerationStore):
        self.store = store

    async def _checkpoint(
        self,
        job_id: str,
        fields: Dict[str, Any],
        allowed: tuple,
        progress: Optional[int],
    ) -> bool:
        applied = await self.store.update_job(
            job_id, fields, allowed_statuses=allowed, max_progress=progress
        )
        if applied:
            logger.info(
                "Job %s -> status=%s progress=%s step=%r",
                job_id,
                fields.get("status", "-"),
                fields.get("progress", "-"),
                fields.get("current_step"),
            )
        else:
            logger.info("Job %s checkpoint ignored (job terminal or ahead): %s", job_id, fields)
        return applied

    async def start(self, job_id: str) -> bool:
        return await self._checkpoint(
            job_id,
            {
                "status": JobStatus.PROCESSING,
                "started_at": _now_iso(),
                "progress": PROGRESS_PREPARING,
                "current_step": STEP_PREPARING,
            },
            (JobStatus.PENDING,),
            PROGRESS_PREPARING,
        )

    async def mark_generating(self, job_id: str) -> bool:
        return await self._checkpoint(
            job_id,
            {"progress": PROGRESS_GENERATING, "current_step": STEP_GENERATING},
            (JobStatus.PROCESSING,),
            PROGRESS_GENERATING,
        )

    async def mark_saving(self, job_id: str) -> bool:
        return await self._checkpoint(
            job_id,
            {"progress": PROGRESS_SAVING, "current_step": STEP_SAVING},
            (JobStatus.PROCESSING,),
            PROGRESS_SAVING,
        )

    async def complete(
        self,
        job_id: str,
        total_meals_generated: int,
        api_calls_made: int,
        generation_time_ms: int,
        partial_errors: Optional[List[Dict[str, Any]]] = None,
    ) -> bool:
        fields: Dict[str, Any] = {
            "status": JobStatus.COMPLETED,
            "progress": PROGRESS_COMPLETED,
            "current_step": STEP_COMPLETED,
            "completed_at": _now_iso(),
            "total_meals_generated": total_meals_generated,
            "api_calls_made": api_calls_made,
            "generation_time_ms": generation_time_ms,
        }
        if partial_errors:
            fields["error_details"] = {"partial_errors": partial_errors}
        return await self._checkpoint(
            job_id, fields, (JobStatus.PROCESSING,), PROGRESS_COMPLETED
        )

    async def fail(
        self, job_id: str, message: str, details: Optional[Dict[str, Any]] = None
    ) -> bool:
        fields = {
            "status": JobStatus.FAILED,
            "completed_at": _now_iso(),
            "error_message": message,
            "error_details": details or {"error": message},
        }
        return await self._checkpoint(job_id, fields, ACTIVE_STATUSES, None)


def job_status_view(job: GenerationJob) -> Dict[str, Any]:
    """What a polling client sees; no internal fields."""
    return {
        "id": job.id,
        "status": job.status.value,
        "progress": job.progress,
        "current_step": job.current_step,
        "total_meals_generated": job.total_meals_generated,
        "error_message": job.error_message,
        "created_at": job.created_at,
        "started_at": job.started_at,
        "completed_at": job.completed_at,
    }


def format_job_status(job: GenerationJob) -> Dict[str, Any]:
    status = job.status.value
    return {
        "display_status": status.capitalize(),
        "display_step": job.current_step or DEFAULT_STEP,
        "is_complete": job.status is JobStatus.COMPLETED,
        "is_error": job.status is JobStatus.FAILED,
        "progress_percentage": int(job.progress or 0),
    }


def estimate_time_remaining(job: GenerationJob) -> Dict[str, Any]:
    if job.status.is_terminal:
        return {"estimated_minutes": 0, "display_text": "Complete"}

    base = STAGE_ESTIMATES_MINUTES.get(job.current_step or DEFAULT_STEP, DEFAULT_STAGE_ESTIMATE_MINUTES)
    progress = max(job.progress or 0, 1)
    minutes = int(math.floor(base * (100 - progress) / 100 + 0.5))

    if minutes < 1:
        text = "Less than 1 minute"
    elif minutes == 1:
        text = "1 minute"
    else:
        text = f"{minutes} minutes"
    return {"estimated_minutes": minutes, "display_text": text}
