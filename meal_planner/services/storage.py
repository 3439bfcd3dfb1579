# meal_planner/services/storage.py
"""
Storage adapter for generation jobs, generated meals and notifications.

`GenerationStore` is the interface the tracker, runner and review helpers
depend on. `SupabaseGenerationStore` implements it over three supabase
tables:
  - meal_generation_jobs
  - generated_meals
  - user_notifications

All supabase-py calls are blocking, so they run through asyncio.to_thread.
Failures raise StorageError; callers decide whether that is fatal.
"""
from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from meal_planner.models.job import GenerationJob, JobStatus, Notification
from meal_planner.models.meal import GeneratedMeal
from meal_planner.services.errors import StorageError

logger = logging.getLogger(__name__)

JOBS_TABLE = "meal_generation_jobs"
MEALS_TABLE = "generated_meals"
NOTIFICATIONS_TABLE = "user_notifications"


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _parse_supabase_response(resp: Any) -> Dict[str, Any]:
    """
    Turn Supabase SDK responses (object with .data or dict) into a predictable dict.
    Returns {ok, data, error, status_code}
    """
    if resp is None:
        return {"ok": False, "data": None, "error": "empty_response", "status_code": None}

    if hasattr(resp, "data"):
        data = getattr(resp, "data")
        error = getattr(resp, "error", None)
        status_code = getattr(resp, "status_code", None)
    elif isinstance(resp, dict):
        data = resp.get("data")
        error = resp.get("error")
        status_code = resp.get("status_code", resp.get("status"))
    else:
        return {"ok": False, "data": None, "error": f"unexpected_response:{type(resp).__name__}", "status_code": None}

    if isinstance(status_code, int) and status_code >= 400 and not error:
        error = f"http_{status_code}"
    return {"ok": not error, "data": data, "error": error, "status_code": status_code}


def _rows(data: Any) -> List[Dict[str, Any]]:
    if data is None:
        return []
    if isinstance(data, list):
        return [r for r in data if isinstance(r, dict)]
    if isinstance(data, dict):
        return [data]
    return []


class GenerationStore(ABC):

    @abstractmethod
    async def create_job(self, job: GenerationJob) -> GenerationJob:
        ...

    @abstractmethod
    async def get_job(self, job_id: str) -> Optional[GenerationJob]:
        ...

    @abstractmethod
    async def update_job(
        self,
        job_id: str,
        fields: Mapping[str, Any],
        allowed_statuses: Optional[Sequence[JobStatus]] = None,
        max_progress: Optional[int] = None,
    ) -> bool:
        """
        Apply `fields` only if the stored job's status is in `allowed_statuses`
        and its progress is <= `max_progress` (each filter skipped when None).
        Returns True when a row was updated.
        """

    @abstractmethod
    async def insert_generated_meals(
        self,
        job_id: str,
        meals: Sequence[GeneratedMeal],
        group_names: Optional[Mapping[str, str]] = None,
        user_id: Optional[str] = None,
    ) -> int:
        ...

    @abstractmethod
    async def insert_notification(self, notification: Notification) -> None:
        ...

    @abstractmethod
    async def list_generated_meals(self, job_id: str) -> List[Dict[str, Any]]:
        ...

    @abstractmethod
    async def set_meal_selection(self, job_id: str, selected_ids: Sequence[str]) -> int:
        """Mark `selected_ids` selected and every other meal of the job unselected."""


class SupabaseGenerationStore(GenerationStore):

    def __init__(self, client: Any):
        self.client = client
        if self.client is None:
            logger.warning(
                "SupabaseGenerationStore: Supabase client not available. Storage calls will fail."
            )

    async def _call_db(self, operation: str, fn: Callable[[], Any]) -> Any:
        """
        Run a blocking supabase call in a thread and return its `data`.
        Raises StorageError on exceptions or error-shaped responses.
        """
        if self.client is None:
            raise StorageError("Supabase client not configured", operation=operation)
        try:
            raw = await asyncio.to_thread(fn)
        except Exception as exc:
            logger.exception("DB call %s raised exception: %s", operation, exc)
            raise StorageError(str(exc), operation=operation) from exc

        parsed = _parse_supabase_response(raw)
        if not parsed["ok"]:
            logger.error("DB call %s failed: %s", operation, parsed["error"])
            raise StorageError(
                f"{operation} failed: {parsed['error']}",
                operation=operation,
                details={"status_code": parsed["status_code"]},
            )
        return parsed["data"]

    async def create_job(self, job: GenerationJob) -> GenerationJob:
        row = job.model_dump(mode="json", exclude_none=True)
        now = _now_iso()
        row.setdefault("created_at", now)
        row.setdefault("updated_at", now)
        data = await self._call_db(
            "create_job", lambda: self.client.table(JOBS_TABLE).insert(row).execute()
        )
        rows = _rows(data)
        return GenerationJob.model_validate(rows[0] if rows else row)

    async def get_job(self, job_id: str) -> Optional[GenerationJob]:
        data = await self._call_db(
            "get_job",
            lambda: self.client.table(JOBS_TABLE).select("*").eq("id", job_id).limit(1).execute(),
        )
        rows = _rows(data)
        return GenerationJob.model_validate(rows[0]) if rows else None

    async def update_job(
        self,
        job_id: str,
        fields: Mapping[str, Any],
        allowed_statuses: Optional[Sequence[JobStatus]] = None,
        max_progress: Optional[int] = None,
    ) -> bool:
        payload = {k: (v.value if isinstance(v, JobStatus) else v) for k, v in fields.items()}
        payload["updated_at"] = _now_iso()

        def _update():
            query = self.client.table(JOBS_TABLE).update(payload).eq("id", job_id)
            if allowed_statuses is not None:
                query = query.in_("status", [JobStatus(s).value for s in allowed_statuses])
            if max_progress is not None:
                query = query.lte("progress", max_progress)
            return query.execute()

        data = await self._call_db("update_job", _update)
        applied = bool(_rows(data))
        if not applied:
            logger.debug("update_job %s matched no rows (fields=%s)", job_id, list(fields))
        return applied

    async def insert_generated_meals(
        self,
        job_id: str,
        meals: Sequence[GeneratedMeal],
        group_names: Optional[Mapping[str, str]] = None,
        user_id: Optional[str] = None,
    ) -> int:
        if not meals:
            return 0
        group_names = group_names or {}
        rows = []
        for meal in meals:
            row = meal.model_dump(mode="json")
            row["job_id"] = job_id
            row["group_name"] = group_names.get(meal.group_id, meal.group_id)
            if user_id:
                row["user_id"] = user_id
            rows.append(row)

        await self._call_db(
            "insert_generated_meals", lambda: self.client.table(MEALS_TABLE).insert(rows).execute()
        )
        logger.info("Saved %d generated meals for job %s", len(rows), job_id)
        return len(rows)

    async def insert_notification(self, notification: Notification) -> None:
        row = notification.model_dump(mode="json", exclude_none=True)
        await self._call_db(
            "insert_notification",
            lambda: self.client.table(NOTIFICATIONS_TABLE).insert(row).execute(),
        )

    async def list_generated_meals(self, job_id: str) -> List[Dict[str, Any]]:
        data = await self._call_db(
            "list_generated_meals",
            lambda: self.client.table(MEALS_TABLE).select("*").eq("job_id", job_id).execute(),
        )
        return _rows(data)

    async def set_meal_selection(self, job_id: str, selected_ids: Sequence[str]) -> int:
        ids = list(dict.fromkeys(selected_ids))
        await self._call_db(
            "clear_meal_selection",
            lambda: self.client.table(MEALS_TABLE)
            .update({"selected": False})
            .eq("job_id", job_id)
            .execute(),
        )
        if not ids:
            return 0
        data = await self._call_db(
            "set_meal_selection",
            lambda: self.client.table(MEALS_TABLE)
            .update({"selected": True})
            .eq("job_id", job_id)
            .in_("id", ids)
            .execute(),
        )
        return len(_rows(data))
