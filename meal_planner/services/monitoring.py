# meal_planner/services/monitoring.py
"""
Timing and failure tracking for storage calls.

`StoreMonitor` aggregates per-operation outcomes. `MonitoredGenerationStore`
wraps any `GenerationStore` and reports every call to a monitor it is given
explicitly; it exposes the same interface, so callers can't tell the
difference.
"""
from __future__ import annotations

import logging
import time
from collections import deque
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Deque, Dict, List, Mapping, Optional, Sequence, TypeVar

from meal_planner.models.job import GenerationJob, JobStatus, Notification
from meal_planner.models.meal import GeneratedMeal
from meal_planner.services.storage import GenerationStore

logger = logging.getLogger(__name__)

T = TypeVar("T")

MAX_RECENT_ERRORS = 50
LOW_SUCCESS_RATE = 90.0
LOW_SUCCESS_MIN_OPERATIONS = 10
HIGH_ERROR_COUNT_PER_HOUR = 10
SLOW_OPERATION_MS = 5000.0


class StoreMonitor:

    def __init__(self, clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc)):
        self._clock = clock
        self.created_at = clock()
        self.total_operations = 0
        self.failed_operations = 0
        self.total_duration_ms = 0.0
        self.per_operation: Dict[str, Dict[str, float]] = {}
        self.recent_errors: Deque[Dict[str, Any]] = deque(maxlen=MAX_RECENT_ERRORS)

    def record(self, operation: str, duration_ms: float, error: Optional[BaseException] = None) -> None:
        self.total_operations += 1
        self.total_duration_ms += duration_ms

        stats = self.per_operation.setdefault(
            operation, {"count": 0, "failures": 0, "total_ms": 0.0}
        )
        stats["count"] += 1
        stats["total_ms"] += duration_ms

        if error is not None:
            self.failed_operations += 1
            stats["failures"] += 1
            self.recent_errors.append(
                {
                    "timestamp": self._clock().isoformat(),
                    "operation": operation,
                    "error": str(error),
                }
            )
        if duration_ms > SLOW_OPERATION_MS:
            logger.warning("Slow storage operation %s: %.0fms", operation, duration_ms)

    @property
    def success_rate(self) -> float:
        if not self.total_operations:
            return 100.0
        return 100.0 * (self.total_operations - self.failed_operations) / self.total_operations

    @property
    def average_duration_ms(self) -> float:
        if not self.total_operations:
            return 0.0
        return self.total_duration_ms / self.total_operations

    def warnings(self) -> List[str]:
        found: List[str] = []
        if self.success_rate < LOW_SUCCESS_RATE and self.total_operations > LOW_SUCCESS_MIN_OPERATIONS:
            found.append(f"Low success rate: {self.success_rate:.1f}%")

        hour_ago = self._clock() - timedelta(hours=1)
        recent = [
            e for e in self.recent_errors if datetime.fromisoformat(e["timestamp"]) > hour_ago
        ]
        if len(recent) > HIGH_ERROR_COUNT_PER_HOUR:
            found.append(f"High error rate: {len(recent)} errors in the last hour")
        return found

    def snapshot(self) -> Dict[str, Any]:
        return {
            "created_at": self.created_at.isoformat(),
            "total_operations": self.total_operations,
            "failed_operations": self.failed_operations,
            "success_rate": round(self.success_rate, 1),
            "average_duration_ms": round(self.average_duration_ms, 1),
            "operations": {k: dict(v) for k, v in self.per_operation.items()},
            "recent_errors": list(self.recent_errors),
            "warnings": self.warnings(),
        }


class MonitoredGenerationStore(GenerationStore):

    def __init__(self, inner: GenerationStore, monitor: StoreMonitor):
        self.inner = inner
        self.monitor = monitor

    async def _timed(self, operation: str, call: Callable[[], Awaitable[T]]) -> T:
        started = time.perf_counter()
        try:
            result = await call()
        except Exception as exc:
            self.monitor.record(operation, (time.perf_counter() - started) * 1000, exc)
            raise
        self.monitor.record(operation, (time.perf_counter() - started) * 1000)
        return result

    async def create_job(self, job: GenerationJob) -> GenerationJob:
        return await self._timed("create_job", lambda: self.inner.create_job(job))

    async def get_job(self, job_id: str) -> Optional[GenerationJob]:
        return await self._timed("get_job", lambda: self.inner.get_job(job_id))

    async def update_job(
        self,
        job_id: str,
        fields: Mapping[str, Any],
        allowed_statuses: Optional[Sequence[JobStatus]] = None,
        max_progress: Optional[int] = None,
    ) -> bool:
        return await self._timed(
            "update_job",
            lambda: self.inner.update_job(job_id, fields, allowed_statuses, max_progress),
        )

    async def insert_generated_meals(
        self,
        job_id: str,
        meals: Sequence[GeneratedMeal],
        group_names: Optional[Mapping[str, str]] = None,
        user_id: Optional[str] = None,
    ) -> int:
        return await self._timed(
            "insert_generated_meals",
            lambda: self.inner.insert_generated_meals(job_id, meals, group_names, user_id),
        )

    async def insert_notification(self, notification: Notification) -> None:
        return await self._timed(
            "insert_notification", lambda: self.inner.insert_notification(notification)
        )

    async def list_generated_meals(self, job_id: str) -> List[Dict[str, Any]]:
        return await self._timed(
            "list_generated_meals", lambda: self.inner.list_generated_meals(job_id)
        )

    async def set_meal_selection(self, job_id: str, selected_ids: Sequence[str]) -> int:
        return await self._timed(
            "set_meal_selection", lambda: self.inner.set_meal_selection(job_id, selected_ids)
        )
