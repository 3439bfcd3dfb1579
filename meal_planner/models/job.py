"""
Background generation job and user notification models.
"""
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class JobStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


ACTIVE_STATUSES = (JobStatus.PENDING, JobStatus.PROCESSING)


class GenerationJob(BaseModel):
    id: str
    plan_name: str
    week_start: str
    user_id: Optional[str] = None
    status: JobStatus = JobStatus.PENDING
    progress: int = Field(default=0, ge=0, le=100)
    current_step: Optional[str] = None
    groups_data: List[Dict[str, Any]] = Field(default_factory=list)
    additional_notes: Optional[str] = None
    total_meals_generated: int = 0
    api_calls_made: int = 0
    generation_time_ms: Optional[int] = None
    error_message: Optional[str] = None
    error_details: Optional[Dict[str, Any]] = None
    created_at: Optional[str] = None
    started_at: Optional[str] = None
    completed_at: Optional[str] = None
    updated_at: Optional[str] = None

    def __repr__(self):
        return f"<GenerationJob(id={self.id!r}, status='{self.status.value}', progress={self.progress})>"


class NotificationType(str, Enum):
    MEAL_GENERATION_COMPLETED = "meal_generation_completed"
    MEAL_GENERATION_FAILED = "meal_generation_failed"


class Notification(BaseModel):
    user_id: str
    type: NotificationType
    title: str
    message: str
    job_id: Optional[str] = None
    read: bool = False
