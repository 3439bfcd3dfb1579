"""
Models for a single meal-generation run: the per-group request context and
the aggregated result handed back to the job runner.
"""
from enum import Enum
from typing import Any, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from meal_planner.models.group import Demographics
from meal_planner.models.meal import GeneratedMeal


class ErrorCode(str, Enum):
    NO_GROUPS = "NO_GROUPS"
    NO_MEALS_REQUESTED = "NO_MEALS_REQUESTED"
    GROUP_NOT_FOUND = "GROUP_NOT_FOUND"
    MEAL_LIMIT_EXCEEDED = "MEAL_LIMIT_EXCEEDED"
    API_FAILURE = "API_FAILURE"
    GROUP_GENERATION_FAILED = "GROUP_GENERATION_FAILED"
    UNEXPECTED_ERROR = "UNEXPECTED_ERROR"


class GenerationState(str, Enum):
    NOT_STARTED = "NOT_STARTED"
    BUILDING_CONTEXTS = "BUILDING_CONTEXTS"
    COMBINED_CALL = "COMBINED_CALL"
    PER_GROUP_CALLS = "PER_GROUP_CALLS"
    AGGREGATING = "AGGREGATING"
    SUCCESS = "SUCCESS"
    PARTIAL_FAILURE = "PARTIAL_FAILURE"
    FAILURE = "FAILURE"


class GenerationMode(str, Enum):
    COMBINED = "combined"
    PER_GROUP = "per_group"


class GenerationContext(BaseModel):
    """One (plan, group) pair, built fresh for every generation attempt."""

    model_config = ConfigDict(frozen=True)

    group_id: str
    group_name: str
    demographics: Demographics
    dietary_restrictions: Tuple[str, ...] = ()
    meals_requested: int
    notes: Optional[str] = None
    adult_equivalent: float


class GenerationErrorRecord(BaseModel):
    code: ErrorCode
    message: str
    group_id: Optional[str] = None
    details: Optional[Any] = None


class GroupMealOptions(BaseModel):
    group_id: str
    group_name: str
    requested_count: int
    generated_count: int
    meals: List[GeneratedMeal] = Field(default_factory=list)
    adult_equivalent: float
    total_servings_needed: float


class GenerationMetadata(BaseModel):
    api_calls_made: int = 0
    total_tokens_used: Optional[int] = None
    generation_time_ms: int = 0
    mode: Optional[GenerationMode] = None
    final_state: GenerationState = GenerationState.NOT_STARTED


class MealGenerationResponse(BaseModel):
    plan_id: Optional[str] = None
    generated_at: str
    total_meals_generated: int
    group_meal_options: List[GroupMealOptions] = Field(default_factory=list)
    generation_metadata: GenerationMetadata = Field(default_factory=GenerationMetadata)


class MealGenerationResult(BaseModel):
    success: bool
    data: Optional[MealGenerationResponse] = None
    errors: List[GenerationErrorRecord] = Field(default_factory=list)
    # Filled even when `data` is None so callers can report call counts.
    metadata: GenerationMetadata = Field(default_factory=GenerationMetadata)

    @property
    def error_codes(self) -> List[ErrorCode]:
        return [e.code for e in self.errors]
