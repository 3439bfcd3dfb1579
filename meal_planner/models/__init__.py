"""Domain models for the meal planning service."""
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
from meal_planner.models.group import Demographics, Group
from meal_planner.models.job import GenerationJob, JobStatus, Notification, NotificationType
from meal_planner.models.meal import GeneratedMeal, Ingredient, INGREDIENT_CATEGORIES
from meal_planner.models.plan import GroupMeal, Plan

# Export all models
__all__ = [
    "Demographics",
    "Group",
    "GroupMeal",
    "Plan",
    "GeneratedMeal",
    "Ingredient",
    "INGREDIENT_CATEGORIES",
    "ErrorCode",
    "GenerationContext",
    "GenerationErrorRecord",
    "GenerationMetadata",
    "GenerationMode",
    "GenerationState",
    "GroupMealOptions",
    "MealGenerationResponse",
    "MealGenerationResult",
    "GenerationJob",
    "JobStatus",
    "Notification",
    "NotificationType",
]
