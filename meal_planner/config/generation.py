"""
Tunable limits for the meal-generation workflow.

`GenerationConfig` is a frozen snapshot taken from `Settings` at startup and
handed to the orchestrator and the recipe validator, so neither reads
environment state on its own.
"""
from __future__ import annotations

from dataclasses import dataclass

from meal_planner.config.settings import Settings


@dataclass(frozen=True)
class GenerationConfig:
    max_retries: int = 3
    retry_base_delay_seconds: float = 1.0
    timeout_seconds: float = 180.0
    extra_meals: int = 2
    max_meals_per_group: int = 10
    combined_max_total_meals: int = 12
    combined_max_groups: int = 3
    min_prep_time: int = 5
    max_prep_time: int = 240
    min_servings: int = 1
    max_servings: int = 20

    @classmethod
    def from_settings(cls, settings: Settings) -> "GenerationConfig":
        return cls(
            max_retries=settings.max_retries,
            retry_base_delay_seconds=settings.retry_base_delay_seconds,
            timeout_seconds=settings.generation_timeout_seconds,
            extra_meals=settings.extra_meals,
            max_meals_per_group=settings.max_meals_per_group,
            combined_max_total_meals=settings.combined_max_total_meals,
            combined_max_groups=settings.combined_max_groups,
            min_prep_time=settings.min_prep_time,
            max_prep_time=settings.max_prep_time,
            min_servings=settings.min_servings,
            max_servings=settings.max_servings,
        )


DEFAULT_GENERATION_CONFIG = GenerationConfig()
