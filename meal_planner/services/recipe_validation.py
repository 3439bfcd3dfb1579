"""
Recipe schema validation.

The generation endpoint returns loosely-typed dicts. `prepare_meals` stamps
the fields we own (id, group_id, created_at, total_time), keeps only the
candidates that pass `validate_generated_meal`, and turns them into
`GeneratedMeal` models. The predicates never raise.
"""
from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Sequence

from meal_planner.config.generation import DEFAULT_GENERATION_CONFIG, GenerationConfig
from meal_planner.models.meal import DIFFICULTY_LEVELS, INGREDIENT_CATEGORIES, GeneratedMeal
from meal_planner.services.errors import NoValidMealsError

logger = logging.getLogger(__name__)

REQUIRED_STRING_FIELDS = ("id", "title", "description", "group_id", "created_at")


def _is_blank(value: Any) -> bool:
    return not isinstance(value, str) or not value.strip()


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _is_whole_number(value: Any) -> bool:
    if isinstance(value, float):
        return value.is_integer()
    return _is_number(value)


def _is_string_list(value: Any) -> bool:
    return isinstance(value, list) and all(not _is_blank(v) for v in value)


def validate_ingredient(candidate: Any) -> bool:
    if not isinstance(candidate, Mapping):
        return False
    if _is_blank(candidate.get("name")):
        return False
    amount = candidate.get("amount")
    if not _is_number(amount) or amount <= 0:
        return False
    if _is_blank(candidate.get("unit")):
        return False
    if candidate.get("category") not in INGREDIENT_CATEGORIES:
        return False
    if "notes" in candidate and not isinstance(candidate["notes"], str):
        return False
    return True


def validate_generated_meal(
    candidate: Any, config: GenerationConfig = DEFAULT_GENERATION_CONFIG
) -> bool:
    if not isinstance(candidate, Mapping):
        return False

    for field in REQUIRED_STRING_FIELDS:
        if _is_blank(candidate.get(field)):
            return False

    prep = candidate.get("prep_time")
    if not _is_whole_number(prep) or not config.min_prep_time <= prep <= config.max_prep_time:
        return False

    cook = candidate.get("cook_time")
    if not _is_whole_number(cook) or cook < 0:
        return False

    total = candidate.get("total_time")
    if not _is_whole_number(total) or total != prep + cook:
        return False

    servings = candidate.get("servings")
    if not _is_whole_number(servings) or not config.min_servings <= servings <= config.max_servings:
        return False

    ingredients = candidate.get("ingredients")
    if not isinstance(ingredients, list) or not ingredients:
        return False
    if not all(validate_ingredient(i) for i in ingredients):
        return False

    instructions = candidate.get("instructions")
    if not isinstance(instructions, list) or not instructions:
        return False
    if any(_is_blank(step) for step in instructions):
        return False

    if not _is_string_list(candidate.get("tags")):
        return False
    if not _is_string_list(candidate.get("dietary_info")):
        return False

    return candidate.get("difficulty") in DIFFICULTY_LEVELS


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def stamp_candidate(raw: Mapping[str, Any], group_id: str, created_at: Optional[str] = None) -> Dict[str, Any]:
    """
    Copy a raw meal dict and fill in the fields the service owns. `total_time`
    is only derived when both components are numbers; anything else is left
    for the validator to reject.
    """
    meal = dict(raw)
    meal["id"] = str(uuid.uuid4())
    meal["group_id"] = group_id
    meal["created_at"] = created_at or _now_iso()
    meal.setdefault("tags", [])
    meal.setdefault("dietary_info", [])
    prep, cook = meal.get("prep_time"), meal.get("cook_time")
    if _is_number(prep) and _is_number(cook):
        meal["total_time"] = prep + cook
    return meal


def prepare_meals(
    raw_meals: Sequence[Any],
    group_id: str,
    config: GenerationConfig = DEFAULT_GENERATION_CONFIG,
) -> List[GeneratedMeal]:
    """
    Validate raw meals for one group. Invalid entries are dropped and logged;
    raises NoValidMealsError when nothing survives.
    """
    created_at = _now_iso()
    valid: List[GeneratedMeal] = []
    rejected = 0
    for raw in raw_meals:
        if not isinstance(raw, Mapping):
            rejected += 1
            continue
        candidate = stamp_candidate(raw, group_id, created_at)
        if validate_generated_meal(candidate, config):
            valid.append(GeneratedMeal.model_validate(candidate))
        else:
            rejected += 1
            logger.info(
                "Dropping invalid meal for group=%s title=%r", group_id, raw.get("title")
            )

    if not valid:
        raise NoValidMealsError(
            f"No valid meals were generated ({rejected} rejected)", rejected=rejected
        )
    if rejected:
        logger.warning("group=%s kept %d meals, rejected %d", group_id, len(valid), rejected)
    return valid
