"""
Plan validation: save-time checks on the plan itself, and a pre-generation
check that cross-references the user's groups.
"""
from __future__ import annotations

import logging
from datetime import date
from typing import Any, Dict, List, Mapping, Optional, Sequence

from meal_planner.models.group import Group
from meal_planner.models.plan import Plan
from meal_planner.services.group_validation import validate_name, validation_result

logger = logging.getLogger(__name__)

MAX_MEALS_PER_ENTRY = 14
MAX_MEALS_PER_PLAN = 50
MAX_PLAN_NOTES = 500
MAX_GROUP_NOTES = 200

HIGH_MEAL_COUNT_WARNING_THRESHOLD = 7
LARGE_PLAN_WARNING_THRESHOLD = 25


def _parse_week_start(value: Any) -> Optional[date]:
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value.strip()[:10])
        except ValueError:
            return None
    return None


def _validate_group_meals(entries: Any) -> List[str]:
    if not isinstance(entries, (list, tuple)) or not entries:
        return ["At least one group must be selected"]

    errors: List[str] = []
    seen = set()
    total = 0
    for idx, entry in enumerate(entries):
        if not isinstance(entry, Mapping):
            errors.append(f"Entry {idx + 1} must be an object")
            continue
        group_id = entry.get("group_id")
        if not isinstance(group_id, str) or not group_id.strip():
            errors.append(f"Entry {idx + 1} must reference a valid group id")
        elif group_id in seen:
            errors.append(f"Group {group_id} is listed more than once")
        else:
            seen.add(group_id)

        count = entry.get("meal_count")
        if not isinstance(count, int) or isinstance(count, bool) or count < 1:
            errors.append(f"Meal count for entry {idx + 1} must be at least 1")
        elif count > MAX_MEALS_PER_ENTRY:
            errors.append(
                f"Meal count for entry {idx + 1} must be {MAX_MEALS_PER_ENTRY} or less"
            )
        else:
            total += count

        notes = entry.get("notes")
        if notes is not None and (not isinstance(notes, str) or len(notes) > MAX_GROUP_NOTES):
            errors.append(
                f"Notes for entry {idx + 1} must be {MAX_GROUP_NOTES} characters or less"
            )

    if total > MAX_MEALS_PER_PLAN:
        errors.append(f"A plan can contain at most {MAX_MEALS_PER_PLAN} meals")
    return errors


def validate_plan(data: Mapping[str, Any], today: Optional[date] = None) -> Dict[str, Any]:
    """
    Validate a raw plan payload. `today` is injectable so tests don't depend
    on the wall clock.
    """
    today = today or date.today()
    errors: Dict[str, List[str]] = {}

    name_errors = validate_name(data.get("name"))
    if name_errors:
        errors["name"] = name_errors

    raw_week = data.get("week_start")
    if not raw_week:
        errors["week_start"] = ["Week start date is required"]
    else:
        week_start = _parse_week_start(raw_week)
        if week_start is None:
            errors["week_start"] = ["Week start must be a valid date"]
        elif week_start < today:
            errors["week_start"] = ["Week start cannot be in the past"]

    group_meal_errors = _validate_group_meals(data.get("group_meals"))
    if group_meal_errors:
        errors["group_meals"] = group_meal_errors

    notes = data.get("notes")
    if notes is not None:
        if not isinstance(notes, str):
            errors["notes"] = ["Notes must be a string"]
        elif len(notes) > MAX_PLAN_NOTES:
            errors["notes"] = [f"Notes must be {MAX_PLAN_NOTES} characters or less"]

    return validation_result(errors)


def sanitize_plan_name(name: str) -> str:
    return name.strip()


def validate_plan_for_generation(plan: Plan, groups: Sequence[Group]) -> Dict[str, Any]:
    """
    Check that a saved plan can be handed to the generator.

    Returns {"is_valid", "errors", "warnings"}; warnings never block.
    """
    errors: List[str] = []
    warnings: List[str] = []

    if not groups:
        errors.append("No family groups found. Create groups first.")
        return {"is_valid": False, "errors": errors, "warnings": warnings}

    known_ids = {g.id for g in groups}
    missing = [gm.group_id for gm in plan.group_meals if gm.group_id not in known_ids]
    if missing:
        errors.append(f"Groups not found: {', '.join(missing)}")

    if any(gm.meal_count > HIGH_MEAL_COUNT_WARNING_THRESHOLD for gm in plan.group_meals):
        warnings.append(
            "Some groups have high meal counts (>7). Generation may take longer."
        )

    if plan.total_meals_requested > LARGE_PLAN_WARNING_THRESHOLD:
        warnings.append(
            "Large number of total meals requested. Consider splitting into multiple plans."
        )

    referenced = {gm.group_id for gm in plan.group_meals}
    if any(g.dietary_restrictions for g in groups if g.id in referenced):
        warnings.append(
            "Some groups have dietary restrictions. AI will accommodate these preferences."
        )

    if errors:
        logger.info("Plan %r failed pre-generation checks: %s", plan.name, errors)
    return {"is_valid": not errors, "errors": errors, "warnings": warnings}
