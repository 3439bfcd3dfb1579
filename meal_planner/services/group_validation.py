"""
Validation for group create/edit payloads.

Returns field-keyed error lists so a form can show messages next to the
offending input:
    {"is_valid": bool, "errors": {"name": [...], "adults": [...], "general": [...]}}
"""
from __future__ import annotations

from typing import Any, Dict, List, Mapping

from meal_planner.models.group import DEMOGRAPHIC_FIELDS
from meal_planner.services.adult_equivalent import EMPTY_GROUP_ERROR, is_non_negative_int

MAX_NAME_LENGTH = 100
MAX_PER_CATEGORY = 99


def validation_result(errors: Dict[str, List[str]]) -> Dict[str, Any]:
    return {"is_valid": not errors, "errors": errors}


def validate_name(value: Any, max_length: int = MAX_NAME_LENGTH) -> List[str]:
    if not isinstance(value, str) or not value.strip():
        return ["Name is required"]
    if len(value.strip()) > max_length:
        return [f"Name must be {max_length} characters or less"]
    return []


def validate_group(data: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Validate a raw group payload. Demographic counts may sit at the top level
    (form shape) or under a `demographics` key (stored shape).
    """
    errors: Dict[str, List[str]] = {}

    name_errors = validate_name(data.get("name"))
    if name_errors:
        errors["name"] = name_errors

    counts = data.get("demographics")
    if not isinstance(counts, Mapping):
        counts = data

    for field in DEMOGRAPHIC_FIELDS:
        value = counts.get(field)
        if value is None:
            errors[field] = [f"{field} is required"]
        elif not is_non_negative_int(value):
            errors[field] = [f"{field} must be a non-negative integer"]
        elif value > MAX_PER_CATEGORY:
            errors[field] = [f"{field} must be {MAX_PER_CATEGORY} or less"]

    total = sum(
        counts.get(field) for field in DEMOGRAPHIC_FIELDS if is_non_negative_int(counts.get(field))
    )
    if total == 0:
        errors["general"] = [EMPTY_GROUP_ERROR]

    restrictions = data.get("dietary_restrictions")
    if restrictions is not None:
        if not isinstance(restrictions, (list, tuple)):
            errors["dietary_restrictions"] = ["Dietary restrictions must be an array"]
        elif any(not isinstance(r, str) or not r.strip() for r in restrictions):
            errors["dietary_restrictions"] = [
                "All dietary restrictions must be non-empty strings"
            ]

    return validation_result(errors)


def sanitize_group_name(name: str) -> str:
    return name.strip()


def normalize_dietary_restrictions(restrictions: List[str]) -> List[str]:
    """Trim, lowercase and de-duplicate restrictions, keeping first-seen order."""
    seen = set()
    normalized: List[str] = []
    for raw in restrictions or []:
        if not isinstance(raw, str):
            continue
        item = raw.strip().lower()
        if item and item not in seen:
            seen.add(item)
            normalized.append(item)
    return normalized
