"""
Adult-equivalent (AE) calculator.

AE expresses a household as a number of adult-sized portions:
    adults*1.0 + teens*1.2 + kids*0.7 + toddlers*0.4
rounded half-up to one decimal. It is always recomputed from demographics.
"""
from __future__ import annotations

import math
from typing import Any, List, Mapping, Union

from meal_planner.models.group import DEMOGRAPHIC_FIELDS, Demographics

AE_WEIGHTS = {
    "adults": 1.0,
    "teens": 1.2,
    "kids": 0.7,
    "toddlers": 0.4,
}

EMPTY_GROUP_ERROR = "Group must have at least one person"

DemographicsLike = Union[Demographics, Mapping[str, Any]]


def _as_mapping(demographics: DemographicsLike) -> Mapping[str, Any]:
    if isinstance(demographics, Demographics):
        return demographics.model_dump()
    return demographics


def _round_half_up(value: float, digits: int = 1) -> float:
    factor = 10 ** digits
    # round() is banker's rounding and 0.05 steps are not exact in binary
    return math.floor(value * factor + 0.5 + 1e-9) / factor


def calculate_adult_equivalent(demographics: DemographicsLike) -> float:
    data = _as_mapping(demographics)
    total = sum(AE_WEIGHTS[field] * (data.get(field) or 0) for field in DEMOGRAPHIC_FIELDS)
    return _round_half_up(total)


def is_non_negative_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value >= 0


def validate_demographics(demographics: DemographicsLike) -> List[str]:
    """
    Return every problem with a demographics mapping, one message per bad
    field, plus the empty-group error when all counts are zero.
    """
    data = _as_mapping(demographics)
    errors: List[str] = []
    for field in DEMOGRAPHIC_FIELDS:
        if not is_non_negative_int(data.get(field)):
            errors.append(f"{field} must be a non-negative integer")

    counts = [data.get(field) for field in DEMOGRAPHIC_FIELDS]
    if all(is_non_negative_int(c) and c == 0 for c in counts):
        errors.append(EMPTY_GROUP_ERROR)
    return errors
