"""
Build per-group generation contexts from a plan and the user's groups.
"""
from __future__ import annotations

from typing import Dict, Iterable, List

from meal_planner.models.generation import GenerationContext
from meal_planner.models.group import Group
from meal_planner.models.plan import Plan
from meal_planner.services.adult_equivalent import calculate_adult_equivalent
from meal_planner.services.errors import GroupNotFoundError


def index_groups(groups: Iterable[Group]) -> Dict[str, Group]:
    return {g.id: g for g in groups}


def build_group_contexts(plan: Plan, groups: Iterable[Group]) -> List[GenerationContext]:
    """
    One context per `plan.group_meals` entry, in the plan's order.

    Raises GroupNotFoundError on the first entry whose group is unknown; no
    partial list is returned.
    """
    catalog = index_groups(groups)
    contexts: List[GenerationContext] = []
    for entry in plan.group_meals:
        group = catalog.get(entry.group_id)
        if group is None:
            raise GroupNotFoundError(entry.group_id)

        contexts.append(
            GenerationContext(
                group_id=group.id,
                group_name=group.name,
                demographics=group.demographics,
                dietary_restrictions=tuple(group.dietary_restrictions),
                meals_requested=entry.meal_count,
                notes=entry.notes,
                adult_equivalent=calculate_adult_equivalent(group.demographics),
            )
        )
    return contexts
