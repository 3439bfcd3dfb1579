"""
Review helpers for meals saved by a finished job: listing, grouping,
statistics and selection. Selection is the only change ever made to a stored
meal.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence

from meal_planner.services.storage import GenerationStore

logger = logging.getLogger(__name__)


def group_meals_by_group(meals: Sequence[Mapping[str, Any]]) -> Dict[str, List[Mapping[str, Any]]]:
    grouped: Dict[str, List[Mapping[str, Any]]] = {}
    for meal in meals:
        grouped.setdefault(str(meal.get("group_id")), []).append(meal)
    return grouped


def meal_statistics(meals: Sequence[Mapping[str, Any]]) -> Dict[str, Any]:
    by_group: Dict[str, Dict[str, int]] = {}
    for meal in meals:
        entry = by_group.setdefault(str(meal.get("group_id")), {"generated": 0, "selected": 0})
        entry["generated"] += 1
        if meal.get("selected"):
            entry["selected"] += 1
    return {
        "total_generated": len(meals),
        "total_selected": sum(1 for m in meals if m.get("selected")),
        "by_group": by_group,
    }


class MealReviewService:

    def __init__(self, store: GenerationStore):
        self.store = store

    async def list_meals(
        self, job_id: str, group_id: Optional[str] = None, selected_only: bool = False
    ) -> List[Dict[str, Any]]:
        meals = await self.store.list_generated_meals(job_id)
        if group_id:
            meals = [m for m in meals if m.get("group_id") == group_id]
        if selected_only:
            meals = [m for m in meals if m.get("selected")]
        return meals

    async def review(self, job_id: str) -> Dict[str, Any]:
        meals = await self.store.list_generated_meals(job_id)
        return {
            "job_id": job_id,
            "meals": meals,
            "count": len(meals),
            "by_group": group_meals_by_group(meals),
            "statistics": meal_statistics(meals),
        }

    async def select_meals(self, job_id: str, meal_ids: Sequence[str]) -> Dict[str, Any]:
        """
        Replace the job's selection with `meal_ids`. Unknown ids are reported
        back, not treated as an error.
        """
        meals = await self.store.list_generated_meals(job_id)
        known = {str(m.get("id")) for m in meals}
        wanted = list(dict.fromkeys(str(i) for i in meal_ids))
        unknown = [i for i in wanted if i not in known]
        if unknown:
            logger.info("Ignoring %d unknown meal id(s) for job %s", len(unknown), job_id)

        selected = await self.store.set_meal_selection(job_id, [i for i in wanted if i in known])
        return {"job_id": job_id, "selected": selected, "unknown_ids": unknown}
