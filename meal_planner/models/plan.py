"""
Weekly plan model: how many meals each group needs for a given week.
"""
from datetime import date
from typing import List, Optional

from pydantic import BaseModel, Field


class GroupMeal(BaseModel):
    group_id: str
    meal_count: int = Field(default=0, ge=0)
    notes: Optional[str] = None


class Plan(BaseModel):
    id: Optional[str] = None
    name: str
    week_start: date
    group_meals: List[GroupMeal] = Field(default_factory=list)
    notes: Optional[str] = None
    owner: Optional[str] = None

    @property
    def total_meals_requested(self) -> int:
        return sum(gm.meal_count for gm in self.group_meals)

    def __repr__(self):
        return f"<Plan(name={self.name!r}, week_start='{self.week_start}')>"
