"""
Generated meal and ingredient models.

These describe a meal *after* it has passed recipe validation; raw model
output is validated as plain dicts first (see services.recipe_validation).
"""
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

INGREDIENT_CATEGORIES = (
    "protein",
    "vegetables",
    "fruits",
    "grains",
    "dairy",
    "oils_fats",
    "spices_herbs",
    "condiments",
    "pantry",
    "frozen",
    "canned",
    "other",
)

DIFFICULTY_LEVELS = ("easy", "medium", "hard")

Difficulty = Literal["easy", "medium", "hard"]


class Ingredient(BaseModel):
    name: str
    amount: float = Field(gt=0)
    unit: str
    category: str
    notes: Optional[str] = None


class GeneratedMeal(BaseModel):
    id: str
    title: str
    description: str
    prep_time: int
    cook_time: int
    total_time: int
    servings: int
    ingredients: List[Ingredient]
    instructions: List[str]
    tags: List[str] = Field(default_factory=list)
    dietary_info: List[str] = Field(default_factory=list)
    difficulty: Difficulty
    group_id: str
    created_at: str
    # Only field the review step may change.
    selected: bool = False

    def __repr__(self):
        return f"<GeneratedMeal(id={self.id!r}, title={self.title!r})>"
