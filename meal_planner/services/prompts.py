"""
Prompt text sent to the text-generation endpoint.

Two shapes are produced:
  - single group:  response envelope {"meals": [...]}
  - combined:      response envelope {"groups": [{"group_name", "meals": [...]}]}
Both ask for strict JSON; the parser still assumes the model may not comply.
"""
from __future__ import annotations

from datetime import date
from typing import Iterable, List, Optional, Sequence, Tuple, Union

from meal_planner.models.generation import GenerationContext
from meal_planner.models.meal import INGREDIENT_CATEGORIES

SYSTEM_PROMPT = (
    "You are a meal planning assistant. Return ONLY valid JSON with no additional text. "
    "Use decimal numbers (0.5, 0.25) not fractions. "
    "Generate EXACTLY the specified number of meals for each group."
)

DIETARY_RESTRICTION_PROMPTS = {
    "vegetarian": "No meat, poultry, or fish. Eggs and dairy are acceptable.",
    "vegan": "No animal products whatsoever including meat, dairy, eggs, honey.",
    "gluten-free": "No wheat, barley, rye, or other gluten-containing grains.",
    "dairy-free": "No milk, cheese, butter, yogurt, or other dairy products.",
    "nut-free": "No tree nuts or peanuts. Check all ingredients for nut contamination.",
    "low-sodium": "Use minimal salt and avoid high-sodium processed ingredients.",
    "diabetic-friendly": "Low sugar, complex carbohydrates, balanced nutrition.",
    "keto": "Very low carbohydrate, high fat, moderate protein.",
    "paleo": "No grains, legumes, dairy, or processed foods. Focus on whole foods.",
    "mediterranean": "Emphasize olive oil, fish, vegetables, whole grains, and legumes.",
}

NO_RESTRICTIONS_TEXT = "No specific dietary restrictions."

_MEAL_TEMPLATE = """    {
      "title": "Meal Name",
      "description": "Brief description",
      "prep_time": 15,
      "cook_time": 25,
      "servings": 4,
      "ingredients": [
        {
          "name": "ingredient name",
          "amount": 1.5,
          "unit": "lbs",
          "category": "protein"
        }
      ],
      "instructions": ["Step 1", "Step 2"],
      "tags": ["quick", "family-friendly"],
      "dietary_info": ["vegetarian"],
      "difficulty": "easy"
    }"""

_COMPACT_MEAL_TEMPLATE = (
    '{"title": "Meal Name", "description": "Brief description", "prep_time": 15, '
    '"cook_time": 25, "servings": 4, '
    '"ingredients": [{"name": "ingredient", "amount": 1.5, "unit": "lbs", "category": "protein"}], '
    '"instructions": ["Step 1", "Step 2"], "tags": ["quick"], '
    '"dietary_info": ["vegetarian"], "difficulty": "easy"}'
)

WeekStart = Union[date, str]

# (context, number of meals to generate)
GroupTarget = Tuple[GenerationContext, int]


def dietary_requirements_text(restrictions: Iterable[str]) -> str:
    """Known restrictions are expanded to guidance; unknown ones pass through verbatim."""
    parts = [DIETARY_RESTRICTION_PROMPTS.get(r, r) for r in restrictions]
    return " ".join(parts) if parts else NO_RESTRICTIONS_TEXT


def demographics_text(context: GenerationContext) -> str:
    d = context.demographics
    return (
        f"{d.adults} adults, {d.teens} teens, {d.kids} kids, {d.toddlers} toddlers "
        f"({context.adult_equivalent} adult equivalents)"
    )


def _week(week_start: WeekStart) -> str:
    return week_start.isoformat() if isinstance(week_start, date) else str(week_start)


def build_group_prompt(
    context: GenerationContext, meals_to_generate: int, week_start: WeekStart
) -> str:
    return f"""Generate {meals_to_generate} meal options for "{context.group_name}" with {demographics_text(context)}.

DIETARY REQUIREMENTS: {dietary_requirements_text(context.dietary_restrictions)}

CONTEXT:
- Week starting: {_week(week_start)}
- Group notes: {context.notes or 'None specified'}
- Scale ingredients for {context.adult_equivalent} adult equivalent servings

REQUIREMENTS:
- Each meal must include title, brief description (max 15 words), prep_time, cook_time, servings, ingredients (max 6 per meal), concise instructions (max 3 steps), tags, dietary_info, and difficulty
- Ingredients must be categorized: {', '.join(INGREDIENT_CATEGORIES)}
- Base servings should be 4-6 people, ingredients will be scaled later
- Variety in cuisine types and cooking methods
- Family-friendly options when kids/toddlers are present

Return ONLY valid JSON in this exact format:
{{
  "meals": [
{_MEAL_TEMPLATE}
  ]
}}"""


def build_combined_prompt(
    plan_name: str,
    week_start: WeekStart,
    targets: Sequence[GroupTarget],
    additional_notes: Optional[str] = None,
) -> str:
    lines: List[str] = [
        f'Generate meal options for meal plan "{plan_name}" starting week of {_week(week_start)}.',
        "",
    ]
    if additional_notes:
        lines += [f"PLAN NOTES: {additional_notes}", ""]

    lines.append("GROUPS TO GENERATE FOR:")
    for idx, (ctx, count) in enumerate(targets, start=1):
        lines += [
            "",
            f'{idx}. GROUP: "{ctx.group_name}"',
            f"   - Demographics: {demographics_text(ctx)}",
            f"   - Dietary Requirements: {dietary_requirements_text(ctx.dietary_restrictions)}",
            f"   - Meals needed: {count}",
            f"   - Group notes: {ctx.notes or 'None specified'}",
            f"   - Scale ingredients for {ctx.adult_equivalent} adult equivalent servings",
        ]

    lines += [
        "",
        "REQUIREMENTS:",
        "- Generate meals for ALL groups listed above",
        "- Each meal: title, description (max 10 words), prep_time, cook_time, servings, "
        "ingredients (max 5), instructions (max 2 steps), tags, dietary_info, difficulty",
        f"- Ingredient categories: {', '.join(INGREDIENT_CATEGORIES)}",
        "- Base servings: 4-6 people",
        "- Respect dietary restrictions",
        "",
        "Return ONLY valid JSON in this exact format:",
        "{",
        '  "groups": [',
    ]
    blocks = []
    for ctx, count in targets:
        blocks.append(
            "    {\n"
            f'      "group_name": "{ctx.group_name}",\n'
            f"      \"meals\": [{_COMPACT_MEAL_TEMPLATE}]\n"
            f"      (exactly {count} meals for \"{ctx.group_name}\")\n"
            "    }"
        )
    lines.append(",\n".join(blocks))
    lines += ["  ]", "}"]
    return "\n".join(lines)
