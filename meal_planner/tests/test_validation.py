# tests/test_validation.py
from datetime import date

from meal_planner.services.group_validation import (
    normalize_dietary_restrictions,
    sanitize_group_name,
    validate_group,
)
from meal_planner.services.plan_validation import validate_plan, validate_plan_for_generation

from conftest import make_group, make_plan

TODAY = date(2026, 10, 16)


def _group(**overrides):
    data = {"name": "Family", "adults": 2, "teens": 0, "kids": 1, "toddlers": 0, "dietary_restrictions": []}
    data.update(overrides)
    return data


def _plan(**overrides):
    data = {
        "name": "Week 1",
        "week_start": "2026-10-19",
        "group_meals": [{"group_id": "g1", "meal_count": 3}],
    }
    data.update(overrides)
    return data


# --- groups ---
def test_valid_group():
    assert validate_group(_group()) == {"is_valid": True, "errors": {}}


def test_group_accepts_nested_demographics():
    data = {"name": "Kids", "demographics": {"adults": 0, "teens": 0, "kids": 2, "toddlers": 0}}
    assert validate_group(data)["is_valid"] is True


def test_group_name_rules():
    assert validate_group(_group(name="   "))["errors"]["name"] == ["Name is required"]
    assert validate_group(_group(name="x" * 101))["errors"]["name"] == [
        "Name must be 100 characters or less"
    ]
    assert validate_group(_group(name="  " + "x" * 100 + "  "))["is_valid"] is True


def test_group_demographic_field_errors():
    errors = validate_group(_group(adults=None, teens=-1, kids=100))["errors"]
    assert errors["adults"] == ["adults is required"]
    assert errors["teens"] == ["teens must be a non-negative integer"]
    assert errors["kids"] == ["kids must be 99 or less"]


def test_group_needs_one_person():
    errors = validate_group(_group(adults=0, kids=0))["errors"]
    assert errors["general"] == ["Group must have at least one person"]


def test_group_dietary_restrictions():
    assert validate_group(_group(dietary_restrictions="vegan"))["errors"]["dietary_restrictions"] == [
        "Dietary restrictions must be an array"
    ]
    assert validate_group(_group(dietary_restrictions=["vegan", " "]))["errors"][
        "dietary_restrictions"
    ] == ["All dietary restrictions must be non-empty strings"]


def test_group_helpers():
    assert sanitize_group_name("  Smiths ") == "Smiths"
    assert normalize_dietary_restrictions([" Vegan", "vegan", "", "Nut-Free"]) == ["vegan", "nut-free"]


# --- plans ---
def test_valid_plan():
    assert validate_plan(_plan(), today=TODAY)["is_valid"] is True


def test_plan_week_start_rules():
    assert validate_plan(_plan(week_start=None), today=TODAY)["errors"]["week_start"] == [
        "Week start date is required"
    ]
    assert validate_plan(_plan(week_start="not-a-date"), today=TODAY)["errors"]["week_start"] == [
        "Week start must be a valid date"
    ]
    assert validate_plan(_plan(week_start="2026-10-15"), today=TODAY)["errors"]["week_start"] == [
        "Week start cannot be in the past"
    ]
    assert validate_plan(_plan(week_start=TODAY), today=TODAY)["is_valid"] is True


def test_plan_group_meal_rules():
    assert validate_plan(_plan(group_meals=[]), today=TODAY)["errors"]["group_meals"] == [
        "At least one group must be selected"
    ]

    dupes = [{"group_id": "g1", "meal_count": 2}, {"group_id": "g1", "meal_count": 2}]
    assert "Group g1 is listed more than once" in validate_plan(
        _plan(group_meals=dupes), today=TODAY
    )["errors"]["group_meals"]

    errors = validate_plan(
        _plan(group_meals=[{"group_id": "g1", "meal_count": 0}, {"group_id": "g2", "meal_count": 15}]),
        today=TODAY,
    )["errors"]["group_meals"]
    assert "Meal count for entry 1 must be at least 1" in errors
    assert "Meal count for entry 2 must be 14 or less" in errors


def test_plan_total_meal_cap():
    entries = [{"group_id": f"g{i}", "meal_count": 13} for i in range(4)]
    errors = validate_plan(_plan(group_meals=entries), today=TODAY)["errors"]
    assert errors["group_meals"] == ["A plan can contain at most 50 meals"]


def test_plan_notes_limits():
    assert validate_plan(_plan(notes="x" * 501), today=TODAY)["errors"]["notes"] == [
        "Notes must be 500 characters or less"
    ]
    long_group_note = [{"group_id": "g1", "meal_count": 2, "notes": "y" * 201}]
    assert validate_plan(_plan(group_meals=long_group_note), today=TODAY)["errors"]["group_meals"] == [
        "Notes for entry 1 must be 200 characters or less"
    ]


# --- pre-generation ---
def test_generation_check_without_groups():
    result = validate_plan_for_generation(make_plan(("g1", 3)), [])
    assert result == {
        "is_valid": False,
        "errors": ["No family groups found. Create groups first."],
        "warnings": [],
    }


def test_generation_check_reports_missing_groups():
    result = validate_plan_for_generation(make_plan(("g1", 3), ("g9", 2), ("g8", 1)), [make_group("g1")])
    assert result["errors"] == ["Groups not found: g9, g8"]


def test_generation_check_warnings():
    plan = make_plan(("g1", 8), ("g2", 14), ("g3", 5))
    groups = [
        make_group("g1", restrictions=["vegan"]),
        make_group("g2", name="Grandparents"),
        make_group("g3", name="Roommates"),
    ]
    result = validate_plan_for_generation(plan, groups)
    assert result["is_valid"] is True
    assert result["warnings"] == [
        "Some groups have high meal counts (>7). Generation may take longer.",
        "Large number of total meals requested. Consider splitting into multiple plans.",
        "Some groups have dietary restrictions. AI will accommodate these preferences.",
    ]
