# tests/test_meal_generator.py
import json

import pytest

from meal_planner.config.generation import GenerationConfig
from meal_planner.models.generation import ErrorCode, GenerationMode, GenerationState
from meal_planner.services.errors import GenerationAPIError, GenerationTimeoutError
from meal_planner.services.meal_generator import MealGenerator, total_servings_needed
from meal_planner.services.recipe_validation import prepare_meals

from conftest import make_group, make_plan, raw_meal


def meals_reply(n, **overrides):
    return json.dumps({"meals": [raw_meal(title=f"Meal {i}", **overrides) for i in range(n)]})


def combined_reply(**counts):
    return json.dumps(
        {
            "groups": [
                {"group_name": name, "meals": [raw_meal(title=f"{name} {i}") for i in range(n)]}
                for name, n in counts.items()
            ]
        }
    )


def _generator(replies, scripted_generator, fast_retry, config=None):
    text_gen = scripted_generator(replies)
    return MealGenerator(text_gen, config=config or GenerationConfig(), retry_policy=fast_retry), text_gen


@pytest.mark.asyncio
async def test_single_vegetarian_group_success(scripted_generator, fast_retry):
    group = make_group("g1", adults=2, teens=1, kids=2, toddlers=0, restrictions=["vegetarian"])
    generator, text_gen = _generator([combined_reply(Family=5)], scripted_generator, fast_retry)

    result = await generator.generate_meals_for_plan(make_plan(("g1", 3)), [group])

    assert result.success is True
    assert result.errors == []
    option = result.data.group_meal_options[0]
    assert option.generated_count == 5
    assert option.adult_equivalent == 4.6
    assert all("vegetarian" in m.dietary_info for m in option.meals)
    assert all(m.group_id == "g1" for m in option.meals)
    assert result.data.total_meals_generated == 5
    assert result.metadata.api_calls_made == 1
    assert result.metadata.mode is GenerationMode.COMBINED
    assert result.metadata.final_state is GenerationState.SUCCESS
    assert "Meals needed: 5" in text_gen.prompts[0]


@pytest.mark.asyncio
async def test_no_groups_makes_no_calls(scripted_generator, fast_retry):
    generator, text_gen = _generator([], scripted_generator, fast_retry)
    result = await generator.generate_meals_for_plan(make_plan(("g1", 3)), [])

    assert result.success is False
    assert result.error_codes == [ErrorCode.NO_GROUPS]
    assert result.metadata.api_calls_made == 0
    assert text_gen.prompts == []


@pytest.mark.asyncio
async def test_plan_without_entries_is_no_groups(scripted_generator, fast_retry):
    generator, _ = _generator([], scripted_generator, fast_retry)
    result = await generator.generate_meals_for_plan(make_plan(), [make_group("g1")])
    assert result.error_codes == [ErrorCode.NO_GROUPS]
    assert result.errors[0].message == "No groups found in plan"


@pytest.mark.asyncio
async def test_zero_meals_requested(scripted_generator, fast_retry):
    generator, text_gen = _generator([], scripted_generator, fast_retry)
    plan = make_plan(("g1", 0), ("g2", 0))
    result = await generator.generate_meals_for_plan(plan, [make_group("g1"), make_group("g2", name="Other")])

    assert result.success is False
    assert result.error_codes == [ErrorCode.NO_MEALS_REQUESTED]
    assert text_gen.prompts == []


@pytest.mark.asyncio
async def test_dangling_group_reference(scripted_generator, fast_retry):
    generator, text_gen = _generator([], scripted_generator, fast_retry)
    result = await generator.generate_meals_for_plan(make_plan(("g1", 2), ("gone", 2)), [make_group("g1")])

    assert result.error_codes == [ErrorCode.GROUP_NOT_FOUND]
    assert result.errors[0].group_id == "gone"
    assert text_gen.prompts == []


@pytest.mark.asyncio
async def test_group_over_cap_is_excluded_others_proceed(scripted_generator, fast_retry):
    groups = [make_group("g1", name="Family"), make_group("g2", name="Big")]
    generator, _ = _generator([combined_reply(Family=4)], scripted_generator, fast_retry)

    # g2 needs 9 + 2 = 11 > 10
    result = await generator.generate_meals_for_plan(make_plan(("g1", 2), ("g2", 9)), groups)

    assert result.success is False
    assert result.error_codes == [ErrorCode.MEAL_LIMIT_EXCEEDED]
    assert result.errors[0].message == "Cannot generate 11 meals for Big. Maximum is 10"
    assert result.data.total_meals_generated == 4
    assert result.metadata.final_state is GenerationState.PARTIAL_FAILURE


@pytest.mark.asyncio
async def test_every_group_over_cap_fails_without_calls(scripted_generator, fast_retry):
    generator, text_gen = _generator([], scripted_generator, fast_retry)
    result = await generator.generate_meals_for_plan(make_plan(("g1", 9)), [make_group("g1")])

    assert result.success is False
    assert result.data is None
    assert result.error_codes == [ErrorCode.MEAL_LIMIT_EXCEEDED]
    assert text_gen.prompts == []


@pytest.mark.asyncio
async def test_large_plan_uses_per_group_calls(scripted_generator, fast_retry):
    groups = [make_group(f"g{i}", name=f"Group {i}") for i in range(4)]
    replies = [meals_reply(4) for _ in range(4)]
    generator, text_gen = _generator(replies, scripted_generator, fast_retry)

    result = await generator.generate_meals_for_plan(make_plan(*[(f"g{i}", 2) for i in range(4)]), groups)

    assert result.success is True
    assert result.metadata.mode is GenerationMode.PER_GROUP
    assert result.metadata.api_calls_made == 4
    assert [o.group_id for o in result.data.group_meal_options] == ["g0", "g1", "g2", "g3"]
    assert text_gen.prompts[2].startswith('Generate 4 meal options for "Group 2"')


@pytest.mark.asyncio
async def test_per_group_partial_failure_keeps_other_groups(scripted_generator, fast_retry):
    groups = [make_group("g1", name="A"), make_group("g2", name="B")]
    replies = [
        meals_reply(7),
        GenerationAPIError("500"),
        GenerationTimeoutError(),
        "not json at all",
    ]
    generator, _ = _generator(replies, scripted_generator, fast_retry)

    # 5 + 2 and 6 + 2 = 15 total > 12, so per-group mode
    result = await generator.generate_meals_for_plan(make_plan(("g1", 5), ("g2", 6)), groups)

    assert result.success is False
    assert result.data.total_meals_generated == 7
    assert [o.group_id for o in result.data.group_meal_options] == ["g1"]
    assert result.error_codes == [ErrorCode.API_FAILURE]
    assert result.errors[0].group_id == "g2"
    assert result.metadata.api_calls_made == 4


@pytest.mark.asyncio
async def test_unexpected_error_for_one_group_is_group_generation_failed(scripted_generator, fast_retry):
    groups = [make_group("g1", name="A"), make_group("g2", name="B")]
    replies = [ValueError("boom"), meals_reply(7)]
    generator, _ = _generator(replies, scripted_generator, fast_retry)

    result = await generator.generate_meals_for_plan(make_plan(("g1", 5), ("g2", 5)), groups)

    assert result.error_codes == [ErrorCode.GROUP_GENERATION_FAILED]
    assert result.errors[0].group_id == "g1"
    assert result.data.group_meal_options[0].group_id == "g2"


@pytest.mark.asyncio
async def test_combined_retries_then_api_failure(scripted_generator, fast_retry):
    replies = [GenerationAPIError("a"), '{"groups": [', GenerationTimeoutError()]
    generator, _ = _generator(replies, scripted_generator, fast_retry)

    result = await generator.generate_meals_for_plan(make_plan(("g1", 2)), [make_group("g1")])

    assert result.success is False
    assert result.data is None
    assert result.error_codes == [ErrorCode.API_FAILURE]
    assert result.errors[0].group_id is None
    assert result.metadata.api_calls_made == 3
    assert result.metadata.final_state is GenerationState.FAILURE


@pytest.mark.asyncio
async def test_combined_invalid_meals_trigger_retry(scripted_generator, fast_retry):
    bad = json.dumps({"groups": [{"group_name": "Family", "meals": [raw_meal(servings=0)]}]})
    generator, _ = _generator([bad, combined_reply(Family=4)], scripted_generator, fast_retry)

    result = await generator.generate_meals_for_plan(make_plan(("g1", 2)), [make_group("g1")])

    assert result.success is True
    assert result.metadata.api_calls_made == 2


@pytest.mark.asyncio
async def test_combined_matches_group_names_case_insensitively(scripted_generator, fast_retry):
    groups = [make_group("g1", name="Family"), make_group("g2", name="Couple")]
    reply = json.dumps(
        {
            "groups": [
                {"group_name": " family ", "meals": [raw_meal()]},
                {"group_name": "COUPLE", "meals": [raw_meal(), raw_meal()]},
            ]
        }
    )
    generator, _ = _generator([reply], scripted_generator, fast_retry)
    result = await generator.generate_meals_for_plan(make_plan(("g1", 1), ("g2", 1)), groups)

    assert result.success is True
    assert [o.generated_count for o in result.data.group_meal_options] == [1, 2]


@pytest.mark.asyncio
async def test_combined_missing_group_gets_group_error(scripted_generator, fast_retry):
    groups = [make_group("g1", name="Family"), make_group("g2", name="Couple")]
    generator, _ = _generator([combined_reply(Family=3)], scripted_generator, fast_retry)
    result = await generator.generate_meals_for_plan(make_plan(("g1", 1), ("g2", 1)), groups)

    assert result.success is False
    assert result.error_codes == [ErrorCode.API_FAILURE]
    assert result.errors[0].group_id == "g2"
    assert result.errors[0].message == "No valid meals generated for Couple"
    assert result.data.total_meals_generated == 3
    assert result.metadata.final_state is GenerationState.PARTIAL_FAILURE


@pytest.mark.asyncio
async def test_combined_group_with_only_invalid_meals_gets_group_error(scripted_generator, fast_retry):
    groups = [make_group("g1", name="Family"), make_group("g2", name="Couple")]
    reply = json.dumps(
        {
            "groups": [
                {"group_name": "Family", "meals": [raw_meal("Soup")]},
                {"group_name": "Couple", "meals": [raw_meal("Bad", servings=0)]},
            ]
        }
    )
    generator, _ = _generator([reply], scripted_generator, fast_retry)
    result = await generator.generate_meals_for_plan(make_plan(("g1", 1), ("g2", 1)), groups)

    assert result.success is False
    assert [o.group_id for o in result.data.group_meal_options] == ["g1"]
    assert [(e.code, e.group_id) for e in result.errors] == [(ErrorCode.API_FAILURE, "g2")]
    assert result.metadata.api_calls_made == 1


@pytest.mark.asyncio
async def test_identical_inputs_give_identical_shape(scripted_generator, fast_retry):
    groups = [make_group("g1", name="Family"), make_group("g2", name="Couple")]
    plan = make_plan(("g1", 2), ("g2", 2))

    first, _ = _generator([combined_reply(Family=4, Couple=4)], scripted_generator, fast_retry)
    second, _ = _generator([combined_reply(Family=4, Couple=4)], scripted_generator, fast_retry)
    a = await first.generate_meals_for_plan(plan, groups)
    b = await second.generate_meals_for_plan(plan, groups)

    assert len(a.data.group_meal_options) == len(b.data.group_meal_options) == 2
    assert a.data.total_meals_generated == b.data.total_meals_generated == 8


@pytest.mark.asyncio
async def test_tokens_are_summed(scripted_generator, fast_retry):
    generator, _ = _generator([GenerationAPIError("x"), combined_reply(Family=2)], scripted_generator, fast_retry)
    result = await generator.generate_meals_for_plan(make_plan(("g1", 1)), [make_group("g1")])
    # the failed attempt raised before reporting usage
    assert result.metadata.total_tokens_used == 50


def test_total_servings_needed():
    meals = prepare_meals([raw_meal(servings=4)], "g1")
    assert total_servings_needed(meals, 4.6) == 5
    assert total_servings_needed(meals, 0.4) == 1
    assert total_servings_needed([], 3.3) == 3.3


def test_mode_thresholds_are_configurable(scripted_generator):
    strict = MealGenerator(scripted_generator([]), config=GenerationConfig(combined_max_total_meals=3))
    default = MealGenerator(scripted_generator([]))
    one_group = [(None, 4)]
    four_groups = [(None, 1)] * 4

    assert strict.select_mode(one_group) is GenerationMode.PER_GROUP
    assert default.select_mode(one_group) is GenerationMode.COMBINED
    assert default.select_mode(four_groups) is GenerationMode.PER_GROUP
