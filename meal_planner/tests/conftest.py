# tests/conftest.py
import copy
from datetime import date, timedelta
from types import SimpleNamespace
from typing import List

import pytest

import meal_planner.config.settings as settings_mod
from meal_planner.config.generation import GenerationConfig
from meal_planner.models.group import Demographics, Group
from meal_planner.models.plan import GroupMeal, Plan
from meal_planner.services.llm_client import Completion, TextGenerator
from meal_planner.services.retry import RetryPolicy


@pytest.fixture(autouse=True)
def patch_settings(monkeypatch):
    """
    Provide sane defaults for settings used by services.
    Tests can override monkeypatch.setenv or monkeypatch attributes as needed.
    """
    monkeypatch.setattr(settings_mod.settings, "openai_api_key", None, raising=False)
    monkeypatch.setattr(settings_mod.settings, "openai_model", "gpt-test", raising=False)
    return monkeypatch


# --- Fake Supabase client ---
class FakeQuery:
    """
    Minimal stand-in for a supabase-py query builder: collects filters and
    applies them to the table rows on execute().
    """

    def __init__(self, table, action, payload=None):
        self._table = table
        self._action = action
        self._payload = payload
        self._filters = []
        self._limit = None

    def eq(self, column, value):
        self._filters.append(lambda r: r.get(column) == value)
        return self

    def in_(self, column, values):
        values = list(values)
        self._filters.append(lambda r: r.get(column) in values)
        return self

    def lte(self, column, value):
        self._filters.append(lambda r: r.get(column) is not None and r.get(column) <= value)
        return self

    def limit(self, n):
        self._limit = n
        return self

    def order(self, *args, **kwargs):
        return self

    def _matching(self):
        return [r for r in self._table.rows if all(f(r) for f in self._filters)]

    def execute(self):
        self._table.calls.append(self._action)
        if self._table.fail_next:
            self._table.fail_next = False
            raise RuntimeError("simulated supabase failure")

        if self._action == "insert":
            rows = self._payload if isinstance(self._payload, list) else [self._payload]
            rows = [copy.deepcopy(r) for r in rows]
            self._table.rows.extend(rows)
            return SimpleNamespace(data=copy.deepcopy(rows), status_code=201)

        matched = self._matching()
        if self._action == "update":
            for row in matched:
                row.update(copy.deepcopy(self._payload))
            return SimpleNamespace(data=copy.deepcopy(matched), status_code=200)

        if self._limit is not None:
            matched = matched[: self._limit]
        return SimpleNamespace(data=copy.deepcopy(matched), status_code=200)


class FakeTable:

    def __init__(self):
        self.rows = []
        self.calls = []
        self.fail_next = False

    def insert(self, rows):
        return FakeQuery(self, "insert", rows)

    def select(self, *args, **kwargs):
        return FakeQuery(self, "select")

    def update(self, data):
        return FakeQuery(self, "update", data)


class FakeClient:

    def __init__(self):
        self._tables = {}

    def table(self, name):
        if name not in self._tables:
            self._tables[name] = FakeTable()
        return self._tables[name]


@pytest.fixture
def fake_supabase_client():
    return FakeClient()


@pytest.fixture
def store(fake_supabase_client):
    from meal_planner.services.storage import SupabaseGenerationStore

    return SupabaseGenerationStore(fake_supabase_client)


# --- Patch OpenAI client object shape used by our code ---
class DummyChoiceDict:

    def __init__(self, content):
        self.message = SimpleNamespace(content=content)


class DummyOpenAI:
    """Mimics `OpenAI().chat.completions.create`, replaying queued replies."""

    def __init__(self, replies=None, total_tokens=100):
        self.replies = list(replies or [])
        self.total_tokens = total_tokens
        self.calls = []
        self.chat = SimpleNamespace(completions=SimpleNamespace(create=self._create))

    def _create(self, *args, **kwargs):
        self.calls.append(kwargs)
        reply = self.replies.pop(0) if self.replies else ""
        if isinstance(reply, Exception):
            raise reply
        return SimpleNamespace(
            choices=[DummyChoiceDict(reply)],
            usage=SimpleNamespace(total_tokens=self.total_tokens),
        )


@pytest.fixture
def fake_openai():
    return DummyOpenAI


# --- Scripted text generator for orchestrator tests ---
class ScriptedGenerator(TextGenerator):
    """
    Returns queued replies in order. A reply may be a string, an exception
    instance (raised) or a callable taking the user prompt.
    """

    def __init__(self, replies=None, total_tokens=50):
        self.replies = list(replies or [])
        self.total_tokens = total_tokens
        self.prompts: List[str] = []

    async def complete(self, system_prompt, user_prompt):
        self.prompts.append(user_prompt)
        if not self.replies:
            raise AssertionError("ScriptedGenerator ran out of replies")
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        if callable(reply):
            reply = reply(user_prompt)
        return Completion(content=reply, total_tokens=self.total_tokens)


@pytest.fixture
def scripted_generator():
    return ScriptedGenerator


async def _no_sleep(_delay):
    return None


@pytest.fixture
def fast_retry():
    return RetryPolicy(max_attempts=3, base_delay=0, sleep=_no_sleep)


@pytest.fixture
def generation_config():
    return GenerationConfig(retry_base_delay_seconds=0)


# --- Domain builders ---
def raw_meal(title="Veggie Pasta", **overrides):
    meal = {
        "title": title,
        "description": "Quick weeknight pasta",
        "prep_time": 10,
        "cook_time": 20,
        "servings": 4,
        "ingredients": [
            {"name": "pasta", "amount": 1, "unit": "lb", "category": "grains"},
            {"name": "tomatoes", "amount": 0.5, "unit": "kg", "category": "vegetables"},
        ],
        "instructions": ["Boil pasta", "Toss with sauce"],
        "tags": ["quick"],
        "dietary_info": ["vegetarian"],
        "difficulty": "easy",
    }
    meal.update(overrides)
    return meal


def make_group(group_id="g1", name="Family", adults=2, teens=1, kids=2, toddlers=0, restrictions=None):
    return Group(
        id=group_id,
        name=name,
        demographics=Demographics(adults=adults, teens=teens, kids=kids, toddlers=toddlers),
        dietary_restrictions=restrictions or [],
    )


def make_plan(*entries, name="Week plan", plan_id="p1"):
    """entries: (group_id, meal_count) tuples"""
    return Plan(
        id=plan_id,
        name=name,
        week_start=date.today() + timedelta(days=1),
        group_meals=[GroupMeal(group_id=g, meal_count=c) for g, c in entries],
    )
