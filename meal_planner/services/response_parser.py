"""
Parse and repair JSON returned by the text-generation endpoint.

Model output is "usually JSON": wrapped in prose or ``` fences, with trailing
commas, unquoted keys or fractions like `"amount": 1/2`. Each repair is a
pure `str -> str` transform; `parse_json_payload` tries them in passes of
increasing aggressiveness and returns the first payload that `json.loads`
accepts.
"""
from __future__ import annotations

import json
import logging
import re
from typing import Any, Callable, Dict, List, Sequence

from meal_planner.services.errors import ResponseParseError, ResponseTruncatedError

logger = logging.getLogger(__name__)

Transform = Callable[[str], str]

_TRAILING_COMMA_RE = re.compile(r",\s*([}\]])")
_BARE_KEY_RE = re.compile(r"([{,]\s*)([A-Za-z_][A-Za-z0-9_]*)\s*:")
_FENCE_RE = re.compile(r"```(?:json|JSON)?")
_WHITESPACE_RE = re.compile(r"\s+")
_ENVELOPE_KEY_RE = re.compile(r'"(meals|groups)"\s*:')

FRACTIONS = {
    "1/2": "0.5",
    "1/4": "0.25",
    "3/4": "0.75",
    "1/3": "0.33",
    "2/3": "0.67",
    "1/8": "0.125",
    "3/8": "0.375",
    "5/8": "0.625",
    "7/8": "0.875",
}
_FRACTION_RES = [
    (re.compile(r":\s*" + re.escape(frac) + r"\b"), ": " + dec)
    for frac, dec in FRACTIONS.items()
]

PREVIEW_CHARS = 500


# --- individual transforms ---
def extract_json_object(text: str) -> str:
    """Greedy match from the first `{` to the last `}`; input returned trimmed if no braces."""
    text = text.strip()
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end < start:
        return text
    return text[start : end + 1]


def strip_trailing_commas(text: str) -> str:
    return _TRAILING_COMMA_RE.sub(r"\1", text)


def quote_bare_keys(text: str) -> str:
    return _BARE_KEY_RE.sub(r'\1"\2":', text)


def normalize_fractions(text: str) -> str:
    for pattern, replacement in _FRACTION_RES:
        text = pattern.sub(replacement, text)
    return text


def strip_markdown_fences(text: str) -> str:
    return _FENCE_RE.sub("", text)


def collapse_whitespace(text: str) -> str:
    return _WHITESPACE_RE.sub(" ", text).strip()


# Ordered by risk: quote_bare_keys can also rewrite ", word:" inside a string
# value, so it is only tried once the safer repairs alone have failed.
CHEAP_REPAIRS: Sequence[Transform] = (
    strip_trailing_commas,
    normalize_fractions,
    quote_bare_keys,
)

PARSE_PASSES: Sequence[Sequence[Transform]] = (
    (extract_json_object,),
    (extract_json_object, strip_trailing_commas),
    (extract_json_object, strip_trailing_commas, normalize_fractions),
    (extract_json_object, *CHEAP_REPAIRS),
    (strip_markdown_fences, collapse_whitespace, extract_json_object, *CHEAP_REPAIRS),
)


def apply_transforms(text: str, transforms: Sequence[Transform]) -> str:
    for transform in transforms:
        text = transform(text)
    return text


def looks_truncated(text: str) -> bool:
    body = strip_markdown_fences(text).strip()
    return bool(_ENVELOPE_KEY_RE.search(body)) and not body.endswith("}")


# --- entry points ---
def parse_json_payload(text: str) -> Any:
    """
    Run the repair passes in order; first successful parse wins.

    Raises ResponseTruncatedError when the output looks cut off, otherwise
    ResponseParseError.
    """
    if not text or not text.strip():
        raise ResponseParseError("Empty response from generation endpoint")

    last_error: Exception = ValueError("no parse attempted")
    for idx, transforms in enumerate(PARSE_PASSES):
        candidate = apply_transforms(text, transforms)
        try:
            payload = json.loads(candidate)
            if idx:
                logger.debug("Response JSON recovered on repair pass %d", idx)
            return payload
        except ValueError as exc:
            last_error = exc

    preview = text[:PREVIEW_CHARS]
    if looks_truncated(text):
        logger.warning("Generation response looks truncated (len=%d)", len(text))
        raise ResponseTruncatedError(preview=preview)
    logger.warning("Could not parse generation response as JSON: %s", last_error)
    raise ResponseParseError(
        f"Failed to parse ChatGPT response as JSON: {last_error}", preview=preview
    )


def parse_meal_response(text: str) -> List[Dict[str, Any]]:
    payload = parse_json_payload(text)
    meals = payload.get("meals") if isinstance(payload, dict) else None
    if not isinstance(meals, list):
        raise ResponseParseError("ChatGPT response missing meals array", preview=text[:PREVIEW_CHARS])
    return meals


def parse_combined_response(text: str) -> Dict[str, List[Dict[str, Any]]]:
    """Return {group_name: raw meals} for every well-formed entry of `groups`."""
    payload = parse_json_payload(text)
    groups = payload.get("groups") if isinstance(payload, dict) else None
    if not isinstance(groups, list):
        raise ResponseParseError(
            "ChatGPT response missing groups array", preview=text[:PREVIEW_CHARS]
        )

    by_name: Dict[str, List[Dict[str, Any]]] = {}
    for entry in groups:
        if not isinstance(entry, dict):
            continue
        name = entry.get("group_name")
        meals = entry.get("meals")
        if not isinstance(name, str) or not isinstance(meals, list):
            logger.info("Skipping malformed group entry in combined response: %r", str(entry)[:200])
            continue
        by_name.setdefault(name, []).extend(meals)
    return by_name
