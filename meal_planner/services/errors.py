"""
Exception types raised by the generation pipeline.

Everything a single generation call can fail with derives from
`MealGenerationError`; the retry policy retries those and nothing else.
"""
from __future__ import annotations

from typing import Any, Optional

TIMEOUT_MESSAGE = "Request timed out - try reducing the number of meals or groups"
TRUNCATION_MESSAGE = (
    "ChatGPT response appears to be truncated. "
    "Try reducing the number of meals or groups"
)


class MealGenerationError(Exception):
    """Base class for failures of one call to the text-generation endpoint."""


class GenerationAPIError(MealGenerationError):
    """Transport or API-level failure (bad status, empty content, SDK error)."""


class GenerationTimeoutError(MealGenerationError):
    def __init__(self, message: str = TIMEOUT_MESSAGE):
        super().__init__(message)


class ResponseParseError(MealGenerationError):
    def __init__(self, message: str, preview: Optional[str] = None):
        super().__init__(message)
        self.preview = preview


class ResponseTruncatedError(ResponseParseError):
    def __init__(self, message: str = TRUNCATION_MESSAGE, preview: Optional[str] = None):
        super().__init__(message, preview=preview)


class NoValidMealsError(MealGenerationError):
    def __init__(self, message: str = "No valid meals were generated", rejected: int = 0):
        super().__init__(message)
        self.rejected = rejected


class GroupNotFoundError(Exception):
    def __init__(self, group_id: str):
        super().__init__(f"Group with id {group_id} not found")
        self.group_id = group_id


class StorageError(Exception):
    """Raised by storage adapters when the backing store rejects a call."""

    def __init__(self, message: str, operation: Optional[str] = None, details: Any = None):
        super().__init__(message)
        self.operation = operation
        self.details = details
