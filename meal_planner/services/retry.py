"""
Bounded retry with exponential backoff for generation calls.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional, TypeVar

from meal_planner.services.errors import (
    MealGenerationError,
    ResponseParseError,
    ResponseTruncatedError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class RetryPolicy:
    """
    Retry only `MealGenerationError`; anything else is a bug and propagates
    on the first occurrence.

    Delay before attempt n+1 is `base_delay * 2 ** (n - 1)`: 1s, 2s, ... for
    the default base. `sleep` is injectable for tests.
    """

    max_attempts: int = 3
    base_delay: float = 1.0
    sleep: Callable[[float], Awaitable[None]] = field(default=asyncio.sleep, repr=False)

    def delay_for(self, attempt: int) -> float:
        return self.base_delay * (2 ** (attempt - 1))

    async def run(
        self,
        fn: Callable[[], Awaitable[T]],
        label: str = "generation call",
        on_attempt: Optional[Callable[[int], None]] = None,
    ) -> T:
        last_exc: Optional[MealGenerationError] = None
        for attempt in range(1, self.max_attempts + 1):
            if on_attempt is not None:
                on_attempt(attempt)
            try:
                return await fn()
            except ResponseTruncatedError as exc:
                last_exc = exc
                logger.warning("%s attempt %d: truncated response: %s", label, attempt, exc)
            except ResponseParseError as exc:
                last_exc = exc
                logger.warning("%s attempt %d: malformed JSON: %s", label, attempt, exc)
            except MealGenerationError as exc:
                last_exc = exc
                logger.warning("%s attempt %d failed: %s", label, attempt, exc)

            if attempt < self.max_attempts:
                delay = self.delay_for(attempt)
                logger.debug("Backing off for %.3fs before next attempt", delay)
                await self.sleep(delay)

        logger.error("%s exhausted %d attempts: %s", label, self.max_attempts, last_exc)
        raise RetryExhaustedError(self.max_attempts, last_exc)


class RetryExhaustedError(MealGenerationError):

    def __init__(self, attempts: int, last_error: Optional[Exception]):
        super().__init__(f"Failed to generate meals after {attempts} attempts: {last_error}")
        self.attempts = attempts
        self.last_error = last_error
