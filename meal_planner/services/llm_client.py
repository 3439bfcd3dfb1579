# meal_planner/services/llm_client.py
"""
Text-generation client.

`TextGenerator` is the one-method interface the orchestrator depends on.
`OpenAITextGenerator` implements it with the synchronous OpenAI SDK client,
run in the default threadpool so the event loop is never blocked, and bounded
by `asyncio.wait_for` in addition to the SDK's own request timeout.
"""
from __future__ import annotations

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional

from openai import APITimeoutError, OpenAI, OpenAIError

from meal_planner.config.settings import Settings, mask_secret
from meal_planner.services.errors import GenerationAPIError, GenerationTimeoutError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Completion:
    content: str
    total_tokens: int = 0


class TextGenerator(ABC):

    @abstractmethod
    async def complete(self, system_prompt: str, user_prompt: str) -> Completion:
        """Send one system + user turn and return the raw text reply."""


def _extract_content(resp: Any) -> Optional[str]:
    """Support SDK objects and dict-like shapes."""
    if hasattr(resp, "choices"):
        choices = resp.choices or []
        if not choices:
            return None
        choice = choices[0]
        message = getattr(choice, "message", None)
        if message is not None and getattr(message, "content", None):
            return message.content
        if isinstance(choice, dict):
            return choice.get("message", {}).get("content")
        return getattr(choice, "text", None)
    if isinstance(resp, dict):
        choices = resp.get("choices") or []
        if choices and isinstance(choices[0], dict):
            return choices[0].get("message", {}).get("content") or choices[0].get("text")
    return None


def _extract_total_tokens(resp: Any) -> int:
    usage = getattr(resp, "usage", None)
    if usage is None and isinstance(resp, dict):
        usage = resp.get("usage")
    if usage is None:
        return 0
    if isinstance(usage, dict):
        return int(usage.get("total_tokens") or 0)
    return int(getattr(usage, "total_tokens", 0) or 0)


class OpenAITextGenerator(TextGenerator):

    def __init__(
        self,
        api_key: Optional[str],
        model: str,
        max_tokens: int,
        temperature: float,
        timeout_seconds: float,
        client: Optional[Any] = None,
    ):
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.timeout_seconds = timeout_seconds
        self._api_key = api_key

        self.client = client
        if self.client is None and api_key:
            try:
                self.client = OpenAI(api_key=api_key)
                logger.info(
                    "OpenAI client initialized (model=%s key=%s)", model, mask_secret(api_key)
                )
            except Exception as exc:
                logger.exception("Failed to initialize OpenAI client: %s", exc)
                self.client = None
        elif self.client is None:
            logger.warning("OpenAITextGenerator created without an API key")

    @classmethod
    def from_settings(cls, settings: Settings, client: Optional[Any] = None) -> "OpenAITextGenerator":
        return cls(
            api_key=settings.openai_api_key,
            model=settings.openai_model,
            max_tokens=settings.openai_max_tokens,
            temperature=settings.openai_temperature,
            timeout_seconds=settings.generation_timeout_seconds,
            client=client,
        )

    @property
    def configured(self) -> bool:
        return self.client is not None

    async def complete(self, system_prompt: str, user_prompt: str) -> Completion:
        if self.client is None:
            raise GenerationAPIError("OpenAI API key not configured")

        loop = asyncio.get_running_loop()
        func = lambda: self.client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            max_tokens=self.max_tokens,
            temperature=self.temperature,
            timeout=self.timeout_seconds,
        )

        started = time.monotonic()
        try:
            resp = await asyncio.wait_for(
                loop.run_in_executor(None, func), timeout=self.timeout_seconds
            )
        except (asyncio.TimeoutError, APITimeoutError) as exc:
            logger.warning(
                "OpenAI call timed out after %.1fs (model=%s): %s",
                time.monotonic() - started,
                self.model,
                exc,
            )
            raise GenerationTimeoutError() from exc
        except OpenAIError as exc:
            logger.warning("OpenAI API error (model=%s): %s", self.model, exc)
            raise GenerationAPIError(f"ChatGPT API error: {exc}") from exc

        content = _extract_content(resp)
        if not content:
            raise GenerationAPIError("No content received from ChatGPT API")

        tokens = _extract_total_tokens(resp)
        logger.debug(
            "OpenAI call finished in %.2fs tokens=%s chars=%d",
            time.monotonic() - started,
            tokens,
            len(content),
        )
        return Completion(content=content, total_tokens=tokens)
