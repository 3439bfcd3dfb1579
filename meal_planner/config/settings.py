# meal_planner/config/settings.py
"""
Application configuration using pydantic-settings (pydantic v2 style).

This centralizes environment-driven configuration. Prefer reading values
from environment variables; do not rely on os.getenv inline defaults which
can silently hide missing configuration.
"""
from __future__ import annotations

import logging
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """
    Application configuration loaded from environment.

    Relevant environment variables:
      - SUPABASE_URL
      - SUPABASE_SERVICE_ROLE_KEY
      - OPENAI_API_KEY
      - OPENAI_MODEL, OPENAI_MAX_TOKENS, OPENAI_TEMPERATURE
      - GENERATION_TIMEOUT_SECONDS
      - MAX_RETRIES, RETRY_BASE_DELAY_SECONDS
      - EXTRA_MEALS, MAX_MEALS_PER_GROUP
      - COMBINED_MAX_TOTAL_MEALS, COMBINED_MAX_GROUPS
      - MIN_PREP_TIME, MAX_PREP_TIME, MIN_SERVINGS, MAX_SERVINGS
      - LOG_LEVEL, HEALTH_CHECK_TIMEOUT
    """

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Supabase
    supabase_url: Optional[str] = None
    supabase_service_role_key: Optional[str] = None

    # OpenAI. Model id, token limit and timeout are deployment concerns.
    openai_api_key: Optional[str] = None
    openai_model: str = "gpt-4-turbo"
    openai_max_tokens: int = Field(default=4096, gt=0)
    openai_temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    generation_timeout_seconds: float = Field(default=180.0, gt=0)

    # Retry policy for every generation call
    max_retries: int = Field(default=3, ge=1)
    retry_base_delay_seconds: float = Field(default=1.0, ge=0.0)

    # Generation sizing (tuned against the model's output-token ceiling)
    extra_meals: int = Field(default=2, ge=0)
    max_meals_per_group: int = Field(default=10, ge=1)
    combined_max_total_meals: int = Field(default=12, ge=1)
    combined_max_groups: int = Field(default=3, ge=1)

    # Recipe bounds
    min_prep_time: int = 5
    max_prep_time: int = 240
    min_servings: int = 1
    max_servings: int = 20

    # Runtime
    log_level: str = "INFO"
    health_check_timeout: float = 5.0

    # --- validators / post-init checks ---
    @field_validator("supabase_url", "supabase_service_role_key", "openai_api_key")
    @classmethod
    def maybe_strip(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip()
        return v or None

    @field_validator("log_level")
    @classmethod
    def upper_log_level(cls, v: str) -> str:
        return (v or "INFO").strip().upper()

    def model_post_init(self, __context) -> None:  # pydantic v2 hooks
        """
        Light-weight notice that runs after model is constructed.
        Uses logging (not print) so messages show up in server logs.
        """
        if not self.supabase_url or not self.supabase_service_role_key:
            logger.warning(
                "Supabase credentials are not configured. "
                "Set SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY to enable job persistence."
            )
        if not self.openai_api_key:
            logger.info(
                "OPENAI_API_KEY not set. Meal generation calls will fail until it is configured."
            )
        if self.min_prep_time > self.max_prep_time:
            logger.warning(
                "MIN_PREP_TIME (%s) exceeds MAX_PREP_TIME (%s); every recipe will be rejected.",
                self.min_prep_time,
                self.max_prep_time,
            )


def mask_secret(value: Optional[str]) -> str:
    if not value:
        return "(none)"
    if len(value) <= 8:
        return "****"
    return f"{value[:4]}...{value[-4:]}"


# single exporter
settings = Settings()
