import os
from functools import lru_cache
from typing import Any

from loguru import logger
from pydantic_settings import BaseSettings
from pydantic import field_validator, Field


class Settings(BaseSettings):
    """Application settings."""
    # General settings
    debug: bool = False
    app_name: str = "FriendFind Match Engine"

    # Database settings
    db_url: str = Field(default="sqlite+aiosqlite:///./friendfind.db", alias='DATABASE_URL')
    DB_RETRY_ATTEMPTS: int = Field(default=3, alias='DB_RETRY_ATTEMPTS')

    # OpenAI settings
    openai_api_key: str = Field(default="", alias='OPENAI_API_KEY')
    openai_model: str = Field(default="gpt-3.5-turbo", alias='OPENAI_MODEL')

    # Matching and conversation behaviour
    MATCH_GREETING: str = Field(default="You matched! Say hi 👋", alias='MATCH_GREETING')
    SNIPPET_MAX_LENGTH: int = Field(default=120, alias='SNIPPET_MAX_LENGTH')
    DISCOVERY_EXCLUDE_PASSED: bool = Field(default=False, alias='DISCOVERY_EXCLUDE_PASSED')

    # Safety alert delivery
    ALERT_WEBHOOK_URL: str = Field(default="", alias='ALERT_WEBHOOK_URL')
    ALERT_TIMEOUT_SECONDS: float = Field(default=5.0, alias='ALERT_TIMEOUT_SECONDS')

    # Logging
    LOG_LEVEL: str = Field(default="INFO", alias='LOG_LEVEL')
    LOG_FILE: str = Field(default="logs/friendfind_{time}.log", alias='LOG_FILE')

    # Health endpoint
    HEALTH_HOST: str = Field(default="0.0.0.0", alias='HEALTH_HOST')
    HEALTH_PORT: int = Field(default=int(os.environ.get('PORT', 8080)), alias='HEALTH_PORT')

    @field_validator('SNIPPET_MAX_LENGTH', mode='before')
    @classmethod
    def _parse_snippet_length(cls, v: Any) -> int:
        """Clamp the snippet length to something a match list can display."""
        try:
            value = int(v)
        except (TypeError, ValueError):
            logger.warning(f"Invalid SNIPPET_MAX_LENGTH {v!r}, using default")
            return 120
        if value < 10:
            logger.warning(f"SNIPPET_MAX_LENGTH {value} too small, using 10")
            return 10
        return value

    @field_validator('LOG_LEVEL', mode='before')
    @classmethod
    def _normalize_log_level(cls, v: Any) -> str:
        return str(v or "INFO").upper()

    class Config:
        env_file = ".env"
        extra = "ignore"  # Ignore any extra fields not defined above
        populate_by_name = True


@lru_cache
def get_settings() -> Settings:
    """Get application settings singleton."""
    # Clear cache if needed for testing: get_settings.cache_clear()
    return Settings()
