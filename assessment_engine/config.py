"""Application configuration with comprehensive validation."""
from typing import Optional, Literal, Dict
from functools import lru_cache
from pydantic import Field, field_validator, model_validator, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


# =============================================================================
# LLM MODEL ROUTING
# =============================================================================
# Maps a generation purpose -> settings attribute holding its model override.
# Falls back to LLM_DEFAULT_MODEL when the override is empty.
# =============================================================================

LLM_PURPOSE_MODELS: Dict[str, str] = {
    "disc": "LLM_DISC_MODEL",
    "bigfive": "LLM_BIGFIVE_MODEL",
    "episode": "LLM_EPISODE_MODEL",
    "narrative": "LLM_NARRATIVE_MODEL",
}


class Settings(BaseSettings):
    """Application settings with production-grade validation."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    APP_NAME: str = "Assessment Engine"
    APP_VERSION: str = "1.0.0"
    APP_ENV: Literal["development", "staging", "production", "test"] = "development"
    DEBUG: bool = False
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    LOG_FORMAT: Literal["json", "console"] = "json"

    # API
    API_V1_PREFIX: str = "/api/v1"

    # Snowflake
    SNOWFLAKE_ACCOUNT: str = ""
    SNOWFLAKE_USER: str = ""
    SNOWFLAKE_PASSWORD: SecretStr = SecretStr("")
    SNOWFLAKE_DATABASE: str = ""
    SNOWFLAKE_SCHEMA: str = ""
    SNOWFLAKE_WAREHOUSE: str = ""
    SNOWFLAKE_ROLE: str = ""

    # Redis
    REDIS_URL: str = "redis://localhost:6379/0"
    CACHE_TTL_AGGREGATE: int = 3600  # 1 hour

    # LLM gateway (OpenAI-compatible chat completions)
    LLM_API_KEY: Optional[SecretStr] = None
    LLM_BASE_URL: str = "https://api.openai.com"
    LLM_CHAT_COMPLETIONS_PATH: str = "/v1/chat/completions"
    LLM_REQUEST_TIMEOUT_SECONDS: float = Field(default=60.0, gt=0, le=600)
    LLM_MAX_RETRIES: int = Field(default=2, ge=0, le=10)
    LLM_DEFAULT_MODEL: str = "gpt-4o-mini"
    LLM_DISC_MODEL: str = "gpt-4o"
    LLM_BIGFIVE_MODEL: str = ""
    LLM_EPISODE_MODEL: str = "claude-sonnet-4-20250514"
    LLM_NARRATIVE_MODEL: str = ""

    # Session lifecycle
    ABANDON_THRESHOLD_HOURS: float = Field(default=24.0, gt=0, le=24 * 90)

    # Background jobs
    DEAD_LETTER_CAPACITY: int = Field(default=200, ge=1, le=10000)
    SHUTDOWN_DRAIN_TIMEOUT_SECONDS: float = Field(default=30.0, ge=0, le=600)

    @field_validator("LLM_API_KEY")
    @classmethod
    def validate_llm_key(cls, v: Optional[SecretStr]) -> Optional[SecretStr]:
        # HTTP headers cannot carry non-ASCII; usually an inline .env comment
        if v is not None and not v.get_secret_value().isascii():
            raise ValueError("LLM_API_KEY contains non-ASCII characters")
        return v

    @field_validator("LLM_BASE_URL")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @field_validator("LLM_CHAT_COMPLETIONS_PATH")
    @classmethod
    def ensure_leading_slash(cls, v: str) -> str:
        return v if v.startswith("/") else f"/{v}"

    @model_validator(mode="after")
    def validate_production_settings(self):
        """Ensure production has required settings."""
        if self.APP_ENV == "production":
            if self.DEBUG:
                raise ValueError("DEBUG must be False in production")
            if not self.LLM_API_KEY:
                raise ValueError("LLM_API_KEY required in production")
            if not self.SNOWFLAKE_ACCOUNT:
                raise ValueError("SNOWFLAKE_ACCOUNT required in production")
        return self

    def model_for(self, purpose: str) -> str:
        """Resolve the LLM model for a generation purpose."""
        attr = LLM_PURPOSE_MODELS.get(purpose)
        override = getattr(self, attr, "") if attr else ""
        return override or self.LLM_DEFAULT_MODEL

    @property
    def snowflake_params(self) -> Dict[str, str]:
        """Connection kwargs for snowflake.connector.connect."""
        return {
            "account": self.SNOWFLAKE_ACCOUNT,
            "user": self.SNOWFLAKE_USER,
            "password": self.SNOWFLAKE_PASSWORD.get_secret_value(),
            "warehouse": self.SNOWFLAKE_WAREHOUSE,
            "database": self.SNOWFLAKE_DATABASE,
            "schema": self.SNOWFLAKE_SCHEMA,
            "role": self.SNOWFLAKE_ROLE,
        }


@lru_cache
def get_settings() -> Settings:
    return Settings()

settings = get_settings()
