"""Application Configuration

Type-safe configuration using Pydantic Settings for environment variable handling.

Patterns Demonstrated:
- Type-safe environment variable parsing with validation
- Sensible defaults for development
- Clear separation of infrastructure vs application config
- Routing and classifier tuning kept out of the code paths that use them
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings

from .domain.complexity import DEFAULT_KEYWORDS
from .domain.domain_type import AIModelVendor, ModelTier


class Settings(BaseSettings):
    """Application settings from environment variables"""

    # =============================================================================
    # APPLICATION
    # =============================================================================

    app_name: str = Field(default="widgetchat", alias="APP_NAME")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")
    app_description: str = Field(
        default="Multi-tenant AI chat widget backend",
        alias="APP_DESCRIPTION",
    )
    environment: str = Field(default="development", alias="ENVIRONMENT")

    # =============================================================================
    # API CONFIGURATION
    # =============================================================================

    api_host: str = Field(default="0.0.0.0", alias="API_HOST")
    api_port: int = Field(default=8000, alias="API_PORT")
    log_level: str = Field(default="info", alias="LOG_LEVEL")

    # CORS Settings
    cors_origins: str = Field(default="*", alias="CORS_ORIGINS")
    cors_credentials: bool = Field(default=True, alias="CORS_CREDENTIALS")
    cors_methods: str = Field(default="GET,POST,PUT,DELETE,OPTIONS", alias="CORS_METHODS")
    cors_headers: str = Field(
        default="Origin,X-Requested-With,Content-Type,Accept,Authorization",
        alias="CORS_HEADERS",
    )

    # =============================================================================
    # STORAGE
    # =============================================================================

    storage_backend: Literal["redis", "memory"] = Field(default="redis", alias="STORAGE_BACKEND")
    redis_url: str = Field(default="redis://localhost:6379/0", alias="REDIS_URL")

    # =============================================================================
    # OBSERVABILITY
    # =============================================================================

    logfire_token: str | None = Field(default=None, alias="LOGFIRE_TOKEN")
    logfire_environment: str | None = Field(default=None, alias="LOGFIRE_ENVIRONMENT")

    # =============================================================================
    # LLM CONFIGURATION
    # =============================================================================

    # Model Catalog
    model_catalog_path: str = Field(
        default=str(Path(__file__).parent / "domain" / "model_metadata.json"),
        alias="MODEL_CATALOG_PATH",
    )
    fallback_tier: ModelTier = Field(default=ModelTier.STANDARD, alias="FALLBACK_TIER")

    # Provider credentials
    openai_api_key: str | None = Field(default=None, alias="OPENAI_API_KEY")
    anthropic_api_key: str | None = Field(default=None, alias="ANTHROPIC_API_KEY")
    gemini_api_key: str | None = Field(default=None, alias="GEMINI_API_KEY")

    # Provider call bounds (seconds); unset falls back to the catalog default
    openai_timeout: float | None = Field(default=None, gt=0, alias="OPENAI_TIMEOUT")
    anthropic_timeout: float | None = Field(default=None, gt=0, alias="ANTHROPIC_TIMEOUT")
    gemini_timeout: float | None = Field(default=None, gt=0, alias="GEMINI_TIMEOUT")

    # =============================================================================
    # CHAT TURN
    # =============================================================================

    context_window: int = Field(default=10, ge=0, alias="CONTEXT_WINDOW")
    max_message_length: int = Field(default=1000, gt=0, alias="MAX_MESSAGE_LENGTH")

    # Complexity classifier tuning
    classifier_complex_length: int = Field(default=200, ge=0, alias="CLASSIFIER_COMPLEX_LENGTH")
    classifier_medium_length: int = Field(default=50, ge=0, alias="CLASSIFIER_MEDIUM_LENGTH")
    classifier_complex_questions: int = Field(default=2, ge=0, alias="CLASSIFIER_COMPLEX_QUESTIONS")
    classifier_keywords: str = Field(default=",".join(DEFAULT_KEYWORDS), alias="CLASSIFIER_KEYWORDS")

    model_config = {"env_file": ".env", "case_sensitive": False, "extra": "ignore"}

    @property
    def api_keys(self) -> dict[AIModelVendor, str | None]:
        return {
            AIModelVendor.OPENAI: self.openai_api_key,
            AIModelVendor.ANTHROPIC: self.anthropic_api_key,
            AIModelVendor.GOOGLE: self.gemini_api_key,
        }

    @property
    def provider_timeouts(self) -> dict[AIModelVendor, float]:
        timeouts = {
            AIModelVendor.OPENAI: self.openai_timeout,
            AIModelVendor.ANTHROPIC: self.anthropic_timeout,
            AIModelVendor.GOOGLE: self.gemini_timeout,
        }
        return {vendor: value for vendor, value in timeouts.items() if value is not None}


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.model_validate({})


settings = get_settings()
