"""Application configuration using Pydantic Settings.

All settings are loaded from environment variables or .env file.
Secrets are handled via SecretStr to prevent accidental logging.
"""

from __future__ import annotations

from enum import Enum
from functools import lru_cache

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from app.exceptions import ConfigurationError


class Environment(str, Enum):
    """Deployment environment."""

    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"
    TESTING = "testing"


class Settings(BaseSettings):
    """Application settings with validation."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        env_prefix="TR_",
    )

    # Application
    app_name: str = "TalentRank"
    app_version: str = "0.1.0"
    environment: Environment = Environment.DEVELOPMENT
    debug: bool = False
    host: str = "0.0.0.0"
    port: int = 8000
    log_level: str = "INFO"

    # CORS
    cors_origins: list[str] = Field(default=["http://localhost:3000", "http://127.0.0.1:3000"])

    # Redis (cache + work queue)
    redis_url: str = "redis://localhost:6379/0"
    cache_enabled: bool = True

    # MongoDB (developer store)
    mongo_url: str = "mongodb://localhost:27017"
    mongo_db: str = "talentrank"
    mongo_collection: str = "developers"
    mongo_timeout_ms: int = 10000

    # Work queue
    queue_name: str = "developer_evaluation"
    queue_redelivery_delay: float = 5.0
    queue_pop_timeout: int = 5

    # GitHub API
    github_api_base: str = "https://api.github.com"
    github_token: SecretStr | None = None
    github_user_timeout: float = 30.0
    github_repos_timeout: float = 20.0
    github_request_timeout: float = 15.0
    github_detail_concurrency: int = 5

    # AI completion endpoint
    ai_api_base: str = "https://api.deepseek.com/chat/completions"
    ai_api_key: SecretStr | None = None
    ai_model: str = "deepseek-chat"
    ai_timeout: float = 60.0

    # Batch enrichment
    batch_concurrency: int = 5
    batch_max_concurrency: int = 6

    # Retry policy
    retry_max_attempts: int = 3
    retry_base_delay: float = 1.0
    retry_multiplier: float = 2.0
    retry_rate_limit_delay: float = 60.0

    # Celery
    celery_broker_url: str = "redis://localhost:6379/1"
    celery_result_backend: str = "redis://localhost:6379/2"

    # Prometheus
    metrics_enabled: bool = True

    @field_validator("environment", mode="before")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        return v.lower()

    @property
    def is_production(self) -> bool:
        return self.environment == Environment.PRODUCTION

    @property
    def is_development(self) -> bool:
        return self.environment == Environment.DEVELOPMENT

    def require_github_token(self) -> str:
        """Return the GitHub token or fail fast at startup."""
        if self.github_token is None or not self.github_token.get_secret_value():
            raise ConfigurationError("TR_GITHUB_TOKEN")
        return self.github_token.get_secret_value()

    def require_ai_api_key(self) -> str:
        """Return the AI API key or fail fast at startup."""
        if self.ai_api_key is None or not self.ai_api_key.get_secret_value():
            raise ConfigurationError("TR_AI_API_KEY")
        return self.ai_api_key.get_secret_value()


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings()
