# /app/config/settings.py

from typing import List
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Deployment
    environment: str = Field(default="production")
    api_version: str = "v1"
    workers: int = 4

    # Fallback language model
    openai_api_key: str | None = None
    openai_model: str = "gpt-4o-mini"
    openai_max_tokens: int = 500
    openai_temperature: float = 0.7

    # Entity Resolver (tool layer)
    tool_service_url: str = "http://localhost:3000/api/chatbot"
    tool_service_api_key: str | None = None
    tool_service_timeout: float = 10.0

    # Session context store
    session_store_backend: str = "memory"
    redis_url: str = "redis://localhost:6379"
    session_key_prefix: str = "process_ctx"

    # Process engine
    default_process_timeout_ms: int = 300000
    max_step_iterations: int = 25

    # Security
    api_key: str | None = None
    cors_allowed_origins: List[str] = Field(default=["http://localhost:3000"])

    # Limits
    rate_limit_per_minute: int = 60

    # Error reporting
    sentry_dsn: str | None = None
    sentry_environment: str = "production"

    # ---------------- Validators ---------------- #

    @field_validator("cors_allowed_origins", mode="before")
    @classmethod
    def parse_cors_allowed_origins(cls, v):
        """Accept both a comma-separated string and a list."""
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        return v

    @field_validator("session_store_backend")
    @classmethod
    def backend_must_be_known(cls, v: str) -> str:
        if v not in ("memory", "redis"):
            raise ValueError("SESSION_STORE_BACKEND must be 'memory' or 'redis'")
        return v

    @field_validator("max_step_iterations")
    @classmethod
    def iterations_must_be_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("MAX_STEP_ITERATIONS must be at least 1")
        return v


settings = Settings()
