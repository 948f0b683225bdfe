"""
Settings for the SoMi API and the session player.

Read once from the environment (and .env) into ``settings``; nothing else in
the codebase touches os.environ.
"""
from typing import Optional

from dotenv import load_dotenv
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

load_dotenv()


class Settings(BaseSettings):
    """Typed environment, validated at import time."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore"
    )

    # Database Configuration
    # DATABASE_URL wins when set (e.g. sqlite for local runs); otherwise the
    # Postgres URL is built from the parts below.
    DATABASE_URL: Optional[str] = Field(default=None)
    POSTGRES_USER: str = Field(default="postgres")
    POSTGRES_PASSWORD: str = Field(default="postgres")
    POSTGRES_DB: str = Field(default="somi")
    POSTGRES_HOST: str = Field(default="postgres")
    POSTGRES_PORT: int = Field(default=5432)

    # Database Pool Configuration
    DB_POOL_SIZE: int = Field(default=10)
    DB_MAX_OVERFLOW: int = Field(default=10)
    DB_POOL_TIMEOUT: int = Field(default=30)
    DB_POOL_RECYCLE: int = Field(default=3600)  # 1 hour

    # Identity provider JWTs (Supabase signs access tokens with HS256)
    SUPABASE_JWT_SECRET: str = Field(
        default=...,  # Required - no default
        description="Secret used by the identity provider to sign access tokens."
    )
    JWT_ALGORITHM: str = Field(default="HS256")
    # Supabase access tokens carry aud="authenticated"; None skips the check
    JWT_AUDIENCE: Optional[str] = Field(default=None)

    # Generative planner (Anthropic)
    ANTHROPIC_API_KEY: Optional[str] = Field(default=None)
    PLANNER_MODEL: str = Field(default="claude-haiku-4-5-20251001")
    PLANNER_MAX_TOKENS: int = Field(default=1024)
    PLANNER_TEMPERATURE: float = Field(default=0.7)
    # Hard cap on how long flow generation waits for the planner
    PLANNER_TIMEOUT_S: float = Field(default=12.0, gt=0)

    # Catalog row recorded for body scan completions
    BODY_SCAN_BLOCK_ID: int = Field(default=20)

    # Player client
    SOMI_API_BASE_URL: str = Field(default="http://localhost:8000/api")
    EXTERNAL_API_TIMEOUT: int = Field(default=30)
    POLL_INTERVAL_S: float = Field(default=0.1, gt=0)

    # API Configuration
    API_HOST: str = Field(default="0.0.0.0")
    API_PORT: int = Field(default=8000)
    API_RELOAD: bool = Field(default=False)

    # Logging Configuration
    LOG_LEVEL: str = Field(default="INFO")
    LOG_FORMAT: str = Field(default="json")  # json or text

    # Environment
    ENVIRONMENT: str = Field(default="development")
    DEBUG: bool = Field(default=False)

    # CORS - comma-separated list of allowed origins for production
    CORS_ORIGINS: Optional[str] = Field(default=None)

    # Sentry Error Tracking
    SENTRY_DSN: Optional[str] = Field(default=None)
    SENTRY_TRACES_SAMPLE_RATE: float = Field(default=0.1)  # 10% of transactions

    @field_validator("LOG_FORMAT")
    @classmethod
    def _known_log_format(cls, value: str) -> str:
        value = value.lower()
        if value not in ("json", "text"):
            raise ValueError("LOG_FORMAT must be 'json' or 'text'")
        return value

    @field_validator("PLANNER_TEMPERATURE")
    @classmethod
    def _temperature_range(cls, value: float) -> float:
        if not 0.0 <= value <= 1.0:
            raise ValueError("PLANNER_TEMPERATURE must be between 0 and 1")
        return value

    @model_validator(mode="after")
    def _production_guards(self):
        if self.ENVIRONMENT == "production" and self.DEBUG:
            raise ValueError("DEBUG must be off in production")
        return self

    @property
    def planner_enabled(self) -> bool:
        return bool(self.ANTHROPIC_API_KEY)


settings = Settings()
