"""Environment-driven settings for the EcoWheels driver backend."""

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class Settings(BaseSettings):
    """Settings read from the process environment and an optional .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Persistence
    redis_url: str = Field(default="redis://localhost:6379/0", description="Redis URL")

    # HTTP server
    api_port: int = Field(default=8000, description="Port uvicorn binds to")
    api_host: str = Field(default="0.0.0.0", description="Interface uvicorn binds to")
    cors_origins: list[str] = Field(
        default=["http://localhost:5173"],
        description="Origins allowed to call the API from a browser",
    )

    environment: Literal["development", "staging", "production"] = "development"

    # Observability
    log_level: str = Field(default="INFO", description="Root log level")
    log_format: Literal["json", "text"] = Field(
        default="json", description="json for aggregation, text for a terminal"
    )

    # Identity
    secret_key: str = Field(..., description="HMAC key for session tokens")
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = Field(
        default=60, description="Session lifetime in minutes"
    )
    federated_secret: str | None = Field(
        default=None, description="Shared secret of the federated identity broker"
    )
    federated_audience: str = Field(
        default="ecowheels-driver", description="Expected audience of federated tokens"
    )

    # Driver documents
    storage_backend: Literal["local", "s3"] = Field(default="local")
    storage_root: str = Field(
        default="./local_storage", description="Root directory for local uploads"
    )
    storage_base_url: str = Field(
        default="http://localhost:8000/files", description="Public URL of local uploads"
    )
    s3_bucket: str | None = Field(default=None, description="Bucket for driver documents")
    s3_url_expire_seconds: int = Field(
        default=3600, description="Presigned download URL lifetime"
    )

    # Order workflow
    available_orders_limit: int = Field(
        default=50, ge=1, description="Max available orders pushed to a driver"
    )
    store_max_retries: int = Field(
        default=3, ge=1, description="Re-validation attempts on concurrent writes"
    )
    max_decline_details_length: int = Field(default=500, ge=1)

    # Earnings
    payout_available_ratio: float = Field(
        default=0.8, gt=0, le=1, description="Share of earnings available for payout"
    )
    weekly_window_days: int = Field(default=7, ge=1)
    payout_history_limit: int = Field(default=10, ge=1)

    # Gamification
    leaderboard_size: int = Field(default=10, ge=1)

    @field_validator("log_level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        level = value.upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"log_level must be one of {', '.join(LOG_LEVELS)}")
        return level


@lru_cache
def get_settings() -> Settings:
    return Settings()
