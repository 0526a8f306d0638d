"""Application configuration via pydantic-settings."""

from __future__ import annotations

from functools import lru_cache
from typing import List, Literal, Optional

from pydantic import Field, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "BorrowMyBike Booking Core"
    app_version: str = "1.0.0"
    environment: Literal["development", "staging", "production"] = "development"
    debug: bool = False
    log_level: str = "INFO"
    api_prefix: str = "/api/v1"

    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    workers: int = 4

    # Database
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_user: str = "borrowmybike"
    postgres_password: str = Field(default="borrowmybike_secret")
    postgres_db: str = "borrowmybike"
    db_pool_size: int = 20
    db_max_overflow: int = 10
    database_echo: bool = False

    @computed_field
    @property
    def database_url(self) -> str:
        """Async PostgreSQL connection URL."""
        return (
            f"postgresql+asyncpg://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    # Redis (Celery broker)
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_password: Optional[str] = None
    redis_db: int = 0

    @computed_field
    @property
    def redis_url(self) -> str:
        """Redis connection URL."""
        auth = f":{self.redis_password}@" if self.redis_password else ""
        return f"redis://{auth}{self.redis_host}:{self.redis_port}/{self.redis_db}"

    # JWT Authentication (tokens are issued by the identity provider)
    jwt_secret_key: str = Field(default="your-super-secret-key-change-in-production")
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 15

    # Administrative access
    admin_user_id: Optional[str] = None  # UUID of the single administrator
    settle_admin_key: Optional[str] = None  # x-admin-key for the expiry sweep

    # Payment Gateway
    stripe_secret_key: Optional[str] = None

    # Settlement service
    settlement_url: Optional[str] = None
    settlement_service_token: Optional[str] = None
    settlement_timeout_seconds: float = 15.0

    # CORS
    cors_origins: List[str] = ["http://localhost:3000", "http://localhost:8080"]

    # Booking money (all amounts in cents)
    flat_deposit_cents: int = 15000
    owner_payout_placeholder_cents: int = 10000
    credit_currency: str = "CAD"
    rebook_window_days: int = 21

    # Acceptance expiry sweep
    expiry_sweep_default_limit: int = 50
    expiry_sweep_max_limit: int = 200
    expiry_sweep_interval_minutes: int = 15


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
