"""Centralized application configuration using Pydantic settings."""
from functools import lru_cache
from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-driven configuration shared across services."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    database_url: str = Field(
        default="sqlite:///./roombooking.db",
        description="SQLAlchemy database URL. Defaults to local SQLite for development.",
    )
    run_db_migrations: bool = Field(
        default=False,
        description="Whether this service should create/update database tables on startup.",
    )
    jwt_secret: str = Field(default="super-secret", description="JWT signing secret")
    jwt_algorithm: str = Field(default="HS256", description="JWT signing algorithm")
    access_token_expire_minutes: int = Field(default=60, description="Token lifetime in minutes")
    cors_origins: List[str] = Field(default_factory=lambda: ["*"], description="Allowed CORS origins")
    default_rate_limit: str = Field(default="30/minute", description="Global rate limiting rule")
    rate_limiting_enabled: bool = Field(default=True, description="Toggle to disable SlowAPI limits (useful in tests)")
    audit_log_dir: str = Field(default="logs", description="Directory receiving per-service audit logs")
    room_cache_ttl: int = Field(default=60, description="TTL (s) for cached room listings in the rooms service")

    default_opening_hour: int = Field(default=8, ge=0, le=23, description="Opening hour when a room sets none")
    default_closing_hour: int = Field(default=22, ge=1, le=24, description="Closing hour when a room sets none")
    slot_allow_overrun: bool = Field(
        default=False,
        description="Keep a final slot whose window runs past closing time.",
    )

    repository_timeout_seconds: float = Field(default=5.0, gt=0, description="Upper bound for reservation queries")
    repository_failure_threshold: int = Field(default=5, ge=1, description="Failures before the breaker opens")
    repository_recovery_timeout: int = Field(default=30, ge=1, description="Seconds the breaker stays open")

    events_enabled: bool = Field(default=False, description="Publish booking events to RabbitMQ")
    event_broker_host: str = Field(default="rabbitmq", description="RabbitMQ host for booking events")
    event_queue: str = Field(default="bookings", description="Durable queue receiving booking events")

    rooms_service_port: int = 8002
    bookings_service_port: int = 8003


@lru_cache
def get_settings() -> Settings:
    """Return a cached instance of the Settings object."""

    return Settings()


def reset_settings_cache() -> None:
    """Clear the cached Settings instance (useful for tests)."""

    get_settings.cache_clear()
