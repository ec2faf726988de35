from datetime import time

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # App
    APP_ENV: str = "development"
    LOG_LEVEL: str = "INFO"

    # Storage
    DATABASE_URL: str
    STORE_PROVIDER: str = "sql"  # "sql" | "memory"

    # Auth
    JWT_SECRET_KEY: str
    JWT_ALGORITHM: str = "HS256"
    JWT_ACCESS_TOKEN_EXPIRE_MINUTES: int = 60

    # Redis (calendar cache, transition fan-out, arq worker)
    REDIS_URL: str = "redis://localhost:6379/0"
    CACHE_ENABLED: bool = True
    CALENDAR_CACHE_TTL_SECONDS: int = 60
    NOTIFY_ENABLED: bool = True
    NOTIFY_CHANNEL: str = "slotbook:transitions"

    # Venue defaults: evening window 17:00 to 03:00 next day
    DEFAULT_TIMEZONE: str = "UTC"
    DEFAULT_OPERATING_START: time = time(17, 0)
    DEFAULT_OPERATING_END: time = time(3, 0)

    # Lifecycle sweep
    COMPLETION_GRACE_MINUTES: int = 60
    SWEEP_INTERVAL_MINUTES: int = 1

    # Idempotent query retries
    QUERY_RETRY_ATTEMPTS: int = 3
    QUERY_RETRY_BASE_DELAY: float = 0.2

    # Limits
    NEGOTIATION_STALE_DAYS: int = 7
    MAX_CALENDAR_DAYS: int = 93


settings = Settings()
