"""Application configuration from environment variables."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # App
    app_name: str = "Claybook"
    debug: bool = True
    api_prefix: str = "/api"
    log_level: str = "INFO"
    cors_origins: list[str] = []

    # Database
    database_url: str = "postgresql+asyncpg://claybook:claybook@db:5432/claybook"
    database_echo: bool = False
    database_pool_size: int = 20
    database_max_overflow: int = 10

    # Redis (Celery broker)
    redis_url: str = "redis://redis:6379/0"

    # Studio calendar
    studio_timezone: str = "America/Guayaquil"
    session_minutes: int = 120
    search_days_ahead: int = 60
    session_horizon_days: int = 30

    # Default per-technique capacities, used until the admin stores their own
    potters_wheel_capacity: int = 8
    molding_capacity: int = 22
    introductory_class_capacity: int = 8

    # Bookings
    prereservation_minutes: int = 120
    no_refund_horizon_hours: int = 48

    # Giftcards
    giftcard_hold_ttl_minutes: int = 15
    cleanup_secret: str = ""

    # Email / SMTP
    smtp_host: str = "localhost"
    smtp_port: int = 1025
    smtp_from: str = "reservas@claybook.studio"
    email_max_attempts: int = 3
    email_backoff_initial_seconds: float = 0.5
    email_backoff_max_seconds: float = 5.0

    model_config = {"env_prefix": "CLB_", "env_file": ".env", "extra": "ignore"}


settings = Settings()
