"""Configuration management using Pydantic Settings."""

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Database
    database_url: str = "sqlite+pysqlite:///./jamwatch.db"

    # Local calendar used for time-of-day and day boundaries
    local_timezone: str = "Europe/Warsaw"

    # Ingestion
    duplicate_window_seconds: int = 10
    rate_limit_fail_open: bool = True
    rate_limit_max_attempts: int = 3
    trust_forwarded_for: bool = True

    # Aggregation
    current_status_lookback_minutes: list[int] = [20, 30, 60]

    # Forecasting
    forecast_lookback_days: int = 28
    forecast_min_tolerance_minutes: int = 5
    short_forecast_interval_minutes: int = 5
    short_forecast_count: int = 12
    extended_forecast_interval_minutes: int = 20
    extended_forecast_count: int = 30
    extended_forecast_offset_minutes: int = 60
    commute_slot_minutes: int = 30

    # Street chat
    chat_history_limit: int = 20

    # Notification fan-out
    notify_webhook: bool = False
    notify_webhook_url: str | None = None
    notify_telegram: bool = False
    telegram_bot_token: SecretStr | None = None
    telegram_chat_id: str | None = None
    notification_max_attempts: int = 5
    notification_claim_timeout_seconds: int = 300

    # Logging
    log_level: str = "INFO"
    log_json: bool = False


settings = Settings()
