import os
from pathlib import Path

from loguru import logger
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def get_database_url() -> str:
    """Get database URL, using absolute path for SQLite to avoid path resolution issues.

    SQLite is for local development only. Set DATABASE_URL to a PostgreSQL
    connection string in any shared deployment.
    """
    db_url = os.getenv("DATABASE_URL", "")
    if db_url:
        logger.info("Using DATABASE_URL from environment")
        return db_url

    db_path = Path(__file__).parent.parent.parent / "nutricoach.db"
    abs_path = db_path.resolve()
    db_url = f"sqlite:///{abs_path}"
    logger.warning(f"Using SQLite database (LOCAL DEV ONLY): {db_url}")
    return db_url


class Settings(BaseSettings):
    database_url: str = Field(
        default_factory=get_database_url,
        validation_alias="DATABASE_URL",
    )
    openai_api_key: str = Field(default="", validation_alias="OPENAI_API_KEY")
    line_channel_access_token: str = Field(default="", validation_alias="LINE_CHANNEL_ACCESS_TOKEN")
    line_api_base: str = Field(default="https://api.line.me/v2", validation_alias="LINE_API_BASE")
    liff_url: str = Field(default="", validation_alias="LIFF_URL")
    cron_secret: str = Field(default="", validation_alias="CRON_SECRET")
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")
    log_file: str = Field(default="", validation_alias="LOG_FILE")

    timezone_offset_minutes: int = Field(
        default=7 * 60,
        validation_alias="TIMEZONE_OFFSET_MINUTES",
        description="Fixed civil timezone offset from UTC in minutes (UTC+7 by default)",
    )
    notification_window_minutes: int = Field(
        default=30,
        validation_alias="NOTIFICATION_WINDOW_MINUTES",
        description="How far from a configured schedule time a notification may still fire",
    )
    send_delay_seconds: float = Field(
        default=0.1,
        validation_alias="SEND_DELAY_SECONDS",
        description="Pause between outbound sends in a batch pass",
    )
    generate_timeout_seconds: float = Field(default=20.0, validation_alias="GENERATE_TIMEOUT_SECONDS")
    send_timeout_seconds: float = Field(default=10.0, validation_alias="SEND_TIMEOUT_SECONDS")
    batch_deadline_seconds: float = Field(
        default=240.0,
        validation_alias="BATCH_DEADLINE_SECONDS",
        description="Stop starting new members after this long (0 disables the deadline)",
    )
    recommendation_daily_limit: int = Field(default=10, validation_alias="RECOMMENDATION_DAILY_LIMIT")
    default_usage_limit: int = Field(default=3, validation_alias="DEFAULT_USAGE_LIMIT")
    scheduler_enabled: bool = Field(default=True, validation_alias="SCHEDULER_ENABLED")

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        """Validate that log level is one of the standard logging levels."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper_value = value.upper()
        if upper_value not in valid_levels:
            logger.warning(f"Invalid LOG_LEVEL '{value}'. Valid levels are: {', '.join(sorted(valid_levels))}. Defaulting to INFO.")
            return "INFO"
        return upper_value

    @field_validator("timezone_offset_minutes")
    @classmethod
    def validate_timezone_offset(cls, value: int) -> int:
        """Keep the offset inside the range real civil timezones use."""
        if not -14 * 60 <= value <= 14 * 60:
            raise ValueError(f"TIMEZONE_OFFSET_MINUTES out of range: {value}")
        return value

    @field_validator("notification_window_minutes")
    @classmethod
    def validate_window(cls, value: int) -> int:
        if value < 0 or value > 720:
            raise ValueError(f"NOTIFICATION_WINDOW_MINUTES must be within 0..720, got {value}")
        return value

    @field_validator("line_channel_access_token")
    @classmethod
    def validate_line_token(cls, value: str) -> str:
        """Warn when the outbound channel is not configured."""
        if not value:
            logger.warning(
                "LINE_CHANNEL_ACCESS_TOKEN is not set. Coaching pushes will fail until it is configured."
            )
        return value


settings = Settings()
