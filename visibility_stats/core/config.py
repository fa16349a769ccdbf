from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # PostgreSQL
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_user: str = "vs_user"
    postgres_password: str = "changeme"
    postgres_db: str = "visibility"

    # Full async URL, takes precedence over the postgres_* fields (e.g. sqlite+aiosqlite:///...)
    database_url: str = ""

    @property
    def postgres_url(self) -> str:
        if self.database_url:
            return self.database_url
        return (
            f"postgresql+asyncpg://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    # Daily stats engine
    stats_timezone: str = "UTC"  # calendar-day boundaries for stat_date and "today"
    rollup_cutoff_hour: int = 4  # nightly rollup runs at 04:30
    rollup_cutoff_minute: int = 30
    use_rollup_watermark: bool = True
    default_range_days: int = 30
    sentiment_record_cap: int = 10000
    citation_record_cap: int = 10000
    tracked_platforms: list[str] = ["openai", "gemini"]

    # App
    app_version: str = "1.0.0"
    app_env: str = "development"
    app_debug: bool = True
    app_host: str = "0.0.0.0"
    app_port: int = 8000

    # CORS
    allowed_origins: str = "*"  # comma-separated

    # Logging
    log_level: str = "INFO"
    log_json: bool = False  # set True in production for structured JSON logs

    # Rate limiting (slowapi)
    rate_limit_enabled: bool = True
    stats_rate_limit: str = "120/minute"

    # Sentry
    sentry_dsn: str = ""  # leave empty to disable
    sentry_traces_sample_rate: float = 0.1

    @property
    def stats_tz(self) -> ZoneInfo:
        return ZoneInfo(self.stats_timezone)


settings = Settings()


def validate_settings_for_production() -> None:
    """Validate critical settings. Called on startup in non-test environments."""
    errors: list[str] = []

    try:
        ZoneInfo(settings.stats_timezone)
    except (ZoneInfoNotFoundError, ValueError):
        errors.append(f"STATS_TIMEZONE '{settings.stats_timezone}' is not a known IANA timezone")

    if not 0 <= settings.rollup_cutoff_hour <= 23:
        errors.append("ROLLUP_CUTOFF_HOUR must be between 0 and 23")
    if not 0 <= settings.rollup_cutoff_minute <= 59:
        errors.append("ROLLUP_CUTOFF_MINUTE must be between 0 and 59")

    if settings.sentiment_record_cap <= 0:
        errors.append("SENTIMENT_RECORD_CAP must be positive")
    if settings.citation_record_cap <= 0:
        errors.append("CITATION_RECORD_CAP must be positive")
    if settings.default_range_days < 0:
        errors.append("DEFAULT_RANGE_DAYS must not be negative")
    if not 0.0 <= settings.sentry_traces_sample_rate <= 1.0:
        errors.append("SENTRY_TRACES_SAMPLE_RATE must be between 0 and 1")

    if settings.app_env == "production":
        if settings.allowed_origins == "*":
            errors.append("ALLOWED_ORIGINS must not be '*' in production")
        if settings.app_debug:
            errors.append("APP_DEBUG must be false in production")

    if errors:
        raise SystemExit("Configuration errors:\n  - " + "\n  - ".join(errors))
