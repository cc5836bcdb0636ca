"""
Project settings.
Loads environment variables (and the .env file) into a typed settings object.
"""
from pydantic import computed_field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application-wide settings."""

    # Database
    db_host: str = "localhost"
    db_port: int = 5432
    db_user: str = "harvester"
    db_password: str = ""  # required at startup, checked by db.connection
    db_name: str = "newsmaker"
    db_echo: bool = False

    # Redis
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_password: str = ""
    redis_public_url: str = ""  # full URL override (managed hosting)

    # Push delivery (optional -- falls back to log-only when empty)
    firebase_service_account_base64: str = ""
    push_deeplink_base: str = "newsmaker://news"

    # API Server
    api_port: int = 8000
    log_level: str = "INFO"
    log_to_file: bool = True

    # Fetcher
    fetch_timeout_seconds: float = 30.0
    fetch_max_redirects: int = 5
    fetch_retry_attempts: int = 3
    fetch_retry_base_delay: float = 0.5

    # Crawl tuning
    detail_concurrency: int = 4
    historical_symbol_concurrency: int = 3
    upsert_batch_size: int = 150
    empty_streak_threshold: int = 3
    news_max_pages: int = 10
    historical_max_pages: int = 500
    historical_max_rows: int = 5000
    politeness_delay_seconds: float = 0.1
    source_utc_offset_hours: int = 7
    body_byte_ceiling: int = 60_000

    # Job intervals (seconds)
    news_interval: int = 30 * 60
    calendar_interval: int = 60 * 60
    historical_interval: int = 60 * 60
    quotes_interval: int = 9

    # Lock TTLs (seconds)
    news_lock_ttl: int = 25 * 60
    calendar_lock_ttl: int = 10 * 60
    historical_lock_ttl: int = 55 * 60
    quotes_lock_ttl: int = 8

    @property
    def database_url(self) -> str:
        """Async SQLAlchemy PostgreSQL URL (asyncpg driver)."""
        return (
            f"postgresql+asyncpg://{self.db_user}:{self.db_password}"
            f"@{self.db_host}:{self.db_port}/{self.db_name}"
        )

    @computed_field
    @property
    def redis_url(self) -> str:
        """Redis connection URL. REDIS_PUBLIC_URL wins when set."""
        if self.redis_public_url:
            return self.redis_public_url
        if self.redis_password:
            return f"redis://:{self.redis_password}@{self.redis_host}:{self.redis_port}"
        return f"redis://{self.redis_host}:{self.redis_port}"

    @property
    def push_enabled(self) -> bool:
        return bool(self.firebase_service_account_base64)

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }


_settings: Settings | None = None


def get_settings() -> Settings:
    """Return the Settings singleton."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
