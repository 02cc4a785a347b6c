from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_PATH = Path(__file__).resolve().parent.parent / ".env.local"


class Settings(BaseSettings):
    # Environment settings
    environment: str = "development"
    debug: bool = False
    LOG_LEVEL: str = "INFO"

    # Database / cache
    DATABASE_URL: str = "postgresql://localhost:5432/centri"
    REDIS_URL: str = "redis://localhost:6379/0"

    # Supabase auth (JWT verification only)
    SUPABASE_URL: str = "http://localhost:54321"
    SUPABASE_JWKS_URL: str | None = None

    ENCRYPTION_KEY: str | None = None

    # Text generation
    OPENAI_API_KEY: str | None = None
    OPENAI_MODEL: str = "gpt-4o"
    OPENAI_TIMEOUT_SECONDS: float = 30.0

    # OAuth redirect base: {API_BASE_URL}/integrations/{provider}/callback
    API_BASE_URL: str = "http://localhost:8000"

    # Provider OAuth clients
    GOOGLE_CLIENT_ID: str | None = None
    GOOGLE_CLIENT_SECRET: str | None = None
    GITHUB_CLIENT_ID: str | None = None
    GITHUB_CLIENT_SECRET: str | None = None
    SLACK_CLIENT_ID: str | None = None
    SLACK_CLIENT_SECRET: str | None = None
    JIRA_CLIENT_ID: str | None = None
    JIRA_CLIENT_SECRET: str | None = None
    CLICKUP_CLIENT_ID: str | None = None
    CLICKUP_CLIENT_SECRET: str | None = None
    NOTION_CLIENT_ID: str | None = None
    NOTION_CLIENT_SECRET: str | None = None
    ZOOM_CLIENT_ID: str | None = None
    ZOOM_CLIENT_SECRET: str | None = None
    FATHOM_CLIENT_ID: str | None = None
    FATHOM_CLIENT_SECRET: str | None = None

    # =================================================================
    # SYNC PIPELINE SETTINGS
    # =================================================================
    PROVIDER_REQUEST_TIMEOUT_SECONDS: float = 20.0
    SYNC_PROVIDER_TIMEOUT_SECONDS: float = 120.0
    SYNC_MAX_CONCURRENT_PROVIDERS: int = 4
    SYNC_LOCK_TTL_SECONDS: int = 300
    SYNC_INTERVAL_MINUTES: int = 15
    CALENDAR_SYNC_DAYS_AHEAD: int = 14

    # =================================================================
    # UPDATE FEED SETTINGS
    # =================================================================
    MAIL_LOOKBACK_DAYS: int = 7
    MAIL_MAX_MESSAGES: int = 30
    CHAT_CHANNEL_LIMIT: int = 5
    CHAT_MESSAGES_PER_CHANNEL: int = 5
    CALENDAR_LOOKAHEAD_HOURS: int = 48
    FEED_PAGE_SIZE: int = 50
    NOTIFY_SEVERITIES: list[str] = Field(default_factory=lambda: ["urgent"])

    # =================================================================
    # DATABASE POOL SETTINGS
    # =================================================================
    DB_POOL_MIN_SIZE: int = 3
    DB_POOL_MAX_SIZE: int = 12
    DB_POOL_TIMEOUT: float = 30.0
    DB_POOL_MAX_IDLE: float = 600.0  # 10 minutes
    DB_POOL_MAX_LIFETIME: float = 3600.0  # 1 hour

    model_config = SettingsConfigDict(
        env_file=str(ENV_PATH),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    def jwks_url(self) -> str:
        if self.SUPABASE_JWKS_URL:
            return self.SUPABASE_JWKS_URL
        base = self.SUPABASE_URL.rstrip("/")
        return f"{base}/auth/v1/.well-known/jwks.json"

    def oauth_redirect_uri(self, provider: str) -> str:
        """Callback URL registered with each provider's OAuth app."""
        return f"{self.API_BASE_URL.rstrip('/')}/integrations/{provider}/callback"

    def get_db_pool_config(self) -> dict:
        """
        Get database pool configuration.
        Adjust environment-specific settings based on self.environment.
        """
        config = {
            "min_size": self.DB_POOL_MIN_SIZE,
            "max_size": self.DB_POOL_MAX_SIZE,
            "timeout": self.DB_POOL_TIMEOUT,
            "max_idle": self.DB_POOL_MAX_IDLE,
            "max_lifetime": self.DB_POOL_MAX_LIFETIME,
        }

        if self.environment == "development":
            config.update(
                {
                    "min_size": 2,
                    "max_size": 8,
                    "timeout": 15.0,
                }
            )

        return config


settings = Settings()
