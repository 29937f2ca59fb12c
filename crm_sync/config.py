from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_PATH = Path(__file__).resolve().parent.parent / ".env.local"


class Settings(BaseSettings):
    # Environment settings
    environment: str = "development"
    debug: bool = False
    LOG_LEVEL: str = "INFO"

    # Postgres settings
    DATABASE_URL: str = "postgresql://localhost:5432/crm_sync"

    # Fernet key used to encrypt stored OAuth tokens
    ENCRYPTION_KEY: str | None = None

    # Teamleader API + OAuth settings
    TEAMLEADER_BASE_URL: str = "https://api.focus.teamleader.eu"
    TEAMLEADER_AUTH_URL: str = "https://focus.teamleader.eu/oauth2/authorize"
    TEAMLEADER_TOKEN_URL: str = "https://focus.teamleader.eu/oauth2/access_token"
    TEAMLEADER_CLIENT_ID: str | None = None
    TEAMLEADER_CLIENT_SECRET: str | None = None
    TEAMLEADER_REDIRECT_URI: str | None = None

    # Company sync settings
    TEAMLEADER_SYNC_PAGE_SIZE: int = 50
    TEAMLEADER_SYNC_DETAIL_DELAY_SECONDS: float = 0.0
    TEAMLEADER_SYNC_PROBE_CONNECTION: bool = True
    TEAMLEADER_SYNC_ENABLED: bool = False
    TEAMLEADER_SYNC_INTERVAL_MINUTES: int = 1440  # daily

    # =================================================================
    # DATABASE POOL SETTINGS
    # =================================================================
    DB_POOL_MIN_SIZE: int = 2
    DB_POOL_MAX_SIZE: int = 10
    DB_POOL_TIMEOUT: float = 30.0
    DB_POOL_MAX_IDLE: float = 600.0  # 10 minutes
    DB_POOL_MAX_LIFETIME: float = 3600.0  # 1 hour

    model_config = SettingsConfigDict(
        env_file=str(ENV_PATH),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    def teamleader_redirect_uri(self) -> str:
        """Get Teamleader OAuth redirect URI with fallback."""
        if self.TEAMLEADER_REDIRECT_URI:
            return self.TEAMLEADER_REDIRECT_URI
        # Default for local development
        return "http://localhost:8000/api/teamleader/oauth/callback"

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
                    "min_size": min(self.DB_POOL_MIN_SIZE, 2),
                    "max_size": min(self.DB_POOL_MAX_SIZE, 5),
                    "timeout": 15.0,
                }
            )

        return config


settings = Settings()
