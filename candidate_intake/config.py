from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_PATH = Path(__file__).resolve().parent.parent / ".env.local"


class Settings(BaseSettings):
    # Environment settings
    environment: str = "development"
    debug: bool = False
    LOG_LEVEL: str = "INFO"

    # Supabase settings
    SUPABASE_DB_URL: str | None = None
    SUPABASE_JWT_SECRET: str | None = None

    # Gmail OAuth settings (single shared inbox, offline refresh token)
    GMAIL_CLIENT_ID: str | None = None
    GMAIL_CLIENT_SECRET: str | None = None
    GMAIL_REFRESH_TOKEN: str | None = None
    GMAIL_PAGE_SIZE: int = 100

    # OpenAI document extraction
    OPENAI_API_KEY: str | None = None
    OPENAI_MODEL: str = "gpt-4o-mini"
    OPENAI_MAX_TOKENS: int = 4096
    OPENAI_TEMPERATURE: float = 0.0
    EXTRACTION_TIMEOUT_SECONDS: int = 60
    EXTRACTION_MAX_RETRIES: int = 3

    # =================================================================
    # PIPELINE SETTINGS
    # =================================================================
    PIPELINE_REFERENCE_TZ: str = "Africa/Johannesburg"
    PIPELINE_DEDUP_WINDOW_HOURS: int = 24
    # Overall execution budget for one run; 0 disables the deadline
    PIPELINE_RUN_DEADLINE_SECONDS: float = 0.0

    # =================================================================
    # DATABASE POOL SETTINGS
    # =================================================================
    DB_POOL_MIN_SIZE: int = 1
    DB_POOL_MAX_SIZE: int = 4
    DB_POOL_TIMEOUT: float = 30.0
    DB_POOL_MAX_IDLE: float = 600.0  # 10 minutes
    DB_POOL_MAX_LIFETIME: float = 3600.0  # 1 hour

    model_config = SettingsConfigDict(
        env_file=str(ENV_PATH),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    def get_db_pool_config(self) -> dict:
        """
        Get database pool configuration.

        The pipeline runs one coordinator per invocation, so the pool stays
        small; development caps it further.
        """
        config = {
            "min_size": self.DB_POOL_MIN_SIZE,
            "max_size": self.DB_POOL_MAX_SIZE,
            "timeout": self.DB_POOL_TIMEOUT,
            "max_idle": self.DB_POOL_MAX_IDLE,
            "max_lifetime": self.DB_POOL_MAX_LIFETIME,
        }

        if self.environment == "development":
            config.update({"min_size": 1, "max_size": 2, "timeout": 15.0})

        return config


settings = Settings()
