from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_PATH = Path(__file__).resolve().parent.parent / ".env.local"


class Settings(BaseSettings):
    # Environment settings
    environment: str = "development"
    debug: bool = False
    LOG_LEVEL: str = "INFO"

    # Database settings
    DATABASE_URL: str = "postgresql://localhost:5432/workos"

    # Redis settings (push-update channel; in-memory bus when unset)
    REDIS_URL: str | None = None

    # API auth
    JWT_SECRET: str = "dev-secret-change-me-in-every-deployment"
    JWT_ALGORITHM: str = "HS256"

    # Classifier (OpenAI) settings
    OPENAI_API_KEY: str | None = None
    OPENAI_MODEL: str = "gpt-4o-mini"
    OPENAI_MAX_TOKENS: int = 800
    OPENAI_TEMPERATURE: float = 0.2
    CLASSIFIER_TIMEOUT_SECONDS: float = 30.0
    CLASSIFIER_MAX_RETRIES: int = 3

    # =================================================================
    # SOURCE FETCH SETTINGS
    # =================================================================
    SOURCE_REQUEST_TIMEOUT: float = 30.0
    SOURCE_MAX_ATTEMPTS: int = 3
    SOURCE_BACKOFF_FACTOR: float = 2.0
    SOURCE_MAX_RETRY_AFTER_SECONDS: float = 60.0
    GMAIL_MAX_RESULTS: int = 20
    GMAIL_MIN_REQUEST_INTERVAL: float = 0.1
    SLACK_MAX_MESSAGES: int = 20
    SLACK_MAX_CHANNELS: int = 10
    SLACK_MIN_REQUEST_INTERVAL: float = 1.2  # Slack tier 3 is ~50 calls/min

    # =================================================================
    # INGESTION + READ PATH
    # =================================================================
    INGEST_BATCH_SIZE: int = 3
    QUERY_CACHE_TTL_SECONDS: float = 10.0
    DEFAULT_PAGE_SIZE: int = 50
    SLOW_QUERY_MS: float = 2000.0

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
                    "max_size": 6,
                    "timeout": 15.0,
                }
            )

        return config


settings = Settings()
