"""
Centralized configuration using pydantic-settings.

How it works:
- Reads environment variables automatically (e.g., REDIS_HOST env var → Settings.REDIS_HOST)
- Falls back to defaults defined here if env vars are not set
- Can also read from a .env file in the project root

Every module imports `settings` from here instead of hardcoding values.
"""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # ── PostgreSQL ──────────────────────────────────────────────
    POSTGRES_HOST: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_USER: str = "auditor"
    POSTGRES_PASSWORD: str = "auditor"
    POSTGRES_DB: str = "auditor"

    # ── Redis ───────────────────────────────────────────────────
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0

    # ── Job queue ───────────────────────────────────────────────
    QUEUE_PREFIX: str = "audit"
    JOB_MAX_ATTEMPTS: int = 3
    JOB_BACKOFF_DELAY: float = 10.0     # seconds, doubled per failed attempt
    ON_DEMAND_PRIORITY: int = 1         # lower number is dequeued first
    SCHEDULED_PRIORITY: int = 5

    # ── Worker ──────────────────────────────────────────────────
    WORKER_LOCK_DURATION: float = 600.0  # claim lock, covers a full run with retries
    WORKER_POLL_INTERVAL: float = 1.0    # dequeue wait between empty polls
    SCHEDULER_POLL_INTERVAL: float = 1.0  # seconds between scheduler engine ticks

    # ── Result cache ────────────────────────────────────────────
    RESULT_TTL_SECONDS: int = 600

    # ── Analysis runner ─────────────────────────────────────────
    ANALYSIS_RETRIES: int = 2
    ANALYSIS_TIMEOUT: float = 120.0     # per attempt
    ANALYSIS_WARMUP: float = 2.0
    ANALYSIS_RETRY_BASE_DELAY: float = 2.0
    ANALYSIS_RETRY_JITTER: float = 1.0
    CHROME_PATH: str = "chromium"
    LIGHTHOUSE_PATH: str = "lighthouse"
    BATCH_PAUSE_SECONDS: float = 3.0

    # ── App ─────────────────────────────────────────────────────
    ENVIRONMENT: str = "development"
    AUTH_SECRET: str = "change-me"
    LOG_LEVEL: str = "INFO"

    @property
    def database_url(self) -> str:
        """Async connection string for FastAPI (uses asyncpg driver)."""
        return (
            f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    @property
    def sync_database_url(self) -> str:
        """Sync connection string for the worker process (uses psycopg2 driver)."""
        return (
            f"postgresql+psycopg2://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    @property
    def redis_url(self) -> str:
        return f"redis://{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


# Singleton — import this everywhere
settings = Settings()
