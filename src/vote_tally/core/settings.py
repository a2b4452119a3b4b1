"""Application settings and configuration.

This module defines all configuration options for the Vote Tally service.
Settings are loaded from environment variables with sensible defaults.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Settings can be overridden via environment variables or .env files.
    """

    # Application metadata
    app_name: str = Field(default="Vote Tally", alias="APP_NAME")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")

    # Security and authentication
    secret_key: str = Field(alias="SECRET_KEY")
    debug: bool = Field(default=False, alias="DEBUG")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Database configuration
    database_url: str = Field(default="sqlite:///./vote_tally.db", alias="DATABASE_URL")
    test_database_url: str | None = Field(default=None, alias="TEST_DATABASE_URL")
    use_testing_database: bool = Field(default=False, alias="USE_TEST_DATABASE")
    sql_debug: bool = Field(default=False, alias="SQL_DEBUG")
    sqlite_busy_timeout_seconds: float = Field(default=15.0, alias="SQLITE_BUSY_TIMEOUT_SECONDS")

    # JWT identity settings (tokens are issued by the external identity provider)
    jwt_algorithm: str = Field(default="HS256", alias="JWT_ALGORITHM")
    access_token_expire_minutes: int = Field(
        default=60 * 24 * 30,
        alias="ACCESS_TOKEN_EXPIRE_MINUTES",
    )

    # Vote engine tuning
    vote_conflict_retries: int = Field(default=1, ge=0, alias="VOTE_CONFLICT_RETRIES")
    subject_lock_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        alias="SUBJECT_LOCK_TIMEOUT_SECONDS",
    )

    # Score reconciliation retry policy
    reconcile_max_attempts: int = Field(default=3, ge=1, alias="RECONCILE_MAX_ATTEMPTS")
    reconcile_backoff_seconds: float = Field(
        default=0.05,
        ge=0,
        alias="RECONCILE_BACKOFF_SECONDS",
    )
    reconcile_backoff_max_seconds: float = Field(
        default=1.0,
        ge=0,
        alias="RECONCILE_BACKOFF_MAX_SECONDS",
    )

    # Background resweep of subjects whose score lags the ledger
    reconcile_sweep_enabled: bool = Field(default=True, alias="RECONCILE_SWEEP_ENABLED")
    reconcile_sweep_interval_seconds: float = Field(
        default=30.0,
        alias="RECONCILE_SWEEP_INTERVAL_SECONDS",
    )
    reconcile_sweep_batch_size: int = Field(
        default=100,
        ge=1,
        alias="RECONCILE_SWEEP_BATCH_SIZE",
    )

    # CORS configuration for web frontend access
    cors_origins: list[str] = Field(
        default=["*"],
        alias="CORS_ORIGINS",
    )
    cors_allow_credentials: bool = Field(default=True, alias="CORS_ALLOW_CREDENTIALS")
    cors_allow_methods: list[str] = Field(
        default=["GET", "POST", "DELETE", "OPTIONS"],
        alias="CORS_ALLOW_METHODS",
    )
    cors_allow_headers: list[str] = Field(
        default=["*"],
        alias="CORS_ALLOW_HEADERS",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        validate_assignment=True,
        extra="ignore",
    )

    @property
    def database_url_sync(self) -> str:
        """Return a sync-compatible database URL for tooling.

        Converts asyncpg URLs to psycopg for synchronous database operations
        like Alembic migrations.
        """
        url = self.effective_database_url
        if url.startswith("postgresql+asyncpg"):
            return url.replace("postgresql+asyncpg", "postgresql+psycopg", 1)
        return url

    @property
    def effective_database_url(self) -> str:
        """Return the database URL respecting testing overrides."""
        if self.use_testing_database and self.test_database_url:
            return self.test_database_url
        return self.database_url

    @property
    def reconcile_backoff_schedule(self) -> list[float]:
        """Return the sleep before each reconciliation retry.

        The first attempt runs immediately; each retry doubles the previous
        delay, capped at ``reconcile_backoff_max_seconds``.
        """
        delays: list[float] = []
        delay = self.reconcile_backoff_seconds
        for _ in range(self.reconcile_max_attempts - 1):
            delays.append(min(delay, self.reconcile_backoff_max_seconds))
            delay *= 2
        return delays


settings = Settings()  # type: ignore[call-arg]
