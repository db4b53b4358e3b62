from pydantic_settings import BaseSettings
from pydantic import ConfigDict, field_validator
from pathlib import Path
from typing import Literal
from functools import lru_cache
from ..validators.config_validators import to_uppercase, to_lowercase, split_codes


class Settings(BaseSettings):
    """
    Data-layer settings loaded from environment.
    """

    # Environment
    ENV: Literal["development", "testing", "staging", "production"] = "development"

    # Remote store configuration
    DATA_STORE_URL: str = ""
    DATA_STORE_SERVICE_ROLE_KEY: str | None = None
    DATA_STORE_ANON_KEY: str | None = None
    DATA_STORE_SCHEMA: str = "public"
    DATA_STORE_AUTO_REFRESH: bool = True
    DATA_STORE_PERSIST_SESSION: bool = False
    DATA_STORE_CONNECT_TIMEOUT_SECONDS: float = 10.0

    # Retry defaults (per repository, overridable in RepositoryConfig)
    RETRY_MAX_RETRIES: int = 3
    RETRY_INITIAL_DELAY_MS: int = 100
    RETRY_MAX_DELAY_MS: int = 3000
    RETRY_BACKOFF_FACTOR: float = 2.0
    RETRY_RETRYABLE_ERROR_CODES: str = "connection_error,timeout,server_error"

    # Reconnection defaults (fixed delay between attempts)
    RECONNECT_MAX_ATTEMPTS: int = 3
    RECONNECT_DELAY_MS: int = 1000

    # Logging
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    LOG_FORMAT: Literal["json", "text"] = "json"
    LOG_TO_STDOUT: bool = True
    LOG_DIR: Path = Path("/var/log/datalayer")
    LOG_MAX_BYTES: int = 10_000_000  # 10 MB
    LOG_BACKUP_COUNT: int = 5
    ENABLE_SQL_LOGGING: bool = False

    # --- Derived settings ---
    @property
    def DATA_STORE_KEY(self) -> str:
        """
        Credential used to reach the store.

        The service-role key wins over the anonymous key when both are set.
        """
        return self.DATA_STORE_SERVICE_ROLE_KEY or self.DATA_STORE_ANON_KEY or ""

    def connection_config(self, **overrides):
        """
        Build a ConnectionConfig from these settings.

        Keyword overrides win over environment values (e.g. `existing_handle=engine`).
        """
        # imported lazily: database.connection -> config would otherwise form a cycle
        from ..database.connection import ConnectionConfig

        values = {
            "endpoint": self.DATA_STORE_URL,
            "credential": self.DATA_STORE_KEY,
            "auto_refresh": self.DATA_STORE_AUTO_REFRESH,
            "persist_session": self.DATA_STORE_PERSIST_SESSION,
            "db_schema": self.DATA_STORE_SCHEMA,
            "connect_timeout_seconds": self.DATA_STORE_CONNECT_TIMEOUT_SECONDS,
        }
        values.update(overrides)
        return ConnectionConfig(**values)

    def retry_policy(self):
        """Build the default RetryPolicy from the RETRY_* settings."""
        from ..core.retry import RetryPolicy

        return RetryPolicy(
            max_retries=self.RETRY_MAX_RETRIES,
            initial_delay_ms=self.RETRY_INITIAL_DELAY_MS,
            max_delay_ms=self.RETRY_MAX_DELAY_MS,
            backoff_factor=self.RETRY_BACKOFF_FACTOR,
            retryable_error_codes=frozenset(split_codes(self.RETRY_RETRYABLE_ERROR_CODES)),
        )

    # --- Validators ---
    @field_validator("LOG_LEVEL", mode="before")
    def normalize_log_level(cls, v: str | None) -> str | None:
        """
        Normalize the LOG_LEVEL environment variable value to uppercase.

        The logging module expects level names in uppercase ("DEBUG", "INFO", ...),
        while operators commonly export `LOG_LEVEL=debug`.
        """
        return to_uppercase(v)

    @field_validator("LOG_FORMAT", mode="before")
    def normalize_log_format(cls, v: str | None) -> str | None:
        """
        Normalize the LOG_FORMAT environment variable value to lowercase.
        """
        return to_lowercase(v)

    @field_validator("DATA_STORE_URL", mode="before")
    def strip_store_url(cls, v: str | None) -> str:
        return (v or "").strip()

    # --- ConfigDict settings ---
    model_config = ConfigDict(
        # Load environment variables from the .env file located next to the package.
        env_file=str(Path(__file__).parent.parent / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )


# get_settings() takes no arguments and always returns the same settings from the environment,
# so it is cached with @lru_cache(). Tests call get_settings.cache_clear() after patching env.
@lru_cache()
def get_settings() -> Settings:
    return Settings()
