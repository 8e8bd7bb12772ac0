"""Configuration management for quicktask."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Storage Configuration
    sqlite_db_path: str = Field(default="data/quicktask.db", description="Path to the SQLite database file")

    # Session Configuration
    secret_key: str | None = Field(default=None, description="Secret key used to sign session cookies")
    session_max_age_seconds: int = Field(
        default=7 * 24 * 3600, description="Lifetime of a signed session cookie (in seconds)"
    )

    # Redis Configuration (optional)
    redis_url: str | None = Field(
        default=None, description="Redis connection URL for cross-process change notifications"
    )

    # Pydantic Logfire Configuration (optional)
    logfire_token: str | None = Field(default=None, description="Pydantic Logfire token for observability")

    environment: str = Field(default="development", description="Deployment environment name")

    @property
    def is_production(self) -> bool:
        """Whether the app runs in production (secure cookies, strict startup checks)."""
        return self.environment.lower() == "production"

    def require_credential(self, field_name: str, service_name: str) -> str:
        """Validate that a required credential is set, raising a clear error if missing.

        Args:
            field_name: Name of the field to check
            service_name: Human-readable service name for error message

        Returns:
            The credential value

        Raises:
            ValueError: If the credential is None or empty
        """
        value = getattr(self, field_name)
        if not value:
            raise ValueError(
                f"{service_name} credential not configured. "
                f"Set {field_name.upper()} environment variable or add to .env file."
            )
        return value


# Application Constants
class Constants:
    """Application-wide constants."""

    # Collections
    TASKS_COLLECTION: str = "tasks"
    USERS_COLLECTION: str = "users"

    # Pagination
    MAX_TASKS_PER_LIST: int = 1000  # Full-collection fetch for one user

    # Task ordering: newest first, id breaks timestamp ties
    TASK_SORT: str = "-created_at,-id"

    # Passwords
    MIN_PASSWORD_LENGTH: int = 8
    PASSWORD_HASH_ITERATIONS: int = 600_000

    # Notifications
    NOTIFICATION_HISTORY: int = 20  # Recent notifications kept per user
    NOTIFICATION_DEFAULT_DURATION_MS: int = 4000
    NOTIFICATION_DELETE_DURATION_MS: int = 2000

    # Change feed
    CHANGE_CHANNEL: str = "tasks-changes"

    # Server-Sent Events
    SSE_KEEPALIVE_SECONDS: int = 15

    # Redis Configuration
    REDIS_MAX_CONNECTIONS: int = 10
    REDIS_PUBLISH_RETRIES: int = 3

    # Dev fallback used only outside production when SECRET_KEY is unset
    DEV_SECRET_KEY: str = "quicktask-dev-secret"


def get_settings() -> Settings:
    """Get application settings (singleton pattern)."""
    return Settings()


# Global settings instance
settings = get_settings()
constants = Constants()
