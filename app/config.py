"""Application configuration using pydantic-settings."""

from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict

# Values shipped in templates that mean "not set up yet"
PLACEHOLDER_MARKERS = ("placeholder", "changeme", "your-")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_env: Literal["development", "staging", "production"] = "development"
    log_level: str = "INFO"
    frontend_url: str = "http://localhost:3000"

    # Primary store (empty = run on the local file mirror only)
    database_url: str = ""

    # Fallback store
    chat_data_dir: str = "data/chat"

    # Redis (Celery broker)
    redis_url: str = "redis://localhost:6379/0"

    # JWT issued by the identity provider
    jwt_secret_key: str = "change-me-in-production-with-a-long-random-secret"
    jwt_algorithm: str = "HS256"
    jwt_access_token_expire_minutes: int = 60 * 24

    # First-contact automation
    welcome_sender_name: str = "ISLE & ECHO"
    welcome_message: str = (
        "Thanks for Contacting Isle & Echo for Easy Assistance! "
        "Can I know your good name first?"
    )

    # Client-side reconciliation
    message_poll_interval_seconds: float = 2.0
    conversation_poll_interval_seconds: float = 3.0
    unread_poll_interval_seconds: float = 5.0

    # Push channel
    push_queue_size: int = 100
    push_heartbeat_seconds: float = 15.0

    # WhatsApp deep link
    whatsapp_contact_number: str = "94741415812"
    whatsapp_prefill_text: str = "Hello! I would like to know more about your tours."

    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.app_env == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development."""
        return self.app_env == "development"

    @property
    def primary_configured(self) -> bool:
        """True if the primary store URL is set and is not a template value."""
        url = self.database_url.strip()
        if not url:
            return False
        lowered = url.lower()
        return not any(marker in lowered for marker in PLACEHOLDER_MARKERS)

    @property
    def async_database_url(self) -> str:
        """Primary store URL with an async driver."""
        url = self.database_url.strip()
        if url.startswith("postgres://"):
            return url.replace("postgres://", "postgresql+asyncpg://", 1)
        if url.startswith("postgresql://"):
            return url.replace("postgresql://", "postgresql+asyncpg://", 1)
        return url


def load_settings() -> Settings:
    """Build a fresh settings instance from the current environment."""
    return Settings()


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return load_settings()
