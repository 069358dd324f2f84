"""Application settings using Pydantic BaseSettings."""

import re

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database (Postgres in production, SQLite for local dev)
    database_url: str = "sqlite+aiosqlite:///./wa_mailbox.db"

    # Redis (optional)
    redis_url: str = "redis://localhost:6379/0"
    redis_enabled: bool = False  # Disable Redis by default for dev

    # JWT
    jwt_secret_key: str = "dev-secret-key-change-in-production"
    jwt_algorithm: str = "HS256"
    jwt_access_token_expire_minutes: int = 60

    # Fernet key for credential encryption
    field_encryption_key: str = ""

    # Application
    environment: str = "development"
    log_level: str = "INFO"
    api_v1_prefix: str = "/api/v1"

    # Idempotency
    idempotency_ttl_seconds: int = 3600

    # WhatsApp Cloud API
    whatsapp_graph_base_url: str = "https://graph.facebook.com"
    whatsapp_default_api_version: str = "v18.0"
    whatsapp_default_country_code: str = "92"
    whatsapp_http_timeout_seconds: float = 30.0
    whatsapp_app_secret: str | None = None  # Enables X-Hub-Signature-256 checks

    # WhatsApp Web bridge (QR device linking)
    whatsapp_web_service_url: str = "http://localhost:4000"
    whatsapp_web_webhook_secret: str | None = None

    # External IP logging endpoint
    ip_logging_url: str | None = None

    # Shared secret for /workers/* calls (Cloud Scheduler, cron); unset means open
    worker_secret: str | None = None
    jobs_batch_size: int = 50

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


settings = Settings()


def get_async_database_url() -> str:
    """Get database URL converted for the asyncpg driver."""
    url = settings.database_url
    # Convert postgres:// to postgresql+asyncpg:// for SQLAlchemy async
    if url.startswith("postgres://"):
        url = url.replace("postgres://", "postgresql+asyncpg://", 1)
    elif url.startswith("postgresql://") and "+asyncpg" not in url:
        url = url.replace("postgresql://", "postgresql+asyncpg://", 1)
    # asyncpg doesn't support sslmode, it uses ssl parameter
    if "sslmode=" in url:
        url = re.sub(r'[?&]sslmode=[^&]*', '', url)
        url = url.rstrip('?&')
    return url


def get_sync_database_url() -> str:
    """Get database URL with a sync driver (used by Alembic)."""
    url = settings.database_url
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql://", 1)
    if "+asyncpg" in url:
        return url.replace("+asyncpg", "")
    if "+aiosqlite" in url:
        return url.replace("+aiosqlite", "")
    return url
