"""Pydantic models for stride configuration."""

from __future__ import annotations

from pydantic import BaseModel, Field


class DatabaseConfig(BaseModel):
    """Database connection settings."""

    url: str = "sqlite+aiosqlite:///~/.local/share/stride/stride.db"
    pool_size: int = 5
    max_overflow: int = 10
    pool_timeout: int = 30
    pool_recycle: int = 3600


class AuthConfig(BaseModel):
    """Accounts, sessions and sign-up behaviour."""

    jwt_secret: str = ""
    token_expiry_hours: int = 24
    registration_enabled: bool = True
    session_cookie: str = "stride_session"
    confirmation_code_ttl_hours: int = 24
    # Heuristic: a profile older than this at callback time is a returning user.
    returning_user_after_minutes: int = 5
    app_url: str = "http://localhost:3000"


class StorageConfig(BaseModel):
    """S3-compatible object storage for chat images and avatars."""

    bucket: str = "chat-images"
    endpoint_url: str | None = None
    region: str = "us-east-1"
    access_key_id: str | None = None
    secret_access_key: str | None = None
    public_base_url: str = ""
    max_image_bytes: int = 5 * 1024 * 1024


class PlanConfig(BaseModel):
    """A subscription plan offered at checkout."""

    price_id: str = ""
    amount: int = 0
    interval: str = "month"
    trial_days: int = 0


class PaymentsConfig(BaseModel):
    """Stripe billing settings."""

    enabled: bool = True
    secret_key: str | None = None
    secret_key_env: str | None = "STRIPE_SECRET_KEY"
    webhook_secret: str | None = None
    webhook_secret_env: str | None = "STRIPE_WEBHOOK_SECRET"
    plans: dict[str, PlanConfig] = Field(
        default_factory=lambda: {
            "monthly": PlanConfig(amount=1999, interval="month", trial_days=7),
            "annual": PlanConfig(amount=17999, interval="year", trial_days=0),
        }
    )


class ChatConfig(BaseModel):
    """Community chat settings."""

    fetch_limit: int = 100
    default_sort: str = "best"
    default_channel: str = "general"
    max_content_length: int = 4000


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    file: str = ""
    structured: bool = False


class APIConfig(BaseModel):
    """HTTP server settings."""

    host: str = "127.0.0.1"
    port: int = 8080
    cors_origins: list[str] = Field(default_factory=lambda: ["http://localhost:3000"])
    rate_limit: int = 120
    rate_limit_window: int = 60


class StrideConfig(BaseModel):
    """Top-level configuration for stride."""

    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    auth: AuthConfig = Field(default_factory=AuthConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    payments: PaymentsConfig = Field(default_factory=PaymentsConfig)
    chat: ChatConfig = Field(default_factory=ChatConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    api: APIConfig = Field(default_factory=APIConfig)
