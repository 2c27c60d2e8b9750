from __future__ import annotations

from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class AppSettings(BaseSettings):
    """
    Application-level settings for the FastAPI service.

    This is separate from src.db.config.Settings, which focuses on the database layer.
    """

    # FastAPI metadata
    APP_NAME: str = Field(default="Transport Billing API")
    APP_DESCRIPTION: str = Field(
        default=(
            "Back-office API for transport payment processing: companies, drivers, "
            "weekly processing, payments, balances and transport orders, isolated per tenant."
        )
    )
    APP_VERSION: str = Field(default="0.1.0")

    # CORS
    CORS_ORIGINS: List[str] = Field(
        default_factory=lambda: ["*"],
        description="Comma-separated list or JSON array of allowed origins. Default: *",
    )
    CORS_ALLOW_CREDENTIALS: bool = Field(default=True)
    CORS_ALLOW_METHODS: List[str] = Field(default_factory=lambda: ["*"])
    CORS_ALLOW_HEADERS: List[str] = Field(default_factory=lambda: ["*"])

    # Startup behavior
    RUN_MIGRATIONS_ON_STARTUP: bool = Field(
        default=True,
        description="If true, run Alembic migrations (upgrade head) at app startup.",
    )
    AUTO_SEED: bool = Field(
        default=False,
        description="If true, seed the main tenant and an admin user after migrations.",
    )

    # Tenancy
    MAIN_TENANT_ID: str = Field(
        default="main",
        description="Sentinel tenant served from the shared schema; users without a tenant resolve to it.",
    )
    DEFAULT_STORAGE_MODE: str = Field(
        default="dedicated_schema",
        description="Storage mode for tenants without a directory record: shared, dedicated_schema or dedicated_external.",
    )
    TENANT_SCHEMA_PREFIX: str = Field(default="tenant_")
    EXTERNAL_DATABASE_URL_TEMPLATE: Optional[str] = Field(
        default=None,
        description="Connection URL for dedicated external projects, with a {tenant_id} placeholder.",
    )

    # Storage call bounds
    STORAGE_TIMEOUT_SECONDS: float = Field(default=10.0, gt=0)
    STORAGE_RETRY_ATTEMPTS: int = Field(default=3, ge=1)
    STORAGE_RETRY_BACKOFF_SECONDS: float = Field(default=0.2, ge=0)
    STORAGE_RETRY_MAX_BACKOFF_SECONDS: float = Field(default=2.0, ge=0)

    # Session cookie
    SESSION_SECRET_KEY: str = Field(default="change-me", description="HMAC key for session tokens")
    SESSION_ALGORITHM: str = Field(default="HS256")
    SESSION_COOKIE_NAME: str = Field(default="transport_session")
    SESSION_EXPIRE_MINUTES: int = Field(default=720)
    SESSION_COOKIE_SECURE: bool = Field(default=False)

    # Seed data
    SEED_ADMIN_USERNAME: str = Field(default="admin")
    SEED_ADMIN_PASSWORD: str = Field(default="admin")

    # Environment label
    ENVIRONMENT: Optional[str] = Field(
        default=None, description="Environment label (dev/test/prod)"
    )

    # Automatically load from .env at runtime. The orchestrator will provide these.
    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def _parse_cors_origins(cls, v):
        """
        Accept both JSON array format and comma-separated formats for CORS origins.
        """
        if v is None:
            return ["*"]
        if isinstance(v, str):
            # Try comma-separated
            parts = [p.strip() for p in v.split(",") if p.strip()]
            return parts or ["*"]
        if isinstance(v, list):
            return v or ["*"]
        return ["*"]

    @field_validator("MAIN_TENANT_ID", mode="after")
    @classmethod
    def _normalize_main_tenant(cls, v: str) -> str:
        return v.strip().lower() or "main"


# PUBLIC_INTERFACE
def get_app_settings() -> AppSettings:
    """
    Return a new AppSettings instance populated from environment variables.

    Note:
      For simplicity we construct a new instance each time. If caching is desired,
      we can add a module-level cache or lru_cache.
    """
    return AppSettings()
