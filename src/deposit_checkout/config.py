"""Application configuration."""

import os
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict

_ENVIRONMENT = os.getenv("ENVIRONMENT", "local")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    shopify_store_domain: str
    shopify_admin_access_token: str
    shopify_admin_api_version: str = "2024-10"
    shopify_webhook_secret: str | None = None
    allow_unsigned_webhooks: bool = False
    admin_token: str
    session_backend: Literal["memory", "supabase"] = "memory"
    supabase_url: str | None = None
    supabase_service_key: str | None = None
    session_ttl_seconds: int = 24 * 3600
    processed_notification_ttl_seconds: int = 7 * 24 * 3600
    gateway_timeout_seconds: float = 30
    verify_notification_amounts: bool = True
    environment: str = _ENVIRONMENT

    model_config = SettingsConfigDict(
        env_file=(f".env.{_ENVIRONMENT}", ".env"),
        extra="ignore",
    )
