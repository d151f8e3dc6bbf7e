"""
Application configuration models and helpers.

Centralizes settings management so the FastAPI app, the sync service and the
maintenance scripts share a consistent configuration surface.
"""

from functools import lru_cache
from pathlib import Path
from typing import Optional

import os

from pydantic import AnyHttpUrl, Field, HttpUrl, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _load_env_file(path: str = ".env") -> None:
    """Best-effort load key=value pairs from a .env file without extra deps."""
    env_path = Path(path)
    if not env_path.exists():
        return
    for raw_line in env_path.read_text().splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        key, sep, value = line.partition("=")
        if not sep:
            continue
        key = key.strip()
        if not key or key in os.environ:
            continue
        cleaned = value.strip().strip('"').strip("'")
        os.environ[key] = cleaned


_load_env_file()


class InstagramSettings(BaseSettings):
    """Configuration required for talking to the Instagram APIs."""

    model_config = SettingsConfigDict(populate_by_name=True)

    app_id: str = Field(..., validation_alias="INSTAGRAM_APP_ID")
    app_secret: str = Field(..., validation_alias="INSTAGRAM_APP_SECRET")
    redirect_uri: Optional[AnyHttpUrl] = Field(
        None,
        validation_alias="INSTAGRAM_REDIRECT_URI",
        description="Defaults to {SITE_BASE_URL}/api/instagram/callback when omitted.",
    )
    scopes: str = Field(
        "instagram_business_basic",
        validation_alias="INSTAGRAM_SCOPES",
        description="Comma-separated scopes requested on the consent screen.",
    )
    media_limit: int = Field(25, validation_alias="INSTAGRAM_MEDIA_LIMIT", ge=1, le=100)
    http_timeout_seconds: float = Field(
        10.0, validation_alias="INSTAGRAM_HTTP_TIMEOUT", gt=0
    )
    refresh_window_seconds: int = Field(
        0,
        validation_alias="INSTAGRAM_REFRESH_WINDOW",
        ge=0,
        description=(
            "Refresh the long-lived token this many seconds before it expires. "
            "Zero refreshes only once the token has expired."
        ),
    )

    @field_validator("app_id", "app_secret")
    @classmethod
    def _require_value(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("Instagram app credentials must not be blank.")
        return value.strip()

    @property
    def scope_list(self) -> tuple[str, ...]:
        return tuple(scope.strip() for scope in self.scopes.split(",") if scope.strip())


class CacheSettings(BaseSettings):
    """Redis cache configuration. The cache is optional."""

    model_config = SettingsConfigDict(populate_by_name=True)

    redis_url: Optional[str] = Field(None, validation_alias="REDIS_URL")
    redis_password: Optional[str] = Field(None, validation_alias="REDIS_PASSWORD")
    redis_db: int = Field(0, validation_alias="REDIS_DB", ge=0)
    media_ttl_seconds: int = Field(
        3600, validation_alias="INSTAGRAM_MEDIA_CACHE_TTL", gt=0
    )
    socket_timeout_seconds: float = Field(
        2.0, validation_alias="CACHE_SOCKET_TIMEOUT", gt=0
    )
    reconnect_interval_seconds: float = Field(
        30.0,
        validation_alias="CACHE_RECONNECT_INTERVAL",
        ge=0,
        description="Minimum delay between connection attempts after a failure.",
    )


class SecuritySettings(BaseSettings):
    """Security-related configuration."""

    model_config = SettingsConfigDict(populate_by_name=True)

    token_encryption_secret: Optional[str] = Field(
        None,
        validation_alias="TOKEN_ENCRYPTION_SECRET",
        description=(
            "Secret used to derive the symmetric key for encrypting stored tokens."
        ),
    )
    state_ttl_seconds: int = Field(900, validation_alias="OAUTH_STATE_TTL", gt=0)


class AppSettings(BaseSettings):
    """Root settings object for the FastAPI application."""

    model_config = SettingsConfigDict(populate_by_name=True)

    environment: str = Field("development", validation_alias="APP_ENV")
    log_level: str = Field("INFO", validation_alias="APP_LOG_LEVEL")
    site_base_url: HttpUrl = Field(
        "http://localhost:3000",
        validation_alias="SITE_BASE_URL",
        description="Public site URL used for admin redirects.",
    )
    admin_status_path: str = Field("/admin/instagram", validation_alias="ADMIN_STATUS_PATH")
    store_db_path: str = Field("data/instagram.sqlite3", validation_alias="STORE_DB_PATH")
    sync_lock_timeout_seconds: float = Field(
        60.0,
        validation_alias="SYNC_LOCK_TIMEOUT",
        gt=0,
        description="How long a caller waits for an in-flight sync before giving up.",
    )
    security: SecuritySettings = Field(default_factory=SecuritySettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    instagram: InstagramSettings = Field(default_factory=InstagramSettings)

    def site_url(self, path: str = "") -> str:
        """Join ``path`` onto the public site base URL."""
        return f"{str(self.site_base_url).rstrip('/')}{path}"

    @property
    def instagram_redirect_uri(self) -> str:
        if self.instagram.redirect_uri is not None:
            return str(self.instagram.redirect_uri)
        return self.site_url("/api/instagram/callback")


@lru_cache()
def get_settings() -> AppSettings:
    """Return a cached settings object."""
    return AppSettings()  # type: ignore[call-arg]


__all__ = [
    "AppSettings",
    "CacheSettings",
    "InstagramSettings",
    "SecuritySettings",
    "get_settings",
]
