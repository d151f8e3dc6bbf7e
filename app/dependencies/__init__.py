"""Expose dependency helpers for FastAPI routers."""

from .clients import (
    get_cache_client,
    get_credential_store,
    get_instagram_connect_service,
    get_instagram_media_client,
    get_instagram_oauth_client,
    get_instagram_sync_service,
    get_instagram_token_service,
    get_oauth_state_encoder,
    get_sqlite_store,
    get_token_cipher_service,
)
from .config import get_app_settings

__all__ = [
    "get_app_settings",
    "get_cache_client",
    "get_credential_store",
    "get_instagram_connect_service",
    "get_instagram_media_client",
    "get_instagram_oauth_client",
    "get_instagram_sync_service",
    "get_instagram_token_service",
    "get_oauth_state_encoder",
    "get_sqlite_store",
    "get_token_cipher_service",
]
