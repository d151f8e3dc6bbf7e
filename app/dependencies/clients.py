"""
Factory functions to provide shared clients and services as FastAPI dependencies.
"""

from functools import lru_cache

from app.clients import (
    InstagramMediaClient,
    InstagramOAuthClient,
    OAuthStateEncoder,
    RedisCacheClient,
    SQLiteStore,
)
from app.core.config import get_settings
from app.services import (
    CredentialStore,
    InstagramConnectService,
    InstagramSyncService,
    InstagramTokenService,
    TokenCipherService,
)


@lru_cache()
def _settings():
    """Internal helper to cache settings for client factories."""
    return get_settings()


@lru_cache()
def get_oauth_state_encoder() -> OAuthStateEncoder:
    """Provide an OAuth state encoder derived from the Instagram app secret."""
    settings = _settings()
    return OAuthStateEncoder(
        secret_key=settings.instagram.app_secret,
        ttl_seconds=settings.security.state_ttl_seconds,
    )


@lru_cache()
def get_instagram_oauth_client() -> InstagramOAuthClient:
    """Create a singleton Instagram OAuth client."""
    settings = _settings()
    return InstagramOAuthClient(settings.instagram, settings.instagram_redirect_uri)


@lru_cache()
def get_instagram_media_client() -> InstagramMediaClient:
    """Provide the media listing client."""
    return InstagramMediaClient(_settings().instagram)


@lru_cache()
def get_cache_client() -> RedisCacheClient:
    """Provide the process-wide cache client; its lifecycle is owned by the app lifespan."""
    return RedisCacheClient(_settings().cache)


@lru_cache()
def get_sqlite_store() -> SQLiteStore:
    """Provide shared SQLite record store."""
    return SQLiteStore(_settings().store_db_path)


@lru_cache()
def get_token_cipher_service() -> TokenCipherService:
    """Provide symmetric encryption helper for token storage."""
    settings = _settings()
    secret = settings.security.token_encryption_secret or settings.instagram.app_secret
    return TokenCipherService(secret=secret)


@lru_cache()
def get_credential_store() -> CredentialStore:
    return CredentialStore(get_sqlite_store(), get_token_cipher_service())


@lru_cache()
def get_instagram_token_service() -> InstagramTokenService:
    """Provide helper for validating and refreshing the Instagram token."""
    settings = _settings()
    return InstagramTokenService(
        store=get_credential_store(),
        oauth_client=get_instagram_oauth_client(),
        refresh_window_seconds=settings.instagram.refresh_window_seconds,
    )


@lru_cache()
def get_instagram_connect_service() -> InstagramConnectService:
    return InstagramConnectService(
        store=get_credential_store(),
        oauth_client=get_instagram_oauth_client(),
        state_encoder=get_oauth_state_encoder(),
    )


@lru_cache()
def get_instagram_sync_service() -> InstagramSyncService:
    """Singleton so concurrent requests share one single-flight guard."""
    settings = _settings()
    return InstagramSyncService(
        store=get_credential_store(),
        token_service=get_instagram_token_service(),
        media_client=get_instagram_media_client(),
        cache=get_cache_client(),
        media_limit=settings.instagram.media_limit,
        media_ttl_seconds=settings.cache.media_ttl_seconds,
        lock_timeout_seconds=settings.sync_lock_timeout_seconds,
    )


__all__ = [
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
