"""Expose constructed client wrappers."""

from .instagram_auth import InstagramOAuthClient, OAuthStateEncoder
from .instagram_media import InstagramMediaClient, MediaPage
from .redis_cache import RedisCacheClient
from .sqlite_store import SQLiteStore

__all__ = [
    "InstagramMediaClient",
    "InstagramOAuthClient",
    "MediaPage",
    "OAuthStateEncoder",
    "RedisCacheClient",
    "SQLiteStore",
]
