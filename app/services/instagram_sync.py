"""
Read-through synchronization of the Instagram media feed.

A sync walks CHECK_CACHE -> CHECK_TOKEN -> (REFRESH) -> FETCH -> TRANSFORM ->
PERSIST -> WRITE_CACHE. A warm cache entry short-circuits everything after
CHECK_CACHE. Overlapping sync triggers share one run through ``SingleFlight``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, List, Optional

from pydantic import ValidationError

from app.clients.instagram_media import InstagramMediaClient
from app.clients.redis_cache import RedisCacheClient
from app.core.errors import NotConnected
from app.models.instagram import Credential, MediaItem, MediaType, RawMediaItem
from app.services.credential_store import CredentialStore
from app.services.instagram_tokens import InstagramTokenService
from app.utils.clock import Clock, ensure_aware, utc_now
from app.utils.single_flight import SingleFlight

logger = logging.getLogger(__name__)

MEDIA_CACHE_KEY = "instagram:posts"
# Written by older deployments; cleared together with the media key.
TOKEN_CACHE_KEY = "instagram:token"
PREVIEW_SIZE = 6


class SyncState(str, Enum):
    IDLE = "idle"
    CHECK_CACHE = "check_cache"
    CHECK_TOKEN = "check_token"
    REFRESH = "refresh"
    FETCH = "fetch"
    TRANSFORM = "transform"
    PERSIST = "persist"
    WRITE_CACHE = "write_cache"
    DONE = "done"


@dataclass
class SyncResult:
    items: List[MediaItem] = field(default_factory=list)
    cached: bool = False
    synced_at: Optional[datetime] = None
    has_more: bool = False
    cache_written: bool = False

    @property
    def count(self) -> int:
        return len(self.items)

    @property
    def preview(self) -> List[MediaItem]:
        return self.items[:PREVIEW_SIZE]


@dataclass
class SyncStatus:
    is_connected: bool
    username: Optional[str] = None
    last_sync: Optional[datetime] = None
    token_expires_at: Optional[datetime] = None
    token_expired: Optional[bool] = None
    sync_in_progress: bool = False


def normalize_media(raw_items: List[RawMediaItem]) -> List[MediaItem]:
    """Map provider objects onto ``MediaItem``; unusable objects are dropped."""
    items: List[MediaItem] = []
    for raw in raw_items:
        try:
            items.append(
                MediaItem(
                    id=raw.id,
                    media_type=MediaType.from_provider(raw.media_type),
                    media_url=raw.media_url,
                    thumbnail_url=raw.thumbnail_url,
                    permalink=raw.permalink,
                    caption=raw.caption or "",
                    timestamp=raw.timestamp,
                )
            )
        except (ValidationError, ValueError) as exc:
            logger.warning("Dropping Instagram media %s: %s", raw.id, exc)
    return items


class InstagramSyncService:
    """Composition root for cache, token refresh, fetch and persistence."""

    def __init__(
        self,
        *,
        store: CredentialStore,
        token_service: InstagramTokenService,
        media_client: InstagramMediaClient,
        cache: RedisCacheClient,
        media_limit: int = 25,
        media_ttl_seconds: int = 3600,
        lock_timeout_seconds: Optional[float] = 60.0,
        single_flight: Optional[SingleFlight] = None,
        clock: Clock = utc_now,
    ) -> None:
        self._store = store
        self._tokens = token_service
        self._media = media_client
        self._cache = cache
        self._media_limit = media_limit
        self._media_ttl = media_ttl_seconds
        self._lock_timeout = lock_timeout_seconds
        self._flight = single_flight or SingleFlight()
        self._clock = clock

    async def sync(self) -> SyncResult:
        """Run (or join) a sync. Errors from the taxonomy propagate unchanged."""
        return await self._flight.run(
            self._store.credential_id, self._run_sync, timeout=self._lock_timeout
        )

    async def _run_sync(self) -> SyncResult:
        self._enter(SyncState.CHECK_CACHE)
        cached = await self._read_cache()
        if cached is not None:
            logger.info("Returning %d cached Instagram posts", cached.count)
            self._enter(SyncState.DONE)
            return cached

        self._enter(SyncState.CHECK_TOKEN)
        credential = self._store.load()
        if credential is None or not credential.is_connected:
            raise NotConnected("Instagram not connected")
        if self._tokens.needs_refresh(credential):
            self._enter(SyncState.REFRESH)
        credential = await self._tokens.ensure_valid(credential)

        self._enter(SyncState.FETCH)
        page = await self._media.list_media(credential.access_token, self._media_limit)

        self._enter(SyncState.TRANSFORM)
        items = normalize_media(page.items)

        self._enter(SyncState.PERSIST)
        synced_at = self._clock()
        self._store.record_sync(items, synced_at=synced_at)
        logger.info("Synced %d Instagram posts for %s", len(items), credential.username)

        self._enter(SyncState.WRITE_CACHE)
        cache_written = await self._cache.set(
            MEDIA_CACHE_KEY, self._cache_entry(items, synced_at), self._media_ttl
        )
        if not cache_written:
            logger.info("Media cache not written; the next sync will recompute")

        self._enter(SyncState.DONE)
        return SyncResult(
            items=items,
            cached=False,
            synced_at=synced_at,
            has_more=page.has_more,
            cache_written=cache_written,
        )

    async def feed(self) -> SyncResult:
        """
        Media for the public site without touching the provider.

        Serves the cache when warm, else the last persisted collection, so a
        failed sync or a dead cache leaves the previous feed visible.
        """
        cached = await self._read_cache()
        if cached is not None:
            return cached
        collection = self._store.load_media()
        if collection is None:
            return SyncResult()
        return SyncResult(items=collection.items, cached=False, synced_at=collection.fetched_at)

    def status(self) -> SyncStatus:
        credential: Optional[Credential] = self._store.load()
        in_progress = self._flight.in_flight(self._store.credential_id)
        if credential is None:
            return SyncStatus(is_connected=False, sync_in_progress=in_progress)
        expires_at = credential.token_expires_at
        return SyncStatus(
            is_connected=credential.is_connected,
            username=credential.username,
            last_sync=credential.last_sync,
            token_expires_at=expires_at,
            token_expired=(expires_at < self._clock()) if expires_at is not None else None,
            sync_in_progress=in_progress,
        )

    async def clear_cache(self) -> bool:
        """Drop cached entries so the next sync goes to the provider."""
        # An in-flight run would otherwise write its result after the delete.
        if not await self._flight.settle(self._store.credential_id, timeout=self._lock_timeout):
            logger.warning("Clearing the media cache while a sync is still running")
        media_cleared = await self._cache.delete(MEDIA_CACHE_KEY)
        await self._cache.delete(TOKEN_CACHE_KEY)
        return media_cleared

    async def _read_cache(self) -> Optional[SyncResult]:
        entry = await self._cache.get(MEDIA_CACHE_KEY)
        if entry is None:
            return None
        try:
            fetched_at = ensure_aware(datetime.fromisoformat(entry["fetched_at"]))
            items = [MediaItem.model_validate(item) for item in entry["items"]]
        except (KeyError, TypeError, ValueError, ValidationError) as exc:
            logger.warning("Ignoring malformed media cache entry: %s", exc)
            return None
        if self._clock() - fetched_at >= timedelta(seconds=self._media_ttl):
            return None
        return SyncResult(items=items, cached=True, synced_at=fetched_at)

    @staticmethod
    def _cache_entry(items: List[MediaItem], synced_at: datetime) -> dict[str, Any]:
        return {
            "fetched_at": synced_at.isoformat(),
            "items": [item.model_dump(mode="json") for item in items],
        }

    @staticmethod
    def _enter(state: SyncState) -> None:
        logger.debug("Instagram sync -> %s", state.value)


__all__ = [
    "InstagramSyncService",
    "MEDIA_CACHE_KEY",
    "SyncResult",
    "SyncState",
    "SyncStatus",
    "TOKEN_CACHE_KEY",
    "normalize_media",
]
