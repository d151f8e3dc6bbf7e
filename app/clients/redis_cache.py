"""
Fail-open Redis cache client.

Every public operation degrades to "cache unavailable" instead of raising:
``get`` returns ``None`` and ``set``/``delete`` return ``False`` when the
backend is unset, unreachable or misbehaving. Values are stored as JSON.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from datetime import datetime
from typing import Any, Callable, Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

from app.core.config import CacheSettings
from app.core.errors import CacheUnavailable

logger = logging.getLogger(__name__)

RedisFactory = Callable[..., "redis.Redis"]


def _json_default(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    raise TypeError(f"Type {type(value)!r} not serializable")


class RedisCacheClient:
    """Read-through cache with an explicit, lazy and idempotent lifecycle."""

    def __init__(
        self,
        settings: CacheSettings,
        *,
        client_factory: Optional[RedisFactory] = None,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        self._settings = settings
        self._factory = client_factory or redis.from_url
        self._monotonic = monotonic
        self._redis: Optional[redis.Redis] = None
        self._last_failure: Optional[float] = None
        self._lock = asyncio.Lock()

    @property
    def is_connected(self) -> bool:
        return self._redis is not None

    @property
    def is_configured(self) -> bool:
        return bool(self._settings.redis_url)

    async def connect(self) -> bool:
        """Open the connection if needed. Returns whether the cache is usable."""
        if self._redis is not None:
            return True
        if not self.is_configured:
            return False
        if self._in_backoff():
            return False

        async with self._lock:
            if self._redis is not None:
                return True
            try:
                client = self._factory(
                    self._settings.redis_url,
                    password=self._settings.redis_password,
                    db=self._settings.redis_db,
                    decode_responses=True,
                    socket_timeout=self._settings.socket_timeout_seconds,
                    socket_connect_timeout=self._settings.socket_timeout_seconds,
                )
            except ValueError as exc:
                self._last_failure = self._monotonic()
                logger.error("Invalid REDIS_URL, continuing without cache: %s", exc)
                return False
            try:
                await client.ping()
            except (RedisError, OSError) as exc:
                self._last_failure = self._monotonic()
                logger.warning("Redis connection failed, continuing without cache: %s", exc)
                await self._close(client)
                return False
            self._redis = client
            self._last_failure = None
            logger.info("Redis cache connected")
            return True

    async def disconnect(self) -> None:
        client, self._redis = self._redis, None
        if client is not None:
            await self._close(client)
            logger.info("Redis cache disconnected")

    async def get(self, key: str) -> Optional[Any]:
        try:
            client = await self._require()
            raw = await client.get(key)
        except CacheUnavailable:
            return None
        except (RedisError, OSError) as exc:
            await self._degrade("GET", key, exc)
            return None

        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning("Ignoring undecodable cache entry for %s", key)
            return None

    async def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> bool:
        try:
            serialized = json.dumps(value, default=_json_default)
        except (TypeError, ValueError) as exc:
            logger.error("Refusing to cache unserializable value for %s: %s", key, exc)
            return False

        try:
            client = await self._require()
            # SET with EX is a single command, so the entry appears whole or not at all.
            await client.set(key, serialized, ex=ttl_seconds)
        except CacheUnavailable:
            return False
        except (RedisError, OSError) as exc:
            await self._degrade("SET", key, exc)
            return False
        return True

    async def delete(self, key: str) -> bool:
        try:
            client = await self._require()
            await client.delete(key)
        except CacheUnavailable:
            return False
        except (RedisError, OSError) as exc:
            await self._degrade("DEL", key, exc)
            return False
        return True

    async def _require(self) -> "redis.Redis":
        if self._redis is None:
            await self.connect()
        client = self._redis
        if client is None:
            raise CacheUnavailable("Cache backend is not connected.")
        return client

    def _in_backoff(self) -> bool:
        if self._last_failure is None:
            return False
        return self._monotonic() - self._last_failure < self._settings.reconnect_interval_seconds

    async def _degrade(self, operation: str, key: str, exc: Exception) -> None:
        logger.warning("Redis %s failed for %s, dropping connection: %s", operation, key, exc)
        self._last_failure = self._monotonic()
        await self.disconnect()

    @staticmethod
    async def _close(client: "redis.Redis") -> None:
        try:
            await client.aclose()
        except (RedisError, OSError) as exc:
            logger.debug("Ignoring error while closing Redis client: %s", exc)


__all__ = ["RedisCacheClient"]
