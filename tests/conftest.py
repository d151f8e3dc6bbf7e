"""Pytest configuration and fakes shared across the suite."""

from __future__ import annotations

try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover - fallback for direct execution
    import _bootstrap  # type: ignore # noqa: F401

import copy
import json
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import pytest

from app.clients.sqlite_store import SQLiteStore
from app.services.credential_store import CredentialStore
from app.services.token_cipher import TokenCipherService

T0 = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


class FrozenClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime = T0) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class FakeCache:
    """In-memory stand-in for ``RedisCacheClient`` honouring TTLs on the fake clock."""

    def __init__(self, clock: FrozenClock) -> None:
        self._clock = clock
        self._entries: dict[str, tuple[str, Optional[datetime]]] = {}
        self.available = True
        self.fail_writes = False
        self.sets: list[tuple[str, Any, Optional[int]]] = []
        self.deletes: list[str] = []

    async def get(self, key: str) -> Optional[Any]:
        if not self.available or key not in self._entries:
            return None
        raw, expires_at = self._entries[key]
        if expires_at is not None and self._clock() >= expires_at:
            return None
        return json.loads(raw)

    async def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> bool:
        self.sets.append((key, value, ttl_seconds))
        if not self.available or self.fail_writes:
            return False
        expires_at = self._clock() + timedelta(seconds=ttl_seconds) if ttl_seconds else None
        self._entries[key] = (json.dumps(value), expires_at)
        return True

    async def delete(self, key: str) -> bool:
        self.deletes.append(key)
        if not self.available:
            return False
        self._entries.pop(key, None)
        return True

    def raw(self, key: str) -> Optional[Any]:
        entry = self._entries.get(key)
        return json.loads(entry[0]) if entry else None


@pytest.fixture
def anyio_backend() -> str:
    """Force AnyIO-powered tests to run against asyncio backend only."""
    return "asyncio"


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def cache(clock: FrozenClock) -> FakeCache:
    return FakeCache(clock)


@pytest.fixture
def cipher() -> TokenCipherService:
    return TokenCipherService(secret="unit-test-secret")


@pytest.fixture
def sqlite_store(tmp_path) -> SQLiteStore:
    return SQLiteStore(str(tmp_path / "instagram.sqlite3"))


@pytest.fixture
def credential_store(sqlite_store: SQLiteStore, cipher: TokenCipherService) -> CredentialStore:
    return CredentialStore(sqlite_store, cipher)


@pytest.fixture
def instagram_settings():
    from app.core.config import InstagramSettings

    return InstagramSettings(
        INSTAGRAM_APP_ID="app-123",
        INSTAGRAM_APP_SECRET="app-secret",
        INSTAGRAM_SCOPES="instagram_business_basic",
    )


@pytest.fixture
def app_settings():
    from app.core.config import get_settings

    return copy.deepcopy(get_settings())
