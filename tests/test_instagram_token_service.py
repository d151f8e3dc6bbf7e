from __future__ import annotations

from datetime import timedelta

import pytest

from app.clients.instagram_auth import LongLivedToken
from app.core.errors import NotConnected, RefreshFailed
from app.models.instagram import Credential
from app.services.instagram_tokens import InstagramTokenService


class DummyOAuthClient:
    def __init__(self, *, fail: bool = False) -> None:
        self.fail = fail
        self.calls: list[str] = []

    async def refresh_token(self, access_token: str) -> LongLivedToken:
        self.calls.append(access_token)
        if self.fail:
            raise RefreshFailed(
                "Token refresh failed with status 400.",
                provider_error={"error": {"message": "Session has expired"}},
            )
        return LongLivedToken(access_token="renewed-token", expires_in=5184000)


def _stored(credential_store, clock, *, expires_in: timedelta) -> Credential:
    credential = Credential(
        provider_user_id="178414",
        username="studio",
        access_token="old-token",
        token_expires_at=clock() + expires_in,
        is_connected=True,
        last_sync=clock() - timedelta(days=1),
    )
    return credential_store.save(credential)


@pytest.mark.asyncio
async def test_valid_token_is_returned_without_refresh(credential_store, clock) -> None:
    oauth = DummyOAuthClient()
    service = InstagramTokenService(credential_store, oauth, clock=clock)
    credential = _stored(credential_store, clock, expires_in=timedelta(days=5))

    result = await service.ensure_valid(credential)

    assert result.access_token == "old-token"
    assert oauth.calls == []


@pytest.mark.asyncio
async def test_expired_token_is_refreshed_and_persisted(credential_store, clock) -> None:
    oauth = DummyOAuthClient()
    service = InstagramTokenService(credential_store, oauth, clock=clock)
    credential = _stored(credential_store, clock, expires_in=timedelta(seconds=-1))

    result = await service.ensure_valid(credential)

    assert oauth.calls == ["old-token"]
    assert result.access_token == "renewed-token"
    assert result.token_expires_at == clock() + timedelta(seconds=5184000)
    stored = credential_store.load()
    assert stored.access_token == "renewed-token"
    assert stored.token_expires_at == result.token_expires_at
    assert stored.is_connected is True


@pytest.mark.asyncio
async def test_token_expiring_exactly_now_is_refreshed(credential_store, clock) -> None:
    oauth = DummyOAuthClient()
    service = InstagramTokenService(credential_store, oauth, clock=clock)
    credential = _stored(credential_store, clock, expires_in=timedelta(0))

    await service.ensure_valid(credential)

    assert oauth.calls == ["old-token"]


@pytest.mark.asyncio
async def test_refresh_window_triggers_early_refresh(credential_store, clock) -> None:
    oauth = DummyOAuthClient()
    service = InstagramTokenService(
        credential_store, oauth, refresh_window_seconds=7 * 86400, clock=clock
    )
    credential = _stored(credential_store, clock, expires_in=timedelta(days=3))

    assert service.needs_refresh(credential)
    await service.ensure_valid(credential)
    assert oauth.calls == ["old-token"]


@pytest.mark.asyncio
async def test_refresh_failure_disconnects_but_keeps_token(credential_store, clock) -> None:
    oauth = DummyOAuthClient(fail=True)
    service = InstagramTokenService(credential_store, oauth, clock=clock)
    credential = _stored(credential_store, clock, expires_in=timedelta(seconds=-1))

    with pytest.raises(RefreshFailed) as exc_info:
        await service.ensure_valid(credential)

    assert "reconnect" in exc_info.value.message.lower()
    assert exc_info.value.provider_error == {"error": {"message": "Session has expired"}}
    stored = credential_store.load()
    assert stored.is_connected is False
    assert stored.access_token == "old-token"
    assert stored.token_expires_at == credential.token_expires_at
    assert stored.last_sync == credential.last_sync


@pytest.mark.asyncio
async def test_disconnected_credential_is_rejected(credential_store, clock) -> None:
    oauth = DummyOAuthClient()
    service = InstagramTokenService(credential_store, oauth, clock=clock)
    credential = _stored(credential_store, clock, expires_in=timedelta(days=5))

    with pytest.raises(NotConnected):
        await service.ensure_valid(credential.model_copy(update={"is_connected": False}))
    assert oauth.calls == []
