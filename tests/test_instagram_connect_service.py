from __future__ import annotations

from datetime import timedelta

import pytest

from app.clients.instagram_auth import (
    InstagramProfile,
    LongLivedToken,
    OAuthStateEncoder,
    ShortLivedToken,
)
from app.core.errors import (
    AuthorizationDenied,
    CodeExchangeFailed,
    InvalidAuthorizationState,
    TokenExchangeFailed,
)
from app.models.instagram import Credential
from app.services.instagram_connect import InstagramConnectService


class DummyOAuthClient:
    def __init__(self, *, user_id: str = "178414", username: str = "studio") -> None:
        self.user_id = user_id
        self.username = username
        self.fail_long_lived = False
        self.codes: list[str] = []
        self.short_tokens: list[str] = []

    def build_authorization_url(self, state: str | None = None) -> str:
        return f"https://www.instagram.com/oauth/authorize?state={state}"

    async def exchange_code(self, code: str) -> ShortLivedToken:
        self.codes.append(code)
        return ShortLivedToken(access_token=f"short-{code}", user_id=self.user_id)

    async def exchange_for_long_lived(self, short_lived_token: str) -> LongLivedToken:
        self.short_tokens.append(short_lived_token)
        if self.fail_long_lived:
            raise TokenExchangeFailed(
                "Long-lived token exchange failed with status 400.",
                provider_error={"error": {"message": "Invalid platform app"}},
            )
        return LongLivedToken(access_token="long-token", expires_in=5184000)

    async def fetch_profile(self, access_token: str) -> InstagramProfile:
        return InstagramProfile(user_id=self.user_id, username=self.username)


@pytest.fixture
def oauth() -> DummyOAuthClient:
    return DummyOAuthClient()


@pytest.fixture
def encoder(clock) -> OAuthStateEncoder:
    return OAuthStateEncoder("state-secret", clock=clock)


@pytest.fixture
def service(credential_store, oauth, encoder, clock) -> InstagramConnectService:
    return InstagramConnectService(credential_store, oauth, state_encoder=encoder, clock=clock)


@pytest.mark.asyncio
async def test_successful_callback_stores_connected_credential(
    service, credential_store, oauth, clock
) -> None:
    result = await service.complete_authorization(code="auth-code")

    assert result.ok
    assert oauth.codes == ["auth-code"]
    assert oauth.short_tokens == ["short-auth-code"]
    stored = credential_store.load()
    assert stored.is_connected is True
    assert stored.username == "studio"
    assert stored.provider_user_id == "178414"
    assert stored.access_token == "long-token"
    assert stored.token_expires_at == clock() + timedelta(seconds=5184000)
    assert stored.last_sync is None


@pytest.mark.asyncio
async def test_provider_error_is_surfaced_verbatim(service, credential_store, oauth) -> None:
    result = await service.complete_authorization(
        code="ignored",
        error="access_denied",
        error_reason="user_denied",
        error_description="The user denied your request.",
    )

    assert not result.ok
    assert isinstance(result.error, AuthorizationDenied)
    assert result.message == "The user denied your request."
    assert result.error.provider_error["error_reason"] == "user_denied"
    assert oauth.codes == []
    assert credential_store.load() is None


@pytest.mark.asyncio
async def test_provider_error_without_description_uses_generic_message(service) -> None:
    result = await service.complete_authorization(error="access_denied")

    assert result.message == "Authorization failed"


@pytest.mark.asyncio
async def test_missing_code_is_rejected(service, oauth) -> None:
    result = await service.complete_authorization()

    assert isinstance(result.error, CodeExchangeFailed)
    assert result.message == "No authorization code received"
    assert oauth.codes == []


@pytest.mark.asyncio
async def test_failed_upgrade_leaves_existing_credential_untouched(
    service, credential_store, oauth, clock
) -> None:
    existing = Credential(
        provider_user_id="178414",
        username="studio",
        access_token="current-token",
        token_expires_at=clock() + timedelta(days=10),
        is_connected=True,
    )
    credential_store.save(existing)
    oauth.fail_long_lived = True

    result = await service.complete_authorization(code="auth-code")

    assert isinstance(result.error, TokenExchangeFailed)
    assert credential_store.load() == existing


@pytest.mark.asyncio
async def test_replayed_code_is_rejected_without_provider_call(service, oauth) -> None:
    first = await service.complete_authorization(code="auth-code")
    second = await service.complete_authorization(code="auth-code")

    assert first.ok
    assert isinstance(second.error, CodeExchangeFailed)
    assert oauth.codes == ["auth-code"]


@pytest.mark.asyncio
async def test_forged_state_is_rejected(service, oauth, clock) -> None:
    forged = OAuthStateEncoder("attacker-secret", clock=clock).encode({"nonce": "x"})

    result = await service.complete_authorization(code="auth-code", state=forged)

    assert isinstance(result.error, InvalidAuthorizationState)
    assert oauth.codes == []


@pytest.mark.asyncio
async def test_issued_state_is_accepted(service, oauth) -> None:
    url = service.authorization_url(nonce="abc")
    state = url.split("state=", 1)[1]

    result = await service.complete_authorization(code="auth-code", state=state)

    assert result.ok


@pytest.mark.asyncio
async def test_reconnect_same_account_keeps_last_sync(
    service, credential_store, clock
) -> None:
    last_sync = clock() - timedelta(hours=3)
    credential_store.save(
        Credential(
            provider_user_id="178414",
            username="studio",
            access_token="stale",
            token_expires_at=clock() - timedelta(days=1),
            is_connected=False,
            last_sync=last_sync,
        )
    )

    result = await service.complete_authorization(code="auth-code")

    assert result.ok
    assert credential_store.load().last_sync == last_sync


@pytest.mark.asyncio
async def test_connecting_a_different_account_resets_last_sync(
    service, credential_store, oauth, clock
) -> None:
    credential_store.save(
        Credential(
            provider_user_id="999",
            username="previous",
            access_token="stale",
            token_expires_at=clock() + timedelta(days=1),
            is_connected=True,
            last_sync=clock() - timedelta(hours=3),
        )
    )

    result = await service.complete_authorization(code="auth-code")

    stored = credential_store.load()
    assert result.ok
    assert stored.provider_user_id == "178414"
    assert stored.last_sync is None
