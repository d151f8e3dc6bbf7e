"""
Completion of the Instagram authorization flow.

The HTTP callback hands the raw query parameters to
``InstagramConnectService.complete_authorization`` and turns the returned
``AuthorizationResult`` into a redirect. The service itself never deals in
redirects.
"""

from __future__ import annotations

import hashlib
import logging
from collections import OrderedDict
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from app.clients.instagram_auth import (
    InstagramOAuthClient,
    InstagramProfile,
    LongLivedToken,
    OAuthStateEncoder,
    ShortLivedToken,
)
from app.core.errors import (
    AuthorizationDenied,
    CodeExchangeFailed,
    InstagramIntegrationError,
    TokenExchangeFailed,
)
from app.models.instagram import Credential
from app.services.credential_store import CredentialStore
from app.utils.clock import Clock, utc_now

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuthorizationResult:
    """Outcome of an authorization callback."""

    credential: Optional[Credential] = None
    error: Optional[InstagramIntegrationError] = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.credential is not None

    @property
    def message(self) -> str:
        return self.error.message if self.error else "connected"


class InstagramConnectService:
    """Runs code -> short-lived -> long-lived exchange and stores the result."""

    _CONSUMED_CODES_LIMIT = 256

    def __init__(
        self,
        store: CredentialStore,
        oauth_client: InstagramOAuthClient,
        *,
        state_encoder: Optional[OAuthStateEncoder] = None,
        clock: Clock = utc_now,
    ) -> None:
        self._store = store
        self._oauth = oauth_client
        self._state_encoder = state_encoder
        self._clock = clock
        self._consumed_codes: "OrderedDict[str, None]" = OrderedDict()

    def authorization_url(self, **state_payload) -> str:
        state = self._state_encoder.encode(state_payload) if self._state_encoder else None
        return self._oauth.build_authorization_url(state=state)

    async def exchange_code(self, code: str) -> ShortLivedToken:
        """Trade a single-use code; a replayed code fails without a provider call."""
        fingerprint = hashlib.sha256(code.encode("utf-8")).hexdigest()
        if fingerprint in self._consumed_codes:
            raise CodeExchangeFailed("Authorization code has already been used.")
        self._consumed_codes[fingerprint] = None
        while len(self._consumed_codes) > self._CONSUMED_CODES_LIMIT:
            self._consumed_codes.popitem(last=False)
        return await self._oauth.exchange_code(code)

    async def exchange_for_long_lived(self, short_lived_token: str) -> LongLivedToken:
        return await self._oauth.exchange_for_long_lived(short_lived_token)

    async def fetch_profile(self, access_token: str) -> InstagramProfile:
        return await self._oauth.fetch_profile(access_token)

    async def complete_authorization(
        self,
        *,
        code: Optional[str] = None,
        state: Optional[str] = None,
        error: Optional[str] = None,
        error_reason: Optional[str] = None,
        error_description: Optional[str] = None,
    ) -> AuthorizationResult:
        """
        Finish the consent flow.

        Any failure leaves the stored credential untouched: nothing is written
        until every provider call has succeeded.
        """
        if error:
            logger.warning(
                "Instagram authorization denied: error=%s reason=%s description=%s",
                error,
                error_reason,
                error_description,
            )
            return AuthorizationResult(
                error=AuthorizationDenied(
                    error_description or "Authorization failed",
                    provider_error={
                        "error": error,
                        "error_reason": error_reason,
                        "error_description": error_description,
                    },
                )
            )

        if not code:
            return AuthorizationResult(error=CodeExchangeFailed("No authorization code received"))

        try:
            if state and self._state_encoder is not None:
                self._state_encoder.decode(state)
            short_lived = await self.exchange_code(code)
            long_lived = await self.exchange_for_long_lived(short_lived.access_token)
            issued_at = self._clock()
            profile = await self.fetch_profile(long_lived.access_token)
        except (AuthorizationDenied, CodeExchangeFailed, TokenExchangeFailed) as exc:
            logger.warning(
                "Instagram connection failed (%s): %s %s",
                exc.reason,
                exc.message,
                exc.provider_error or "",
            )
            return AuthorizationResult(error=exc)

        credential = self._build_credential(
            profile=profile,
            fallback_user_id=short_lived.user_id,
            token=long_lived,
            issued_at=issued_at,
        )
        self._store.save(credential)
        logger.info(
            "Instagram connected: username=%s user_id=%s expires=%s",
            credential.username,
            credential.provider_user_id,
            credential.token_expires_at.isoformat(),
        )
        return AuthorizationResult(credential=credential)

    def _build_credential(
        self,
        *,
        profile: InstagramProfile,
        fallback_user_id: Optional[str],
        token: LongLivedToken,
        issued_at,
    ) -> Credential:
        provider_user_id = profile.user_id or fallback_user_id
        existing = self._store.load()
        same_account = existing is not None and existing.provider_user_id == provider_user_id
        now = self._clock()
        return Credential(
            provider_user_id=provider_user_id,
            username=profile.username,
            access_token=token.access_token,
            token_expires_at=issued_at + timedelta(seconds=token.expires_in),
            is_connected=True,
            last_sync=existing.last_sync if same_account else None,
            connected_at=now,
            updated_at=now,
        )


__all__ = ["AuthorizationResult", "InstagramConnectService"]
