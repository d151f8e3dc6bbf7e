"""
Instagram OAuth utilities.

These helpers drive the consent flow: authorization URL, code exchange,
long-lived token upgrade, profile lookup and token refresh.
"""

from __future__ import annotations

import base64
import binascii
import hmac
import json
from dataclasses import dataclass
from datetime import datetime, timedelta
from hashlib import sha256
from http import HTTPStatus
from typing import Any, Dict, Optional
from urllib.parse import urlencode

import httpx

from app.clients.instagram_graph import InstagramGraphClient
from app.core.config import InstagramSettings
from app.core.errors import (
    CodeExchangeFailed,
    InvalidAuthorizationState,
    ProfileFetchFailed,
    RefreshFailed,
    TokenExchangeFailed,
)
from app.utils.clock import Clock, ensure_aware, utc_now
from app.utils.http import NO_RETRY, RetryConfig, provider_error_payload, request_with_retry


@dataclass(frozen=True)
class ShortLivedToken:
    access_token: str
    user_id: Optional[str] = None


@dataclass(frozen=True)
class LongLivedToken:
    access_token: str
    expires_in: int


@dataclass(frozen=True)
class InstagramProfile:
    user_id: str
    username: str
    account_type: Optional[str] = None
    media_count: Optional[int] = None


class OAuthStateEncoder:
    """Encode and decode OAuth state values to guard against tampering."""

    def __init__(self, secret_key: str, *, ttl_seconds: int = 900, clock: Clock = utc_now) -> None:
        self._secret_key = secret_key.encode("utf-8")
        self._ttl = timedelta(seconds=ttl_seconds)
        self._clock = clock

    def encode(self, payload: Dict[str, Any]) -> str:
        stamped = dict(payload, issued_at=self._clock().isoformat())
        serialized = json.dumps(stamped, separators=(",", ":"), sort_keys=True)
        signature = hmac.new(self._secret_key, serialized.encode("utf-8"), sha256).digest()
        return base64.urlsafe_b64encode(signature + serialized.encode("utf-8")).decode("utf-8")

    def decode(self, token: str) -> Dict[str, Any]:
        try:
            decoded = base64.urlsafe_b64decode(token.encode("utf-8"))
        except (binascii.Error, ValueError) as exc:
            raise InvalidAuthorizationState("Malformed OAuth state.") from exc
        signature, serialized = decoded[:32], decoded[32:]
        expected_signature = hmac.new(self._secret_key, serialized, sha256).digest()
        if not hmac.compare_digest(signature, expected_signature):
            raise InvalidAuthorizationState("Invalid OAuth state signature.")
        payload = json.loads(serialized)

        try:
            issued_at = ensure_aware(datetime.fromisoformat(payload["issued_at"]))
        except (KeyError, TypeError, ValueError) as exc:
            raise InvalidAuthorizationState("OAuth state is missing issued_at.") from exc
        if self._clock() - issued_at > self._ttl:
            raise InvalidAuthorizationState("OAuth state has expired; start the connection again.")
        return payload


class InstagramOAuthClient(InstagramGraphClient):
    """Build Instagram authorization URLs and exchange/refresh tokens."""

    AUTH_BASE_URL = "https://www.instagram.com/oauth/authorize"
    TOKEN_URL = "https://api.instagram.com/oauth/access_token"
    PROFILE_FIELDS = "id,username,account_type,media_count"

    def __init__(
        self,
        settings: InstagramSettings,
        redirect_uri: str,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        retry_config: Optional[RetryConfig] = None,
    ) -> None:
        super().__init__(settings, transport=transport, retry_config=retry_config)
        self._redirect_uri = redirect_uri

    def build_authorization_url(self, state: Optional[str] = None) -> str:
        """Construct the Instagram consent URL."""
        params = {
            "client_id": self._settings.app_id,
            "redirect_uri": self._redirect_uri,
            "response_type": "code",
            "scope": ",".join(self._settings.scope_list),
        }
        if state:
            params["state"] = state
        return f"{self.AUTH_BASE_URL}?{urlencode(params)}"

    async def exchange_code(self, code: str) -> ShortLivedToken:
        """
        Exchange a single-use authorization code for a short-lived token.

        The code is consumed by the provider on first use, so this call is
        never retried.
        """
        payload = {
            "client_id": self._settings.app_id,
            "client_secret": self._settings.app_secret,
            "grant_type": "authorization_code",
            "redirect_uri": self._redirect_uri,
            "code": code,
        }

        try:
            async with self._client() as client:
                response = await request_with_retry(
                    client.post, self.TOKEN_URL, data=payload, retry_config=NO_RETRY
                )
        except httpx.TransportError as exc:
            raise CodeExchangeFailed(
                f"Token exchange failed: {exc.__class__.__name__}."
            ) from exc

        if response.status_code != HTTPStatus.OK:
            raise CodeExchangeFailed(
                f"Token exchange failed with status {response.status_code}.",
                provider_error=provider_error_payload(response),
            )

        try:
            token_payload = response.json()
        except ValueError as exc:
            raise CodeExchangeFailed("Token exchange returned a non-JSON body.") from exc
        if not isinstance(token_payload, dict):
            raise CodeExchangeFailed(
                "Token exchange returned an unexpected payload.", provider_error=token_payload
            )

        # Newer Instagram Login responses wrap the token in a one-element list.
        if isinstance(token_payload.get("data"), list) and token_payload["data"]:
            token_payload = token_payload["data"][0]

        access_token = token_payload.get("access_token")
        if not access_token:
            raise CodeExchangeFailed(
                "Incomplete token payload returned from Instagram.",
                provider_error=token_payload,
            )
        user_id = token_payload.get("user_id")
        return ShortLivedToken(
            access_token=access_token,
            user_id=str(user_id) if user_id is not None else None,
        )

    async def exchange_for_long_lived(self, short_lived_token: str) -> LongLivedToken:
        """Upgrade a short-lived token to a ~60 day long-lived token."""
        token_payload = await self._graph_get(
            "/access_token",
            {
                "grant_type": "ig_exchange_token",
                "client_secret": self._settings.app_secret,
                "access_token": short_lived_token,
            },
            error_cls=TokenExchangeFailed,
            action="Long-lived token exchange",
        )
        return self._long_lived_from(token_payload, TokenExchangeFailed)

    async def fetch_profile(self, access_token: str) -> InstagramProfile:
        """Look up the account behind ``access_token``."""
        profile = await self._graph_get(
            "/me",
            {"fields": self.PROFILE_FIELDS, "access_token": access_token},
            error_cls=ProfileFetchFailed,
            action="Profile fetch",
        )
        user_id = profile.get("user_id") or profile.get("id")
        username = profile.get("username")
        if not user_id or not username:
            raise ProfileFetchFailed(
                "Incomplete profile returned from Instagram.", provider_error=profile
            )
        return InstagramProfile(
            user_id=str(user_id),
            username=username,
            account_type=profile.get("account_type"),
            media_count=profile.get("media_count"),
        )

    async def refresh_token(self, access_token: str) -> LongLivedToken:
        """Trade a still-valid long-lived token for a renewed one."""
        token_payload = await self._graph_get(
            "/refresh_access_token",
            {"grant_type": "ig_refresh_token", "access_token": access_token},
            error_cls=RefreshFailed,
            action="Token refresh",
        )
        return self._long_lived_from(token_payload, RefreshFailed)

    @staticmethod
    def _long_lived_from(token_payload: Dict[str, Any], error_cls) -> LongLivedToken:
        access_token = token_payload.get("access_token")
        expires_in = token_payload.get("expires_in")
        try:
            expires_in = int(expires_in)
        except (TypeError, ValueError):
            expires_in = 0
        if not access_token or expires_in <= 0:
            raise error_cls(
                "Incomplete token payload returned from Instagram.",
                provider_error={k: v for k, v in token_payload.items() if k != "access_token"},
            )
        return LongLivedToken(access_token=access_token, expires_in=expires_in)


__all__ = [
    "InstagramOAuthClient",
    "InstagramProfile",
    "LongLivedToken",
    "OAuthStateEncoder",
    "ShortLivedToken",
]
