"""
Helpers for validating and refreshing the stored Instagram token.
"""

from __future__ import annotations

import logging
from datetime import timedelta

from app.clients.instagram_auth import InstagramOAuthClient
from app.core.errors import NotConnected, RefreshFailed
from app.models.instagram import Credential
from app.services.credential_store import CredentialStore
from app.utils.clock import Clock, utc_now

logger = logging.getLogger(__name__)


class InstagramTokenService:
    """Keeps the long-lived token usable for the sync pipeline."""

    def __init__(
        self,
        store: CredentialStore,
        oauth_client: InstagramOAuthClient,
        *,
        refresh_window_seconds: int = 0,
        clock: Clock = utc_now,
    ) -> None:
        self._store = store
        self._oauth = oauth_client
        self._refresh_window = timedelta(seconds=refresh_window_seconds)
        self._clock = clock

    def needs_refresh(self, credential: Credential) -> bool:
        return credential.token_expired(self._clock(), self._refresh_window)

    async def ensure_valid(self, credential: Credential) -> Credential:
        """Return a credential whose token can be used right now."""
        if not credential.has_usable_token():
            raise NotConnected("Instagram is not connected. Connect the account first.")
        if self.needs_refresh(credential):
            return await self.refresh(credential)
        return credential

    async def refresh(self, credential: Credential) -> Credential:
        """
        Renew the token and persist the new token and expiry.

        On failure the credential is marked disconnected while the old token
        and expiry are kept for diagnosis, and ``RefreshFailed`` propagates.
        """
        if not credential.access_token:
            raise NotConnected("No access token stored; reconnect Instagram.")

        logger.info(
            "Refreshing Instagram token for %s (expires %s)",
            credential.username,
            credential.token_expires_at.isoformat() if credential.token_expires_at else "never",
        )
        try:
            refreshed = await self._oauth.refresh_token(credential.access_token)
        except RefreshFailed as exc:
            failed_at = self._clock()
            self._store.save(
                credential.model_copy(update={"is_connected": False, "updated_at": failed_at})
            )
            logger.warning(
                "Instagram token refresh failed, account marked disconnected: %s (%s)",
                exc.message,
                exc.provider_error,
            )
            raise RefreshFailed(
                "Access token expired and refresh failed. Please reconnect Instagram.",
                provider_error=exc.provider_error,
            ) from exc

        refreshed_at = self._clock()
        updated = credential.model_copy(
            update={
                "access_token": refreshed.access_token,
                "token_expires_at": refreshed_at + timedelta(seconds=refreshed.expires_in),
                "is_connected": True,
                "updated_at": refreshed_at,
            }
        )
        self._store.save(updated)
        logger.info(
            "Instagram token refreshed, expires %s", updated.token_expires_at.isoformat()
        )
        return updated


__all__ = ["InstagramTokenService"]
