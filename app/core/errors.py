"""
Error taxonomy for the Instagram credential and sync pipeline.

Each error carries a stable ``reason`` code so callers (the admin UI and the
public feed loader) can tell failures apart, plus the raw provider payload
when one was returned.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class InstagramIntegrationError(Exception):
    """Base class for every failure raised by the integration."""

    reason = "instagram_error"
    retryable = False

    def __init__(self, message: str, *, provider_error: Any = None) -> None:
        super().__init__(message)
        self.message = message
        self.provider_error = provider_error

    def to_dict(self) -> Dict[str, Any]:
        return {
            "reason": self.reason,
            "message": self.message,
            "provider_error": self.provider_error,
        }


class AuthorizationDenied(InstagramIntegrationError):
    """The account owner rejected the consent screen."""

    reason = "authorization_denied"


class InvalidAuthorizationState(AuthorizationDenied):
    """The callback carried a state value this service did not issue."""

    reason = "invalid_state"


class CodeExchangeFailed(InstagramIntegrationError):
    """The authorization code could not be traded for a short-lived token."""

    reason = "code_exchange_failed"


class TokenExchangeFailed(InstagramIntegrationError):
    """The short-lived token could not be upgraded to a long-lived one."""

    reason = "token_exchange_failed"


class ProfileFetchFailed(TokenExchangeFailed):
    reason = "profile_fetch_failed"


class NotConnected(InstagramIntegrationError):
    """No usable credential is stored."""

    reason = "not_connected"


class TokenExpired(InstagramIntegrationError):
    """The stored token is expired and the account must be reconnected."""

    reason = "token_expired"


class RefreshFailed(TokenExpired):
    reason = "refresh_failed"


class ProviderAPIError(InstagramIntegrationError):
    """Network failure, timeout or non-success response from the Graph API."""

    reason = "provider_api_error"
    retryable = True

    def __init__(
        self,
        message: str,
        *,
        provider_error: Any = None,
        status_code: Optional[int] = None,
    ) -> None:
        super().__init__(message, provider_error=provider_error)
        self.status_code = status_code

    def to_dict(self) -> Dict[str, Any]:
        payload = super().to_dict()
        payload["status_code"] = self.status_code
        return payload


class CacheUnavailable(InstagramIntegrationError):
    """Raised inside the cache client only; never escapes it."""

    reason = "cache_unavailable"
    retryable = True


class SyncInProgress(InstagramIntegrationError):
    """A waiting caller gave up on an in-flight sync."""

    reason = "sync_in_progress"
    retryable = True


__all__ = [
    "AuthorizationDenied",
    "CacheUnavailable",
    "CodeExchangeFailed",
    "InstagramIntegrationError",
    "InvalidAuthorizationState",
    "NotConnected",
    "ProfileFetchFailed",
    "ProviderAPIError",
    "RefreshFailed",
    "SyncInProgress",
    "TokenExchangeFailed",
    "TokenExpired",
]
