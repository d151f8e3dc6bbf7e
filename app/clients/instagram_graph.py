"""Shared plumbing for clients that talk to the Instagram Graph API."""

from __future__ import annotations

from http import HTTPStatus
from typing import Any, Dict, Optional, Type

import httpx

from app.core.config import InstagramSettings
from app.core.errors import InstagramIntegrationError, ProviderAPIError
from app.utils.http import RetryConfig, provider_error_payload, request_with_retry


class InstagramGraphClient:
    """Base class owning timeouts, retries and error translation."""

    GRAPH_BASE_URL = "https://graph.instagram.com"

    def __init__(
        self,
        settings: InstagramSettings,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        retry_config: Optional[RetryConfig] = None,
    ) -> None:
        self._settings = settings
        self._transport = transport
        self._retry = retry_config or RetryConfig()

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self._settings.http_timeout_seconds,
            transport=self._transport,
        )

    async def _graph_get(
        self,
        path: str,
        params: Dict[str, Any],
        *,
        error_cls: Type[InstagramIntegrationError],
        action: str,
    ) -> Dict[str, Any]:
        """GET a Graph API path and return its JSON body or raise ``error_cls``."""
        try:
            async with self._client() as client:
                response = await request_with_retry(
                    client.get,
                    f"{self.GRAPH_BASE_URL}{path}",
                    params=params,
                    retry_config=self._retry,
                )
        except httpx.TransportError as exc:
            # Never include the URL here: it carries the access token.
            raise self._error(
                error_cls,
                f"{action} failed: {exc.__class__.__name__}.",
            ) from exc

        if response.status_code != HTTPStatus.OK:
            raise self._error(
                error_cls,
                f"{action} failed with status {response.status_code}.",
                provider_error=provider_error_payload(response),
                status_code=response.status_code,
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise self._error(
                error_cls, f"{action} returned a non-JSON body."
            ) from exc
        if not isinstance(payload, dict):
            raise self._error(
                error_cls, f"{action} returned an unexpected payload.", provider_error=payload
            )
        return payload

    @staticmethod
    def _error(
        error_cls: Type[InstagramIntegrationError],
        message: str,
        *,
        provider_error: Any = None,
        status_code: Optional[int] = None,
    ) -> InstagramIntegrationError:
        if issubclass(error_cls, ProviderAPIError):
            return error_cls(message, provider_error=provider_error, status_code=status_code)
        return error_cls(message, provider_error=provider_error)


__all__ = ["InstagramGraphClient"]
