"""HTTP utilities providing retry/backoff semantics for provider calls."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable

import httpx

logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 504})


class RetryConfig:
    def __init__(self, *, attempts: int = 3, backoff_seconds: float = 0.5) -> None:
        if attempts < 1:
            raise ValueError("attempts must be at least 1")
        self.attempts = attempts
        self.backoff_seconds = backoff_seconds


NO_RETRY = RetryConfig(attempts=1)


async def request_with_retry(
    func: Callable[..., Awaitable[httpx.Response]],
    *args,
    retry_config: RetryConfig | None = None,
    **kwargs,
) -> httpx.Response:
    """
    Call ``func`` until it yields a non-retryable response.

    Transport errors (including timeouts) and rate-limit/5xx responses are
    retried with linear backoff. The final response is returned as-is so the
    caller can inspect the provider's error payload; if the final attempt
    failed at the transport level that exception is re-raised.
    """
    config = retry_config or RetryConfig()
    response: httpx.Response | None = None

    for attempt in range(1, config.attempts + 1):
        try:
            response = await func(*args, **kwargs)
        except httpx.TransportError as exc:
            if attempt >= config.attempts:
                raise
            logger.warning(
                "Provider request failed (%s), attempt %d/%d",
                exc.__class__.__name__,
                attempt,
                config.attempts,
            )
        else:
            if response.status_code not in RETRYABLE_STATUS_CODES or attempt >= config.attempts:
                return response
            logger.warning(
                "Provider returned %d, attempt %d/%d",
                response.status_code,
                attempt,
                config.attempts,
            )
        await asyncio.sleep(config.backoff_seconds * attempt)

    raise RuntimeError("Request failed without a response")  # pragma: no cover


def provider_error_payload(response: httpx.Response) -> Any:
    """Return the decoded error body, falling back to raw text."""
    try:
        return response.json()
    except ValueError:
        return response.text


__all__ = [
    "NO_RETRY",
    "RETRYABLE_STATUS_CODES",
    "RetryConfig",
    "provider_error_payload",
    "request_with_retry",
]
